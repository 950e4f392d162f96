"""Phase 2: generate page bodies against a validated plan."""

from __future__ import annotations

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from .errors import BackendError, OutputWriteError, ProtectedRegionError, TransientBackendError
from .llm.runner import Backend
from .logging import get_logger
from .models import DocPlan, GeneratedPage, PageStatus, PlannedPage, ProjectProfile, SourceTree
from .postproc.markers import MarkerManager
from .prompting.builder import PromptBuilder, describe_context
from .retry import Cancelled, RetryPolicy
from .stores.page_cache import PageCache
from .writer import read_existing, write_if_changed

PAGE_DIGEST_KEY = "__page__"

_POLL_INTERVAL = 0.05


@dataclass
class GenerationReport:
    """Per-page results of one Phase 2 run, in navigation order."""

    pages: Dict[str, GeneratedPage] = field(default_factory=dict)
    cancelled: bool = False
    fatal: Optional[str] = None


class ContentGenerator:
    """Generates, merges and writes every planned page with bounded concurrency."""

    def __init__(
        self,
        backend: Backend,
        *,
        output_dir: Path,
        cache: PageCache,
        builder: PromptBuilder | None = None,
        retry: RetryPolicy | None = None,
        markers: MarkerManager | None = None,
        concurrency: int = 4,
        cancel_event: threading.Event | None = None,
        grace_period: float = 10.0,
    ) -> None:
        self.backend = backend
        self.output_dir = Path(output_dir)
        self.cache = cache
        self.builder = builder or PromptBuilder()
        self.retry = retry or RetryPolicy()
        self.markers = markers or MarkerManager()
        self.concurrency = max(1, concurrency)
        self.cancel_event = cancel_event or threading.Event()
        self.grace_period = grace_period
        self.logger = get_logger("generator")
        self._halt = threading.Event()
        self._write_lock = threading.Lock()
        self._writes_closed = False

    @staticmethod
    def fingerprints_for(page: PlannedPage, tree: SourceTree) -> Dict[str, str]:
        """Fingerprint set that decides whether a cached body can be reused."""
        fingerprints: Dict[str, str] = {PAGE_DIGEST_KEY: page.definition_digest()}
        for source in page.sources:
            node = tree.get(source)
            fingerprints[source] = node.fingerprint if node is not None else ""
        return fingerprints

    def generate(self, plan: DocPlan, tree: SourceTree, profile: ProjectProfile) -> GenerationReport:
        """Run every page of *plan*; queued pages stay pending on cancellation."""
        self._halt = threading.Event()
        self._writes_closed = False
        ordered = list(plan.walk())
        report = GenerationReport(
            pages={page.id: GeneratedPage(page_id=page.id) for page in ordered}
        )
        if not ordered:
            return report

        unexpected: Optional[BaseException] = None
        executor = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="docsite-page")
        futures: Dict[Future, str] = {
            executor.submit(self.generate_page, page, plan, tree, profile): page.id
            for page in ordered
        }
        outstanding = set(futures)
        try:
            while outstanding:
                done, outstanding = wait(outstanding, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    unexpected = self._collect(future, futures[future], report) or unexpected
                if self.cancel_event.is_set():
                    report.cancelled = True
                if report.cancelled or report.fatal or unexpected is not None:
                    self._halt.set()
                    break

            if outstanding:
                for future in outstanding:
                    future.cancel()
                running = {future for future in outstanding if not future.cancelled()}
                if running:
                    self.logger.info(
                        "Waiting up to %.1fs for %d in-flight pages", self.grace_period, len(running)
                    )
                    done, _ = wait(running, timeout=self.grace_period)
                    for future in done:
                        unexpected = self._collect(future, futures[future], report) or unexpected
        finally:
            with self._write_lock:
                self._writes_closed = True
            executor.shutdown(wait=False, cancel_futures=True)

        if unexpected is not None:
            raise unexpected
        return report

    def generate_page(
        self,
        page: PlannedPage,
        plan: DocPlan,
        tree: SourceTree,
        profile: ProjectProfile,
    ) -> GeneratedPage:
        result = GeneratedPage(page_id=page.id)
        if self._halt.is_set() or self.cancel_event.is_set():
            return result

        target = self.output_dir / page.path
        existing = read_existing(target)
        regions = []
        if existing is not None:
            try:
                regions = self.markers.regions(existing)
            except ProtectedRegionError as exc:
                return self._fail(result, page, f"existing page has malformed protected markers: {exc}")

        fingerprints = self.fingerprints_for(page, tree)
        result.fingerprints = fingerprints
        cached = self.cache.lookup(page.id, fingerprints)
        if cached is not None:
            body = cached.body
            status = PageStatus.SKIPPED_UNCHANGED
        else:
            context = self.builder.collect_context(page, tree)
            request = self.builder.build_page_prompt(page, plan, profile, context, regions)
            self.logger.debug("Context for %s: %s", page.path, describe_context(context))

            def _count(attempt: int) -> None:
                result.attempts = attempt

            def _request() -> str:
                text = self.backend.run(request.prompt, system=request.system)
                if not text or not text.strip():
                    raise TransientBackendError("backend returned an empty response")
                return text

            try:
                body = self.retry.call(
                    _request,
                    label=f"page {page.path}",
                    cancel_event=self._halt,
                    on_attempt=_count,
                )
            except Cancelled:
                return result
            except BackendError as exc:
                return self._fail(result, page, str(exc))
            status = PageStatus.SUCCESS

        merged = self.markers.merge(body, existing)
        result.warnings.extend(merged.warnings)
        for warning in merged.warnings:
            self.logger.warning("%s: %s", page.path, warning)

        with self._write_lock:
            if self._writes_closed:
                return result
            result.outcome = write_if_changed(target, merged.text, existing)

        if status == PageStatus.SUCCESS:
            self.cache.store(page.id, fingerprints=fingerprints, body=body, status=status.value)
            self.cache.persist()
        result.body = body
        result.status = status
        self.logger.info("%s: %s (%s)", page.path, status.value, result.outcome)
        return result

    def _fail(self, result: GeneratedPage, page: PlannedPage, reason: str) -> GeneratedPage:
        result.status = PageStatus.FAILED
        result.error = reason
        self.logger.error("%s: failed: %s", page.path, reason)
        return result

    def _collect(self, future: Future, page_id: str, report: GenerationReport) -> Optional[BaseException]:
        if future.cancelled():
            return None
        error = future.exception()
        if error is None:
            report.pages[page_id] = future.result()
            return None
        if isinstance(error, OutputWriteError):
            if report.fatal is None:
                report.fatal = str(error)
                self.logger.error("Stopping generation: %s", error)
            return None
        return error


__all__ = ["ContentGenerator", "GenerationReport", "PAGE_DIGEST_KEY"]
