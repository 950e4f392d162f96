"""Pipeline orchestration for the plan/generate/clean/build-all commands."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .analyzers import ProjectDetector
from .cleanup import CleanupEngine, CleanupReport
from .config import ConfigError, DocsiteConfig, load_config
from .errors import DocsiteError, OutputWriteError, PlanIssue
from .generator import ContentGenerator
from .llm.runner import Backend, LLMRunner
from .logging import get_logger
from .models import PLAN_SCHEMA_VERSION, DocPlan, GeneratedPage, PageStatus, ProjectProfile, SourceTree
from .planner import Planner
from .postproc.markers import MarkerManager
from .postproc.navigation import NavigationBuilder
from .prompting.builder import PromptBuilder, plan_signature
from .repo_scanner import RepoScanner
from .retry import Cancelled, RetryPolicy
from .stores import PageCache
from .writer import CREATED, UNCHANGED, UPDATED, atomic_write_text

PLAN_FROM_CACHE = "cache"
PLAN_FROM_BACKEND = "backend"
PLAN_FROM_DISK = "persisted"


@dataclass
class RunSummary:
    """Outcome of one CLI/service invocation."""

    command: str
    root: Path
    pages: List[GeneratedPage] = field(default_factory=list)
    plan: Optional[DocPlan] = None
    plan_source: Optional[str] = None
    profile: Optional[ProjectProfile] = None
    cleanup: Optional[CleanupReport] = None
    site_config: Optional[str] = None
    cancelled: bool = False
    fatal: Optional[str] = None
    error_kind: Optional[str] = None
    issues: List[PlanIssue] = field(default_factory=list)

    def _count(self, *statuses: PageStatus) -> int:
        return sum(1 for page in self.pages if page.status in statuses)

    def _outcomes(self, outcome: str) -> int:
        return sum(1 for page in self.pages if page.outcome == outcome)

    @property
    def created(self) -> int:
        return self._outcomes(CREATED)

    @property
    def updated(self) -> int:
        return self._outcomes(UPDATED)

    @property
    def unchanged(self) -> int:
        return self._outcomes(UNCHANGED)

    @property
    def skipped(self) -> int:
        return self._count(PageStatus.SKIPPED_UNCHANGED)

    @property
    def failed(self) -> int:
        return self._count(PageStatus.FAILED)

    @property
    def pending(self) -> int:
        return self._count(PageStatus.PENDING)

    @property
    def removed(self) -> int:
        return len(self.cleanup.removed) if self.cleanup else 0

    @property
    def orphans(self) -> int:
        return len(self.cleanup.orphans) if self.cleanup else 0

    @property
    def flagged(self) -> int:
        return len(self.cleanup.flagged) if self.cleanup else 0

    @property
    def exit_code(self) -> int:
        if self.fatal or self.cancelled or self.failed:
            return 1
        return 0

    def render(self) -> str:
        lines = [f"docsite {self.command}: {self.root}"]
        if self.profile is not None:
            lines.append(
                f"  project: {self.profile.name} ({self.profile.project_type}, "
                f"confidence {self.profile.confidence:.2f})"
            )
        if self.plan is not None:
            lines.append(f"  plan: {len(self.plan.pages)} pages ({self.plan_source})")
        if self.pages:
            lines.append(
                "  pages: "
                f"{self.created} created, {self.updated} updated, {self.unchanged} unchanged, "
                f"{self.skipped} skipped, {self.failed} failed, {self.pending} pending"
            )
            for page in self.pages:
                if page.status == PageStatus.FAILED:
                    lines.append(f"    failed {page.page_id}: {page.error}")
        if self.cleanup is not None:
            mode = "removed" if self.cleanup.applied else "would remove"
            lines.append(
                f"  cleanup: {self.removed if self.cleanup.applied else self.orphans} {mode}, "
                f"{self.flagged} flagged for review"
            )
            for path in self.cleanup.flagged:
                lines.append(f"    review {path}")
        if self.cancelled:
            lines.append("  cancelled before completion")
        if self.fatal:
            lines.append(f"  error: {self.fatal}")
            for issue in self.issues:
                lines.append(f"    {issue.describe()}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "command": self.command,
            "root": str(self.root),
            "exit_code": self.exit_code,
            "plan_source": self.plan_source,
            "project_type": self.profile.project_type if self.profile else None,
            "counts": {
                "created": self.created,
                "updated": self.updated,
                "unchanged": self.unchanged,
                "skipped": self.skipped,
                "failed": self.failed,
                "pending": self.pending,
                "removed": self.removed,
                "orphans": self.orphans,
                "flagged": self.flagged,
            },
            "pages": [
                {
                    "id": page.page_id,
                    "status": page.status.value,
                    "outcome": page.outcome,
                    "attempts": page.attempts,
                    "error": page.error,
                    "warnings": list(page.warnings),
                }
                for page in self.pages
            ],
            "cancelled": self.cancelled,
            "error": self.fatal,
            "error_kind": self.error_kind,
            "issues": [asdict(issue) for issue in self.issues],
        }
        if self.plan is not None:
            payload["plan"] = self.plan.to_dict()
        if self.cleanup is not None:
            payload["cleanup"] = [
                {
                    "path": decision.path,
                    "verdict": decision.verdict.value,
                    "reason": decision.reason,
                    "regions": decision.regions,
                }
                for decision in self.cleanup.decisions
            ]
        return payload


@dataclass
class _Workspace:
    config: DocsiteConfig
    tree: SourceTree
    profile: ProjectProfile
    cache: PageCache


class Orchestrator:
    """Coordinates the two-phase documentation pipeline."""

    def __init__(
        self,
        backend: Backend | None = None,
        *,
        scanner: RepoScanner | None = None,
        detector: ProjectDetector | None = None,
        markers: MarkerManager | None = None,
        navigation: NavigationBuilder | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._backend = backend
        self.scanner = scanner or RepoScanner()
        self.detector = detector
        self.markers = markers or MarkerManager()
        self.navigation = navigation or NavigationBuilder()
        self.cancel_event = cancel_event or threading.Event()
        self.logger = get_logger("orchestrator")

    # ------------------------------------------------------------------
    # Commands

    def run_plan(self, path: str | Path, *, config: DocsiteConfig | None = None) -> RunSummary:
        """Phase 1 only: produce, validate and persist the plan."""
        config = self._resolve_config(path, config)
        summary = RunSummary(command="plan", root=config.root)
        try:
            workspace = self._prepare(config, summary)
            self._plan(workspace, summary, prefer_persisted=False)
        except Cancelled:
            summary.cancelled = True
        except DocsiteError as exc:
            self._record_fatal(summary, exc)
        return summary

    def run_generate(self, path: str | Path, *, config: DocsiteConfig | None = None) -> RunSummary:
        """Phase 2 against the persisted plan, planning first when none is usable."""
        config = self._resolve_config(path, config)
        summary = RunSummary(command="generate", root=config.root)
        try:
            workspace = self._prepare(config, summary)
            plan = self._plan(workspace, summary, prefer_persisted=True)
            self._generate(workspace, plan, summary)
        except Cancelled:
            summary.cancelled = True
        except DocsiteError as exc:
            self._record_fatal(summary, exc)
        return summary

    def run_clean(
        self,
        path: str | Path,
        *,
        config: DocsiteConfig | None = None,
        destructive: bool | None = None,
    ) -> RunSummary:
        """Reconcile the output root against the persisted plan without calling the backend."""
        config = self._resolve_config(path, config)
        summary = RunSummary(command="clean", root=config.root)
        try:
            self._check_output_dir(config)
            plan, _ = self._load_persisted_plan(config)
            if plan is None:
                raise DocsiteError("No persisted plan found; run `docsite plan` first")
            summary.plan = plan
            summary.plan_source = PLAN_FROM_DISK
            self._clean(config, plan, summary, destructive)
        except DocsiteError as exc:
            self._record_fatal(summary, exc)
        return summary

    def run_build_all(
        self,
        path: str | Path,
        *,
        config: DocsiteConfig | None = None,
        destructive: bool | None = None,
    ) -> RunSummary:
        """Plan, generate, write the site config and clean in one run."""
        config = self._resolve_config(path, config)
        summary = RunSummary(command="build-all", root=config.root)
        try:
            workspace = self._prepare(config, summary)
            plan = self._plan(workspace, summary, prefer_persisted=False)
            self._generate(workspace, plan, summary)
            if summary.cancelled or summary.fatal:
                return summary
            self._clean(config, plan, summary, destructive)
        except Cancelled:
            summary.cancelled = True
        except DocsiteError as exc:
            self._record_fatal(summary, exc)
        return summary

    # ------------------------------------------------------------------
    # Stages

    def _prepare(self, config: DocsiteConfig, summary: RunSummary) -> _Workspace:
        exclude = self._check_output_dir(config)
        root = config.root.resolve()
        if config.cache_file.is_relative_to(root):
            exclude.append(config.cache_file.relative_to(root).as_posix())
        tree = self.scanner.scan(config.root, ignore_patterns=config.ignore, exclude=exclude)
        if tree.skipped:
            self.logger.warning("Skipped %d unreadable paths", len(tree.skipped))
        detector = self.detector or ProjectDetector()
        profile = detector.detect(tree, config.site)
        summary.profile = profile
        cache = PageCache(config.cache_file)
        if cache.cold:
            self.logger.info("Starting with a cold cache at %s", config.cache_file)
        return _Workspace(config=config, tree=tree, profile=profile, cache=cache)

    def _plan(self, workspace: _Workspace, summary: RunSummary, *, prefer_persisted: bool) -> DocPlan:
        config, tree, profile, cache = workspace.config, workspace.tree, workspace.profile, workspace.cache
        signature = plan_signature(profile, max_depth=config.plan.max_depth)

        plan: Optional[DocPlan] = None
        current = False
        if prefer_persisted:
            plan, current = self._load_persisted_plan(config, tree, signature)
            if plan is not None:
                summary.plan_source = PLAN_FROM_DISK
        if plan is None:
            plan = cache.get_plan(tree_fingerprint=tree.root_fingerprint, signature=signature)
            if plan is not None:
                summary.plan_source = PLAN_FROM_CACHE
                self.logger.info("Source tree unchanged; reusing cached plan")
        if plan is None:
            planner = Planner(
                self._resolve_backend(config),
                self._prompt_builder(config),
                max_attempts=config.plan.max_attempts,
                max_depth=config.plan.max_depth,
                retry=RetryPolicy.from_config(config.retry),
                cancel_event=self.cancel_event,
            )
            plan = planner.generate(tree, profile).plan
            summary.plan_source = PLAN_FROM_BACKEND

        summary.plan = plan
        # A persisted plan made for an older tree must not be cached under the current fingerprint.
        if summary.plan_source != PLAN_FROM_DISK or current:
            cache.store_plan(plan, tree_fingerprint=tree.root_fingerprint, signature=signature)
        if summary.plan_source != PLAN_FROM_DISK:
            self._persist_plan(config, plan, tree_fingerprint=tree.root_fingerprint, signature=signature)
        cache.persist()
        return plan

    def _generate(self, workspace: _Workspace, plan: DocPlan, summary: RunSummary) -> None:
        config, cache = workspace.config, workspace.cache
        generator = ContentGenerator(
            self._resolve_backend(config),
            output_dir=config.output_path,
            cache=cache,
            builder=self._prompt_builder(config),
            retry=RetryPolicy.from_config(config.retry),
            markers=self.markers,
            concurrency=config.concurrency,
            cancel_event=self.cancel_event,
            grace_period=config.cancel_grace_period,
        )
        try:
            report = generator.generate(plan, workspace.tree, workspace.profile)
        finally:
            cache.prune(page.id for page in plan.pages)
            cache.persist()
        summary.pages = list(report.pages.values())
        summary.cancelled = summary.cancelled or report.cancelled
        if report.fatal:
            summary.fatal = report.fatal
            summary.error_kind = OutputWriteError.__name__
            return
        if report.cancelled:
            return
        summary.site_config = self.navigation.write(
            plan, workspace.profile, config.output_path, project_root=config.root
        )

    def _clean(
        self,
        config: DocsiteConfig,
        plan: DocPlan,
        summary: RunSummary,
        destructive: bool | None,
    ) -> None:
        engine = CleanupEngine(self.markers)
        report = engine.evaluate(plan, config.output_path)
        engine.apply(report, destructive=config.cleanup.destructive if destructive is None else destructive)
        summary.cleanup = report

    # ------------------------------------------------------------------
    # Helpers

    def _resolve_config(self, path: str | Path, config: DocsiteConfig | None) -> DocsiteConfig:
        if config is not None:
            return config
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            raise FileNotFoundError(f"Project path not found: {path}")
        return load_config(root)

    @staticmethod
    def _check_output_dir(config: DocsiteConfig) -> List[str]:
        output = config.output_path
        root = config.root.resolve()
        if output == root or output in root.parents:
            raise ConfigError(f"output_dir '{config.output_dir}' must not contain the project root")
        try:
            return [output.relative_to(root).as_posix()]
        except ValueError:
            return []

    def _resolve_backend(self, config: DocsiteConfig) -> Backend:
        if self._backend is None:
            self._backend = LLMRunner.from_config(config.llm)
        return self._backend

    @staticmethod
    def _prompt_builder(config: DocsiteConfig) -> PromptBuilder:
        return PromptBuilder(
            max_file_bytes=config.context.max_file_bytes,
            max_context_bytes=config.context.max_context_bytes,
            max_tree_entries=config.context.max_tree_entries,
        )

    @staticmethod
    def _persist_plan(config: DocsiteConfig, plan: DocPlan, *, tree_fingerprint: str, signature: str) -> None:
        payload = plan.to_dict()
        payload["tree_fingerprint"] = tree_fingerprint
        payload["signature"] = signature
        text = json.dumps(payload, indent=2, sort_keys=True) + "\n"
        atomic_write_text(config.plan_file, text)

    def _load_persisted_plan(
        self,
        config: DocsiteConfig,
        tree: SourceTree | None = None,
        signature: str | None = None,
    ) -> Tuple[Optional[DocPlan], bool]:
        """Load ``plan.json``; the flag is True when it was planned for this exact tree and signature."""
        try:
            payload = json.loads(config.plan_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None, False
        except (OSError, ValueError) as exc:
            self.logger.warning("Ignoring unreadable plan %s: %s", config.plan_file, exc)
            return None, False
        try:
            plan = DocPlan.from_dict(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            self.logger.warning("Ignoring malformed plan %s: %s", config.plan_file, exc)
            return None, False
        if plan.schema_version != PLAN_SCHEMA_VERSION or not plan.pages:
            return None, False
        if tree is None:
            return plan, False
        missing = [
            source for page in plan.pages for source in page.sources if not tree.exists(source)
        ]
        if missing:
            self.logger.info("Persisted plan references missing sources (%s); replanning", missing[0])
            return None, False
        current = payload.get("tree_fingerprint") == tree.root_fingerprint and payload.get("signature") == signature
        if not current:
            self.logger.info("Source tree changed since the persisted plan was made; reusing it for this run")
        return plan, current

    def _record_fatal(self, summary: RunSummary, exc: DocsiteError) -> None:
        summary.fatal = str(exc)
        summary.error_kind = type(exc).__name__
        summary.issues = list(getattr(exc, "issues", []))
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("docsite %s failed: %s", summary.command, exc)
        else:
            self.logger.error("docsite %s failed: %s", summary.command, exc)


__all__ = ["Orchestrator", "RunSummary", "PLAN_FROM_BACKEND", "PLAN_FROM_CACHE", "PLAN_FROM_DISK"]
