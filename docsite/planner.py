"""Phase 1: ask the backend for a documentation manifest and validate it."""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .errors import PlanIssue, StructuralError
from .llm.runner import Backend
from .logging import get_logger
from .models import DocPlan, PlannedPage, ProjectProfile, SourceTree
from .prompting.builder import PromptBuilder
from .retry import RetryPolicy

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n\s*```", re.DOTALL)
_RESERVED_PREFIXES = ("public/",)


@dataclass
class _Entry:
    path: str
    title: str
    sources: Tuple[str, ...]
    summary: str
    parent: Optional[str]
    index: int


@dataclass
class PlanOutcome:
    """Validated plan plus the issues seen on rejected attempts."""

    plan: DocPlan
    attempts: int
    rejected: List[List[PlanIssue]] = field(default_factory=list)


class Planner:
    """Produces a validated ``DocPlan`` with corrective retries."""

    def __init__(
        self,
        backend: Backend,
        builder: PromptBuilder | None = None,
        *,
        max_attempts: int = 3,
        max_depth: int = 3,
        retry: RetryPolicy | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.backend = backend
        self.builder = builder or PromptBuilder()
        self.max_attempts = max_attempts
        self.max_depth = max_depth
        self.retry = retry or RetryPolicy()
        self.cancel_event = cancel_event
        self.logger = get_logger("planner")

    def generate(self, tree: SourceTree, profile: ProjectProfile) -> PlanOutcome:
        """Request manifests until one validates or ``max_attempts`` is exhausted."""
        issues: List[PlanIssue] = []
        rejected: List[List[PlanIssue]] = []
        for attempt in range(1, self.max_attempts + 1):
            request = self.builder.build_plan_prompt(
                tree, profile, max_depth=self.max_depth, issues=issues
            )
            response = self.retry.call(
                lambda: self.backend.run(request.prompt, system=request.system),
                label="plan request",
                cancel_event=self.cancel_event,
            )
            plan, issues = self.parse(response, tree)
            if plan is not None:
                self.logger.info(
                    "Plan accepted on attempt %d with %d pages", attempt, len(plan.pages)
                )
                return PlanOutcome(plan=plan, attempts=attempt, rejected=rejected)
            rejected.append(list(issues))
            self.logger.warning(
                "Plan attempt %d/%d rejected: %s",
                attempt,
                self.max_attempts,
                "; ".join(issue.describe() for issue in issues),
            )
        raise StructuralError(
            f"No valid documentation plan after {self.max_attempts} attempts",
            issues,
        )

    def parse(self, response: str, tree: SourceTree) -> Tuple[Optional[DocPlan], List[PlanIssue]]:
        """Decode and validate a manifest; returns the plan or every issue found."""
        payload, issues = self._decode(response)
        if payload is None:
            return None, issues
        entries, issues = self._flatten(payload)
        if issues:
            return None, issues
        return self.validate(entries, tree)

    # ------------------------------------------------------------------
    # Decoding

    @staticmethod
    def _decode(response: str) -> Tuple[Optional[Any], List[PlanIssue]]:
        text = response.strip()
        match = _FENCED_JSON_RE.search(text)
        if match:
            text = match.group(1).strip()
        elif not text.startswith(("{", "[")):
            start = text.find("{")
            end = text.rfind("}")
            if start != -1 and end > start:
                text = text[start : end + 1]
        try:
            return json.loads(text), []
        except json.JSONDecodeError as exc:
            return None, [PlanIssue("malformed-json", f"response is not valid JSON ({exc.msg})")]

    def _flatten(self, payload: Any) -> Tuple[List[_Entry], List[PlanIssue]]:
        if isinstance(payload, dict):
            pages = payload.get("pages")
        else:
            pages = payload
        if not isinstance(pages, list):
            return [], [PlanIssue("malformed-shape", "expected an object with a 'pages' list")]
        if not pages:
            return [], [PlanIssue("empty-plan", "the manifest lists no pages")]

        entries: List[_Entry] = []
        issues: List[PlanIssue] = []

        def visit(items: Sequence[Any], enclosing: Optional[str], trail: str) -> None:
            for offset, item in enumerate(items):
                where = f"{trail}[{offset}]"
                if not isinstance(item, dict):
                    issues.append(PlanIssue("malformed-shape", f"{where} is not an object"))
                    continue
                path = item.get("path")
                title = item.get("title")
                if not isinstance(path, str) or not path.strip():
                    issues.append(PlanIssue("malformed-shape", f"{where} has no 'path' string"))
                    continue
                if not isinstance(title, str) or not title.strip():
                    issues.append(PlanIssue("malformed-shape", "missing 'title' string", page=path))
                    continue
                sources = item.get("sources", [])
                if not isinstance(sources, list) or not all(isinstance(src, str) for src in sources):
                    issues.append(PlanIssue("malformed-shape", "'sources' must be a list of strings", page=path))
                    continue
                summary = item.get("summary") or ""
                if not isinstance(summary, str):
                    summary = str(summary)
                parent = item.get("parent")
                if parent is not None and not isinstance(parent, str):
                    issues.append(PlanIssue("malformed-shape", "'parent' must be a string or null", page=path))
                    continue
                parent_id = PlannedPage.identifier_for(parent) if parent else None
                if enclosing is not None:
                    if parent_id is not None and parent_id != enclosing:
                        issues.append(
                            PlanIssue(
                                "conflicting-parent",
                                f"nested under '{enclosing}' but declares parent '{parent}'",
                                page=path,
                            )
                        )
                        continue
                    parent_id = enclosing
                entries.append(
                    _Entry(
                        path=path.strip(),
                        title=title.strip(),
                        sources=tuple(src.strip() for src in sources),
                        summary=summary.strip(),
                        parent=parent_id,
                        index=len(entries),
                    )
                )
                children = item.get("children")
                if children is None:
                    continue
                if not isinstance(children, list):
                    issues.append(PlanIssue("malformed-shape", "'children' must be a list", page=path))
                    continue
                visit(children, PlannedPage.identifier_for(path.strip()), f"{where}.children")

        visit(pages, None, "pages")
        return entries, issues

    # ------------------------------------------------------------------
    # Validation

    def validate(self, entries: Sequence[_Entry], tree: SourceTree) -> Tuple[Optional[DocPlan], List[PlanIssue]]:
        issues: List[PlanIssue] = []
        by_id: Dict[str, _Entry] = {}
        for entry in entries:
            problem = _path_problem(entry.path)
            if problem:
                issues.append(PlanIssue("unsafe-path", problem, page=entry.path))
                continue
            page_id = PlannedPage.identifier_for(entry.path)
            if page_id in by_id:
                issues.append(PlanIssue("duplicate-page", "path is listed more than once", page=entry.path))
                continue
            by_id[page_id] = entry

        for page_id, entry in by_id.items():
            if entry.parent is not None and entry.parent not in by_id:
                issues.append(PlanIssue("unknown-parent", f"parent '{entry.parent}' is not a page", page=entry.path))
            for source in entry.sources:
                if not tree.exists(source):
                    issues.append(PlanIssue("unknown-source", f"source '{source}' does not exist", page=entry.path))

        if not issues:
            issues.extend(self._check_structure(by_id))
        if issues:
            return None, issues

        positions: Dict[Optional[str], int] = {}
        pages: List[PlannedPage] = []
        for page_id, entry in by_id.items():
            position = positions.get(entry.parent, 0)
            positions[entry.parent] = position + 1
            pages.append(
                PlannedPage(
                    id=page_id,
                    path=_normalise_page_path(entry.path),
                    title=entry.title,
                    position=position,
                    parent=entry.parent,
                    sources=entry.sources,
                    summary=entry.summary,
                )
            )
        return DocPlan(pages=pages), []

    def _check_structure(self, by_id: Dict[str, _Entry]) -> List[PlanIssue]:
        issues: List[PlanIssue] = []
        for page_id, entry in by_id.items():
            seen = {page_id}
            depth = 1
            parent = entry.parent
            while parent is not None:
                if parent in seen:
                    issues.append(PlanIssue("cycle", "parent chain loops back on itself", page=entry.path))
                    break
                seen.add(parent)
                depth += 1
                parent = by_id[parent].parent
            else:
                if depth > self.max_depth:
                    issues.append(
                        PlanIssue(
                            "too-deep",
                            f"nesting depth {depth} exceeds the limit of {self.max_depth}",
                            page=entry.path,
                        )
                    )
        return issues


def _normalise_page_path(path: str) -> str:
    return path.replace("\\", "/").strip().strip("/")


def _path_problem(path: str) -> Optional[str]:
    raw = path.replace("\\", "/").strip()
    if raw.startswith("/") or re.match(r"^[A-Za-z]:", raw):
        return "path must be relative"
    normalised = raw.strip("/")
    if not normalised.lower().endswith(".md"):
        return "path must end with .md"
    parts = PurePosixPath(normalised).parts
    if any(part in {"..", "."} for part in normalised.split("/")):
        return "path must not contain '.' or '..' segments"
    if "" in normalised.split("/"):
        return "path contains an empty segment"
    if any(part.startswith(".") for part in parts):
        return "path must not contain hidden segments"
    if normalised.startswith(_RESERVED_PREFIXES):
        return "path must not be inside the static asset directory"
    return None


__all__ = ["PlanOutcome", "Planner"]
