"""Builds plan and page prompts for the generation backend."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..errors import PlanIssue
from ..models import DocPlan, PlannedPage, ProjectProfile, ProtectedRegion, SourceNode, SourceTree
from ..postproc.markers import begin_marker, end_marker
from .constants import (
    CORRECTIVE_HEADER,
    FRAMEWORK_GUIDANCE,
    MANIFEST_SHAPE,
    PAGE_SYSTEM_PROMPT,
    PLAN_SYSTEM_PROMPT,
    PROTECTED_MARKER_HINT,
    guidance_for,
)


@dataclass(frozen=True)
class ContextFile:
    """One source file considered for a page prompt."""

    path: str
    size: int
    text: Optional[str] = None
    note: str = ""

    @property
    def inlined(self) -> bool:
        return self.text is not None


@dataclass
class PageContext:
    """Scoped context assembled for a single page."""

    files: List[ContextFile] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    inlined_bytes: int = 0
    truncated: int = 0


@dataclass(frozen=True)
class PromptRequest:
    """A rendered prompt plus its system message."""

    prompt: str
    system: str


class PromptBuilder:
    """Assembles plan and page prompts within the configured context budgets."""

    def __init__(
        self,
        *,
        max_file_bytes: int = 24_000,
        max_context_bytes: int = 120_000,
        max_tree_entries: int = 1_500,
    ) -> None:
        self.max_file_bytes = max_file_bytes
        self.max_context_bytes = max_context_bytes
        self.max_tree_entries = max_tree_entries

    # ------------------------------------------------------------------
    # Phase 1

    def summarize_tree(self, tree: SourceTree) -> str:
        """List paths, sizes and language tags only, capped at ``max_tree_entries``."""
        entries: List[str] = []
        nodes = [node for path, node in sorted(tree.nodes.items()) if path and not node.skipped]
        for node in nodes[: self.max_tree_entries]:
            entries.append(_describe_node(node))
        elided = len(nodes) - len(entries)
        if elided > 0:
            entries.append(f"... {elided} more entries elided")
        return "\n".join(entries)

    def build_plan_prompt(
        self,
        tree: SourceTree,
        profile: ProjectProfile,
        *,
        max_depth: int,
        issues: Sequence[PlanIssue] = (),
    ) -> PromptRequest:
        lines = [
            f"Project: {profile.name or 'Repository'}",
            f"Description: {profile.variables.get('PROJECT_DESCRIPTION', '')}",
            f"Detected type: {profile.project_type} (confidence {profile.confidence:.2f})",
        ]
        if profile.framework:
            lines.append(f"Framework: {profile.framework}")
            hint = FRAMEWORK_GUIDANCE.get(profile.framework)
            if hint:
                lines.append(hint)
        lines.append("Suggested pages:")
        lines.extend(f"- {item}" for item in guidance_for(profile.project_type))
        lines.append("")
        lines.append("Rules:")
        lines.append("- Every `path` is a relative Markdown path ending in `.md`; use `index.md` for the home page.")
        lines.append("- Every `sources` entry must be a file or directory path from the tree below.")
        lines.append(f"- Nest pages with `children` or `parent`; the tree may be at most {max_depth} levels deep.")
        lines.append("- Paths and titles must be unique.")
        lines.append("")
        lines.append("Reply with JSON shaped like:")
        lines.append(MANIFEST_SHAPE)
        lines.append("")
        lines.append("Source tree (path, size, language):")
        lines.append(self.summarize_tree(tree))
        if issues:
            lines.append("")
            lines.append(self.corrective_instruction(issues))
        return PromptRequest(prompt="\n".join(lines), system=PLAN_SYSTEM_PROMPT)

    @staticmethod
    def corrective_instruction(issues: Sequence[PlanIssue]) -> str:
        lines = [CORRECTIVE_HEADER]
        lines.extend(f"- {issue.describe()}" for issue in issues)
        return "\n".join(lines)

    # ------------------------------------------------------------------
    # Phase 2

    def collect_context(self, page: PlannedPage, tree: SourceTree) -> PageContext:
        """Gather the referenced files only; directories expand to their descendants."""
        context = PageContext()
        seen: set[str] = set()
        for source in page.sources:
            node = tree.get(source)
            if node is None or node.skipped:
                context.missing.append(source)
                continue
            for file_node in tree.descendants(node.path):
                if file_node.path in seen:
                    continue
                seen.add(file_node.path)
                context.files.append(self._context_file(file_node, tree, context))
        return context

    def _context_file(self, node: SourceNode, tree: SourceTree, context: PageContext) -> ContextFile:
        if node.binary:
            return ContextFile(node.path, node.size, note="binary")
        if node.size > self.max_file_bytes:
            return ContextFile(node.path, node.size, note="too large to inline")
        text = tree.read_text(node.path)
        if text is None:
            return ContextFile(node.path, node.size, note="unreadable")
        encoded = len(text.encode("utf-8"))
        if context.inlined_bytes + encoded > self.max_context_bytes:
            context.truncated += 1
            return ContextFile(node.path, node.size, note="context budget exhausted")
        context.inlined_bytes += encoded
        return ContextFile(node.path, node.size, text=text)

    def build_page_prompt(
        self,
        page: PlannedPage,
        plan: DocPlan,
        profile: ProjectProfile,
        context: PageContext,
        regions: Sequence[ProtectedRegion] = (),
    ) -> PromptRequest:
        parent = plan.get(page.parent) if page.parent else None
        siblings = [sibling.title for sibling in plan.children(page.parent) if sibling.id != page.id]
        children = [child.title for child in plan.children(page.id)]

        lines = [
            f"Project: {profile.name or 'Repository'} ({profile.project_type})",
            f"Page: {page.title} ({page.path})",
        ]
        if page.summary:
            lines.append(f"Purpose: {page.summary}")
        lines.append(f"Parent page: {parent.title if parent else '(top level)'}")
        if siblings:
            lines.append("Sibling pages: " + ", ".join(siblings))
        if children:
            lines.append("Child pages: " + ", ".join(children))
        if profile.framework and profile.framework in FRAMEWORK_GUIDANCE:
            lines.append(FRAMEWORK_GUIDANCE[profile.framework])
        lines.append("Start with a level-one heading containing the page title.")

        if regions:
            lines.append("")
            lines.append(PROTECTED_MARKER_HINT)
            for region in regions:
                heading = region.heading or "(before the first heading)"
                lines.append(f"- `{region.region_id}` under {heading}:")
                lines.append(f"  {begin_marker(region.region_id)}")
                lines.append(f"  {end_marker(region.region_id)}")

        lines.append("")
        lines.append("Source files:")
        if not context.files:
            lines.append("(none)")
        for item in context.files:
            if item.inlined:
                fence = _fence_for(item.text or "")
                lines.append(f"{fence} {item.path}")
                lines.append((item.text or "").rstrip("\n"))
                lines.append(fence)
            else:
                lines.append(f"- {item.path} ({item.size} bytes, {item.note})")
        if context.truncated:
            lines.append(f"({context.truncated} files omitted due to context budget limits)")

        lines.append("")
        lines.append("Return only the Markdown content for this page, without extra commentary.")
        return PromptRequest(prompt="\n".join(lines), system=PAGE_SYSTEM_PROMPT)


def _describe_node(node: SourceNode) -> str:
    if node.is_dir:
        return f"{node.path}/"
    parts = [node.path, f"{node.size} B"]
    if node.binary:
        parts.append("binary")
    elif node.language:
        parts.append(node.language)
    return "  ".join(parts)


def _fence_for(text: str) -> str:
    fence = "```"
    while fence in text:
        fence += "`"
    return fence


def plan_signature(profile: ProjectProfile, *, max_depth: int) -> str:
    """Identity of the planning inputs other than the source tree."""
    payload = {
        "project_type": profile.project_type,
        "framework": profile.framework,
        "variables": dict(sorted(profile.variables.items())),
        "max_depth": max_depth,
    }
    return json.dumps(payload, sort_keys=True)


def describe_context(context: PageContext) -> Dict[str, int]:
    return {
        "files": len(context.files),
        "inlined": sum(1 for item in context.files if item.inlined),
        "bytes": context.inlined_bytes,
        "truncated": context.truncated,
    }


__all__ = [
    "ContextFile",
    "PageContext",
    "PromptBuilder",
    "PromptRequest",
    "describe_context",
    "plan_signature",
]
