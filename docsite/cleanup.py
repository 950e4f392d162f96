"""Reconcile the output directory against the current plan."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .errors import ProtectedRegionError
from .logging import get_logger
from .models import CleanupDecision, DocPlan, Verdict
from .postproc.markers import MarkerManager
from .postproc.navigation import PUBLIC_DIRNAME


@dataclass
class CleanupReport:
    """Verdicts for every Markdown page found under the output root."""

    output_dir: Path
    decisions: List[CleanupDecision] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    applied: bool = False

    def with_verdict(self, verdict: Verdict) -> List[CleanupDecision]:
        return [decision for decision in self.decisions if decision.verdict == verdict]

    @property
    def orphans(self) -> List[str]:
        return [decision.path for decision in self.with_verdict(Verdict.ORPHAN_REMOVE)]

    @property
    def flagged(self) -> List[str]:
        return [decision.path for decision in self.with_verdict(Verdict.PROTECTED_KEEP)]


class CleanupEngine:
    """Classifies output pages and removes only provable orphans."""

    def __init__(self, markers: MarkerManager | None = None) -> None:
        self.markers = markers or MarkerManager()
        self.logger = get_logger("cleanup")

    def evaluate(self, plan: DocPlan, output_dir: Path) -> CleanupReport:
        output_dir = Path(output_dir)
        report = CleanupReport(output_dir=output_dir)
        planned = plan.output_paths()
        for rel_path in self._pages(output_dir):
            if rel_path in planned:
                report.decisions.append(CleanupDecision(rel_path, Verdict.KEEP, "in plan"))
                continue
            report.decisions.append(self._classify_orphan(output_dir, rel_path))
        for decision in report.with_verdict(Verdict.PROTECTED_KEEP):
            self.logger.warning("Manual review needed for %s: %s", decision.path, decision.reason)
        return report

    def apply(self, report: CleanupReport, *, destructive: bool = False) -> List[str]:
        """Delete ``orphan-remove`` files when *destructive*; otherwise only report them."""
        orphans = report.orphans
        if not destructive:
            for path in orphans:
                self.logger.info("Would remove %s (dry run)", path)
            return []
        for rel_path in orphans:
            target = report.output_dir / rel_path
            try:
                target.unlink()
            except FileNotFoundError:
                continue
            report.removed.append(rel_path)
            self.logger.info("Removed orphan %s", rel_path)
            self._prune_empty_dirs(target.parent, report.output_dir)
        report.applied = True
        return list(report.removed)

    def _classify_orphan(self, output_dir: Path, rel_path: str) -> CleanupDecision:
        try:
            text = (output_dir / rel_path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return CleanupDecision(rel_path, Verdict.PROTECTED_KEEP, f"unreadable: {exc}")
        try:
            regions = self.markers.regions(text)
        except ProtectedRegionError as exc:
            return CleanupDecision(rel_path, Verdict.PROTECTED_KEEP, f"malformed markers: {exc}")
        if regions:
            return CleanupDecision(
                rel_path,
                Verdict.PROTECTED_KEEP,
                "not in plan but holds protected regions",
                regions=len(regions),
            )
        return CleanupDecision(rel_path, Verdict.ORPHAN_REMOVE, "not in plan")

    @staticmethod
    def _pages(output_dir: Path) -> List[str]:
        if not output_dir.is_dir():
            return []
        found: List[str] = []
        for current, dirnames, filenames in os.walk(output_dir, followlinks=False):
            rel_dir = Path(current).relative_to(output_dir).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir
            dirnames[:] = sorted(
                name
                for name in dirnames
                if not name.startswith(".") and not (rel_dir == "" and name == PUBLIC_DIRNAME)
            )
            for name in sorted(filenames):
                if not name.lower().endswith(".md") or name.startswith("."):
                    continue
                if os.path.islink(os.path.join(current, name)):
                    continue
                found.append(f"{rel_dir}/{name}" if rel_dir else name)
        return found

    @staticmethod
    def _prune_empty_dirs(directory: Path, output_dir: Path) -> None:
        current = directory
        while current != output_dir and output_dir in current.parents:
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent


__all__ = ["CleanupEngine", "CleanupReport"]
