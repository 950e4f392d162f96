"""Base classes for project detection rules."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Set

from ..models import SourceTree

# Languages that describe data or prose rather than the project's stack.
NON_CODE_LANGUAGES = {
    "Markdown",
    "reStructuredText",
    "JSON",
    "YAML",
    "TOML",
    "HTML",
    "CSS",
}


@dataclass
class DetectionContext:
    """Facts about the scanned tree that rules match against."""

    root: Path
    top_level: Set[str]
    histogram: Counter

    @classmethod
    def from_tree(cls, tree: SourceTree) -> "DetectionContext":
        top_level = {node.path for node in tree.top_level() if not node.skipped}
        histogram: Counter = Counter(
            node.language
            for node in tree.files()
            if node.language is not None and node.language not in NON_CODE_LANGUAGES
        )
        return cls(root=Path(tree.root), top_level=top_level, histogram=histogram)

    def share(self, *languages: str) -> float:
        """Fraction of code files written in any of *languages*."""
        total = sum(self.histogram.values())
        if not total:
            return 0.0
        return sum(self.histogram.get(language, 0) for language in languages) / total


@dataclass
class RuleMatch:
    """Candidate profile produced by a rule."""

    project_type: str
    language: Optional[str]
    confidence: float
    framework: Optional[str] = None
    evidence: Dict[str, object] = field(default_factory=dict)


class DetectionRule(ABC):
    """Contract for rules that classify the project's primary stack."""

    name: str = "rule"

    @abstractmethod
    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        """Return a candidate profile, or None when the rule does not apply."""
