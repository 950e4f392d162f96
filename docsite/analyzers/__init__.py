"""Project detection rules and discovery utilities."""

from __future__ import annotations

from .base import DetectionContext, DetectionRule, RuleMatch
from .detector import GENERIC_PROFILE_TYPE, ProjectDetector, discover_rules

__all__ = [
    "DetectionContext",
    "DetectionRule",
    "GENERIC_PROFILE_TYPE",
    "ProjectDetector",
    "RuleMatch",
    "discover_rules",
]
