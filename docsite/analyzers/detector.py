"""Project detection: pick the highest-confidence profile from ordered rules."""

from __future__ import annotations

from importlib import metadata
from typing import Iterable, List, Optional, Sequence

from ..config import SiteConfig
from ..logging import get_logger
from ..models import ProjectProfile, SourceTree
from .base import DetectionContext, DetectionRule, RuleMatch
from .rules import BUILTIN_RULES
from .utils import find_logo, read_project_metadata

_ENTRY_POINT_GROUP = "docsite.detectors"

GENERIC_PROFILE_TYPE = "generic"


def discover_rules() -> List[DetectionRule]:
    """Return built-in rules followed by any installed plugin rules."""
    rules: List[DetectionRule] = [factory() for factory in BUILTIN_RULES]
    seen = {rule.name for rule in rules}
    for entry in _iter_entry_points():
        if entry.name in seen:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:
            raise RuntimeError(f"Failed to load detection rule entry point '{entry.name}': {exc}") from exc
        rules.append(_coerce_rule(loaded))
        seen.add(entry.name)
    return rules


def _coerce_rule(obj: object) -> DetectionRule:
    if isinstance(obj, DetectionRule):
        return obj
    if isinstance(obj, type) and issubclass(obj, DetectionRule):
        return obj()
    raise TypeError("Detection rule entry point must be a DetectionRule subclass or instance")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


class ProjectDetector:
    """Classifies the project's primary stack from the scanned tree."""

    def __init__(self, rules: Optional[Sequence[DetectionRule]] = None) -> None:
        self.rules = list(rules) if rules is not None else discover_rules()
        self.logger = get_logger("detector")

    def detect(self, tree: SourceTree, site: SiteConfig | None = None) -> ProjectProfile:
        context = DetectionContext.from_tree(tree)

        best: Optional[RuleMatch] = None
        best_rule = ""
        for rule in self.rules:
            match = rule.evaluate(context)
            if match is None:
                continue
            self.logger.debug(
                "Rule %s matched %s (confidence %.2f)", rule.name, match.project_type, match.confidence
            )
            # Strict comparison keeps the earliest declared rule on ties.
            if best is None or match.confidence > best.confidence:
                best = match
                best_rule = rule.name

        variables = self._template_variables(tree, context, site)
        if best is None:
            self.logger.info("No detection rule matched; using generic profile")
            return ProjectProfile(
                project_type=GENERIC_PROFILE_TYPE,
                language=None,
                confidence=0.0,
                rule="none",
                variables=variables,
            )

        self.logger.info(
            "Detected %s project via %s rule (confidence %.2f)",
            best.project_type,
            best_rule,
            best.confidence,
        )
        return ProjectProfile(
            project_type=best.project_type,
            language=best.language,
            confidence=best.confidence,
            rule=best_rule,
            framework=best.framework,
            variables=variables,
        )

    @staticmethod
    def _template_variables(
        tree: SourceTree, context: DetectionContext, site: SiteConfig | None
    ) -> dict[str, str]:
        declared = read_project_metadata(context.root)
        name = declared.get("name") or context.root.name or "Project"
        description = declared.get("description") or f"Documentation for {name}"
        logo = find_logo(node.path for node in tree.files()) or ""
        if site is not None:
            name = site.name or name
            description = site.description or description
            logo = site.logo if site.logo is not None else logo
        return {
            "PROJECT_NAME": name,
            "PROJECT_DESCRIPTION": description,
            "LOGO_PATH": logo,
        }


__all__ = ["GENERIC_PROFILE_TYPE", "ProjectDetector", "discover_rules"]
