"""Built-in project detection rules, in declaration order."""

from __future__ import annotations

from typing import Optional

from .base import DetectionContext, DetectionRule, RuleMatch
from .utils import (
    detect_java_framework,
    detect_node_framework,
    detect_python_framework,
    load_java_dependencies,
    load_node_dependencies,
    load_python_dependencies,
)

_MARKER_BASE = 0.6
_MARKER_SHARE_WEIGHT = 0.4
_HISTOGRAM_WEIGHT = 0.5


def _marker_confidence(context: DetectionContext, *languages: str) -> float:
    return round(_MARKER_BASE + _MARKER_SHARE_WEIGHT * context.share(*languages), 4)


class PythonRule(DetectionRule):
    """Python packages and applications."""

    name = "python"
    _MARKERS = {"pyproject.toml", "setup.py", "setup.cfg", "requirements.txt", "Pipfile"}

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        markers = context.top_level & self._MARKERS
        if not markers:
            return None
        framework = detect_python_framework(load_python_dependencies(context.root))
        return RuleMatch(
            project_type="python",
            language="Python",
            confidence=_marker_confidence(context, "Python"),
            framework=framework,
            evidence={"markers": sorted(markers)},
        )


class NodeRule(DetectionRule):
    """JavaScript and TypeScript projects driven by package.json."""

    name = "node"

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        if "package.json" not in context.top_level:
            return None
        typescript = "tsconfig.json" in context.top_level or (
            context.share("TypeScript") > context.share("JavaScript")
        )
        framework = detect_node_framework(load_node_dependencies(context.root))
        return RuleMatch(
            project_type="typescript" if typescript else "javascript",
            language="TypeScript" if typescript else "JavaScript",
            confidence=_marker_confidence(context, "JavaScript", "TypeScript", "Vue", "Svelte"),
            framework=framework,
            evidence={"markers": ["package.json"]},
        )


class RustRule(DetectionRule):
    name = "rust"

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        if "Cargo.toml" not in context.top_level:
            return None
        return RuleMatch(
            project_type="rust",
            language="Rust",
            confidence=_marker_confidence(context, "Rust"),
            evidence={"markers": ["Cargo.toml"]},
        )


class GoRule(DetectionRule):
    name = "go"

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        if "go.mod" not in context.top_level:
            return None
        return RuleMatch(
            project_type="go",
            language="Go",
            confidence=_marker_confidence(context, "Go"),
            evidence={"markers": ["go.mod"]},
        )


class JavaRule(DetectionRule):
    name = "java"
    _MARKERS = {"pom.xml", "build.gradle", "build.gradle.kts"}

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        markers = context.top_level & self._MARKERS
        if not markers:
            return None
        kotlin = context.share("Kotlin") > context.share("Java")
        return RuleMatch(
            project_type="java",
            language="Kotlin" if kotlin else "Java",
            confidence=_marker_confidence(context, "Java", "Kotlin"),
            framework=detect_java_framework(load_java_dependencies(context.root)),
            evidence={"markers": sorted(markers)},
        )


class SwiftRule(DetectionRule):
    """Swift packages and Xcode projects."""

    name = "swift"

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        markers = {item for item in context.top_level if item.endswith((".xcodeproj", ".xcworkspace"))}
        if "Package.swift" in context.top_level:
            markers.add("Package.swift")
        if not markers:
            return None
        return RuleMatch(
            project_type="swift",
            language="Swift",
            confidence=_marker_confidence(context, "Swift", "Objective-C"),
            framework="Xcode" if any(item.endswith(".xcodeproj") for item in markers) else None,
            evidence={"markers": sorted(markers)},
        )


class RubyRule(DetectionRule):
    name = "ruby"

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        if "Gemfile" not in context.top_level:
            return None
        framework = None
        try:
            gemfile = (context.root / "Gemfile").read_text(encoding="utf-8")
        except OSError:
            gemfile = ""
        if "'rails'" in gemfile or '"rails"' in gemfile:
            framework = "Rails"
        return RuleMatch(
            project_type="ruby",
            language="Ruby",
            confidence=_marker_confidence(context, "Ruby"),
            framework=framework,
            evidence={"markers": ["Gemfile"]},
        )


class ExtensionHistogramRule(DetectionRule):
    """Falls back to the dominant source language when no manifest exists."""

    name = "histogram"

    _TYPES = {
        "Python": "python",
        "JavaScript": "javascript",
        "TypeScript": "typescript",
        "Rust": "rust",
        "Go": "go",
        "Java": "java",
        "Kotlin": "java",
        "Swift": "swift",
        "Ruby": "ruby",
    }

    def evaluate(self, context: DetectionContext) -> Optional[RuleMatch]:
        if not context.histogram:
            return None
        ranked = sorted(context.histogram.items(), key=lambda item: (-item[1], item[0]))
        language, _ = ranked[0]
        return RuleMatch(
            project_type=self._TYPES.get(language, "generic"),
            language=language,
            confidence=round(_HISTOGRAM_WEIGHT * context.share(language), 4),
            evidence={"histogram": dict(ranked)},
        )


BUILTIN_RULES = (
    PythonRule,
    NodeRule,
    RustRule,
    GoRule,
    JavaRule,
    SwiftRule,
    RubyRule,
    ExtensionHistogramRule,
)
