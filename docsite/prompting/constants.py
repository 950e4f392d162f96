"""Shared constants for plan and page prompting."""

from __future__ import annotations

PLAN_SYSTEM_PROMPT = (
    "You are a senior developer documentation architect. Design the page structure of a "
    "documentation site for the repository described below. Reply with a single JSON object "
    "and nothing else."
)

PAGE_SYSTEM_PROMPT = (
    "You are a senior developer documentation writer. Stay grounded in the source excerpts "
    "you are given, keep explanations crisp, and never invent commands, options or APIs. "
    "Reply with the Markdown body of the page only."
)

MANIFEST_SHAPE = """{
  "pages": [
    {
      "path": "guide/index.md",
      "title": "Guide",
      "sources": ["src/app"],
      "summary": "What the reader learns on this page",
      "parent": null,
      "children": []
    }
  ]
}"""

GENERIC_GUIDANCE: tuple[str, ...] = (
    "index.md: project overview and where to start",
    "guide/getting-started.md: installation and first run",
    "guide/configuration.md: configuration files and options",
    "reference/: one page per major component or directory",
)

# Page outline hints per detected project type.
TEMPLATE_GUIDANCE: dict[str, tuple[str, ...]] = {
    "python": (
        "index.md: overview, features and installation via pip",
        "guide/getting-started.md: virtualenv setup and first run",
        "guide/configuration.md: settings, environment variables",
        "api/: one page per public package or module",
        "development.md: running tests and contributing",
    ),
    "javascript": (
        "index.md: overview and npm installation",
        "guide/getting-started.md: scripts in package.json and first run",
        "guide/components.md: main modules or components",
        "api/: exported functions and classes",
    ),
    "typescript": (
        "index.md: overview and npm installation",
        "guide/getting-started.md: build and run scripts",
        "guide/types.md: key types and interfaces",
        "api/: exported functions and classes",
    ),
    "rust": (
        "index.md: overview and cargo installation",
        "guide/getting-started.md: building with cargo",
        "api/: one page per crate module",
        "guide/features.md: cargo features",
    ),
    "go": (
        "index.md: overview and go install",
        "guide/getting-started.md: building and running commands",
        "api/: one page per package",
    ),
    "java": (
        "index.md: overview and build tool setup",
        "guide/getting-started.md: building with Maven or Gradle",
        "architecture.md: layers, services and controllers",
        "api/: endpoints or public classes",
    ),
    "swift": (
        "index.md: overview and Swift Package Manager setup",
        "guide/getting-started.md: building and running targets",
        "api/: public types per module",
    ),
    "ruby": (
        "index.md: overview and bundler setup",
        "guide/getting-started.md: running the application",
        "api/: classes and modules",
    ),
}

FRAMEWORK_GUIDANCE: dict[str, str] = {
    "FastAPI": "Document HTTP routes and request/response models.",
    "Django": "Document apps, models, URL configuration and management commands.",
    "Flask": "Document blueprints, routes and application factory setup.",
    "React": "Document components, state management and build scripts.",
    "Next.js": "Document pages/routes, data fetching and deployment.",
    "Vue": "Document components, stores and routing.",
    "Express": "Document middleware and HTTP routes.",
    "Spring Boot": "Document controllers, services and application properties.",
}

CORRECTIVE_HEADER = (
    "Your previous manifest was rejected. Fix every issue listed below and reply with the "
    "complete corrected JSON manifest."
)

PROTECTED_MARKER_HINT = (
    "The existing page contains protected regions. Keep each one by emitting an empty "
    "placeholder pair on its own lines where it belongs:"
)


def guidance_for(project_type: str) -> tuple[str, ...]:
    return TEMPLATE_GUIDANCE.get(project_type, GENERIC_GUIDANCE)


__all__ = [
    "CORRECTIVE_HEADER",
    "FRAMEWORK_GUIDANCE",
    "GENERIC_GUIDANCE",
    "MANIFEST_SHAPE",
    "PAGE_SYSTEM_PROMPT",
    "PLAN_SYSTEM_PROMPT",
    "PROTECTED_MARKER_HINT",
    "TEMPLATE_GUIDANCE",
    "guidance_for",
]
