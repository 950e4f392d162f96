"""Core data models shared across docsite components."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple

PLAN_SCHEMA_VERSION = 1

FILE = "file"
DIRECTORY = "directory"


@dataclass(frozen=True)
class SourceNode:
    """A file or directory discovered by the scanner."""

    path: str
    kind: str
    fingerprint: str
    size: int
    language: Optional[str] = None
    binary: bool = False
    children: Tuple[str, ...] = ()
    skipped: bool = False

    @property
    def is_file(self) -> bool:
        return self.kind == FILE

    @property
    def is_dir(self) -> bool:
        return self.kind == DIRECTORY


@dataclass
class SourceTree:
    """Immutable per-run view of the scanned project."""

    root: str
    nodes: Dict[str, SourceNode]
    skipped: List[str] = field(default_factory=list)

    def get(self, path: str) -> Optional[SourceNode]:
        return self.nodes.get(_normalise_source_path(path))

    def exists(self, path: str) -> bool:
        node = self.get(path)
        return node is not None and not node.skipped

    @property
    def root_node(self) -> SourceNode:
        return self.nodes[""]

    @property
    def root_fingerprint(self) -> str:
        return self.root_node.fingerprint

    def top_level(self) -> List[SourceNode]:
        return [self.nodes[child] for child in self.root_node.children]

    def files(self) -> List[SourceNode]:
        return [
            node
            for path, node in sorted(self.nodes.items())
            if node.is_file and not node.skipped
        ]

    def descendants(self, path: str) -> List[SourceNode]:
        """Return the file nodes at or below *path* in sorted order."""
        node = self.get(path)
        if node is None:
            return []
        if node.is_file:
            return [] if node.skipped else [node]
        collected: List[SourceNode] = []
        for child in node.children:
            collected.extend(self.descendants(child))
        return collected

    def read_text(self, path: str) -> Optional[str]:
        """Return decoded file contents, or None for binary/skipped/unreadable files."""
        node = self.get(path)
        if node is None or not node.is_file or node.binary or node.skipped:
            return None
        try:
            return (Path(self.root) / node.path).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None


@dataclass
class ProjectProfile:
    """Inferred primary stack of the project and its template variables."""

    project_type: str
    language: Optional[str]
    confidence: float
    rule: str
    framework: Optional[str] = None
    variables: Dict[str, str] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.variables.get("PROJECT_NAME", "")


@dataclass(frozen=True)
class PlannedPage:
    """A single documentation page in the plan."""

    id: str
    path: str
    title: str
    position: int = 0
    parent: Optional[str] = None
    sources: Tuple[str, ...] = ()
    summary: str = ""

    @staticmethod
    def identifier_for(path: str) -> str:
        normalised = path.replace("\\", "/").strip("/")
        if normalised.lower().endswith(".md"):
            normalised = normalised[:-3]
        return normalised

    def definition_digest(self) -> str:
        """Digest of the fields that shape the page's generated content."""
        payload = json.dumps(
            {
                "path": self.path,
                "title": self.title,
                "parent": self.parent,
                "sources": list(self.sources),
                "summary": self.summary,
            },
            sort_keys=True,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "title": self.title,
            "position": self.position,
            "parent": self.parent,
            "sources": list(self.sources),
            "summary": self.summary,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PlannedPage":
        return cls(
            id=str(payload["id"]),
            path=str(payload["path"]),
            title=str(payload["title"]),
            position=int(payload.get("position", 0)),
            parent=payload.get("parent"),
            sources=tuple(str(item) for item in payload.get("sources", [])),
            summary=str(payload.get("summary", "")),
        )


@dataclass
class DocPlan:
    """Validated documentation manifest: an ordered tree of pages."""

    pages: List[PlannedPage]
    schema_version: int = PLAN_SCHEMA_VERSION

    def get(self, page_id: str) -> Optional[PlannedPage]:
        for page in self.pages:
            if page.id == page_id:
                return page
        return None

    def children(self, page_id: Optional[str]) -> List[PlannedPage]:
        return sorted(
            (page for page in self.pages if page.parent == page_id),
            key=lambda page: page.position,
        )

    def roots(self) -> List[PlannedPage]:
        return self.children(None)

    def walk(self) -> Iterator[PlannedPage]:
        """Yield pages in navigation order (pre-order)."""

        def _visit(parent: Optional[str]) -> Iterator[PlannedPage]:
            for page in self.children(parent):
                yield page
                yield from _visit(page.id)

        yield from _visit(None)

    def output_paths(self) -> Set[str]:
        return {page.path for page in self.pages}

    def fingerprint(self) -> str:
        payload = json.dumps(self.to_dict(), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema_version,
            "pages": [page.to_dict() for page in self.pages],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "DocPlan":
        pages = [PlannedPage.from_dict(item) for item in payload.get("pages", [])]
        return cls(pages=pages, schema_version=int(payload.get("schema_version", 0)))


class PageStatus(str, Enum):
    """Lifecycle state of a generated page."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED_UNCHANGED = "skipped-unchanged"


@dataclass
class GeneratedPage:
    """Result of Phase 2 for one planned page."""

    page_id: str
    body: str = ""
    status: PageStatus = PageStatus.PENDING
    fingerprints: Dict[str, str] = field(default_factory=dict)
    attempts: int = 0
    error: Optional[str] = None
    outcome: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProtectedRegion:
    """An opaque, marker-delimited span that survives regeneration."""

    region_id: str
    content: str
    heading: Optional[str] = None
    start_line: int = 0
    end_line: int = 0


class Verdict(str, Enum):
    """Cleanup outcome for a file present in the output tree."""

    KEEP = "keep"
    ORPHAN_REMOVE = "orphan-remove"
    PROTECTED_KEEP = "protected-keep"


@dataclass
class CleanupDecision:
    """Verdict for one output file."""

    path: str
    verdict: Verdict
    reason: str = ""
    regions: int = 0


@dataclass
class CacheEntry:
    """Last successful generation result for one page."""

    fingerprints: Dict[str, str]
    body: str
    status: str = PageStatus.SUCCESS.value
    updated_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fingerprints": dict(self.fingerprints),
            "body": self.body,
            "status": self.status,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, payload: object) -> Optional["CacheEntry"]:
        if not isinstance(payload, dict):
            return None
        fingerprints = payload.get("fingerprints")
        body = payload.get("body")
        status = payload.get("status")
        if not isinstance(fingerprints, dict) or not isinstance(body, str) or not isinstance(status, str):
            return None
        return cls(
            fingerprints={str(key): str(value) for key, value in fingerprints.items()},
            body=body,
            status=status,
            updated_at=str(payload.get("updated_at", "")),
        )


def _normalise_source_path(path: str) -> str:
    normalised = path.replace("\\", "/").strip()
    while normalised.startswith("./"):
        normalised = normalised[2:]
    if normalised == ".":
        return ""
    return normalised.strip("/")
