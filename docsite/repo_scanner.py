"""Source tree scanning and fingerprinting."""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, List, Sequence, Set, Tuple

from .logging import get_logger
from .models import DIRECTORY, FILE, SourceNode, SourceTree

_EXCLUDED_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    ".tox",
    ".idea",
    ".docsite",
}

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
}

_LANGUAGE_BY_SUFFIX = {
    ".py": "Python",
    ".pyi": "Python",
    ".js": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".jsx": "JavaScript",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".vue": "Vue",
    ".svelte": "Svelte",
    ".java": "Java",
    ".kt": "Kotlin",
    ".kts": "Kotlin",
    ".go": "Go",
    ".rs": "Rust",
    ".rb": "Ruby",
    ".php": "PHP",
    ".cs": "C#",
    ".c": "C",
    ".h": "C",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cc": "C++",
    ".hh": "C++",
    ".swift": "Swift",
    ".m": "Objective-C",
    ".mm": "Objective-C++",
    ".scala": "Scala",
    ".dart": "Dart",
    ".ex": "Elixir",
    ".exs": "Elixir",
    ".lua": "Lua",
    ".r": "R",
    ".jl": "Julia",
    ".sh": "Shell",
    ".bash": "Shell",
    ".ps1": "PowerShell",
    ".sql": "SQL",
    ".html": "HTML",
    ".css": "CSS",
    ".scss": "CSS",
    ".md": "Markdown",
    ".rst": "reStructuredText",
    ".yaml": "YAML",
    ".yml": "YAML",
    ".json": "JSON",
    ".toml": "TOML",
}

_CACHE_FILENAME = "manifest_cache.json"
_CACHE_VERSION = 2
_BINARY_SNIFF_BYTES = 8192

logger = get_logger("scanner")


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or .docsite.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        target = rel_path
        if self.anchored or self.has_slash:
            if fnmatchcase(target, self.pattern):
                return True
            if self.directory_only and target.startswith(f"{self.pattern}/"):
                return True
            return False

        for part in target.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def build_ignore_rule(pattern: str) -> IgnoreRule | None:
    """Parse one gitignore-style pattern; a leading ``!`` negates it."""
    pattern = pattern.strip()
    if not pattern or pattern.startswith("#"):
        return None

    negate = pattern.startswith("!")
    if negate:
        pattern = pattern[1:]

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    if not pattern:
        return None

    has_slash = "/" in pattern
    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash=has_slash,
    )


def _parse_gitignore(path: Path) -> List[IgnoreRule]:
    if not path.exists():
        return []

    rules: List[IgnoreRule] = []
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Unable to read %s: %s", path, exc)
        return []
    for raw_line in text.splitlines():
        rule = build_ignore_rule(raw_line)
        if rule is not None:
            rules.append(rule)
    return rules


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    """Apply rules in order; the last matching rule decides."""
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _load_manifest_cache(root: Path) -> Dict[str, Dict[str, object]]:
    cache_path = root / ".docsite" / _CACHE_FILENAME
    try:
        payload = json.loads(cache_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, ValueError):
        return {}

    if not isinstance(payload, dict) or payload.get("version") != _CACHE_VERSION:
        return {}

    files = payload.get("files")
    if not isinstance(files, dict):
        return {}

    valid: Dict[str, Dict[str, object]] = {}
    for rel_path, entry in files.items():
        if not isinstance(entry, dict):
            continue
        size = entry.get("size")
        mtime_ns = entry.get("mtime_ns")
        file_hash = entry.get("hash")
        binary = entry.get("binary")
        if (
            isinstance(rel_path, str)
            and isinstance(size, int)
            and isinstance(mtime_ns, int)
            and isinstance(file_hash, str)
            and isinstance(binary, bool)
        ):
            valid[rel_path] = {
                "size": size,
                "mtime_ns": mtime_ns,
                "hash": file_hash,
                "binary": binary,
            }
    return valid


def _store_manifest_cache(root: Path, entries: Dict[str, Dict[str, object]]) -> None:
    cache_dir = root / ".docsite"
    try:
        cache_dir.mkdir(parents=True, exist_ok=True)
        cache_path = cache_dir / _CACHE_FILENAME
        payload = {"version": _CACHE_VERSION, "files": entries}
        cache_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    except OSError as exc:
        logger.debug("Unable to persist manifest cache: %s", exc)


def _detect_language(path: str) -> str | None:
    suffix = os.path.splitext(path)[1].lower()
    return _LANGUAGE_BY_SUFFIX.get(suffix)


def _hash_file(path: Path) -> Tuple[str, bool]:
    """Return the sha256 hex digest and whether the file looks binary."""
    digest = hashlib.sha256()
    binary = False
    first = True
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            if first:
                binary = b"\0" in chunk[:_BINARY_SNIFF_BYTES]
                first = False
            digest.update(chunk)
    return digest.hexdigest(), binary


def _directory_fingerprint(children: Sequence[SourceNode]) -> str:
    digest = hashlib.sha256()
    for child in sorted(children, key=lambda node: node.path):
        name = child.path.rsplit("/", 1)[-1]
        digest.update(name.encode("utf-8"))
        digest.update(b"\0")
        digest.update(child.fingerprint.encode("utf-8"))
        digest.update(b"\0")
    return digest.hexdigest()


def _join(rel_dir: str, name: str) -> str:
    return f"{rel_dir}/{name}" if rel_dir else name


class RepoScanner:
    """Walks the project to produce a fingerprinted SourceTree."""

    def scan(
        self,
        root: str | Path,
        ignore_patterns: Sequence[str] = (),
        exclude: Sequence[str] = (),
    ) -> SourceTree:
        """Return the tree of files and directories under *root*.

        *ignore_patterns* use gitignore syntax and are applied after the
        project's ``.gitignore``. *exclude* lists root-relative paths (such
        as the output root or the cache file) that are never part of the
        source tree.
        """
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Project path not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Project path is not a directory: {root}")

        rules = _parse_gitignore(root_path / ".gitignore")
        for pattern in ignore_patterns:
            rule = build_ignore_rule(pattern)
            if rule is not None:
                rules.append(rule)
        excluded = {item.strip("/") for item in exclude if item.strip("/")}

        cache = _load_manifest_cache(root_path)
        cache_entries: Dict[str, Dict[str, object]] = {}
        file_nodes: Dict[str, SourceNode] = {}
        children_map: Dict[str, List[str]] = {"": []}
        unreadable_dirs: Set[str] = set()
        skipped: List[str] = []

        def _on_error(exc: OSError) -> None:
            failed = Path(exc.filename) if exc.filename else None
            if failed is None:
                return
            try:
                rel = failed.relative_to(root_path).as_posix()
            except ValueError:
                return
            rel = "" if rel == "." else rel
            logger.warning("Skipping unreadable directory %s: %s", rel or ".", exc.strerror)
            unreadable_dirs.add(rel)

        for dirpath, dirnames, filenames in os.walk(root_path, onerror=_on_error, followlinks=False):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root_path).as_posix() if current_dir != root_path else ""
            children_map.setdefault(rel_dir, [])

            kept_dirs = []
            for name in sorted(dirnames):
                rel_path = _join(rel_dir, name)
                if name in _EXCLUDED_DIRS or rel_path in excluded:
                    continue
                if os.path.islink(current_dir / name):
                    logger.debug("Not following symlinked directory %s", rel_path)
                    continue
                if should_ignore(rel_path, True, rules):
                    continue
                kept_dirs.append(name)
                children_map[rel_dir].append(rel_path)
                children_map.setdefault(rel_path, [])
            dirnames[:] = kept_dirs

            for filename in sorted(filenames):
                rel_path = _join(rel_dir, filename)
                if filename in _EXCLUDED_FILES or rel_path in excluded:
                    continue
                if should_ignore(rel_path, False, rules):
                    continue
                path = current_dir / filename
                if path.is_symlink():
                    logger.debug("Not following symlink %s", rel_path)
                    continue
                node = self._scan_file(path, rel_path, cache, cache_entries)
                if node.skipped:
                    skipped.append(rel_path)
                file_nodes[rel_path] = node
                children_map[rel_dir].append(rel_path)

        _store_manifest_cache(root_path, cache_entries)

        nodes: Dict[str, SourceNode] = dict(file_nodes)

        def _depth(path: str) -> int:
            return len(path.split("/")) if path else 0

        for dir_path in sorted(children_map, key=_depth, reverse=True):
            child_paths = tuple(sorted(children_map[dir_path]))
            children = [nodes[child] for child in child_paths if child in nodes]
            if dir_path in unreadable_dirs:
                skipped.append(dir_path)
            nodes[dir_path] = SourceNode(
                path=dir_path,
                kind=DIRECTORY,
                fingerprint=_directory_fingerprint(children),
                size=sum(child.size for child in children),
                children=child_paths,
                skipped=dir_path in unreadable_dirs,
            )

        logger.debug("Scanned %d files under %s", len(file_nodes), root_path)
        return SourceTree(root=str(root_path), nodes=nodes, skipped=sorted(skipped))

    @staticmethod
    def _scan_file(
        path: Path,
        rel_path: str,
        cache: Dict[str, Dict[str, object]],
        cache_entries: Dict[str, Dict[str, object]],
    ) -> SourceNode:
        language = _detect_language(rel_path)
        try:
            stat_result = path.stat()
            size = stat_result.st_size
            mtime_ns = stat_result.st_mtime_ns
            cached = cache.get(rel_path)
            if cached and cached.get("size") == size and cached.get("mtime_ns") == mtime_ns:
                file_hash = str(cached["hash"])
                binary = bool(cached["binary"])
            else:
                file_hash, binary = _hash_file(path)
        except OSError as exc:
            logger.warning("Skipping unreadable file %s: %s", rel_path, exc)
            return SourceNode(
                path=rel_path,
                kind=FILE,
                fingerprint="",
                size=0,
                language=language,
                skipped=True,
            )

        cache_entries[rel_path] = {
            "size": size,
            "mtime_ns": mtime_ns,
            "hash": file_hash,
            "binary": binary,
        }
        return SourceNode(
            path=rel_path,
            kind=FILE,
            fingerprint=file_hash,
            size=size,
            language=language,
            binary=binary,
        )


__all__ = ["IgnoreRule", "RepoScanner", "build_ignore_rule", "should_ignore"]
