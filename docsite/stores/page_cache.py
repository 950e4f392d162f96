"""Persistent incremental cache for plans and generated pages."""

from __future__ import annotations

import json
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, Optional

from ..errors import OutputWriteError
from ..logging import get_logger
from ..models import PLAN_SCHEMA_VERSION, CacheEntry, DocPlan, PageStatus
from ..writer import atomic_write_text

CACHE_SCHEMA_VERSION = 1

_SUCCESS_STATUSES = {PageStatus.SUCCESS.value, PageStatus.SKIPPED_UNCHANGED.value}


class PageCache:
    """Fingerprint-keyed store of the last successful plan and page bodies.

    The whole file is discarded when its schema tag differs from
    ``CACHE_SCHEMA_VERSION``; entries are never partially reinterpreted.
    """

    def __init__(self, path: Path | None, *, schema_version: int = CACHE_SCHEMA_VERSION) -> None:
        self._path = path
        self._schema_version = schema_version
        self._pages: Dict[str, CacheEntry] = {}
        self._plan: Dict[str, object] = {}
        self._dirty = False
        self._guard = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = {}
        self.logger = get_logger("cache")
        self.cold = True
        if self._path is not None:
            self._load(self._path)

    # ------------------------------------------------------------------
    # Pages

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._guard:
            return self._pages.get(key)

    def lookup(self, key: str, fingerprints: Mapping[str, str]) -> Optional[CacheEntry]:
        """Return the entry for *key* when it succeeded with identical fingerprints."""
        entry = self.get(key)
        if entry is None:
            return None
        if entry.status not in _SUCCESS_STATUSES:
            return None
        if entry.fingerprints != dict(fingerprints):
            return None
        return entry

    def update(
        self, key: str, mutate: Callable[[Optional[CacheEntry]], Optional[CacheEntry]]
    ) -> Optional[CacheEntry]:
        """Atomically read-modify-write a single key.

        Returning None from *mutate* removes the entry.
        """
        with self._lock_for(key):
            with self._guard:
                current = self._pages.get(key)
            updated = mutate(current)
            with self._guard:
                if updated is None:
                    if self._pages.pop(key, None) is not None:
                        self._dirty = True
                else:
                    self._pages[key] = updated
                    self._dirty = True
            return updated

    def store(self, key: str, *, fingerprints: Mapping[str, str], body: str, status: str) -> CacheEntry:
        entry = CacheEntry(
            fingerprints=dict(fingerprints),
            body=body,
            status=status,
            updated_at=_timestamp(),
        )
        self.update(key, lambda _current: entry)
        return entry

    def prune(self, keys_to_keep: Iterable[str]) -> None:
        keep = set(keys_to_keep)
        with self._guard:
            removed = [key for key in self._pages if key not in keep]
            for key in removed:
                self._pages.pop(key, None)
            if removed:
                self._dirty = True

    # ------------------------------------------------------------------
    # Plan

    def get_plan(self, *, tree_fingerprint: str, signature: str) -> Optional[DocPlan]:
        with self._guard:
            payload = dict(self._plan)
        if payload.get("tree") != tree_fingerprint or payload.get("signature") != signature:
            return None
        plan_payload = payload.get("plan")
        if not isinstance(plan_payload, dict):
            return None
        try:
            plan = DocPlan.from_dict(plan_payload)
        except (KeyError, TypeError, ValueError):
            return None
        if plan.schema_version != PLAN_SCHEMA_VERSION:
            return None
        return plan

    def store_plan(self, plan: DocPlan, *, tree_fingerprint: str, signature: str) -> None:
        with self._guard:
            self._plan = {
                "tree": tree_fingerprint,
                "signature": signature,
                "plan": plan.to_dict(),
                "updated_at": _timestamp(),
            }
            self._dirty = True

    # ------------------------------------------------------------------
    # Persistence

    def persist(self) -> None:
        with self._guard:
            if not self._dirty or self._path is None:
                return
            payload = {
                "schema": self._schema_version,
                "plan": self._plan,
                "pages": {key: entry.to_dict() for key, entry in self._pages.items()},
            }
            text = json.dumps(payload, indent=2, sort_keys=True)
            try:
                atomic_write_text(self._path, text)
            except OutputWriteError as exc:
                self.logger.warning("Unable to persist cache: %s", exc)
                return
            self._dirty = False

    def clear(self) -> None:
        with self._guard:
            self._pages.clear()
            self._plan = {}
            self._dirty = True

    # ------------------------------------------------------------------
    # Internal helpers

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def _load(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, ValueError) as exc:
            self.logger.warning("Ignoring unreadable cache %s: %s", path, exc)
            return
        if not isinstance(data, dict) or data.get("schema") != self._schema_version:
            self.logger.info("Cache schema mismatch at %s; starting cold", path)
            return
        pages = data.get("pages")
        if isinstance(pages, dict):
            for key, raw in pages.items():
                entry = CacheEntry.from_dict(raw)
                if isinstance(key, str) and entry is not None:
                    self._pages[key] = entry
        plan = data.get("plan")
        if isinstance(plan, dict):
            self._plan = plan
        self.cold = False


def _timestamp() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


__all__ = ["CACHE_SCHEMA_VERSION", "PageCache"]
