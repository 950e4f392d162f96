"""Scripted generation backends for pipeline tests."""

from __future__ import annotations

import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

Reply = Union[str, BaseException, Callable[[str, Optional[str]], str]]


class ScriptedBackend:
    """Replays canned replies in order; the last reply repeats once the script runs out.

    A reply may be a string, an exception instance to raise, or a callable
    receiving ``(prompt, system)``.
    """

    def __init__(self, replies: Sequence[Reply] = ()) -> None:
        self._replies: List[Reply] = list(replies)
        self._lock = threading.Lock()
        self.calls: List[Tuple[str, Optional[str]]] = []

    def run(self, prompt: str, *, system: str | None = None) -> str:
        with self._lock:
            self.calls.append((prompt, system))
            if not self._replies:
                raise AssertionError("ScriptedBackend has no replies configured")
            reply = self._replies.pop(0) if len(self._replies) > 1 else self._replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(prompt, system)
        return reply

    @property
    def prompts(self) -> List[str]:
        return [prompt for prompt, _ in self.calls]


class PageBackend:
    """Answers plan prompts with a fixed manifest and page prompts per output path.

    Pages without a scripted reply get a body derived from their title. A
    scripted exception is raised on every call for that page.
    """

    def __init__(self, manifest: str, *, pages: Optional[Dict[str, Union[str, BaseException]]] = None) -> None:
        self.manifest = manifest
        self.pages = dict(pages or {})
        self._lock = threading.Lock()
        self.plan_calls = 0
        self.page_calls: List[str] = []

    def run(self, prompt: str, *, system: str | None = None) -> str:
        lines = prompt.splitlines()
        header = lines[1] if len(lines) > 1 else ""
        if not header.startswith("Page: "):
            with self._lock:
                self.plan_calls += 1
            return self.manifest
        title, _, rest = header[len("Page: "):].rpartition(" (")
        path = rest.rstrip(")")
        with self._lock:
            self.page_calls.append(path)
        reply = self.pages.get(path)
        if isinstance(reply, BaseException):
            raise reply
        if reply is not None:
            return reply
        return f"# {title}\n\nGenerated content for {path}.\n"


__all__ = ["PageBackend", "ScriptedBackend"]
