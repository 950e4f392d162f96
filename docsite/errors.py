"""Exception hierarchy shared by the docsite pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence


class DocsiteError(RuntimeError):
    """Base class for pipeline failures."""


@dataclass
class PlanIssue:
    """A single reason a documentation manifest was rejected."""

    code: str
    detail: str
    page: str | None = None

    def describe(self) -> str:
        if self.page:
            return f"[{self.code}] {self.page}: {self.detail}"
        return f"[{self.code}] {self.detail}"


class StructuralError(DocsiteError):
    """Raised when no valid documentation plan could be produced."""

    def __init__(self, message: str, issues: Sequence[PlanIssue] = ()) -> None:
        super().__init__(message)
        self.issues: List[PlanIssue] = list(issues)


class BackendError(DocsiteError):
    """Raised by generation backends when a request does not produce text."""


class TransientBackendError(BackendError):
    """Timeouts, rate limits and other failures worth retrying."""


class FatalBackendError(BackendError):
    """Failures that will not succeed on retry (auth, bad request, missing runtime)."""


class ProtectedRegionError(DocsiteError):
    """Raised when protected markers in an existing page cannot be parsed safely."""


class OutputWriteError(DocsiteError):
    """Raised when a generated artifact cannot be written to the output tree."""


__all__ = [
    "BackendError",
    "DocsiteError",
    "FatalBackendError",
    "OutputWriteError",
    "PlanIssue",
    "ProtectedRegionError",
    "StructuralError",
    "TransientBackendError",
]
