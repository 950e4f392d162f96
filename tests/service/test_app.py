"""Tests for the FastAPI service mode."""

from __future__ import annotations

from pathlib import Path

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient  # noqa: E402

from docsite.orchestrator import RunSummary  # noqa: E402
from docsite.service import create_app  # noqa: E402


class _StubOrchestrator:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, object]]] = []
        self.error_kind: str | None = None
        self.cancelled = False

    def _summary(self, command: str, path) -> RunSummary:
        root = Path(path).resolve()
        if not root.is_dir():
            raise FileNotFoundError(f"Project path not found: {path}")
        summary = RunSummary(command=command, root=root, cancelled=self.cancelled)
        if self.error_kind:
            summary.fatal = "failed"
            summary.error_kind = self.error_kind
        return summary

    def run_plan(self, path, *, config=None):
        self.calls.append(("plan", {}))
        return self._summary("plan", path)

    def run_clean(self, path, *, config=None, destructive=None):
        self.calls.append(("clean", {"destructive": destructive}))
        return self._summary("clean", path)

    def run_build_all(self, path, *, config=None, destructive=None):
        self.calls.append(("build-all", {"config": config, "destructive": destructive}))
        return self._summary("build-all", path)


@pytest.fixture
def orchestrator() -> _StubOrchestrator:
    return _StubOrchestrator()


@pytest.fixture
def client(orchestrator: _StubOrchestrator) -> TestClient:
    return TestClient(create_app(lambda: orchestrator))


@pytest.fixture
def repo_path(tmp_path: Path) -> Path:
    path = tmp_path / "repo"
    path.mkdir()
    return path


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_plan_endpoint(client: TestClient, repo_path: Path) -> None:
    response = client.post("/plan", json={"path": str(repo_path)})

    assert response.status_code == 200
    data = response.json()
    assert data["command"] == "plan"
    assert data["exit_code"] == 0
    assert data["counts"]["created"] == 0


def test_build_endpoint_applies_overrides(
    client: TestClient, orchestrator: _StubOrchestrator, repo_path: Path
) -> None:
    response = client.post("/build", json={"path": str(repo_path), "concurrency": 3, "destructive": True})

    assert response.status_code == 200
    command, kwargs = orchestrator.calls[0]
    assert command == "build-all"
    assert kwargs["destructive"] is True
    assert kwargs["config"].concurrency == 3


def test_build_endpoint_rejects_bad_concurrency(client: TestClient, repo_path: Path) -> None:
    response = client.post("/build", json={"path": str(repo_path), "concurrency": 0})

    assert response.status_code == 400


def test_missing_project_returns_404(client: TestClient, tmp_path: Path) -> None:
    response = client.post("/build", json={"path": str(tmp_path / "missing")})
    assert response.status_code == 404

    response = client.post("/plan", json={"path": str(tmp_path / "missing")})
    assert response.status_code == 404


@pytest.mark.parametrize(
    ("error_kind", "status"),
    [
        ("StructuralError", 422),
        ("FatalBackendError", 502),
        ("TransientBackendError", 503),
        ("OutputWriteError", 500),
        ("DocsiteError", 400),
    ],
)
def test_fatal_summaries_map_to_status_codes(
    client: TestClient, orchestrator: _StubOrchestrator, repo_path: Path, error_kind: str, status: int
) -> None:
    orchestrator.error_kind = error_kind

    response = client.post("/plan", json={"path": str(repo_path)})

    assert response.status_code == status
    assert response.json()["error_kind"] == error_kind


def test_cancelled_run_returns_503(client: TestClient, orchestrator: _StubOrchestrator, repo_path: Path) -> None:
    orchestrator.cancelled = True

    response = client.post("/clean", json={"path": str(repo_path), "destructive": False})

    assert response.status_code == 503
    assert orchestrator.calls[0] == ("clean", {"destructive": False})
