from __future__ import annotations

import logging
from pathlib import Path

import pytest

from docsite.models import ProjectProfile
from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture(autouse=True)
def _restore_docsite_logger():
    """Undo CLI logging setup so later tests can capture records."""
    logger = logging.getLogger("docsite")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def python_profile() -> ProjectProfile:
    return ProjectProfile(
        project_type="python",
        language="Python",
        confidence=0.9,
        rule="python",
        variables={
            "PROJECT_NAME": "sample",
            "PROJECT_DESCRIPTION": "Sample project",
            "LOGO_PATH": "",
        },
    )
