from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from tests._fixtures.fake_vcs import FakeVcsGateway

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git binary not available")


@pytest.fixture
def fake_vcs() -> FakeVcsGateway:
    """Provide an empty in-memory gateway checked out on ``main``."""
    return FakeVcsGateway()


@pytest.fixture
def git_repo(tmp_path: Path):
    """Provide a fresh git repository builder rooted at the pytest tmp_path."""
    if shutil.which("git") is None:
        pytest.skip("git binary not available")
    from tests._fixtures.repo_builder import GitRepoBuilder

    return GitRepoBuilder(tmp_path)
