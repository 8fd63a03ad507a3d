"""Pytest configuration to make the project root importable as a package.

This ensures that ``import jobrunner`` works when tests are run from the
repository root or other locations without installing the project.
"""

import os
import sys
from pathlib import Path

import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


@pytest.fixture
def write_jobs(tmp_path: Path):
    """Write a job file (one command per line) and return its path."""

    def _write(lines: list[str], name: str = "jobs.txt", *, trailing_newline: bool = True) -> Path:
        path = tmp_path / name
        text = "\n".join(lines)
        if trailing_newline and lines:
            text += "\n"
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture(autouse=True)
def _isolate_runner_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # Ensure defaults do not depend on the developer's environment.
    for name in (
        "JOBRUNNER_SHELL",
        "JOBRUNNER_TIMEOUT_S",
        "JOBRUNNER_KILL_GRACE_S",
        "JOBRUNNER_RECORD",
        "JOBRUNNER_RUNS_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
