"""Job file loading.

A job file is plain text with one shell command line per line. Surrounding
whitespace is stripped and blank lines are ignored, both for counting and for
launching. The last line counts even without a trailing newline.
"""
from __future__ import annotations

from pathlib import Path

from jobrunner.core.contracts import Job, JobSet


class JobFileError(ValueError):
    """Raised when the job file is missing, unreadable, or not text."""

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{reason}: {self.path}")


def parse_jobs(text: str) -> list[str]:
    # Only "\n" ends a job; other Unicode line breaks stay inside the command.
    return [line.strip() for line in text.split("\n") if line.strip()]


def load_jobs(path: str | Path) -> JobSet:
    p = Path(path).expanduser().resolve()

    if not p.exists():
        raise JobFileError(p, "job file does not exist")
    if not p.is_file():
        raise JobFileError(p, "job file is not a regular file")

    try:
        with p.open("r", encoding="utf-8", newline="") as f:
            text = f.read()
    except UnicodeDecodeError as exc:
        raise JobFileError(p, "job file is not valid UTF-8 text") from exc
    except OSError as exc:
        raise JobFileError(p, f"cannot read job file ({exc.strerror or exc})") from exc

    commands = parse_jobs(text)
    return JobSet(
        source=str(p),
        jobs=tuple(Job(index=i, command=cmd) for i, cmd in enumerate(commands, start=1)),
    )
