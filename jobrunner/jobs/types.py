from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Literal


class EventType(str, Enum):
    RUN_START = "run_start"
    JOB_START = "job_start"
    JOB_END = "job_end"
    RUN_END = "run_end"
    RUN_INTERRUPTED = "run_interrupted"


# SUCCEEDED means the runner finished; individual jobs may still have failed.
RunState = Literal["QUEUED", "RUNNING", "SUCCEEDED", "INTERRUPTED", "FAILED"]


@dataclass
class RunStatus:
    state: RunState
    created_at_utc: str
    started_at_utc: str | None = None
    finished_at_utc: str | None = None
    n_jobs: int | None = None
    n_done: int = 0
    error: str | None = None
    traceback: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
