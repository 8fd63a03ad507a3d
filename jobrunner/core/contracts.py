from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

JobState = Literal["SUCCEEDED", "FAILED", "TIMED_OUT", "FAILED_TO_START", "CANCELLED", "SKIPPED"]


@dataclass(frozen=True)
class Job:
    index: int  # 1-based position in the job file (blank lines excluded)
    command: str


@dataclass(frozen=True)
class JobSet:
    source: str
    jobs: tuple[Job, ...] = ()

    def __len__(self) -> int:
        return len(self.jobs)

    def __iter__(self):
        return iter(self.jobs)

    @property
    def commands(self) -> list[str]:
        return [j.command for j in self.jobs]


@dataclass
class JobResult:
    index: int
    command: str
    state: JobState
    pid: int | None = None
    returncode: int | None = None
    started_at_utc: str | None = None
    finished_at_utc: str | None = None
    duration_s: float | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "JobResult":
        return cls(**d)


@dataclass(frozen=True)
class RunSummary:
    run_id: str
    n_jobs: int
    parallelism: int
    wall_time_s: float
    interrupted: bool = False
    counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_results(
        cls,
        results: list[JobResult],
        *,
        run_id: str,
        parallelism: int,
        wall_time_s: float,
        interrupted: bool = False,
    ) -> "RunSummary":
        counts: dict[str, int] = {}
        for r in results:
            counts[r.state] = counts.get(r.state, 0) + 1
        return cls(
            run_id=run_id,
            n_jobs=len(results),
            parallelism=int(parallelism),
            wall_time_s=float(wall_time_s),
            interrupted=bool(interrupted),
            counts=counts,
        )
