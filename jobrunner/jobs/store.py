from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from jobrunner.config import RunnerConfig
from jobrunner.core.contracts import JobResult
from jobrunner.jobs.types import RunStatus

SUMMARY_COLUMNS = [
    "index",
    "command",
    "state",
    "pid",
    "returncode",
    "started_at_utc",
    "finished_at_utc",
    "duration_s",
    "error",
]


def runs_root() -> Path:
    return Path(RunnerConfig().runs_dir)


def run_dir(run_id: str, *, root: Path | None = None) -> Path:
    return (root or runs_root()) / str(run_id)


def request_path(run_id: str, *, root: Path | None = None) -> Path:
    return run_dir(run_id, root=root) / "request.json"


def status_path(run_id: str, *, root: Path | None = None) -> Path:
    return run_dir(run_id, root=root) / "status.json"


def result_path(run_id: str, *, root: Path | None = None) -> Path:
    return run_dir(run_id, root=root) / "result.json"


def events_path(run_id: str, *, root: Path | None = None) -> Path:
    return run_dir(run_id, root=root) / "events.jsonl"


def summary_path(run_id: str, *, root: Path | None = None) -> Path:
    return run_dir(run_id, root=root) / "summary.csv"


def ensure_run_dir(run_id: str, *, root: Path | None = None) -> Path:
    d = run_dir(run_id, root=root)
    d.mkdir(parents=True, exist_ok=True)
    return d


def write_json(path: Path, obj: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj, indent=2, ensure_ascii=False), encoding="utf-8")


def read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8") or "null")


def write_status(run_id: str, status: RunStatus, *, root: Path | None = None) -> None:
    ensure_run_dir(run_id, root=root)
    write_json(status_path(run_id, root=root), status.to_dict())


def read_status(run_id: str, *, root: Path | None = None) -> RunStatus | None:
    p = status_path(run_id, root=root)
    if not p.exists():
        return None
    try:
        data = read_json(p)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    try:
        return RunStatus(**data)
    except TypeError:
        return None


def write_request(run_id: str, request_obj: Any, *, root: Path | None = None) -> None:
    ensure_run_dir(run_id, root=root)
    write_json(request_path(run_id, root=root), request_obj)


def write_result(run_id: str, result_obj: Any, *, root: Path | None = None) -> None:
    ensure_run_dir(run_id, root=root)
    write_json(result_path(run_id, root=root), result_obj)


def results_to_frame(results: list[JobResult]) -> pd.DataFrame:
    rows = [r.to_dict() for r in results]
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)


def write_summary_csv(run_id: str, results: list[JobResult], *, root: Path | None = None) -> str:
    """Write the per-job summary table and return its path as string."""
    ensure_run_dir(run_id, root=root)
    p = summary_path(run_id, root=root)
    results_to_frame(results).to_csv(p, index=False)
    return str(p)


def read_summary_csv(run_id: str, *, root: Path | None = None) -> pd.DataFrame | None:
    p = summary_path(run_id, root=root)
    if not p.exists():
        return None
    return pd.read_csv(p)


def list_runs(*, root: Path | None = None) -> list[str]:
    """List recorded run ids, most recent first (run ids sort by UTC time)."""
    d = root or runs_root()
    if not d.exists():
        return []
    ids = [p.name for p in d.iterdir() if p.is_dir() and (p / "status.json").exists()]
    ids.sort(reverse=True)
    return ids


def update_progress(run_id: str, n_done: int, *, root: Path | None = None) -> None:
    """Update the finished-job counter without changing the run state."""
    status = read_status(run_id, root=root)
    if status and status.state == "RUNNING":
        status.n_done = max(0, int(n_done))
        write_status(run_id, status, root=root)
