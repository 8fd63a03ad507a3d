"""Print the outcome of a recorded run (``run-jobs --record``)."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from jobrunner.core.contracts import JobResult
from jobrunner.jobs import store
from jobrunner.jobs.event_log import latest_event, read_events
from jobrunner.jobs.types import EventType


def render_report(run_id: str, *, root: Path | None = None) -> str | None:
    status = store.read_status(run_id, root=root)
    if status is None:
        return None

    lines = [
        f"run:      {run_id}",
        f"state:    {status.state}",
        f"jobs:     {status.n_done}/{status.n_jobs if status.n_jobs is not None else '?'} done",
        f"created:  {status.created_at_utc}",
        f"started:  {status.started_at_utc or '-'}",
        f"finished: {status.finished_at_utc or '-'}",
    ]
    if status.error:
        lines.append(f"error:    {status.error}")

    df = store.read_summary_csv(run_id, root=root)
    if df is None:
        # Still running (or crashed): reconstruct what we can from the event log.
        events = read_events(store.events_path(run_id, root=root))
        finished = [
            JobResult.from_dict(e["result"])
            for e in events
            if e.get("type") == EventType.JOB_END.value and isinstance(e.get("result"), dict)
        ]
        last_start = latest_event(events, EventType.JOB_START.value)
        if last_start is not None:
            lines.append(f"last launched: {last_start.get('index')}/{last_start.get('n_jobs')} {last_start.get('command')}")
        df = store.results_to_frame(sorted(finished, key=lambda r: r.index))

    if not df.empty:
        counts = df["state"].value_counts().sort_index()
        lines.append("counts:   " + " ".join(f"{k.lower()}={int(v)}" for k, v in counts.items()))
        lines.append("")
        cols = [c for c in ("index", "state", "returncode", "duration_s", "command") if c in df.columns]
        lines.append(df[cols].to_string(index=False))

    return "\n".join(lines)


def main(argv: Sequence[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Show the status and per-job results of a recorded run.")
    p.add_argument("run_id", nargs="?", default=None, help="Run id (default: most recent run).")
    p.add_argument("--runs-dir", type=str, default=None, help="Root directory of recorded runs.")
    args = p.parse_args(argv)

    root = Path(args.runs_dir) if args.runs_dir else None

    run_id = args.run_id
    if run_id is None:
        runs = store.list_runs(root=root)
        if not runs:
            print(f"[report] no recorded runs under {root or store.runs_root()}", file=sys.stderr)
            return 1
        run_id = runs[0]

    text = render_report(run_id, root=root)
    if text is None:
        print(f"[report] run not found: {run_id}", file=sys.stderr)
        return 1

    print(text)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
