from __future__ import annotations

from pathlib import Path

from jobrunner.core.contracts import JobResult
from jobrunner.jobs import report, store
from jobrunner.jobs import run as run_mod
from jobrunner.jobs.event_log import append_event
from jobrunner.jobs.types import RunStatus


def test_report_for_finished_run(tmp_path: Path, write_jobs, capsys) -> None:
    runs = tmp_path / "runs"
    path = write_jobs(["true", "false"])
    assert run_mod.main([str(path), "2", "--record", "--runs-dir", str(runs), "--run-id", "done"]) == 0
    capsys.readouterr()

    assert report.main(["done", "--runs-dir", str(runs)]) == 0

    out = capsys.readouterr().out
    assert "state:    SUCCEEDED" in out
    assert "failed=1 succeeded=1" in out
    assert "false" in out


def test_report_defaults_to_latest_run(tmp_path: Path, capsys) -> None:
    runs = tmp_path / "runs"
    store.write_status("20260101T000000Z_aaaaaa", RunStatus(state="SUCCEEDED", created_at_utc="t"), root=runs)
    store.write_status("20260102T000000Z_bbbbbb", RunStatus(state="RUNNING", created_at_utc="t"), root=runs)

    assert report.main(["--runs-dir", str(runs)]) == 0
    assert "20260102T000000Z_bbbbbb" in capsys.readouterr().out


def test_report_for_running_run_uses_event_log(tmp_path: Path) -> None:
    runs = tmp_path / "runs"
    store.write_status("live", RunStatus(state="RUNNING", created_at_utc="t", n_jobs=3, n_done=1), root=runs)
    events = store.events_path("live", root=runs)
    append_event(events, {"type": "job_start", "index": 1, "n_jobs": 3, "command": "true"})
    append_event(
        events,
        {
            "type": "job_end",
            "n_jobs": 3,
            "result": JobResult(index=1, command="echo from-job-one", state="SUCCEEDED", returncode=0, duration_s=0.0),
        },
    )
    append_event(events, {"type": "job_start", "index": 2, "n_jobs": 3, "command": "sleep 60"})

    text = report.render_report("live", root=runs)

    assert "jobs:     1/3 done" in text
    assert "last launched: 2/3 sleep 60" in text
    assert "succeeded=1" in text
    table = text.split("\n\n", 1)[1]
    assert "command" in table.splitlines()[0]
    assert "echo from-job-one" in table


def test_running_report_matches_summary_columns(tmp_path: Path) -> None:
    runs = tmp_path / "runs"
    results = [
        JobResult(index=1, command="true", state="SUCCEEDED", returncode=0, duration_s=0.0),
        JobResult(index=2, command="exit 4", state="FAILED", returncode=4, duration_s=0.0),
    ]
    store.write_status("live", RunStatus(state="RUNNING", created_at_utc="t", n_jobs=2, n_done=2), root=runs)
    for r in reversed(results):
        append_event(store.events_path("live", root=runs), {"type": "job_end", "n_jobs": 2, "result": r})
    live = report.render_report("live", root=runs)

    store.write_status("done", RunStatus(state="SUCCEEDED", created_at_utc="t", n_jobs=2, n_done=2), root=runs)
    store.write_summary_csv("done", results, root=runs)
    done = report.render_report("done", root=runs)

    assert live.split("\n\n", 1)[1] == done.split("\n\n", 1)[1]


def test_report_unknown_run_exits_1(tmp_path: Path, capsys) -> None:
    assert report.main(["nope", "--runs-dir", str(tmp_path)]) == 1
    assert report.main(["--runs-dir", str(tmp_path / "empty")]) == 1
