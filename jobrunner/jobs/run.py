"""Run a job file with bounded parallelism.

Usage: run-jobs <jobs> <p>

       jobs - a text file containing one shell command per line
       p    - the number of commands to run in parallel (integer >= 1)

Exit status is 0 once every job has finished, whatever the jobs' own exit
codes; 1 on a usage error or an unreadable job file; 128 + signum when the run
is interrupted by SIGINT/SIGTERM (running jobs are terminated first).
"""
from __future__ import annotations

import argparse
import signal
import sys
import threading
import time
import traceback
from pathlib import Path
from typing import Any, Sequence

from jobrunner.config import RunnerConfig, get_runner_config
from jobrunner.core.contracts import JobResult, JobSet, RunSummary
from jobrunner.core.jobfile import JobFileError, load_jobs
from jobrunner.jobs import store
from jobrunner.jobs.event_log import append_event, create_run_id, utc_now_iso
from jobrunner.jobs.pool import JobPool
from jobrunner.jobs.types import EventType, RunStatus

EXIT_OK = 0
EXIT_USAGE = 1


class _ArgumentParser(argparse.ArgumentParser):
    """argparse exits with 2 on usage errors; this CLI reports them as 1."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"{self.prog}: error: {message}\n")


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"parallelism must be an integer, got {raw!r}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"parallelism must be >= 1, got {value}")
    return value


def _positive_float(raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a number of seconds, got {raw!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive number of seconds, got {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    p = _ArgumentParser(
        prog="run-jobs",
        description="Run the commands of a job file in parallel, at most <p> at a time.",
    )
    p.add_argument("jobs", type=str, help="Text file with one shell command per line.")
    p.add_argument("parallelism", type=_positive_int, help="Maximum number of jobs running at once.")
    p.add_argument(
        "--timeout",
        type=_positive_float,
        default=None,
        help="Per-job timeout in seconds (default: none, or JOBRUNNER_TIMEOUT_S).",
    )
    p.add_argument(
        "--kill-grace",
        type=_positive_float,
        default=None,
        help="Seconds between SIGTERM and SIGKILL when stopping jobs (JOBRUNNER_KILL_GRACE_S).",
    )
    p.add_argument("--shell", type=str, default=None, help="Shell used to run each line (JOBRUNNER_SHELL).")
    p.add_argument(
        "--record",
        action="store_true",
        default=None,
        help="Persist status, events and a per-job summary under <runs-dir>/<run-id>/ (JOBRUNNER_RECORD).",
    )
    p.add_argument("--run-id", type=str, default=None, help="Run id for --record (default: UTC timestamp).")
    p.add_argument("--runs-dir", type=str, default=None, help="Root directory for --record (JOBRUNNER_RUNS_DIR).")
    return p


class RunRecorder:
    """Writes runs/<run_id>/ while a run is in progress.

    Recording is best-effort for events: an event-log failure never interrupts
    the jobs.
    """

    def __init__(self, run_id: str, root: Path) -> None:
        self.run_id = run_id
        self.root = root
        self.created = utc_now_iso()
        self.started: str | None = None
        self._n_jobs = 0
        self._n_done = 0
        self._lock = threading.Lock()

    @property
    def events_path(self) -> Path:
        return store.events_path(self.run_id, root=self.root)

    def log(self, event: dict[str, Any]) -> None:
        event = {"run_id": self.run_id, **event}
        try:
            append_event(self.events_path, event)
            if event.get("type") == EventType.JOB_END.value:
                with self._lock:
                    self._n_done += 1
                    store.update_progress(self.run_id, self._n_done, root=self.root)
        except OSError:
            # Recording must never take down running jobs.
            pass

    def start(self, job_set: JobSet, *, parallelism: int, cfg: RunnerConfig) -> None:
        self._n_jobs = len(job_set)
        store.write_status(
            self.run_id,
            RunStatus(state="QUEUED", created_at_utc=self.created, n_jobs=self._n_jobs),
            root=self.root,
        )
        store.write_request(
            self.run_id,
            {
                "job_file": job_set.source,
                "parallelism": int(parallelism),
                "shell": cfg.shell,
                "timeout_s": cfg.timeout_s,
                "kill_grace_s": cfg.kill_grace_s,
                "commands": job_set.commands,
            },
            root=self.root,
        )
        self.started = utc_now_iso()
        store.write_status(
            self.run_id,
            RunStatus(
                state="RUNNING",
                created_at_utc=self.created,
                started_at_utc=self.started,
                n_jobs=self._n_jobs,
            ),
            root=self.root,
        )
        self.log(
            {
                "type": EventType.RUN_START.value,
                "job_file": job_set.source,
                "n_jobs": self._n_jobs,
                "parallelism": int(parallelism),
            }
        )

    def finish(self, results: list[JobResult], summary: RunSummary) -> None:
        store.write_summary_csv(self.run_id, results, root=self.root)
        store.write_result(self.run_id, summary.to_dict(), root=self.root)
        if summary.interrupted:
            self.log({"type": EventType.RUN_INTERRUPTED.value, "counts": summary.counts})
        self.log({"type": EventType.RUN_END.value, "counts": summary.counts, "wall_time_s": summary.wall_time_s})
        store.write_status(
            self.run_id,
            RunStatus(
                state="INTERRUPTED" if summary.interrupted else "SUCCEEDED",
                created_at_utc=self.created,
                started_at_utc=self.started,
                finished_at_utc=utc_now_iso(),
                n_jobs=self._n_jobs,
                n_done=sum(1 for r in results if r.state != "SKIPPED"),
            ),
            root=self.root,
        )

    def fail(self, exc: BaseException) -> None:
        status = RunStatus(
            state="FAILED",
            created_at_utc=self.created,
            started_at_utc=self.started,
            finished_at_utc=utc_now_iso(),
            n_jobs=self._n_jobs,
            n_done=self._n_done,
            error=repr(exc),
            traceback=traceback.format_exc(),
        )
        try:
            store.write_status(self.run_id, status, root=self.root)
        except OSError:
            # The original exception is what the caller re-raises.
            pass


def _install_signal_handlers(pool: JobPool) -> dict[int, Any]:
    """Forward SIGINT/SIGTERM to the running jobs. Returns the previous handlers."""
    if threading.current_thread() is not threading.main_thread():
        return {}

    def _handler(signum, frame):  # noqa: ANN001
        print(f"[run-jobs] received {signal.Signals(signum).name}; stopping running jobs", file=sys.stderr, flush=True)
        pool.shutdown(signum)

    previous: dict[int, Any] = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)
    return previous


def _restore_signal_handlers(previous: dict[int, Any]) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def format_summary(summary: RunSummary) -> str:
    parts = [f"{state.lower()}={count}" for state, count in sorted(summary.counts.items())]
    return (
        f"[run-jobs] {summary.n_jobs} jobs finished in {summary.wall_time_s:.1f}s "
        f"(p={summary.parallelism}): " + (" ".join(parts) or "nothing to do")
    )


def run(
    job_file: str | Path,
    parallelism: int,
    *,
    cfg: RunnerConfig | None = None,
    run_id: str | None = None,
) -> int:
    """Load ``job_file`` and run it with at most ``parallelism`` concurrent jobs.

    Returns the process exit code (see module docstring).
    """
    cfg = cfg or RunnerConfig()

    try:
        job_set = load_jobs(job_file)
    except JobFileError as exc:
        print(f"[run-jobs] error: {exc}", file=sys.stderr, flush=True)
        return EXIT_USAGE

    run_id = run_id or create_run_id()
    recorder = RunRecorder(run_id, Path(cfg.runs_dir)) if cfg.record else None

    pool = JobPool(
        parallelism,
        shell=cfg.shell,
        timeout_s=cfg.timeout_s,
        kill_grace_s=cfg.kill_grace_s,
        on_event=recorder.log if recorder is not None else None,
    )

    if len(job_set) == 0:
        print(f"[run-jobs] no jobs in {job_set.source}; nothing to do", flush=True)

    if recorder is not None:
        try:
            recorder.start(job_set, parallelism=parallelism, cfg=cfg)
        except OSError as exc:
            print(f"[run-jobs] error: cannot record run under {recorder.root}: {exc}", file=sys.stderr, flush=True)
            return EXIT_USAGE
        print(f"[run-jobs] recording run {run_id} under {store.run_dir(run_id, root=recorder.root)}", flush=True)

    previous_handlers = _install_signal_handlers(pool)
    t0 = time.monotonic()
    try:
        results = pool.run(job_set)

        summary = RunSummary.from_results(
            results,
            run_id=run_id,
            parallelism=parallelism,
            wall_time_s=round(time.monotonic() - t0, 3),
            interrupted=pool.interrupted_by is not None,
        )
        if recorder is not None:
            recorder.finish(results, summary)
    except Exception as exc:
        if recorder is not None:
            recorder.fail(exc)
        raise
    finally:
        _restore_signal_handlers(previous_handlers)

    print(format_summary(summary), flush=True)

    if pool.interrupted_by is not None:
        return 128 + int(pool.interrupted_by)
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        cfg = get_runner_config(
            shell=args.shell,
            timeout_s=args.timeout,
            kill_grace_s=args.kill_grace,
            record=args.record,
            runs_dir=args.runs_dir,
        )
    except ValueError as exc:
        print(f"[run-jobs] error: {exc}", file=sys.stderr, flush=True)
        return EXIT_USAGE
    return run(args.jobs, args.parallelism, cfg=cfg, run_id=args.run_id)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
