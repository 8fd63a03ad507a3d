"""Bounded worker pool for shell jobs.

``JobPool.run`` starts ``min(p, n)`` worker threads. Each worker owns at most
one child process at a time:

    take next job (file order) -> spawn -> wait -> record -> repeat

so the number of running children never exceeds ``p`` and a freed slot is
refilled as soon as its job exits. Taking a job and spawning it happen under a
single launch lock, which keeps launches (and the ``job: i/n`` progress lines)
in file order even though workers race for the next job.

Children run ``<shell> -c <line>`` in their own session/process group, with the
runner's environment, working directory, stdout and stderr. Signals sent by
``shutdown`` and timeouts target the whole group so pipelines and
grandchildren are reached too (POSIX only).
"""
from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, TextIO

from jobrunner.config import DEFAULT_KILL_GRACE_S, default_shell
from jobrunner.core.contracts import Job, JobResult, JobSet, JobState
from jobrunner.jobs.event_log import utc_now_iso
from jobrunner.jobs.types import EventType

EventCallback = Callable[[dict[str, Any]], None]


def _signal_group(proc: subprocess.Popen, signum: int) -> None:
    try:
        os.killpg(proc.pid, signum)
    except (ProcessLookupError, PermissionError):
        # Job already exited.
        pass


def _describe_returncode(rc: int) -> str | None:
    if rc >= 0:
        return None
    try:
        name = signal.Signals(-rc).name
    except ValueError:
        name = str(-rc)
    return f"killed by signal {name}"


class JobPool:
    def __init__(
        self,
        parallelism: int,
        *,
        shell: str | None = None,
        timeout_s: float | None = None,
        kill_grace_s: float = DEFAULT_KILL_GRACE_S,
        on_event: EventCallback | None = None,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        if isinstance(parallelism, bool) or not isinstance(parallelism, int) or parallelism < 1:
            raise ValueError(f"parallelism must be an integer >= 1, got {parallelism!r}")
        if timeout_s is not None and timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {timeout_s!r}")

        self.parallelism = parallelism
        self.shell = shell or default_shell()
        self.timeout_s = timeout_s
        self.kill_grace_s = float(kill_grace_s)
        self._on_event = on_event
        self._out = out
        self._err = err

        self._lock = threading.RLock()
        self._launch_lock = threading.Lock()
        self._stopping = threading.Event()
        self._stop_signal: int | None = None
        self._kill_timer: threading.Timer | None = None

        # Running Set: job index -> child process.
        self._running: dict[int, subprocess.Popen] = {}
        self._cancelled: set[int] = set()
        self._jobs: Any = iter(())
        self._n_jobs = 0

        self.peak_running = 0
        self.launch_order: list[int] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def running_count(self) -> int:
        with self._lock:
            return len(self._running)

    @property
    def interrupted_by(self) -> int | None:
        """Signal number passed to :meth:`shutdown`, if the pool was stopped."""
        return self._stop_signal

    # ------------------------------------------------------------------
    # Console output
    # ------------------------------------------------------------------

    def _print(self, msg: str) -> None:
        print(msg, file=self._out or sys.stdout, flush=True)

    def _print_err(self, msg: str) -> None:
        print(msg, file=self._err or sys.stderr, flush=True)

    def _emit(self, event: dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(event)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run(self, job_set: JobSet) -> list[JobResult]:
        """Run every job of ``job_set`` and block until all launched jobs exit.

        Returns one result per job, in file order.
        """
        n = len(job_set)
        self._jobs = iter(job_set)
        self._n_jobs = n
        results: dict[int, JobResult] = {}

        if n > 0:
            n_workers = min(self.parallelism, n)
            with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="job-worker") as executor:
                futures = [executor.submit(self._worker, results) for _ in range(n_workers)]
                for future in as_completed(futures):
                    future.result()

        if self._kill_timer is not None:
            self._kill_timer.cancel()

        for job in job_set:
            if job.index not in results:
                results[job.index] = JobResult(index=job.index, command=job.command, state="SKIPPED")

        return [results[job.index] for job in job_set]

    def _worker(self, results: dict[int, JobResult]) -> None:
        while True:
            with self._launch_lock:
                if self._stopping.is_set():
                    return
                job = next(self._jobs, None)
                if job is None:
                    return
                proc, result, t0 = self._launch(job)

            if proc is not None:
                self._wait(job, proc, result, t0)

            with self._lock:
                results[job.index] = result
                self._running.pop(job.index, None)

            self._report_done(result)
            self._emit({"type": EventType.JOB_END.value, "n_jobs": self._n_jobs, "result": result})

    def _launch(self, job: Job) -> tuple[subprocess.Popen | None, JobResult, float]:
        self._print(f"job: {job.index}/{self._n_jobs}")
        self._print(f"cmd: {job.command}")

        result = JobResult(
            index=job.index,
            command=job.command,
            state="FAILED",
            started_at_utc=utc_now_iso(),
        )
        t0 = time.monotonic()

        try:
            proc = subprocess.Popen([self.shell, "-c", job.command], start_new_session=True)
        except OSError as exc:
            # e.g. EAGAIN from process-table exhaustion, or a bad shell path.
            result.state = "FAILED_TO_START"
            result.error = f"{type(exc).__name__}: {exc}"
            result.finished_at_utc = utc_now_iso()
            result.duration_s = round(time.monotonic() - t0, 3)
            self._print_err(f"[run-jobs] job {job.index}/{self._n_jobs} failed to start: {result.error}")
            return None, result, t0

        result.pid = proc.pid
        self._print(f"pid: {proc.pid}")

        with self._lock:
            self._running[job.index] = proc
            self.launch_order.append(job.index)
            self.peak_running = max(self.peak_running, len(self._running))

        # A shutdown may have snapshotted the Running Set just before this job registered.
        if self._stopping.is_set() and self._stop_signal is not None:
            with self._lock:
                self._cancelled.add(job.index)
            _signal_group(proc, self._stop_signal)

        self._emit(
            {
                "type": EventType.JOB_START.value,
                "index": job.index,
                "n_jobs": self._n_jobs,
                "command": job.command,
                "pid": proc.pid,
            }
        )
        return proc, result, t0

    def _wait(self, job: Job, proc: subprocess.Popen, result: JobResult, t0: float) -> None:
        timed_out = False

        try:
            rc = proc.wait(timeout=self.timeout_s)
        except subprocess.TimeoutExpired:
            timed_out = True
            self._print_err(
                f"[run-jobs] job {job.index}/{self._n_jobs} exceeded {self.timeout_s}s; terminating"
            )
            rc = self._terminate(proc)

        result.returncode = rc
        result.finished_at_utc = utc_now_iso()
        result.duration_s = round(time.monotonic() - t0, 3)

        with self._lock:
            cancelled = job.index in self._cancelled

        state: JobState
        if timed_out:
            state = "TIMED_OUT"
            result.error = f"timed out after {self.timeout_s}s"
        elif cancelled:
            state = "CANCELLED"
            result.error = _describe_returncode(rc)
        elif rc == 0:
            state = "SUCCEEDED"
        else:
            state = "FAILED"
            result.error = _describe_returncode(rc)
        result.state = state

    def _terminate(self, proc: subprocess.Popen) -> int:
        """SIGTERM the job's process group, then SIGKILL after the grace period."""
        _signal_group(proc, signal.SIGTERM)
        try:
            return proc.wait(timeout=self.kill_grace_s)
        except subprocess.TimeoutExpired:
            _signal_group(proc, signal.SIGKILL)
            return proc.wait()

    def _report_done(self, result: JobResult) -> None:
        rc = "-" if result.returncode is None else str(result.returncode)
        self._print(
            f"done: {result.index}/{self._n_jobs} state={result.state} rc={rc} "
            f"({result.duration_s or 0.0:.1f}s)"
        )

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def shutdown(self, signum: int = signal.SIGTERM) -> None:
        """Stop launching and forward ``signum`` to every running job.

        Non-blocking, so it is safe to call from a signal handler. Jobs still
        alive after ``kill_grace_s`` are killed; :meth:`run` still waits for
        all of them before returning.
        """
        first = not self._stopping.is_set()
        self._stop_signal = int(signum)
        self._stopping.set()

        with self._lock:
            running = list(self._running.items())
            self._cancelled.update(idx for idx, _ in running)

        for _, proc in running:
            _signal_group(proc, signum)

        if first:
            self._kill_timer = threading.Timer(self.kill_grace_s, self._kill_remaining)
            self._kill_timer.daemon = True
            self._kill_timer.start()

    def _kill_remaining(self) -> None:
        with self._lock:
            running = list(self._running.values())
        for proc in running:
            if proc.poll() is None:
                _signal_group(proc, signal.SIGKILL)
