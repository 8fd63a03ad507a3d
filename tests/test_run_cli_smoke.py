"""Smoke tests: run the CLI as a real process, the way a batch script would."""
from __future__ import annotations

import os
import signal
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _cmd(*args: str) -> list[str]:
    return [sys.executable, "-m", "jobrunner.jobs.run", *args]


def _env() -> dict[str, str]:
    env = os.environ.copy()
    env["PYTHONPATH"] = str(PROJECT_ROOT) + os.pathsep + env.get("PYTHONPATH", "")
    return env


def test_cli_exit_codes(write_jobs, tmp_path: Path) -> None:
    path = write_jobs(["false", "true"])

    ok = subprocess.run(_cmd(str(path), "2"), cwd=str(PROJECT_ROOT), env=_env(), capture_output=True, text=True)
    assert ok.returncode == 0, f"STDOUT:\n{ok.stdout}\nSTDERR:\n{ok.stderr}"
    assert "job: 1/2" in ok.stdout

    usage = subprocess.run(_cmd(str(path)), cwd=str(PROJECT_ROOT), env=_env(), capture_output=True, text=True)
    assert usage.returncode == 1
    assert "job:" not in usage.stdout

    missing = subprocess.run(
        _cmd(str(tmp_path / "missing.txt"), "2"), cwd=str(PROJECT_ROOT), env=_env(), capture_output=True, text=True
    )
    assert missing.returncode == 1
    assert "job:" not in missing.stdout


def test_sigterm_is_forwarded_to_running_jobs(write_jobs) -> None:
    path = write_jobs(["sleep 30", "sleep 30", "sleep 30"])

    proc = subprocess.Popen(
        _cmd(str(path), "2", "--kill-grace", "1"),
        cwd=str(PROJECT_ROOT),
        env=_env(),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    )
    try:
        n_launched = 0
        while n_launched < 2:
            line = proc.stdout.readline()
            assert line, "runner exited before launching its jobs"
            if line.startswith("pid: "):
                n_launched += 1

        proc.send_signal(signal.SIGTERM)
        out, err = proc.communicate(timeout=15)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()

    assert proc.returncode == 128 + signal.SIGTERM
    assert "job: 3/3" not in out
    assert "skipped=1" in out
    assert "cancelled=2" in out
    assert "SIGTERM" in err
