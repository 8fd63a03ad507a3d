# jobrunner/config.py

import os
import shutil
from dataclasses import dataclass, field

# --- Base paths ---
# Base directory can be overridden if needed (e.g. for tests or deployment)
BASE_DIR = os.path.abspath(os.getenv("JOBRUNNER_BASE_DIR", os.getcwd()))

DEFAULT_KILL_GRACE_S = 5.0


def default_shell() -> str:
    """Shell used to interpret each job line.

    Job files are written for bash (``eval`` semantics), so prefer it and fall
    back to the POSIX shell.
    """
    return shutil.which("bash") or "/bin/sh"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float | None = None) -> float | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from None


# ---------------------------
# Structured configuration
# ---------------------------

@dataclass(frozen=True)
class RunnerConfig:
    """Job runner configuration.

    Values can be overridden via environment variables:
    - JOBRUNNER_SHELL
    - JOBRUNNER_TIMEOUT_S
    - JOBRUNNER_KILL_GRACE_S
    - JOBRUNNER_RECORD
    - JOBRUNNER_RUNS_DIR
    """

    shell: str = field(default_factory=lambda: os.getenv("JOBRUNNER_SHELL") or default_shell())
    timeout_s: float | None = field(default_factory=lambda: _env_float("JOBRUNNER_TIMEOUT_S"))
    kill_grace_s: float = field(
        default_factory=lambda: _env_float("JOBRUNNER_KILL_GRACE_S", DEFAULT_KILL_GRACE_S)
    )
    record: bool = field(default_factory=lambda: _env_flag("JOBRUNNER_RECORD"))
    runs_dir: str = field(
        default_factory=lambda: os.getenv("JOBRUNNER_RUNS_DIR", os.path.join(BASE_DIR, "runs"))
    )

    def __post_init__(self) -> None:
        if self.timeout_s is not None and not self.timeout_s > 0:
            raise ValueError(
                f"timeout (--timeout, JOBRUNNER_TIMEOUT_S) must be a positive number of seconds, "
                f"got {self.timeout_s}"
            )
        if not self.kill_grace_s > 0:
            raise ValueError(
                f"kill grace (--kill-grace, JOBRUNNER_KILL_GRACE_S) must be a positive number of seconds, "
                f"got {self.kill_grace_s}"
            )
        if not self.shell:
            raise ValueError("shell must not be empty")


def get_runner_config(
    *,
    shell: str | None = None,
    timeout_s: float | None = None,
    kill_grace_s: float | None = None,
    record: bool | None = None,
    runs_dir: str | None = None,
) -> RunnerConfig:
    """Build a RunnerConfig from environment defaults plus explicit overrides.

    ``None`` means "keep the environment/default value". Raises ValueError
    when a value (from either source) is malformed or out of range.
    """
    overrides = {
        "shell": shell,
        "timeout_s": timeout_s,
        "kill_grace_s": kill_grace_s,
        "record": record,
        "runs_dir": runs_dir,
    }
    return RunnerConfig(**{k: v for k, v in overrides.items() if v is not None})
