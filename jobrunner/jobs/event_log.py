"""Per-run event log (``runs/<run_id>/events.jsonl``).

Worker threads append one JSON object per line while ``run-jobs-report`` or
``tail -f`` read the file from another process. Readers skip lines they cannot
parse, so a partially written last line never hides earlier events.
"""

from __future__ import annotations

import json
import os
import secrets
import threading
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

_APPEND_LOCK = threading.Lock()


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_run_id() -> str:
    """Sortable UTC timestamp plus a short random suffix."""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ") + "_" + secrets.token_hex(3)


def _encode(obj: Any) -> Any:
    # json.dumps hook: events carry JobResult dataclasses.
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    raise TypeError(f"event field of type {type(obj).__name__} is not JSON serializable")


def encode_event(event: dict[str, Any]) -> str:
    return json.dumps(event, ensure_ascii=False, default=_encode)


def append_event(path: Path, event: dict[str, Any]) -> None:
    """Append ``event`` (stamped with ``ts_utc``) as one line, then flush and fsync."""
    line = encode_event({**event, "ts_utc": event.get("ts_utc") or utc_now_iso()})
    path.parent.mkdir(parents=True, exist_ok=True)

    with _APPEND_LOCK, path.open("a", encoding="utf-8", newline="\n") as f:
        f.write(line + "\n")
        f.flush()
        try:
            os.fsync(f.fileno())
        except OSError:
            pass  # not supported on pipes and some network mounts


def read_events(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []

    events: list[dict[str, Any]] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(obj, dict):
                events.append(obj)
    return events


def latest_event(events: Iterable[dict[str, Any]], event_type: str) -> dict[str, Any] | None:
    found = None
    for e in events:
        if e.get("type") == event_type:
            found = e
    return found
