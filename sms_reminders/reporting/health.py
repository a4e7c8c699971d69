"""Persist and read the scheduler health snapshot."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def write_health_snapshot(path: str | Path, snapshot: dict[str, Any]) -> Path:
    """Write the snapshot as JSON, stamped with the write time."""
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        **snapshot,
        "written_at": datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
    }
    tmp_path = out_path.with_suffix(out_path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    tmp_path.replace(out_path)
    return out_path


def read_health_snapshot(path: str | Path) -> dict[str, Any] | None:
    """Return the last written snapshot, or None when absent or unreadable."""
    in_path = Path(path)
    if not in_path.exists():
        return None
    try:
        payload = json.loads(in_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload
