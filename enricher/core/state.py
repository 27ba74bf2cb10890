"""Persistence helpers for refresh run state."""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

STATE_DIR = Path("data/system")
LAST_RUN_FILENAME = "last_refresh_run.json"


def load_last_run(state_dir: Path = STATE_DIR) -> Optional[Dict[str, Any]]:
    """Return the most recent recorded refresh run state, if available."""

    path = state_dir / LAST_RUN_FILENAME
    if not path.exists():
        return None

    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except (json.JSONDecodeError, OSError):
        return None


def write_last_run(payload: Dict[str, Any], state_dir: Path = STATE_DIR) -> Dict[str, Any]:
    """Atomically persist refresh run metadata and return the stored payload."""

    state_dir.mkdir(parents=True, exist_ok=True)
    stored = {
        **payload,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }

    fd, tmp_path = tempfile.mkstemp(prefix="refresh_state_", suffix=".json", dir=state_dir)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
            json.dump(stored, tmp_file, indent=2, sort_keys=True, default=str)
        os.replace(tmp_path, state_dir / LAST_RUN_FILENAME)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)

    return stored


__all__ = ["load_last_run", "write_last_run", "LAST_RUN_FILENAME", "STATE_DIR"]
