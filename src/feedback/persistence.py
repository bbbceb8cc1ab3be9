"""JSON file helpers shared by the session, queue and offline-memory stores."""

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()


def now_ms() -> int:
    return int(time.time() * 1000)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON next to ``path`` then swap it into place.

    Readers see either the previous document or the new one, never a partial
    write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            delete=False,
            dir=str(path.parent),
            prefix=path.name + ".tmp.",
        ) as f:
            tmp_path = Path(f.name)
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()


def read_json(path: Path) -> Any:
    """Parse a JSON file. Missing file → None; invalid JSON raises ValueError."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return json.loads(text)


def move_aside(path: Path, reason: str) -> Path:
    """Rename an unreadable document to ``<name>.corrupt-<ms>`` and return the new path."""
    target = path.with_name(f"{path.name}.corrupt-{now_ms()}")
    os.replace(path, target)
    logger.warning("persistence.corrupt_moved_aside", path=str(path), moved_to=str(target), reason=reason)
    return target
