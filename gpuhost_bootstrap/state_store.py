from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import MarkerError

logger = logging.getLogger(__name__)

STATE_VERSION = 1


def _detect_format(path: Path) -> str:
    ext = path.suffix.lower().lstrip(".")
    if ext in {"yaml", "yml"}:
        return "yaml"
    # Default to JSON for unknown extensions.
    return "json"


def load_state(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        return {}

    text = p.read_text(encoding="utf-8")
    try:
        if _detect_format(p) == "yaml":
            data = yaml.safe_load(text) or {}
        else:
            data = json.loads(text)
    except (ValueError, yaml.YAMLError) as e:
        raise MarkerError(f"State file {path} is unreadable: {e}") from e

    if not isinstance(data, dict):
        raise MarkerError(f"State file must be an object/dict, got {type(data).__name__}")

    return data


def _render(path: Path, state: Dict[str, Any]) -> str:
    if _detect_format(path) == "yaml":
        return yaml.safe_dump(state, sort_keys=False)
    return json.dumps(state, indent=2, sort_keys=True) + "\n"


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Persist state with write-temp-then-rename.

    The temp file lives in the target directory so ``os.replace`` stays on one
    filesystem; readers see either the old or the new file, never a torn one.
    """

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    payload = _render(p, state)

    fd, tmp = tempfile.mkstemp(prefix=f".{p.name}.", suffix=".tmp", dir=str(p.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, p)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

    try:
        dir_fd = os.open(str(p.parent), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError as e:
        logger.debug("Directory fsync unsupported for %s: %s", p.parent, e)
    finally:
        os.close(dir_fd)


def ensure_defaults(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fill required keys with defaults (without overriding stored values)."""

    state.setdefault("version", STATE_VERSION)
    exe = state.setdefault("execution", {})
    exe.setdefault("completed_index", 0)
    exe.setdefault("completed_steps", [])
    exe.setdefault("current_step", None)
    exe.setdefault("reboot_pending", None)
    exe.setdefault("errors", [])
    exe.setdefault("history", [])
    return state


def completed_index(state: Dict[str, Any], total: Optional[int] = None) -> int:
    """Return the marker value k (stages 1..k are complete).

    Rejects values that are not non-negative integers. A value past ``total``
    (the catalogue shrank) is clamped to ``total``.
    """

    exe = state.get("execution") or {}
    k = exe.get("completed_index", 0)
    if isinstance(k, bool) or not isinstance(k, int) or k < 0:
        raise MarkerError(f"Invalid completed_index in state: {k!r}")
    if total is not None and k > total:
        logger.warning("Marker %d exceeds stage count %d; treating all stages as complete", k, total)
        return total
    return k


def advance_marker(state: Dict[str, Any], index: int, step_id: str) -> None:
    """Move the marker from index-1 to index. Any other move is refused."""

    current = completed_index(state)
    if index != current + 1:
        raise MarkerError(f"Marker may only advance by one: at {current}, asked for {index} ({step_id})")
    exe = state.setdefault("execution", {})
    exe["completed_index"] = index
    completed = exe.setdefault("completed_steps", [])
    if step_id not in completed:
        completed.append(step_id)
