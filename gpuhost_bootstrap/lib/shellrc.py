from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def toolkit_exports(toolkit_home: str) -> Dict[str, str]:
    return {
        "PATH": f"{toolkit_home}/bin",
        "LD_LIBRARY_PATH": f"{toolkit_home}/lib64",
    }


def prepend_path(current: Optional[str], entry: str) -> str:
    """Prepend ``entry`` to a colon separated path list without duplicating it."""

    parts = [p for p in (current or "").split(":") if p]
    if entry in parts:
        return ":".join(parts)
    return ":".join([entry, *parts])


def is_registered(rc_path: str, toolkit_home: str) -> bool:
    p = Path(rc_path)
    if not p.exists():
        return False
    return toolkit_home in p.read_text(encoding="utf-8", errors="ignore")


def register_exports(
    rc_path: str,
    toolkit_home: str,
    *,
    label: str = "CUDA",
    owner: Optional[tuple[int, int]] = None,
    dry_run: bool = False,
) -> bool:
    """Append PATH/LD_LIBRARY_PATH exports for ``toolkit_home`` to a shell rc.

    Returns False (and writes nothing) when the rc file already mentions
    ``toolkit_home``.
    """

    if is_registered(rc_path, toolkit_home):
        logger.info("%s already registered in %s", toolkit_home, rc_path)
        return False

    block = (
        f"\n# {label}\n"
        f"export PATH={toolkit_home}/bin${{PATH:+:${{PATH}}}}\n"
        f"export LD_LIBRARY_PATH={toolkit_home}/lib64${{LD_LIBRARY_PATH:+:${{LD_LIBRARY_PATH}}}}\n"
    )
    if dry_run:
        logger.info("Would append to %s:%s", rc_path, block.rstrip())
        return True

    p = Path(rc_path)
    created = not p.exists()
    with p.open("a", encoding="utf-8") as f:
        f.write(block)
    if created and owner is not None:
        os.chown(p, owner[0], owner[1])
    logger.info("Registered %s in %s", toolkit_home, rc_path)
    return True
