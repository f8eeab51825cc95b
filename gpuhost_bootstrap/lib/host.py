from __future__ import annotations

import json
import logging
from pathlib import Path

from .command import run_cmd

logger = logging.getLogger(__name__)

NVIDIA_DRIVER_PROC = "/proc/driver/nvidia/version"
DOCKER_DAEMON_JSON = "/etc/docker/daemon.json"


def nvidia_driver_loaded(proc_path: str = NVIDIA_DRIVER_PROC) -> bool:
    """True once the NVIDIA kernel module is loaded (i.e. after the reboot)."""
    return Path(proc_path).exists()


def docker_has_runtime(runtime: str = "nvidia", daemon_json: str = DOCKER_DAEMON_JSON) -> bool:
    p = Path(daemon_json)
    if not p.exists():
        return False
    try:
        data = json.loads(p.read_text(encoding="utf-8") or "{}")
    except ValueError:
        logger.warning("Unparseable %s; treating runtime %s as absent", daemon_json, runtime)
        return False
    runtimes = data.get("runtimes") if isinstance(data, dict) else None
    return isinstance(runtimes, dict) and runtime in runtimes


def restart_service(name: str, *, dry_run: bool = False) -> None:
    run_cmd(["systemctl", "restart", name], dry_run=dry_run)


def request_reboot(*, dry_run: bool = False) -> None:
    run_cmd(["sync"], dry_run=dry_run)
    run_cmd(["reboot"], dry_run=dry_run)
