from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .config import BootstrapConfig
from .lib.osrelease import OSRelease, detect_os_release
from .lib.pkg import dpkg_architecture
from .lib.shellrc import prepend_path, toolkit_exports
from .lib.users import TargetUser, resolve_target_user

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Per-invocation state. Recomputed on every run, never persisted."""

    config: BootstrapConfig
    user: TargetUser
    os_release: OSRelease
    arch: str
    dry_run: bool = False
    env: Dict[str, str] = field(default_factory=dict)

    @property
    def bashrc(self) -> str:
        return str(Path(self.user.home) / ".bashrc")

    @property
    def venv_path(self) -> str:
        p = Path(str(self.config.python_env.get("path") or "pytorch_venv_cu126")).expanduser()
        if not p.is_absolute():
            p = Path(self.user.home) / p
        return str(p)

    @property
    def user_prefix(self) -> List[str]:
        """argv prefix that runs a command as the target user when we are root."""
        if os.geteuid() == 0 and self.user.uid != 0:
            return ["runuser", "-u", self.user.name, "--"]
        return []

    def export_toolkit(self, toolkit_home: str) -> None:
        """Make the toolkit visible to every command this process runs from now on."""
        for key, entry in toolkit_exports(toolkit_home).items():
            current = self.env.get(key, os.environ.get(key))
            self.env[key] = prepend_path(current, entry)


def build_context(config: BootstrapConfig, *, dry_run: bool = False, os_release_path: Optional[str] = None) -> RunContext:
    user = resolve_target_user(config.target_user)
    release = detect_os_release(os_release_path) if os_release_path else detect_os_release()
    arch = dpkg_architecture()

    ctx = RunContext(config=config, user=user, os_release=release, arch=arch, dry_run=dry_run)

    toolkit_home = str(config.cuda.get("home") or "")
    if toolkit_home and Path(toolkit_home).is_dir():
        ctx.export_toolkit(toolkit_home)

    logger.info(
        "Host: %s %s (%s) arch=%s user=%s",
        release.id,
        release.version_id,
        release.codename or "?",
        arch,
        user.name,
    )
    return ctx
