from __future__ import annotations

import grp
import logging
import os
import pwd
from dataclasses import dataclass
from typing import Mapping, Optional

from ..errors import ConfigError
from .command import run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetUser:
    name: str
    uid: int
    gid: int
    home: str


def resolve_target_user(configured: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> TargetUser:
    """Pick the user whose home and groups are provisioned.

    Order: explicit config, ``SUDO_USER`` (the operator behind sudo),
    ``USER``, then the current uid.
    """

    env = os.environ if environ is None else environ
    name = configured or env.get("SUDO_USER") or env.get("USER")
    if name:
        try:
            pw = pwd.getpwnam(name)
        except KeyError:
            raise ConfigError(f"Unknown target user {name!r}") from None
    else:
        pw = pwd.getpwuid(os.getuid())
    return TargetUser(name=pw.pw_name, uid=pw.pw_uid, gid=pw.pw_gid, home=pw.pw_dir)


def group_exists(group: str) -> bool:
    try:
        grp.getgrnam(group)
    except KeyError:
        return False
    return True


def is_member(user: TargetUser, group: str) -> bool:
    try:
        g = grp.getgrnam(group)
    except KeyError:
        return False
    return user.name in g.gr_mem or user.gid == g.gr_gid


def ensure_group(group: str, *, dry_run: bool = False) -> None:
    if group_exists(group):
        return
    run_cmd(["groupadd", group], dry_run=dry_run)


def add_to_group(user: TargetUser, group: str, *, dry_run: bool = False) -> None:
    run_cmd(["usermod", "-aG", group, user.name], dry_run=dry_run)
    logger.info("Added %s to group %s (takes effect on next login)", user.name, group)
