from __future__ import annotations

import logging

from ..context import RunContext
from ..lib.users import add_to_group, ensure_group, is_member

logger = logging.getLogger(__name__)


class DockerGroupStep:
    step_id = "50_docker_group"
    label = "Grant the target user access to the container runtime"
    reboot_required = False

    def is_satisfied(self, ctx: RunContext) -> bool:
        return is_member(ctx.user, ctx.config.group_name)

    def run(self, ctx: RunContext) -> None:
        group = ctx.config.group_name
        ensure_group(group, dry_run=ctx.dry_run)
        add_to_group(ctx.user, group, dry_run=ctx.dry_run)
        logger.info("Log out and back in (or run 'newgrp %s') before using it without sudo", group)
