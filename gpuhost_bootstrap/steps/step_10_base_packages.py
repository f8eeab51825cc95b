from __future__ import annotations

import logging

from ..context import RunContext
from ..lib.pkg import apt_install, apt_update, apt_upgrade, missing_packages

logger = logging.getLogger(__name__)


class BasePackagesStep:
    step_id = "10_base_packages"
    label = "Refresh OS packages and install build tooling"
    reboot_required = False

    def is_satisfied(self, ctx: RunContext) -> bool:
        return not missing_packages(ctx.config.base_packages)

    def run(self, ctx: RunContext) -> None:
        apt_update(dry_run=ctx.dry_run)
        apt_upgrade(dry_run=ctx.dry_run)
        apt_install(ctx.config.base_packages, dry_run=ctx.dry_run)
        logger.info("Base packages installed: %s", " ".join(ctx.config.base_packages))
