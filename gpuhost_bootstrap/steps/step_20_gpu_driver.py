from __future__ import annotations

import logging

from ..context import RunContext
from ..errors import PackageInstallError
from ..lib.command import run_cmd
from ..lib.host import nvidia_driver_loaded
from ..lib.pkg import apt_install, apt_update

logger = logging.getLogger(__name__)


class GpuDriverStep:
    """Autodetect and install the recommended GPU driver.

    The kernel module only loads after a reboot, so this is the reboot
    boundary of the whole bootstrap.
    """

    step_id = "20_gpu_driver"
    label = "Install GPU driver (reboot required)"
    reboot_required = True

    def is_satisfied(self, ctx: RunContext) -> bool:
        return nvidia_driver_loaded()

    def run(self, ctx: RunContext) -> None:
        drv = ctx.config.driver
        apt_update(dry_run=ctx.dry_run)
        apt_install([str(p) for p in drv.get("packages") or []], dry_run=ctx.dry_run)

        installer = [str(a) for a in drv.get("install_command") or ["ubuntu-drivers", "autoinstall"]]
        run_cmd(installer, dry_run=ctx.dry_run, error_cls=PackageInstallError)
        logger.info("GPU driver installed; the module loads after reboot")
