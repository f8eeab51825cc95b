from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path

from ..context import RunContext
from ..lib.command import run_cmd
from ..lib.download import fetch_to_file
from ..lib.osrelease import cuda_arch
from ..lib.pkg import apt_install, apt_update, dpkg_install, dpkg_is_installed
from ..lib.shellrc import is_registered, register_exports

logger = logging.getLogger(__name__)


def keyring_url(ctx: RunContext) -> str:
    cuda = ctx.config.cuda
    base = str(cuda.get("repo_base")).rstrip("/")
    return f"{base}/{ctx.os_release.cuda_repo_slug}/{cuda_arch(ctx.arch)}/{cuda.get('keyring_deb')}"


class CudaToolkitStep:
    step_id = "30_cuda_toolkit"
    label = "Install GPU compute toolkit and register PATH/LD_LIBRARY_PATH"
    reboot_required = False

    def is_satisfied(self, ctx: RunContext) -> bool:
        cuda = ctx.config.cuda
        return dpkg_is_installed(str(cuda.get("package"))) and is_registered(ctx.bashrc, str(cuda.get("home")))

    def _install_keyring(self, ctx: RunContext) -> None:
        cuda = ctx.config.cuda
        if dpkg_is_installed(str(cuda.get("keyring_package"))):
            logger.info("CUDA keyring already installed")
            return
        url = keyring_url(ctx)
        workdir = tempfile.mkdtemp(prefix="gpuhost-cuda-")
        try:
            deb = fetch_to_file(url, str(Path(workdir) / str(cuda.get("keyring_deb"))), dry_run=ctx.dry_run)
            dpkg_install(str(deb), dry_run=ctx.dry_run)
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def run(self, ctx: RunContext) -> None:
        cuda = ctx.config.cuda
        home = str(cuda.get("home"))

        self._install_keyring(ctx)
        apt_update(dry_run=ctx.dry_run)
        apt_install([str(cuda.get("package"))], dry_run=ctx.dry_run)

        register_exports(
            ctx.bashrc,
            home,
            label=f"CUDA {cuda.get('version', '')}".strip(),
            owner=(ctx.user.uid, ctx.user.gid),
            dry_run=ctx.dry_run,
        )
        ctx.export_toolkit(home)

        nvcc = Path(home) / "bin" / "nvcc"
        if nvcc.exists():
            r = run_cmd([str(nvcc), "--version"], check=False, env=ctx.env)
            lines = r.stdout.strip().splitlines()
            logger.info("nvcc found: %s", lines[-1] if lines else "(no output)")
        else:
            logger.warning("nvcc not found under %s; open a fresh shell or re-login to pick up PATH", home)
