from __future__ import annotations

import logging

from ..context import RunContext
from ..errors import UnsupportedHostError
from ..lib.apt_repo import add_signed_by, docker_source_line, write_source_list
from ..lib.command import run_cmd
from ..lib.download import fetch, install_dearmored_key
from ..lib.host import docker_has_runtime, restart_service
from ..lib.pkg import apt_install, apt_remove, apt_update, missing_packages

logger = logging.getLogger(__name__)


class ContainerRuntimeStep:
    step_id = "40_container_runtime"
    label = "Install container runtime and GPU runtime shim"
    reboot_required = False

    def _runtime_packages(self, ctx: RunContext) -> list[str]:
        docker = ctx.config.docker
        toolkit = ctx.config.container_toolkit
        return [*[str(p) for p in docker.get("packages") or []], str(toolkit.get("package"))]

    def is_satisfied(self, ctx: RunContext) -> bool:
        runtime = str(ctx.config.container_toolkit.get("runtime") or "nvidia")
        return not missing_packages(self._runtime_packages(ctx)) and docker_has_runtime(runtime)

    def _install_docker(self, ctx: RunContext) -> None:
        docker = ctx.config.docker
        os_id = ctx.os_release.id
        if not ctx.os_release.codename:
            raise UnsupportedHostError("VERSION_CODENAME missing from os-release; cannot build the Docker apt source")

        apt_remove([str(p) for p in docker.get("conflicting_packages") or []], dry_run=ctx.dry_run)
        apt_install(["ca-certificates", "gnupg"], dry_run=ctx.dry_run)

        keyring = str(docker.get("keyring"))
        install_dearmored_key(str(docker.get("gpg_url")).format(os_id=os_id), keyring, dry_run=ctx.dry_run)
        line = docker_source_line(
            repo_url=str(docker.get("repo_url")).format(os_id=os_id),
            codename=ctx.os_release.codename,
            arch=ctx.arch,
            keyring=keyring,
        )
        write_source_list("docker", line, dry_run=ctx.dry_run)

        apt_update(dry_run=ctx.dry_run)
        apt_install([str(p) for p in docker.get("packages") or []], dry_run=ctx.dry_run)

    def _install_toolkit(self, ctx: RunContext) -> None:
        toolkit = ctx.config.container_toolkit
        keyring = str(toolkit.get("keyring"))

        install_dearmored_key(str(toolkit.get("gpg_url")), keyring, dry_run=ctx.dry_run)
        listing = fetch(str(toolkit.get("list_url")), dry_run=ctx.dry_run)
        write_source_list("nvidia-container-toolkit", add_signed_by(listing, keyring), dry_run=ctx.dry_run)

        apt_update(dry_run=ctx.dry_run)
        apt_install([str(toolkit.get("package"))], dry_run=ctx.dry_run)

        runtime = str(toolkit.get("runtime") or "nvidia")
        run_cmd(["nvidia-ctk", "runtime", "configure", "--runtime=docker"], dry_run=ctx.dry_run)
        logger.info("Registered %s runtime with docker", runtime)

    def run(self, ctx: RunContext) -> None:
        docker = ctx.config.docker
        self._install_docker(ctx)
        self._install_toolkit(ctx)

        restart_service(str(docker.get("service") or "docker"), dry_run=ctx.dry_run)

        if bool(docker.get("smoke_test", False)):
            run_cmd(["docker", "run", "--rm", "hello-world"], dry_run=ctx.dry_run)
            logger.info("Docker smoke test passed")
