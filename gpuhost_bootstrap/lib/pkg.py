from __future__ import annotations

import logging
from typing import Iterable, List, Sequence

from ..errors import PackageInstallError
from .command import run_cmd

logger = logging.getLogger(__name__)

# apt must never stop at a debconf prompt during unattended provisioning.
APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def apt_update(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "update"], env=APT_ENV, dry_run=dry_run, error_cls=PackageInstallError)


def apt_upgrade(*, dry_run: bool = False) -> None:
    run_cmd(["apt-get", "upgrade", "-y"], env=APT_ENV, dry_run=dry_run, error_cls=PackageInstallError)


def apt_install(
    packages: Sequence[str],
    *,
    with_recommends: bool = True,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    argv = ["apt-get", "install", "-y"]
    if not with_recommends:
        argv.append("--no-install-recommends")
    run_cmd([*argv, *packages], env=APT_ENV, dry_run=dry_run, error_cls=PackageInstallError)


def apt_remove(packages: Sequence[str], *, dry_run: bool = False) -> List[str]:
    """Remove whichever of ``packages`` are installed. Returns what was removed."""

    present = [p for p in packages if dpkg_is_installed(p)]
    if not present:
        logger.info("No conflicting packages installed")
        return []
    run_cmd(["apt-get", "remove", "-y", *present], env=APT_ENV, dry_run=dry_run, error_cls=PackageInstallError)
    run_cmd(["apt-get", "autoremove", "-y"], env=APT_ENV, dry_run=dry_run, error_cls=PackageInstallError)
    return present


def dpkg_install(deb_path: str, *, dry_run: bool = False) -> None:
    run_cmd(["dpkg", "-i", deb_path], env=APT_ENV, dry_run=dry_run, error_cls=PackageInstallError)


def dpkg_is_installed(package: str) -> bool:
    """Return True if dpkg reports ``package`` as fully installed.

    Read-only, so it always runs even in dry-run mode.
    """
    r = run_cmd(["dpkg-query", "-W", "-f=${Status}", package], check=False)
    return r.returncode == 0 and r.stdout.strip().endswith("install ok installed")


def missing_packages(packages: Iterable[str]) -> List[str]:
    return [p for p in packages if not dpkg_is_installed(p)]


def dpkg_architecture() -> str:
    r = run_cmd(["dpkg", "--print-architecture"])
    return r.stdout.strip()
