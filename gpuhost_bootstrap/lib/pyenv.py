from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from ..errors import PackageInstallError
from .command import run_cmd

logger = logging.getLogger(__name__)


def venv_python(venv_path: str) -> Path:
    return Path(venv_path) / "bin" / "python"


def venv_exists(venv_path: str) -> bool:
    return venv_python(venv_path).exists()


def can_import(
    venv_path: str,
    modules: Sequence[str],
    *,
    prefix: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
) -> bool:
    if not venv_exists(venv_path):
        return False
    if not modules:
        return True
    code = "; ".join(f"import {m}" for m in modules)
    r = run_cmd([*prefix, str(venv_python(venv_path)), "-c", code], check=False, env=env)
    return r.returncode == 0


def create_venv(
    venv_path: str,
    *,
    interpreter: str = "python3",
    prefix: Sequence[str] = (),
    dry_run: bool = False,
) -> None:
    run_cmd([*prefix, interpreter, "-m", "venv", venv_path], dry_run=dry_run)


def pip_install(
    venv_path: str,
    packages: Sequence[str],
    *,
    index_url: Optional[str] = None,
    upgrade: bool = False,
    prefix: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    argv: List[str] = [*prefix, str(venv_python(venv_path)), "-m", "pip", "install"]
    if upgrade:
        argv.append("--upgrade")
    argv.extend(packages)
    if index_url:
        argv += ["--index-url", index_url]
    run_cmd(argv, env=env, dry_run=dry_run, error_cls=PackageInstallError)


def report_versions(
    venv_path: str,
    code: str,
    *,
    prefix: Sequence[str] = (),
    env: Optional[Mapping[str, str]] = None,
    dry_run: bool = False,
) -> str:
    """Run a verification snippet inside the venv and return its output."""
    r = run_cmd([*prefix, str(venv_python(venv_path)), "-c", code], env=env, dry_run=dry_run)
    out = r.stdout.strip()
    if out:
        logger.info("%s", out)
    return out
