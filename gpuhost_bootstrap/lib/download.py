from __future__ import annotations

import logging
from pathlib import Path

from ..errors import CommandError, DownloadError
from .command import run_cmd

logger = logging.getLogger(__name__)


def fetch(url: str, *, dry_run: bool = False) -> str:
    """Fetch ``url`` and return its body as text."""

    try:
        r = run_cmd(["curl", "-fsSL", url], dry_run=dry_run)
    except CommandError as e:
        raise DownloadError(url, e.stderr.strip()) from e
    return r.stdout


def fetch_to_file(url: str, dest: str, *, dry_run: bool = False) -> Path:
    p = Path(dest)
    if not dry_run:
        p.parent.mkdir(parents=True, exist_ok=True)
    try:
        run_cmd(["curl", "-fsSL", "-o", str(p), url], dry_run=dry_run)
    except CommandError as e:
        raise DownloadError(url, e.stderr.strip()) from e
    return p


def install_dearmored_key(url: str, keyring_path: str, *, dry_run: bool = False) -> None:
    """Fetch an ASCII-armored signing key and store it as a binary keyring.

    Overwrites any previous keyring at ``keyring_path`` so a rotated upstream
    key replaces a stale one.
    """

    armored = fetch(url, dry_run=dry_run)
    keyring = Path(keyring_path)
    if not dry_run:
        keyring.parent.mkdir(parents=True, exist_ok=True)
        keyring.parent.chmod(0o755)
    try:
        run_cmd(
            ["gpg", "--dearmor", "--yes", "-o", str(keyring)],
            input_text=armored,
            dry_run=dry_run,
        )
    except CommandError as e:
        raise DownloadError(url, f"gpg --dearmor failed: {e.stderr.strip()}") from e
    if not dry_run:
        keyring.chmod(0o644)
    logger.info("Installed signing key %s -> %s", url, keyring_path)
