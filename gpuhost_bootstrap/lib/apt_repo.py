from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SOURCES_DIR = "/etc/apt/sources.list.d"


def docker_source_line(*, repo_url: str, codename: str, arch: str, keyring: str, channel: str = "stable") -> str:
    """Render the one-line apt source for Docker's upstream repository.

      deb [arch=amd64 signed-by=/etc/apt/keyrings/docker.gpg] https://download.docker.com/linux/ubuntu noble stable
    """
    return f"deb [arch={arch} signed-by={keyring}] {repo_url} {codename} {channel}\n"


def add_signed_by(list_text: str, keyring: str) -> str:
    """Pin every ``deb https://`` line of an upstream .list file to ``keyring``.

    Lines that already carry options are left alone.
    """

    out: list[str] = []
    for line in list_text.splitlines():
        stripped = line.lstrip()
        if stripped.startswith("deb https://"):
            line = line.replace("deb https://", f"deb [signed-by={keyring}] https://", 1)
        out.append(line)
    text = "\n".join(out)
    return text + "\n" if text and not text.endswith("\n") else text


def write_source_list(name: str, content: str, *, sources_dir: str = SOURCES_DIR, dry_run: bool = False) -> Path:
    p = Path(sources_dir) / f"{name}.list"
    if dry_run:
        logger.info("Would write apt source %s:\n%s", p, content.rstrip())
        return p
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    logger.info("Configured apt source %s", p)
    return p
