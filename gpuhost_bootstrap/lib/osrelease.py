from __future__ import annotations

import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from ..errors import UnsupportedHostError

OS_RELEASE_PATH = "/etc/os-release"

# dpkg architecture -> directory name used by the CUDA repositories.
_CUDA_ARCH = {
    "amd64": "x86_64",
    "arm64": "sbsa",
}


@dataclass(frozen=True)
class OSRelease:
    id: str
    version_id: str
    codename: str

    @property
    def cuda_repo_slug(self) -> str:
        """``ubuntu2404`` style identifier used in CUDA repo paths."""
        return f"{self.id}{self.version_id.replace('.', '')}"


def parse_os_release(text: str) -> Dict[str, str]:
    data: Dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        data[key.strip()] = parts[0] if parts else ""
    return data


def detect_os_release(path: str = OS_RELEASE_PATH) -> OSRelease:
    p = Path(path)
    if not p.exists():
        raise UnsupportedHostError(f"{path} not found; cannot identify the distribution")

    data = parse_os_release(p.read_text(encoding="utf-8"))
    os_id = data.get("ID", "").lower()
    version_id = data.get("VERSION_ID", "")
    codename = data.get("VERSION_CODENAME") or data.get("UBUNTU_CODENAME") or ""
    if not os_id or not version_id:
        raise UnsupportedHostError(f"{path} lacks ID/VERSION_ID")
    return OSRelease(id=os_id, version_id=version_id, codename=codename)


def cuda_arch(dpkg_arch: str) -> str:
    arch = _CUDA_ARCH.get(dpkg_arch)
    if not arch:
        raise UnsupportedHostError(f"No CUDA repository for architecture {dpkg_arch!r}")
    return arch
