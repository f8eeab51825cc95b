from __future__ import annotations

import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

DEFAULT_CONFIG_PATH = "/etc/gpuhost-bootstrap/config.yaml"
_DEFAULTS_FILE = Path(__file__).with_name("defaults.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")
    return raw


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Merge ``override`` into a copy of ``base``. Nested mappings merge, everything else replaces."""

    out = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = deep_merge(out[key], value)
        else:
            out[key] = copy.deepcopy(value)
    return out


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    return raw.get(name) or {}


@dataclass(frozen=True)
class BootstrapConfig:
    raw: Dict[str, Any]

    @property
    def target_user(self) -> Optional[str]:
        return self.raw.get("target_user") or None

    @property
    def auto_reboot(self) -> bool:
        return bool(self.raw.get("auto_reboot", True))

    @property
    def secret_env(self) -> List[str]:
        return [str(v) for v in self.raw.get("secret_env") or []]

    @property
    def state_path(self) -> str:
        return str(_section(self.raw, "paths").get("state") or "/var/lib/gpuhost-bootstrap/state.json")

    @property
    def log_path(self) -> str:
        return str(_section(self.raw, "paths").get("log") or "/var/log/gpuhost-bootstrap.log")

    @property
    def base_packages(self) -> List[str]:
        return [str(p) for p in self.raw.get("base_packages") or []]

    @property
    def driver(self) -> Dict[str, Any]:
        return _section(self.raw, "driver")

    @property
    def cuda(self) -> Dict[str, Any]:
        return _section(self.raw, "cuda")

    @property
    def docker(self) -> Dict[str, Any]:
        return _section(self.raw, "docker")

    @property
    def container_toolkit(self) -> Dict[str, Any]:
        return _section(self.raw, "container_toolkit")

    @property
    def group_name(self) -> str:
        return str(_section(self.raw, "group").get("name") or "docker")

    @property
    def python_env(self) -> Dict[str, Any]:
        return _section(self.raw, "python_env")


def load_defaults() -> BootstrapConfig:
    return BootstrapConfig(raw=_load_yaml(_DEFAULTS_FILE))


def load_config(path: Optional[str] = None) -> BootstrapConfig:
    """Load packaged defaults, then overlay the host config file if any.

    ``path=None`` means the well-known location, which may be absent. An
    explicitly named file must exist.
    """

    raw = _load_yaml(_DEFAULTS_FILE)

    if path is None:
        candidate = Path(DEFAULT_CONFIG_PATH)
        if not candidate.exists():
            return BootstrapConfig(raw=raw)
    else:
        candidate = Path(path)
        if not candidate.exists():
            raise ConfigError(f"Config file not found: {path}")

    if candidate.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError(f"{candidate} must be a YAML file (.yaml or .yml)")

    return BootstrapConfig(raw=deep_merge(raw, _load_yaml(candidate)))
