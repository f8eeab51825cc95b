from __future__ import annotations

import logging
from pathlib import Path
from typing import Tuple

DEFAULT_LOG_PATH = "/var/log/gpuhost-bootstrap.log"
FALLBACK_LOG_NAME = "gpuhost-bootstrap.log"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"
# Handlers installed here carry this attribute so a reconfigure replaces them.
_OWNED = "_gpuhost_handler"


def _open_log_file(log_path: str) -> Tuple[logging.Handler, str]:
    try:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        # /var/log needs root; keep a log next to the operator instead.
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(log_path: str = DEFAULT_LOG_PATH, *, verbose: bool = False) -> str:
    """Send everything to the log file and a summary to the console.

    The file always gets DEBUG, including the captured output of every
    external command, so an unattended run after a reboot can be diagnosed
    from the file alone. The console shows INFO, or DEBUG with ``verbose``.

    Calling it again replaces the handlers it installed earlier.
    Returns the log file path actually in use.
    """

    root = logging.getLogger()
    for h in [h for h in root.handlers if getattr(h, _OWNED, False)]:
        root.removeHandler(h)
        h.close()
    root.setLevel(logging.DEBUG)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    file_handler, chosen_path = _open_log_file(log_path)
    file_handler.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)

    for h in (file_handler, console):
        h.setFormatter(fmt)
        setattr(h, _OWNED, True)
        root.addHandler(h)

    logging.getLogger(__name__).info("Logging to %s (requested %s)", chosen_path, log_path)
    return chosen_path
