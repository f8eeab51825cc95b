from __future__ import annotations

from typing import Optional, Sequence

# Lines of a failed tool's stderr carried in the exception message.
STDERR_TAIL_LINES = 5


class BootstrapError(Exception):
    """Base class for fatal bootstrap failures.

    A fatal failure aborts the whole run; the progress marker stays at the
    last completed stage so a re-run resumes from there. ``step_id`` is set
    by the pipeline to the stage the error escaped from.
    """

    step_id: Optional[str] = None


class ConfigError(BootstrapError):
    """The host config file or a value in it cannot be used."""


def _tail(text: str, lines: int = STDERR_TAIL_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


class CommandError(BootstrapError):
    """An external tool exited with a non-zero status."""

    def __init__(
        self,
        argv: Sequence[str],
        returncode: int,
        stdout: str = "",
        stderr: str = "",
        *,
        message: Optional[str] = None,
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        if message is None:
            message = f"Command failed ({returncode}): {' '.join(self.argv)}"
            tail = _tail(stderr or "")
            if tail:
                message = f"{message}\n{tail}"
        super().__init__(message)


class PackageInstallError(CommandError):
    """apt-get or dpkg reported a failure for a required package."""


class DownloadError(BootstrapError):
    """A signing key, keyring package or repository list could not be fetched."""

    def __init__(self, url: str, detail: str = "") -> None:
        self.url = url
        self.detail = detail
        msg = f"Download failed: {url}"
        if detail:
            msg = f"{msg}\n{detail}"
        super().__init__(msg)


class UnsupportedHostError(BootstrapError):
    """The host distribution or architecture has no known repository layout."""


class MarkerError(BootstrapError):
    """The progress marker is corrupt or an advance would move it backwards."""


class RebootRequired(Exception):
    """Control signal: a reboot-required stage finished and the run must stop.

    Not an error. The marker already records the stage as complete when this
    is raised.
    """

    def __init__(self, step_id: str) -> None:
        super().__init__(f"Reboot required after {step_id}")
        self.step_id = step_id


class AlreadySatisfied(Exception):
    """Control signal: a stage found its effect already in place."""
