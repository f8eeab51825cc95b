"""Shared fixtures.

No test runs apt, dpkg, curl or any other host tool: library wrappers are
exercised through a recording stand-in for ``run_cmd``.
"""

import logging
import os
from typing import List

import pytest

from gpuhost_bootstrap.config import load_defaults
from gpuhost_bootstrap.context import RunContext
from gpuhost_bootstrap.lib.command import CmdResult
from gpuhost_bootstrap.lib.osrelease import OSRelease
from gpuhost_bootstrap.lib.users import TargetUser


class CommandRecorder:
    """Callable standing in for ``run_cmd``; records argv and replies by prefix."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self.kwargs: List[dict] = []
        self.replies = []

    def reply(self, prefix, returncode=0, stdout="", stderr=""):
        self.replies.append((list(prefix), returncode, stdout, stderr))

    def __call__(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        self.kwargs.append(kwargs)
        for prefix, rc, out, err in self.replies:
            if argv[: len(prefix)] == prefix:
                result = CmdResult(argv=argv, returncode=rc, stdout=out, stderr=err)
                break
        else:
            result = CmdResult(argv=argv, returncode=0, stdout="", stderr="")
        if kwargs.get("check", True) and result.returncode != 0:
            from gpuhost_bootstrap.errors import CommandError

            error_cls = kwargs.get("error_cls") or CommandError
            raise error_cls(argv, result.returncode, result.stdout, result.stderr)
        return result


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Drop handlers configure_logging installed so tests do not share log files."""

    root = logging.getLogger()
    level = root.level
    yield
    for h in list(root.handlers):
        if getattr(h, "_gpuhost_handler", False):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


@pytest.fixture
def recorder():
    return CommandRecorder()


@pytest.fixture
def user(tmp_path):
    home = tmp_path / "home" / "ops"
    home.mkdir(parents=True)
    return TargetUser(name="ops", uid=os.getuid(), gid=os.getgid(), home=str(home))


@pytest.fixture
def ctx(user):
    return RunContext(
        config=load_defaults(),
        user=user,
        os_release=OSRelease(id="ubuntu", version_id="24.04", codename="noble"),
        arch="amd64",
    )
