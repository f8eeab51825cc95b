from __future__ import annotations

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from typing import Mapping, Sequence, Type

from ..errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    argv: list[str]
    returncode: int
    stdout: str
    stderr: str


def fmt_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(a) for a in argv)


def run_cmd(
    argv: Sequence[str],
    *,
    check: bool = True,
    env: Mapping[str, str] | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    dry_run: bool = False,
    error_cls: Type[CommandError] = CommandError,
) -> CmdResult:
    """Run a command with consistent logging.

    - Always logs the command.
    - Captures stdout/stderr; they go to the log at DEBUG, or at ERROR when
      the command fails, so the log file alone explains a failure.
    - dry_run logs but does not execute.
    - check raises ``error_cls`` (a CommandError) on a non-zero exit.
    """

    argv_list = list(argv)
    logger.info("CMD %s", fmt_argv(argv_list))

    if dry_run:
        return CmdResult(argv=argv_list, returncode=0, stdout="", stderr="")

    try:
        p = subprocess.run(
            argv_list,
            input=input_text,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(os.environ, **(env or {})),
        )
    except FileNotFoundError as e:
        # Missing binary behaves like the shell's "command not found".
        if check:
            logger.error("STDERR %s", e)
            raise error_cls(argv_list, 127, "", str(e)) from e
        return CmdResult(argv=argv_list, returncode=127, stdout="", stderr=str(e))

    failed = check and p.returncode != 0
    level = logging.ERROR if failed else logging.DEBUG
    if p.stdout:
        logger.log(level, "STDOUT %s", p.stdout.strip())
    if p.stderr:
        logger.log(level, "STDERR %s", p.stderr.strip())

    if failed:
        logger.error("Command exited %d: %s", p.returncode, fmt_argv(argv_list))
        raise error_cls(argv_list, p.returncode, p.stdout, p.stderr)

    return CmdResult(argv=argv_list, returncode=p.returncode, stdout=p.stdout, stderr=p.stderr)
