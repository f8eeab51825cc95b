from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .config import BootstrapConfig, load_config
from .context import build_context
from .errors import BootstrapError, CommandError, RebootRequired
from .lib.host import request_reboot
from .logging_utils import configure_logging
from .pipeline import run_pipeline
from .state_store import completed_index, ensure_defaults, load_state, save_state
from .steps import (
    BasePackagesStep,
    ContainerRuntimeStep,
    CudaToolkitStep,
    DockerGroupStep,
    GpuDriverStep,
    PythonEnvStep,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50


def build_steps():
    return [
        BasePackagesStep(),
        GpuDriverStep(),
        CudaToolkitStep(),
        ContainerRuntimeStep(),
        DockerGroupStep(),
        PythonEnvStep(),
    ]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _record_history(state: Dict[str, Any], started_at: str, outcome: str) -> None:
    exe = state.setdefault("execution", {})
    history: List[Dict[str, Any]] = exe.setdefault("history", [])
    history.append(
        {
            "started_at": started_at,
            "finished_at": _now(),
            "outcome": outcome,
            "completed_index": exe.get("completed_index", 0),
        }
    )
    del history[:-HISTORY_LIMIT]


def _warn_missing_secrets(cfg: BootstrapConfig) -> List[str]:
    missing = [name for name in cfg.secret_env if not os.environ.get(name)]
    for name in missing:
        logger.warning("%s is not set; the service descriptor expects it at deploy time", name)
    return missing


def run(
    *,
    config_path: Optional[str] = None,
    state_path: Optional[str] = None,
    log_path: Optional[str] = None,
    stop_after: Optional[str] = None,
    dry_run: bool = False,
    auto_reboot: Optional[bool] = None,
    verbose: bool = False,
) -> Dict[str, Any]:
    """Run the bootstrap, resuming from the persisted progress marker.

    Returns the final state. At a reboot boundary the state records
    ``execution.reboot_pending`` and the host reboot is requested (unless
    disabled); that is a successful return, not an error.
    """

    cfg = load_config(config_path)
    state_path = state_path or cfg.state_path
    actual_log_path = configure_logging(log_path or cfg.log_path, verbose=verbose)
    reboot = cfg.auto_reboot if auto_reboot is None else auto_reboot

    state = ensure_defaults(load_state(state_path))
    state["execution"].setdefault("paths", {})["log_path_actual"] = actual_log_path

    steps = build_steps()
    if dry_run:
        logger.info("Dry run: commands are logged, not executed; progress is not persisted")

    def save(s: Dict[str, Any]) -> None:
        if not dry_run:
            save_state(state_path, s)

    started_at = _now()
    reboot_step: Optional[str] = None
    try:
        ctx = build_context(cfg, dry_run=dry_run)
        result = run_pipeline(state=state, steps=steps, ctx=ctx, save=save, stop_after=stop_after)
        state = result.state
        if completed_index(state, len(steps)) == len(steps):
            logger.info("Bootstrap complete (%d stages)", len(steps))
            _warn_missing_secrets(cfg)
            _record_history(state, started_at, "complete")
        else:
            _record_history(state, started_at, "stopped")
    except RebootRequired as e:
        reboot_step = e.step_id
        _record_history(state, started_at, "reboot")
    except Exception as e:
        logger.exception("Bootstrap failed")
        state.setdefault("execution", {}).setdefault("errors", []).append(
            {
                "step": getattr(e, "step_id", None) or (state.get("execution") or {}).get("current_step"),
                "error": str(e),
                "at": _now(),
            }
        )
        _record_history(state, started_at, "failed")
        raise
    finally:
        save(state)

    if reboot_step:
        if reboot:
            logger.info("Rebooting to finish %s; re-run gpuhost-bootstrap afterwards to continue", reboot_step)
            request_reboot(dry_run=dry_run)
        else:
            logger.warning("Reboot required after %s. Reboot the host, then re-run gpuhost-bootstrap", reboot_step)

    return state


def format_status(state: Dict[str, Any], steps=None) -> str:
    steps = steps if steps is not None else build_steps()
    state = ensure_defaults(state)
    k = completed_index(state, len(steps))
    exe = state["execution"]

    lines = [f"Progress: {k}/{len(steps)} stages complete"]
    for index, step in enumerate(steps, start=1):
        mark = "x" if index <= k else " "
        flag = " (reboot)" if step.reboot_required else ""
        lines.append(f"  [{mark}] {step.step_id}: {step.label}{flag}")
    if exe.get("reboot_pending"):
        lines.append(f"Reboot pending after {exe['reboot_pending']}")
    errors = exe.get("errors") or []
    if errors:
        last = errors[-1]
        lines.append(f"Last error ({last.get('step')}): {(str(last.get('error') or '').splitlines() or [''])[0]}")
    return "\n".join(lines)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="gpuhost-bootstrap")
    p.add_argument("--config", default=None, help="Host config YAML (default /etc/gpuhost-bootstrap/config.yaml if present)")
    p.add_argument("--state", default=None, help="Path to progress state (json|yaml)")
    p.add_argument("--log", default=None, help="Path to bootstrap log")
    p.add_argument("--stop-after", default=None, help="Stop after step_id (e.g. 30_cuda_toolkit)")
    p.add_argument("--dry-run", action="store_true", help="Log commands without executing or persisting progress")
    p.add_argument("--no-reboot", action="store_true", help="Do not reboot automatically at a reboot boundary")
    p.add_argument("--status", action="store_true", help="Show progress and exit")
    p.add_argument("-v", "--verbose", action="store_true", help="Show command output on the console (the log file always has it)")

    args = p.parse_args(argv)

    step_ids = [s.step_id for s in build_steps()]
    if args.stop_after is not None and args.stop_after not in step_ids:
        p.error(f"--stop-after: unknown step {args.stop_after!r} (choose from {', '.join(step_ids)})")

    try:
        if args.status:
            cfg = load_config(args.config)
            print(format_status(load_state(args.state or cfg.state_path)))
            return 0

        run(
            config_path=args.config,
            state_path=args.state,
            log_path=args.log,
            stop_after=args.stop_after,
            dry_run=bool(args.dry_run),
            auto_reboot=False if args.no_reboot else None,
            verbose=bool(args.verbose),
        )
    except BootstrapError as e:
        msg = str(e)
        if isinstance(e, CommandError) and e.stderr:
            sys.stderr.write(e.stderr if e.stderr.endswith("\n") else e.stderr + "\n")
            msg = msg.splitlines()[0]
        print(f"gpuhost-bootstrap: {msg}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
