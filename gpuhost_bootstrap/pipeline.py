from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .context import RunContext
from .errors import AlreadySatisfied, BootstrapError, RebootRequired
from .state_store import advance_marker, completed_index

logger = logging.getLogger(__name__)


class Step(Protocol):
    """A single provisioning stage."""

    step_id: str
    label: str
    reboot_required: bool

    def is_satisfied(self, ctx: RunContext) -> bool:
        """Cheap, side-effect free check: is this stage's effect already in place?"""
        ...

    def run(self, ctx: RunContext) -> None:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]
    skipped_steps: List[str]
    satisfied_steps: List[str]


def run_pipeline(
    *,
    state: Dict[str, Any],
    steps: Sequence[Step],
    ctx: RunContext,
    save: Callable[[Dict[str, Any]], None],
    stop_after: Optional[str] = None,
) -> PipelineResult:
    """Run stages after the marker, in order, persisting after each one.

    Raises RebootRequired once a reboot-required stage has actually run and
    its completion is saved. Any other exception propagates with the marker
    left at the last completed stage; a BootstrapError carries the failing
    stage in ``step_id``.
    """

    total = len(steps)
    start = completed_index(state, total)
    exe = state.setdefault("execution", {})
    summary = exe["last_run"] = {"ran": [], "skipped": [], "satisfied": []}
    ran: List[str] = summary["ran"]
    skipped: List[str] = summary["skipped"]
    satisfied: List[str] = summary["satisfied"]

    if exe.get("reboot_pending"):
        logger.info("Resuming after reboot requested by %s", exe["reboot_pending"])
        exe["reboot_pending"] = None
    if start:
        logger.info("Resuming after stage %d/%d", start, total)

    for index, step in enumerate(steps, start=1):
        if index <= start:
            logger.info("Skipping stage %d %s (already completed)", index, step.step_id)
            skipped.append(step.step_id)
            continue

        exe["current_step"] = step.step_id
        logger.info("[%d/%d] %s: %s", index, total, step.step_id, step.label)

        try:
            done_already = step.is_satisfied(ctx)
            if not done_already:
                try:
                    step.run(ctx)
                except AlreadySatisfied:
                    done_already = True
        except BootstrapError as e:
            if e.step_id is None:
                e.step_id = step.step_id
            raise

        advance_marker(state, index, step.step_id)
        exe["current_step"] = None
        needs_reboot = step.reboot_required and not done_already
        if needs_reboot:
            exe["reboot_pending"] = step.step_id
        if done_already:
            satisfied.append(step.step_id)
        else:
            ran.append(step.step_id)
        save(state)

        if done_already:
            logger.info("[%d/%d] %s already satisfied", index, total, step.step_id)
        else:
            logger.info("[%d/%d] %s complete", index, total, step.step_id)
        if needs_reboot:
            raise RebootRequired(step.step_id)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    exe["current_step"] = None
    return PipelineResult(state=state, ran_steps=ran, skipped_steps=skipped, satisfied_steps=satisfied)
