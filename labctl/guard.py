"""Running-state guard for snapshot operations.

Creating or applying a snapshot on a running VM captures (or overwrites)
live state. Unless forced, a checkpoint or restore only goes ahead when no
target node is running. The decision is all-or-nothing across the lab.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from labctl.nodes import NodeAttributes
from labctl.providers.base import Backend, NodeStatus
from labctl.results import NodeError, NodeErrorKind

logger = logging.getLogger(__name__)


class GuardVerdict(str, Enum):
    PROCEED = "proceed"
    BLOCKED = "blocked"
    OVERRIDE = "override"  # running nodes present, proceeding because forced


@dataclass(frozen=True)
class GuardDecision:
    verdict: GuardVerdict
    running: tuple[str, ...] = ()
    errors: tuple[NodeError, ...] = ()

    @property
    def proceed(self) -> bool:
        return self.verdict is not GuardVerdict.BLOCKED


def evaluate_guard(
    states: dict[str, NodeStatus],
    nodes: Iterable[NodeAttributes],
    force: bool,
    action: str = "snapshot",
) -> GuardDecision:
    """Decide whether a snapshot operation may touch ``nodes``.

    Any reported state other than STOPPED counts as running. Nodes missing
    from ``states`` count as not running.
    """
    running = tuple(
        n.display_name for n in nodes
        if not states.get(n.display_name, NodeStatus.STOPPED).is_powered_off
    )
    if not running:
        return GuardDecision(verdict=GuardVerdict.PROCEED)
    if force:
        return GuardDecision(verdict=GuardVerdict.OVERRIDE, running=running)

    errors = tuple(
        NodeError(
            node=name,
            kind=NodeErrorKind.RUNNING,
            message=f"Cannot {action} node '{name}' while it is running",
        )
        for name in running
    )
    return GuardDecision(verdict=GuardVerdict.BLOCKED, running=running, errors=errors)


async def check_running_state(
    backend: Backend,
    nodes: list[NodeAttributes],
    force: bool,
    action: str = "snapshot",
) -> GuardDecision:
    """Query the backend for power state and evaluate the guard."""
    if not nodes:
        return GuardDecision(verdict=GuardVerdict.PROCEED)
    states = await backend.get_state([n.display_name for n in nodes])
    decision = evaluate_guard(states, nodes, force, action=action)
    if decision.verdict is GuardVerdict.OVERRIDE:
        logger.warning(
            "Forcing %s with running node(s): %s", action, ", ".join(decision.running)
        )
    elif decision.verdict is GuardVerdict.BLOCKED:
        logger.info(
            "Refusing %s: %d node(s) running", action, len(decision.running)
        )
    return decision
