"""Batch planning for lab power operations.

Nodes sharing a boot order form one batch. Start walks batches in ascending
boot order, stop in descending order. Restore does not batch at all: it walks
single nodes in ascending boot order.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from labctl.nodes import NodeAttributes


class Direction(str, Enum):
    START = "start"
    STOP = "stop"


@dataclass(frozen=True)
class Batch:
    """Nodes powered on or off together."""
    boot_order: int
    nodes: tuple[NodeAttributes, ...]

    @property
    def delay(self) -> int:
        """Seconds to wait after this batch: the largest member boot delay."""
        return max((n.boot_delay for n in self.nodes), default=0)

    @property
    def display_names(self) -> list[str]:
        return [n.display_name for n in self.nodes]


def plan_batches(nodes: Iterable[NodeAttributes], direction: Direction) -> tuple[Batch, ...]:
    """Group nodes by boot order and order the groups for ``direction``."""
    groups: dict[int, list[NodeAttributes]] = {}
    for node in nodes:
        groups.setdefault(node.boot_order, []).append(node)

    orders = sorted(groups, reverse=direction is Direction.STOP)
    return tuple(Batch(boot_order=order, nodes=tuple(groups[order])) for order in orders)


def plan_restore_order(nodes: Iterable[NodeAttributes]) -> tuple[NodeAttributes, ...]:
    """Nodes one at a time, ascending by boot order (stable for ties)."""
    return tuple(sorted(nodes, key=lambda n: n.boot_order))
