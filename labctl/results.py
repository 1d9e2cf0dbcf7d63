"""Outcome records for lab operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Operation(str, Enum):
    START = "start"
    STOP = "stop"
    CHECKPOINT = "checkpoint"
    RESTORE = "restore"
    RESET = "reset"


class NodeErrorKind(str, Enum):
    RUNNING = "running"                    # guard: node must be powered off
    SNAPSHOT_MISSING = "snapshot_missing"
    RESTORE_FAILED = "restore_failed"


@dataclass(frozen=True)
class NodeError:
    """A recoverable failure that affected a single node."""
    node: str  # backend display name
    kind: NodeErrorKind
    message: str


@dataclass
class OperationResult:
    """What a lab operation did.

    ``processed`` lists display names the operation acted on, in the order it
    acted on them. A result with errors still counts as completed; only
    ``cancelled`` marks an operation that stopped early.
    """
    operation: Operation
    label: str | None = None
    processed: list[str] = field(default_factory=list)
    errors: list[NodeError] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.errors and not self.cancelled

    def add_error(self, error: NodeError) -> None:
        self.errors.append(error)

    def summary(self) -> str:
        state = "cancelled" if self.cancelled else "completed"
        return (
            f"{self.operation.value} {state}: "
            f"processed={len(self.processed)} errors={len(self.errors)}"
        )
