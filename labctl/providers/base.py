"""Base backend interface for VM power and snapshot primitives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeStatus(str, Enum):
    """Power state of a VM as reported by the backend."""
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    PAUSED = "paused"
    ERROR = "error"
    UNKNOWN = "unknown"

    @property
    def is_powered_off(self) -> bool:
        # paused, stopping, crashed and no-state domains may still hold memory
        return self is NodeStatus.STOPPED


class BackendError(Exception):
    """A virtualization backend call failed."""

    def __init__(self, message: str, names: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.names = list(names or [])


@dataclass
class SnapshotHandle:
    """Reference to one snapshot of one VM, as returned by ``get_snapshot``."""
    name: str
    label: str
    ref: Any = field(default=None, repr=False, compare=False)


class Backend(ABC):
    """Abstract virtualization backend.

    Every method that names VMs takes their backend display names. Calls that
    accept a list are issued as one request; the backend may act on the VMs
    in any order or in parallel but returns only when all of them are done.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name (e.g., 'libvirt')."""
        ...

    @abstractmethod
    async def power_on(self, names: list[str]) -> None:
        """Start every named VM. Already running VMs are left alone."""
        ...

    @abstractmethod
    async def power_off(self, names: list[str], force: bool = True) -> None:
        """Stop every named VM.

        With ``force`` the VMs are turned off without a guest shutdown.
        Stopping a VM that is already off is not an error.
        """
        ...

    @abstractmethod
    async def get_state(self, names: list[str]) -> dict[str, NodeStatus]:
        """Return the power state of each named VM.

        VMs the backend does not know about are omitted from the result.
        """
        ...

    @abstractmethod
    async def create_snapshot(self, names: list[str], label: str) -> None:
        """Create a snapshot called ``label`` on every named VM."""
        ...

    @abstractmethod
    async def get_snapshot(self, name: str, label: str) -> SnapshotHandle | None:
        """Look up the snapshot ``label`` of VM ``name``; None if absent."""
        ...

    @abstractmethod
    async def restore_snapshot(self, handle: SnapshotHandle, confirm: bool = True) -> None:
        """Apply a snapshot to its VM.

        Args:
            handle: Snapshot returned by ``get_snapshot``
            confirm: Ask for confirmation before reverting, where the
                backend supports it. ``False`` reverts unconditionally.
        """
        ...
