"""Virtualization backends for labctl."""

from labctl.providers.base import (
    Backend,
    BackendError,
    NodeStatus,
    SnapshotHandle,
)
from labctl.providers.registry import get_backend, list_backends

__all__ = [
    # Base classes and types
    "Backend",
    "BackendError",
    "NodeStatus",
    "SnapshotHandle",
    # Registry
    "get_backend",
    "list_backends",
]
