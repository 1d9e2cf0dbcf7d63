"""Ordered power-state and checkpoint orchestration for VM lab topologies."""

from labctl.version import __version__

__all__ = ["__version__"]
