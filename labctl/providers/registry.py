"""Backend registry.

Backends are built on first use and cached for the life of the process.
``settings.backend`` names the default.
"""

from __future__ import annotations

import importlib
import logging
from typing import Callable

from labctl.config import settings
from labctl.providers.base import Backend

logger = logging.getLogger(__name__)


def _libvirt_factory() -> Backend:
    module = importlib.import_module("labctl.providers.libvirt")
    return module.LibvirtBackend()


# name -> factory; add a backend by registering its factory here
_FACTORIES: dict[str, Callable[[], Backend]] = {
    "libvirt": _libvirt_factory,
}


class BackendRegistry:
    """Backends keyed by name, each built by its factory on first use."""

    def __init__(self, factories: dict[str, Callable[[], Backend]]):
        self._factories = dict(factories)
        self._instances: dict[str, Backend] = {}

    def names(self) -> list[str]:
        return sorted(self._factories)

    def get(self, name: str) -> Backend:
        if name not in self._factories:
            raise ValueError(
                f"Unknown backend '{name}'. Available: {', '.join(self.names())}"
            )
        if name not in self._instances:
            logger.debug("Building backend %s", name)
            self._instances[name] = self._factories[name]()
        return self._instances[name]

    def reset(self) -> None:
        """Drop cached backends; the next ``get`` builds them again."""
        self._instances.clear()


_registry = BackendRegistry(_FACTORIES)


def get_backend(name: str | None = None) -> Backend:
    """Return the backend called ``name`` (default: ``settings.backend``)."""
    backend_name = name or settings.backend
    logger.debug("Using backend %s", backend_name)
    return _registry.get(backend_name)


def list_backends() -> list[str]:
    return _registry.names()
