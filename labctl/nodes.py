"""Node attribute resolution.

All defaulting of node ordering attributes happens here. The orchestrator
only ever sees fully resolved ``NodeAttributes``.
"""

from __future__ import annotations

from dataclasses import dataclass

from labctl.config import settings
from labctl.configuration import WILDCARD_NODE, ConfigurationError, LabConfiguration


@dataclass(frozen=True)
class NodeAttributes:
    """Resolved ordering attributes of one node."""
    name: str
    display_name: str
    boot_order: int
    boot_delay: int


def resolve_node_attributes(node_name: str, config: LabConfiguration) -> NodeAttributes:
    """Resolve one node's attributes.

    A value set on the node entry wins over the wildcard entry, which wins
    over the settings default.
    """
    entry = config.get_node(node_name)
    if entry is None or node_name == WILDCARD_NODE:
        raise ConfigurationError(f"Node '{node_name}' is not declared in the configuration")
    wildcard = config.wildcard

    def _pick(field: str, default):
        value = getattr(entry, field)
        if value is None and wildcard is not None:
            value = getattr(wildcard, field)
        return default if value is None else value

    boot_delay = _pick("boot_delay", settings.default_boot_delay)
    if boot_delay < 0:
        raise ConfigurationError(f"Node '{node_name}' has a negative boot_delay")

    display_name = entry.display_name or (
        f"{config.non_node_data.environment_prefix}"
        f"{node_name}"
        f"{config.non_node_data.environment_suffix}"
    )

    return NodeAttributes(
        name=node_name,
        display_name=display_name,
        boot_order=int(_pick("boot_order", settings.default_boot_order)),
        boot_delay=int(boot_delay),
    )


def resolve_all_nodes(config: LabConfiguration) -> list[NodeAttributes]:
    """Resolve every declared node, in document order."""
    return [resolve_node_attributes(name, config) for name in config.node_names()]
