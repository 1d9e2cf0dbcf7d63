"""Lab configuration documents.

A configuration document declares the nodes of a lab topology. It is loaded
from YAML or JSON into the pydantic models below; the orchestration core only
reads node names, display names, boot order and boot delay from it.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

# Node entry whose properties apply to every node
WILDCARD_NODE = "*"


class ConfigurationError(ValueError):
    """A lab configuration document is unreadable or inconsistent."""


class NodeEntry(BaseModel):
    """One entry of ``all_nodes``.

    Properties other than the ones below are kept but not interpreted.
    """

    node_name: str = Field(..., min_length=1)
    display_name: str | None = None
    boot_order: int | None = None
    boot_delay: int | None = Field(None, ge=0)

    model_config = ConfigDict(extra="allow")


class NonNodeData(BaseModel):
    """Lab-wide settings."""

    environment_prefix: str = ""
    environment_suffix: str = ""

    model_config = ConfigDict(extra="allow")


class LabConfiguration(BaseModel):
    """A declared lab topology."""

    all_nodes: list[NodeEntry] = Field(default_factory=list)
    non_node_data: NonNodeData = Field(default_factory=NonNodeData)

    @model_validator(mode="after")
    def _check_unique_names(self) -> "LabConfiguration":
        seen: set[str] = set()
        for entry in self.all_nodes:
            if entry.node_name in seen:
                raise ValueError(f"Duplicate node_name '{entry.node_name}'")
            seen.add(entry.node_name)
        return self

    @property
    def wildcard(self) -> NodeEntry | None:
        for entry in self.all_nodes:
            if entry.node_name == WILDCARD_NODE:
                return entry
        return None

    def node_names(self) -> list[str]:
        """Declared node names, in document order, without the wildcard."""
        return [e.node_name for e in self.all_nodes if e.node_name != WILDCARD_NODE]

    def get_node(self, node_name: str) -> NodeEntry | None:
        for entry in self.all_nodes:
            if entry.node_name == node_name:
                return entry
        return None


def parse_configuration(data: dict) -> LabConfiguration:
    """Validate an already-parsed document."""
    try:
        return LabConfiguration.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid lab configuration: {e}") from e


def load_configuration(path: str | Path) -> LabConfiguration:
    """Load a lab configuration from a .yaml/.yml or .json file."""
    config_path = Path(path)
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {config_path}: {e}") from e

    try:
        if config_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse configuration {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration {config_path} must be a mapping, got {type(data).__name__}"
        )

    config = parse_configuration(data)
    logger.debug("Loaded %d node(s) from %s", len(config.node_names()), config_path)
    return config
