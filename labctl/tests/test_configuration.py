"""Tests for loading lab configuration documents."""

from __future__ import annotations

import json

import pytest

from labctl.configuration import (
    ConfigurationError,
    load_configuration,
    parse_configuration,
)


YAML_DOC = """
all_nodes:
  - node_name: "*"
    boot_delay: 5
  - node_name: DC1
    boot_order: 1
    boot_delay: 60
    memory_mb: 4096
  - node_name: APP1
non_node_data:
  environment_prefix: LAB-
"""


def test_load_yaml(tmp_path):
    path = tmp_path / "lab.yaml"
    path.write_text(YAML_DOC)

    config = load_configuration(path)

    assert config.node_names() == ["DC1", "APP1"]
    assert config.wildcard is not None and config.wildcard.boot_delay == 5
    assert config.non_node_data.environment_prefix == "LAB-"
    # Extra node properties survive but are not interpreted
    assert config.get_node("DC1").model_extra == {"memory_mb": 4096}


def test_load_json(tmp_path):
    path = tmp_path / "lab.json"
    path.write_text(json.dumps({"all_nodes": [{"node_name": "R1", "boot_order": 2}]}))

    config = load_configuration(path)

    assert config.get_node("R1").boot_order == 2


def test_empty_document_has_no_nodes(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")

    assert load_configuration(path).node_names() == []


def test_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="Cannot read"):
        load_configuration(tmp_path / "missing.yaml")


def test_unparseable_file(tmp_path):
    path = tmp_path / "lab.json"
    path.write_text("{not json")

    with pytest.raises(ConfigurationError, match="Cannot parse"):
        load_configuration(path)


def test_document_must_be_a_mapping(tmp_path):
    path = tmp_path / "lab.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigurationError, match="must be a mapping"):
        load_configuration(path)


def test_duplicate_node_names_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate node_name 'DC1'"):
        parse_configuration({"all_nodes": [{"node_name": "DC1"}, {"node_name": "DC1"}]})


def test_negative_boot_delay_rejected():
    with pytest.raises(ConfigurationError):
        parse_configuration({"all_nodes": [{"node_name": "DC1", "boot_delay": -1}]})
