"""Tests for batch planning."""

from __future__ import annotations

import itertools

from labctl.nodes import NodeAttributes
from labctl.planner import Batch, Direction, plan_batches, plan_restore_order


def _node(name: str, order: int = 99, delay: int = 0) -> NodeAttributes:
    return NodeAttributes(name=name, display_name=name, boot_order=order, boot_delay=delay)


NODES = [
    _node("app1", 20, 5),
    _node("dc1", 1, 60),
    _node("app2", 20, 15),
    _node("edge", 99),
    _node("dc2", 1, 30),
]


def test_start_batches_ascend_by_boot_order():
    batches = plan_batches(NODES, Direction.START)

    assert [b.boot_order for b in batches] == [1, 20, 99]
    assert [b.display_names for b in batches] == [["dc1", "dc2"], ["app1", "app2"], ["edge"]]


def test_stop_batches_descend_by_boot_order():
    batches = plan_batches(NODES, Direction.STOP)

    assert [b.boot_order for b in batches] == [99, 20, 1]


def test_grouping_does_not_depend_on_input_order():
    expected = {b.boot_order: {n.name for n in b.nodes} for b in plan_batches(NODES, Direction.START)}

    for permutation in itertools.permutations(NODES):
        batches = plan_batches(permutation, Direction.START)
        assert [b.boot_order for b in batches] == [1, 20, 99]
        assert {b.boot_order: {n.name for n in b.nodes} for b in batches} == expected


def test_batch_delay_is_largest_member_delay():
    batches = plan_batches(NODES, Direction.START)

    assert [b.delay for b in batches] == [60, 15, 0]


def test_empty_plan():
    assert plan_batches([], Direction.START) == ()
    assert plan_batches([], Direction.STOP) == ()
    assert plan_restore_order([]) == ()


def test_shared_boot_order_gives_one_batch():
    nodes = [_node("a", 5, 10), _node("b", 5, 20)]

    batches = plan_batches(nodes, Direction.START)

    assert len(batches) == 1
    assert batches[0] == Batch(boot_order=5, nodes=(nodes[0], nodes[1]))


def test_restore_order_is_flat_and_ascending():
    order = plan_restore_order(NODES)

    assert [n.name for n in order] == ["dc1", "dc2", "app1", "app2", "edge"]
