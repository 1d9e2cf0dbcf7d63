from __future__ import annotations

import pytest

from labctl.config import settings
from labctl.configuration import LabConfiguration, parse_configuration
from labctl.progress import ProgressEvent, ProgressSink
from labctl.providers.base import Backend, BackendError, NodeStatus, SnapshotHandle


@pytest.fixture(autouse=True)
def _default_settings(monkeypatch):
    """Pin the settings the orchestration core reads, whatever the environment says."""
    monkeypatch.setattr(settings, "default_boot_order", 99)
    monkeypatch.setattr(settings, "default_boot_delay", 0)
    monkeypatch.setattr(settings, "baseline_snapshot_name", "Lab baseline snapshot")
    monkeypatch.setattr(settings, "delay_tick_seconds", 1.0)
    monkeypatch.setattr(settings, "log_format", "text")
    yield


class FakeBackend(Backend):
    """In-memory backend that records every call in order."""

    def __init__(
        self,
        running: set[str] | None = None,
        snapshots: dict[str, set[str]] | None = None,
        fail_power_on: set[str] | None = None,
        fail_restore: set[str] | None = None,
    ):
        self.calls: list[tuple] = []
        self.running = set(running or ())
        self.snapshots = {k: set(v) for k, v in (snapshots or {}).items()}
        self.fail_power_on = set(fail_power_on or ())
        self.fail_restore = set(fail_restore or ())

    @property
    def name(self) -> str:
        return "fake"

    def calls_named(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    async def power_on(self, names):
        self.calls.append(("power_on", list(names)))
        failed = [n for n in names if n in self.fail_power_on]
        if failed:
            raise BackendError(f"cannot start {', '.join(failed)}", failed)
        self.running.update(names)

    async def power_off(self, names, force=True):
        self.calls.append(("power_off", list(names), force))
        self.running.difference_update(names)

    async def get_state(self, names):
        self.calls.append(("get_state", list(names)))
        return {
            n: NodeStatus.RUNNING if n in self.running else NodeStatus.STOPPED
            for n in names
        }

    async def create_snapshot(self, names, label):
        self.calls.append(("create_snapshot", list(names), label))
        for n in names:
            self.snapshots.setdefault(n, set()).add(label)

    async def get_snapshot(self, name, label):
        self.calls.append(("get_snapshot", name, label))
        if label in self.snapshots.get(name, set()):
            return SnapshotHandle(name=name, label=label)
        return None

    async def restore_snapshot(self, handle, confirm=True):
        self.calls.append(("restore_snapshot", handle.name, handle.label, confirm))
        if handle.name in self.fail_restore:
            raise BackendError(f"revert of {handle.name} failed", [handle.name])
        self.running.discard(handle.name)


class RecordingSink(ProgressSink):
    def __init__(self):
        self.events: list[ProgressEvent] = []

    def report(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def on_channel(self, channel) -> list[ProgressEvent]:
        return [e for e in self.events if e.channel == channel]


class RecordingSleep:
    """Stand-in for asyncio.sleep; optionally sets an event after N ticks."""

    def __init__(self, cancel_after: int | None = None, cancel=None):
        self.calls: list[float] = []
        self._cancel_after = cancel_after
        self._cancel = cancel

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._cancel is not None and len(self.calls) == self._cancel_after:
            self._cancel.set()


def make_config(*nodes: dict, prefix: str = "", suffix: str = "") -> LabConfiguration:
    return parse_configuration({
        "all_nodes": list(nodes),
        "non_node_data": {"environment_prefix": prefix, "environment_suffix": suffix},
    })


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def sleep():
    return RecordingSleep()
