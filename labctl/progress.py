"""Progress reporting for lab operations.

Operations never render anything themselves; they push ``ProgressEvent``
objects into a ``ProgressSink``. Each operation reports on a fixed channel
so a nested channel (the boot delay countdown) can point at its parent.
"""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import TextIO

logger = logging.getLogger(__name__)


class ProgressChannel(IntEnum):
    """Fixed progress channel identifiers."""
    START_LAB = 42
    STOP_LAB = 43
    CHECKPOINT_LAB = 44
    RESTORE_LAB = 45
    BOOT_DELAY = 46


@dataclass(frozen=True)
class ProgressEvent:
    channel: ProgressChannel
    activity: str
    status: str = ""
    percent: int = 0
    parent: ProgressChannel | None = None
    completed: bool = False


def percent_of(current: int, total: int) -> int:
    if total <= 0:
        return 100
    return int(current * 100 / total)


class ProgressSink(ABC):
    """Receives progress events from an operation."""

    @abstractmethod
    def report(self, event: ProgressEvent) -> None:
        ...


class LoggingProgressSink(ProgressSink):
    """Write progress events to the log at debug level."""

    def report(self, event: ProgressEvent) -> None:
        if event.completed:
            logger.debug("[%d] %s: done", event.channel, event.activity)
        else:
            logger.debug(
                "[%d] %s: %s (%d%%)",
                event.channel, event.activity, event.status, event.percent,
            )


class ConsoleProgressSink(ProgressSink):
    """Render progress as single lines on a terminal stream.

    Nested channels are indented under their parent.
    """

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream or sys.stdout

    def report(self, event: ProgressEvent) -> None:
        indent = "  " if event.parent is not None else ""
        if event.completed:
            line = f"{indent}{event.activity}: done"
        else:
            line = f"{indent}{event.activity}: {event.status} [{event.percent:3d}%]"
        self._stream.write(line + "\n")
        self._stream.flush()


class ProgressReporter:
    """Binds a sink to one channel so call sites only pass what changes."""

    def __init__(
        self,
        sink: ProgressSink,
        channel: ProgressChannel,
        activity: str,
        parent: ProgressChannel | None = None,
    ):
        self.sink = sink
        self.channel = channel
        self.activity = activity
        self.parent = parent

    def update(self, current: int, total: int, status: str = "") -> None:
        self.sink.report(ProgressEvent(
            channel=self.channel,
            activity=self.activity,
            status=status,
            percent=percent_of(current, total),
            parent=self.parent,
        ))

    def complete(self) -> None:
        self.sink.report(ProgressEvent(
            channel=self.channel,
            activity=self.activity,
            percent=100,
            parent=self.parent,
            completed=True,
        ))

    def child(self, channel: ProgressChannel, activity: str) -> "ProgressReporter":
        return ProgressReporter(self.sink, channel, activity, parent=self.channel)
