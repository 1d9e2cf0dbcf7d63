"""Lab lifecycle orchestration.

Drives start, stop, checkpoint, restore and reset across every node of a
lab configuration:

- start: batches ascending by boot order, one power-on call per batch,
  then the batch boot delay (except after the last batch). A backend
  failure aborts the remaining batches.
- stop: batches descending by boot order, one forced power-off call per
  batch, never any delay.
- checkpoint: running-state guard, then one snapshot call for all nodes.
- restore: running-state guard, then one node at a time ascending by boot
  order. A failure on one node does not stop the others.
- reset: restore of the baseline snapshot, always forced.

Every operation ends with a completed progress event on its channel, also
when it fails or is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from labctl.config import settings
from labctl.configuration import LabConfiguration
from labctl.guard import GuardVerdict, check_running_state
from labctl.metrics import node_errors, operation_duration
from labctl.nodes import NodeAttributes, resolve_all_nodes
from labctl.planner import Direction, plan_batches, plan_restore_order
from labctl.progress import (
    LoggingProgressSink,
    ProgressChannel,
    ProgressReporter,
    ProgressSink,
)
from labctl.providers.base import Backend, BackendError
from labctl.results import NodeError, NodeErrorKind, Operation, OperationResult

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


def _is_cancelled(cancel: asyncio.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


class LabOrchestrator:
    """Sequences lab power and snapshot operations against a backend.

    Args:
        backend: Virtualization backend the operations are issued to
        sink: Receives progress events (default: debug log)
        sleep: Coroutine used for each boot delay tick (default: asyncio.sleep)
        tick_seconds: Length of one boot delay tick
            (default: settings.delay_tick_seconds)
    """

    def __init__(
        self,
        backend: Backend,
        sink: ProgressSink | None = None,
        sleep: SleepFunc | None = None,
        tick_seconds: float | None = None,
    ):
        self.backend = backend
        self.sink = sink or LoggingProgressSink()
        self._sleep = sleep or asyncio.sleep
        self._tick = settings.delay_tick_seconds if tick_seconds is None else tick_seconds

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start_lab(
        self, config: LabConfiguration, cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Power on all nodes, batch by batch, honouring boot delays."""
        return await self._timed(Operation.START, self._start(config, cancel))

    async def stop_lab(
        self, config: LabConfiguration, cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Force power off all nodes, batch by batch in reverse boot order."""
        return await self._timed(Operation.STOP, self._stop(config, cancel))

    async def checkpoint_lab(
        self,
        config: LabConfiguration,
        label: str,
        force: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Snapshot all nodes under ``label``."""
        return await self._timed(
            Operation.CHECKPOINT, self._checkpoint(config, label, force, cancel),
        )

    async def restore_lab(
        self,
        config: LabConfiguration,
        label: str,
        force: bool = False,
        cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Restore the ``label`` snapshot on every node."""
        return await self._timed(
            Operation.RESTORE,
            self._restore(config, label, force, cancel, Operation.RESTORE),
        )

    async def reset_lab(
        self, config: LabConfiguration, cancel: asyncio.Event | None = None,
    ) -> OperationResult:
        """Restore the baseline snapshot, powering off running nodes."""
        label = settings.baseline_snapshot_name
        return await self._timed(
            Operation.RESET,
            self._restore(config, label, True, cancel, Operation.RESET),
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _start(
        self, config: LabConfiguration, cancel: asyncio.Event | None,
    ) -> OperationResult:
        result = OperationResult(operation=Operation.START)
        batches = plan_batches(resolve_all_nodes(config), Direction.START)
        progress = ProgressReporter(self.sink, ProgressChannel.START_LAB, "Starting lab")
        total = len(batches)

        try:
            for index, batch in enumerate(batches, start=1):
                if _is_cancelled(cancel):
                    result.cancelled = True
                    break
                names = batch.display_names
                progress.update(index, total, status=f"Starting {', '.join(names)}")
                logger.info(
                    "Starting batch %d/%d (boot order %d): %s",
                    index, total, batch.boot_order, ", ".join(names),
                )
                await self.backend.power_on(names)
                result.processed.extend(names)

                # Nothing depends on the last batch settling
                if index == total or batch.delay <= 0:
                    continue
                if not await self._wait_boot_delay(batch.delay, progress, cancel):
                    result.cancelled = True
                    break
        finally:
            progress.complete()
        return result

    async def _stop(
        self, config: LabConfiguration, cancel: asyncio.Event | None,
    ) -> OperationResult:
        result = OperationResult(operation=Operation.STOP)
        batches = plan_batches(resolve_all_nodes(config), Direction.STOP)
        progress = ProgressReporter(self.sink, ProgressChannel.STOP_LAB, "Stopping lab")
        total = len(batches)

        try:
            for index, batch in enumerate(batches, start=1):
                if _is_cancelled(cancel):
                    result.cancelled = True
                    break
                names = batch.display_names
                progress.update(index, total, status=f"Stopping {', '.join(names)}")
                logger.info(
                    "Stopping batch %d/%d (boot order %d): %s",
                    index, total, batch.boot_order, ", ".join(names),
                )
                # Boot delays deliberately do not apply when stopping
                await self.backend.power_off(names, force=True)
                result.processed.extend(names)
        finally:
            progress.complete()
        return result

    async def _checkpoint(
        self,
        config: LabConfiguration,
        label: str,
        force: bool,
        cancel: asyncio.Event | None,
    ) -> OperationResult:
        result = OperationResult(operation=Operation.CHECKPOINT, label=label)
        nodes = resolve_all_nodes(config)
        progress = ProgressReporter(
            self.sink, ProgressChannel.CHECKPOINT_LAB, f"Creating snapshot '{label}'",
        )

        try:
            if not nodes:
                return result
            if _is_cancelled(cancel):
                result.cancelled = True
                return result

            decision = await check_running_state(self.backend, nodes, force, action="snapshot")
            if not decision.proceed:
                self._record_errors(result, decision.errors)
                return result

            names = [n.display_name for n in nodes]
            progress.update(0, 1, status=", ".join(names))
            logger.info("Creating snapshot '%s' on %d node(s)", label, len(names))
            await self.backend.create_snapshot(names, label)
            result.processed.extend(names)
        finally:
            progress.complete()
        return result

    async def _restore(
        self,
        config: LabConfiguration,
        label: str,
        force: bool,
        cancel: asyncio.Event | None,
        operation: Operation,
    ) -> OperationResult:
        result = OperationResult(operation=operation, label=label)
        nodes = plan_restore_order(resolve_all_nodes(config))
        progress = ProgressReporter(
            self.sink, ProgressChannel.RESTORE_LAB, f"Restoring snapshot '{label}'",
        )

        try:
            if not nodes:
                return result
            if _is_cancelled(cancel):
                result.cancelled = True
                return result

            decision = await check_running_state(
                self.backend, list(nodes), force, action="restore",
            )
            if not decision.proceed:
                self._record_errors(result, decision.errors)
                return result

            # Forcing past running nodes also skips the backend confirmation
            confirm = decision.verdict is not GuardVerdict.OVERRIDE
            total = len(nodes)
            for index, node in enumerate(nodes, start=1):
                if _is_cancelled(cancel):
                    result.cancelled = True
                    break
                progress.update(index, total, status=f"Restoring {node.display_name}")
                if await self._restore_node(node, label, confirm, result):
                    result.processed.append(node.display_name)
        finally:
            progress.complete()
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _restore_node(
        self,
        node: NodeAttributes,
        label: str,
        confirm: bool,
        result: OperationResult,
    ) -> bool:
        """Restore one node; failures are recorded on ``result``."""
        name = node.display_name
        try:
            handle = await self.backend.get_snapshot(name, label)
            if handle is None:
                self._record_errors(result, [NodeError(
                    node=name,
                    kind=NodeErrorKind.SNAPSHOT_MISSING,
                    message=f"Snapshot '{label}' not found on node '{name}'",
                )])
                return False
            logger.info("Restoring snapshot '%s' on %s", label, name)
            await self.backend.restore_snapshot(handle, confirm=confirm)
        except BackendError as e:
            self._record_errors(result, [NodeError(
                node=name,
                kind=NodeErrorKind.RESTORE_FAILED,
                message=e.message,
            )])
            return False
        return True

    async def _wait_boot_delay(
        self,
        delay: int,
        parent: ProgressReporter,
        cancel: asyncio.Event | None,
    ) -> bool:
        """Wait ``delay`` ticks with countdown progress.

        Returns False when cancelled before the delay ran out.
        """
        countdown = parent.child(ProgressChannel.BOOT_DELAY, f"Waiting {delay}s")
        logger.info("Waiting %ds before the next batch", delay)
        try:
            for second in range(1, delay + 1):
                if _is_cancelled(cancel):
                    return False
                countdown.update(second, delay, status=f"{second}/{delay}s")
                await self._sleep(self._tick)
            return not _is_cancelled(cancel)
        finally:
            countdown.complete()

    def _record_errors(self, result: OperationResult, errors) -> None:
        for error in errors:
            result.add_error(error)
            node_errors.labels(
                operation=result.operation.value, kind=error.kind.value,
            ).inc()
            logger.error("%s: %s", error.node, error.message)

    async def _timed(self, operation: Operation, phase: Awaitable[OperationResult]) -> OperationResult:
        started = time.monotonic()
        status = "error"
        try:
            result = await phase
            if result.cancelled:
                status = "cancelled"
            elif result.errors:
                status = "partial"
            else:
                status = "ok"
            logger.info(result.summary())
            return result
        finally:
            operation_duration.labels(
                operation=operation.value, status=status,
            ).observe(time.monotonic() - started)
