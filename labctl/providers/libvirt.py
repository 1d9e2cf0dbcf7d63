"""Libvirt backend for VM-based labs.

Drives power state and snapshots of existing libvirt/QEMU domains. Domains
are addressed by the node display name; this backend never defines or
undefines domains.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
from functools import partial
from typing import Callable
from xml.sax.saxutils import escape as xml_escape

from labctl.config import settings
from labctl.providers.base import (
    Backend,
    BackendError,
    NodeStatus,
    SnapshotHandle,
)

logger = logging.getLogger(__name__)


# Try to import libvirt - it's optional
try:
    import libvirt
    LIBVIRT_AVAILABLE = True
except ImportError:
    libvirt = None
    LIBVIRT_AVAILABLE = False


ConfirmCallback = Callable[[str, str], bool]


class LibvirtBackend(Backend):
    """Backend for libvirt/QEMU domains.

    All libvirt calls run on one dedicated worker thread.
    """

    def __init__(
        self,
        uri: str | None = None,
        confirm_callback: ConfirmCallback | None = None,
    ):
        if not LIBVIRT_AVAILABLE:
            raise ImportError("libvirt-python package is not installed")
        self._conn: libvirt.virConnect | None = None
        self._uri = uri or settings.libvirt_uri
        self._confirm = confirm_callback
        # Libvirt Python bindings are NOT thread-safe; serialize every
        # conn.* call onto one thread.
        self._libvirt_executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="libvirt",
        )

    async def _run_libvirt(self, func, *args, **kwargs):
        """Run a blocking function on the dedicated libvirt thread."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._libvirt_executor, partial(func, *args, **kwargs),
        )

    @property
    def name(self) -> str:
        return "libvirt"

    @property
    def conn(self) -> libvirt.virConnect:
        """Lazy-initialize libvirt connection."""
        if self._conn is None or not self._conn.isAlive():
            self._conn = libvirt.open(self._uri)
            if self._conn is None:
                raise BackendError(f"Failed to connect to libvirt at {self._uri}")
        return self._conn

    def set_confirm_callback(self, callback: ConfirmCallback | None) -> None:
        self._confirm = callback

    @staticmethod
    def _is_not_found(error: Exception) -> bool:
        return error.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN or "domain not found" in str(error).lower()

    def _get_domain_status(self, domain) -> NodeStatus:
        """Map libvirt domain state to NodeStatus."""
        state, _ = domain.state()
        state_map = {
            libvirt.VIR_DOMAIN_NOSTATE: NodeStatus.UNKNOWN,
            libvirt.VIR_DOMAIN_RUNNING: NodeStatus.RUNNING,
            libvirt.VIR_DOMAIN_BLOCKED: NodeStatus.RUNNING,
            libvirt.VIR_DOMAIN_PAUSED: NodeStatus.PAUSED,
            libvirt.VIR_DOMAIN_SHUTDOWN: NodeStatus.STOPPING,
            libvirt.VIR_DOMAIN_SHUTOFF: NodeStatus.STOPPED,
            libvirt.VIR_DOMAIN_CRASHED: NodeStatus.ERROR,
            libvirt.VIR_DOMAIN_PMSUSPENDED: NodeStatus.STOPPED,
        }
        return state_map.get(state, NodeStatus.UNKNOWN)

    def _power_on_sync(self, names: list[str]) -> None:
        failed: dict[str, str] = {}
        for name in names:
            try:
                domain = self.conn.lookupByName(name)
                if domain.isActive():
                    logger.debug("Domain %s already running", name)
                    continue
                domain.create()
                logger.info("Started domain %s", name)
            except libvirt.libvirtError as e:
                failed[name] = str(e)
        if failed:
            detail = "; ".join(f"{n}: {err}" for n, err in failed.items())
            raise BackendError(f"Failed to start {len(failed)} domain(s): {detail}", list(failed))

    def _power_off_sync(self, names: list[str], force: bool) -> None:
        failed: dict[str, str] = {}
        for name in names:
            try:
                domain = self.conn.lookupByName(name)
                if not domain.isActive():
                    logger.debug("Domain %s already stopped", name)
                    continue
                if force:
                    domain.destroy()
                else:
                    domain.shutdown()
                logger.info("Stopped domain %s (force=%s)", name, force)
            except libvirt.libvirtError as e:
                if self._is_not_found(e):
                    logger.warning("Domain %s not found, nothing to stop", name)
                    continue
                if "domain is not running" in str(e).lower():
                    continue
                failed[name] = str(e)
        if failed:
            detail = "; ".join(f"{n}: {err}" for n, err in failed.items())
            raise BackendError(f"Failed to stop {len(failed)} domain(s): {detail}", list(failed))

    def _get_state_sync(self, names: list[str]) -> dict[str, NodeStatus]:
        states: dict[str, NodeStatus] = {}
        for name in names:
            try:
                domain = self.conn.lookupByName(name)
            except libvirt.libvirtError as e:
                if self._is_not_found(e):
                    continue
                raise BackendError(f"Failed to query domain {name}: {e}", [name]) from e
            states[name] = self._get_domain_status(domain)
        return states

    def _create_snapshot_sync(self, names: list[str], label: str) -> None:
        xml = (
            "<domainsnapshot>"
            f"<name>{xml_escape(label)}</name>"
            "<description>Created by labctl</description>"
            "</domainsnapshot>"
        )
        failed: dict[str, str] = {}
        for name in names:
            try:
                domain = self.conn.lookupByName(name)
                domain.snapshotCreateXML(xml, 0)
                logger.info("Created snapshot '%s' on domain %s", label, name)
            except libvirt.libvirtError as e:
                failed[name] = str(e)
        if failed:
            detail = "; ".join(f"{n}: {err}" for n, err in failed.items())
            raise BackendError(f"Failed to snapshot {len(failed)} domain(s): {detail}", list(failed))

    def _get_snapshot_sync(self, name: str, label: str) -> SnapshotHandle | None:
        try:
            domain = self.conn.lookupByName(name)
            snapshot = domain.snapshotLookupByName(label, 0)
        except libvirt.libvirtError as e:
            if e.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN_SNAPSHOT:
                return None
            raise BackendError(f"Failed to look up snapshot '{label}' of {name}: {e}", [name]) from e
        return SnapshotHandle(name=name, label=label, ref=snapshot)

    def _restore_snapshot_sync(self, handle: SnapshotHandle, force: bool) -> None:
        flags = libvirt.VIR_DOMAIN_SNAPSHOT_REVERT_FORCE if force else 0
        try:
            domain = self.conn.lookupByName(handle.name)
            snapshot = handle.ref or domain.snapshotLookupByName(handle.label, 0)
            domain.revertToSnapshot(snapshot, flags)
        except libvirt.libvirtError as e:
            raise BackendError(
                f"Failed to restore snapshot '{handle.label}' of {handle.name}: {e}",
                [handle.name],
            ) from e
        logger.info("Restored snapshot '%s' on domain %s", handle.label, handle.name)

    async def power_on(self, names: list[str]) -> None:
        await self._run_libvirt(self._power_on_sync, list(names))

    async def power_off(self, names: list[str], force: bool = True) -> None:
        await self._run_libvirt(self._power_off_sync, list(names), force)

    async def get_state(self, names: list[str]) -> dict[str, NodeStatus]:
        return await self._run_libvirt(self._get_state_sync, list(names))

    async def create_snapshot(self, names: list[str], label: str) -> None:
        await self._run_libvirt(self._create_snapshot_sync, list(names), label)

    async def get_snapshot(self, name: str, label: str) -> SnapshotHandle | None:
        return await self._run_libvirt(self._get_snapshot_sync, name, label)

    async def restore_snapshot(self, handle: SnapshotHandle, confirm: bool = True) -> None:
        """Revert a domain to a snapshot.

        With ``confirm`` and a configured callback, the callback decides
        whether the revert goes ahead; a decline raises BackendError so the
        caller records it against that node, as does a callback that raises.
        Without ``confirm`` the revert is forced, which also works on a
        running domain.
        """
        if confirm and self._confirm is not None:
            # May block on a prompt; never on the event loop or libvirt thread
            loop = asyncio.get_running_loop()
            try:
                approved = await loop.run_in_executor(
                    None, self._confirm, handle.name, handle.label,
                )
            except Exception as e:
                raise BackendError(
                    f"Confirmation for '{handle.label}' on {handle.name} failed: {e!r}",
                    [handle.name],
                ) from e
            if not approved:
                raise BackendError(
                    f"Restore of '{handle.label}' on {handle.name} declined",
                    [handle.name],
                )
        await self._run_libvirt(self._restore_snapshot_sync, handle, not confirm)
