"""labctl command line interface.

Usage:
    labctl start lab.yaml
    labctl stop lab.yaml
    labctl checkpoint lab.yaml "Before upgrade" [--force]
    labctl restore lab.yaml "Before upgrade" [--force] [--yes]
    labctl reset lab.yaml
    labctl plan lab.yaml [--direction start|stop|restore]

Exit codes: 0 success, 1 per-node errors, 2 configuration error,
3 backend failure, 130 cancelled.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import TextIO

from labctl.configuration import ConfigurationError, LabConfiguration, load_configuration
from labctl.logging_config import setup_logging
from labctl.metrics import get_metrics
from labctl.nodes import resolve_all_nodes
from labctl.orchestrator import LabOrchestrator
from labctl.planner import Direction, plan_batches, plan_restore_order
from labctl.progress import ConsoleProgressSink
from labctl.providers.base import BackendError
from labctl.providers.registry import get_backend, list_backends
from labctl.results import OperationResult
from labctl.version import __version__

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_NODE_ERRORS = 1
EXIT_CONFIG_ERROR = 2
EXIT_BACKEND_ERROR = 3
EXIT_CANCELLED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="labctl",
        description="Ordered power and snapshot operations for VM labs.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--backend",
        choices=list_backends(),
        default=None,
        help="Virtualization backend (default: LABCTL_BACKEND)",
    )
    parser.add_argument(
        "--metrics-file",
        default=None,
        help="Write Prometheus metrics here after the operation (textfile collector)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("start", "Power on all nodes in boot order"),
        ("stop", "Force power off all nodes in reverse boot order"),
        ("reset", "Restore the baseline snapshot on all nodes"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("config", help="Lab configuration file (.yaml or .json)")

    for name, help_text in (
        ("checkpoint", "Snapshot all nodes"),
        ("restore", "Restore a snapshot on all nodes"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("config", help="Lab configuration file (.yaml or .json)")
        cmd.add_argument("label", help="Snapshot name")
        cmd.add_argument(
            "--force", action="store_true",
            help="Proceed even when nodes are running",
        )
        if name == "restore":
            cmd.add_argument(
                "--yes", "-y", action="store_true",
                help="Do not ask before reverting each node",
            )

    cmd = sub.add_parser("plan", help="Show the batch plan without touching any VM")
    cmd.add_argument("config", help="Lab configuration file (.yaml or .json)")
    cmd.add_argument(
        "--direction",
        choices=["start", "stop", "restore"],
        default="start",
    )
    return parser


def print_plan(config: LabConfiguration, direction: str, stream: TextIO) -> None:
    nodes = resolve_all_nodes(config)
    if not nodes:
        stream.write("No nodes declared\n")
        return
    if direction == "restore":
        for index, node in enumerate(plan_restore_order(nodes), start=1):
            stream.write(f"{index}. {node.display_name} (boot order {node.boot_order})\n")
        return

    batches = plan_batches(nodes, Direction(direction))
    for index, batch in enumerate(batches, start=1):
        delay = ""
        if direction == "start" and index < len(batches) and batch.delay > 0:
            delay = f", then wait {batch.delay}s"
        stream.write(
            f"{index}. boot order {batch.boot_order}: "
            f"{', '.join(batch.display_names)}{delay}\n"
        )


def _prompt_restore(name: str, label: str) -> bool:
    try:
        answer = input(f"Restore snapshot '{label}' on {name}? [y/N] ")
    except EOFError:
        # closed or piped stdin: treat as no
        return False
    return answer.strip().lower() in ("y", "yes")


def _exit_code(result: OperationResult) -> int:
    if result.cancelled:
        return EXIT_CANCELLED
    if result.errors:
        return EXIT_NODE_ERRORS
    return EXIT_OK


async def _run(args: argparse.Namespace, config: LabConfiguration) -> OperationResult:
    backend = get_backend(args.backend)
    if args.command == "restore" and hasattr(backend, "set_confirm_callback"):
        backend.set_confirm_callback(None if args.yes else _prompt_restore)
    orchestrator = LabOrchestrator(backend, sink=ConsoleProgressSink())

    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    except (NotImplementedError, RuntimeError):
        pass  # not on the main thread, or platform without signal handlers

    try:
        if args.command == "start":
            return await orchestrator.start_lab(config, cancel=cancel)
        if args.command == "stop":
            return await orchestrator.stop_lab(config, cancel=cancel)
        if args.command == "checkpoint":
            return await orchestrator.checkpoint_lab(
                config, args.label, force=args.force, cancel=cancel,
            )
        if args.command == "restore":
            return await orchestrator.restore_lab(
                config, args.label, force=args.force, cancel=cancel,
            )
        return await orchestrator.reset_lab(config, cancel=cancel)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def _write_metrics(path: str) -> None:
    payload, _content_type = get_metrics()
    try:
        with open(path, "wb") as fd:
            fd.write(payload)
    except OSError as e:
        logger.warning("Cannot write metrics to %s: %s", path, e)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        config = load_configuration(args.config)
        if args.command == "plan":
            print_plan(config, args.direction, sys.stdout)
            return EXIT_OK
        result = asyncio.run(_run(args, config))
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR
    except BackendError as e:
        logger.error("Backend failure: %s", e.message)
        return EXIT_BACKEND_ERROR
    except (ImportError, ValueError) as e:
        # missing libvirt bindings, or an unknown LABCTL_BACKEND
        logger.error("Backend unavailable: %s", e)
        return EXIT_BACKEND_ERROR
    finally:
        if args.metrics_file and args.command != "plan":
            _write_metrics(args.metrics_file)

    for error in result.errors:
        sys.stderr.write(f"error: {error.node}: {error.message}\n")
    sys.stdout.write(result.summary() + "\n")
    return _exit_code(result)


if __name__ == "__main__":
    sys.exit(main())
