"""Command line interface for exercising the resilience layer.

``simulate`` feeds synthetic failures through a ResilienceCore on a virtual
clock and prints the notifications and a statistics summary. ``diagnose``
prints the diagnostic report for an error message.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import ResilienceConfig, ResilienceConfigError
from .core import ResilienceCore
from .models.errors import ErrorKind, ErrorRecord, Severity
from .ui.console import ConsoleManager
from .utils.logging_factory import LoggingFactory

logger = logging.getLogger(__name__)


class VirtualClock:
    """Manually advanced clock so simulations run instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticProbe:
    def __init__(self, online: bool) -> None:
        self.online = online

    async def is_online(self) -> bool:
        return self.online


async def _no_sleep(_seconds: float) -> None:
    return None


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="resilience-core",
        description="Client-side error normalization, cooldown, recovery and notification toolkit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Examples:
  # Three network errors within ten seconds
  resilience-core simulate --kind network --count 3 --interval 5

  # A burst of clipboard warnings, machine-readable output
  resilience-core --json-output simulate --kind clipboard --severity warning --count 4

  # Diagnostic report for a message
  resilience-core diagnose "Failed to fetch timeline" --kind network
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--json-output",
        action="store_true",
        help="Emit machine-readable JSON lines instead of rich output",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands", required=True)

    simulate_parser = subparsers.add_parser("simulate", help="Feed synthetic errors through the pipeline")
    simulate_parser.add_argument(
        "--kind", choices=[k.value for k in ErrorKind], default="network", help="Error kind (default: network)"
    )
    simulate_parser.add_argument(
        "--severity", choices=[s.value for s in Severity], default="error", help="Severity (default: error)"
    )
    simulate_parser.add_argument("--count", type=int, default=5, help="Number of occurrences (default: 5)")
    simulate_parser.add_argument(
        "--interval", type=float, default=1.0, help="Virtual seconds between occurrences (default: 1.0)"
    )
    simulate_parser.add_argument("--message", default=None, help="Error message (default: derived from kind)")
    simulate_parser.add_argument("--offline", action="store_true", help="Make network recovery report offline")

    diagnose_parser = subparsers.add_parser("diagnose", help="Print a diagnostic report for an error message")
    diagnose_parser.add_argument("message", help="Error message to diagnose")
    diagnose_parser.add_argument(
        "--kind", choices=[k.value for k in ErrorKind], default=None, help="Override the classified kind"
    )
    diagnose_parser.add_argument(
        "--severity", choices=[s.value for s in Severity], default=None, help="Override the classified severity"
    )
    return parser


async def _run_simulation(args: argparse.Namespace, console: ConsoleManager) -> int:
    clock = VirtualClock(start=1_700_000_000.0)
    config = ResilienceConfig(output_format="json" if args.json_output else "text", verbose=args.verbose)
    core = ResilienceCore(
        config,
        clock=clock,
        sleep=_no_sleep,
        console=console,
        probe=StaticProbe(online=not args.offline),
    )
    message = args.message or f"Simulated {args.kind} failure"
    suppressed = 0

    for i in range(args.count):
        record = ErrorRecord(
            message,
            ErrorKind(args.kind),
            Severity(args.severity),
            context={"iteration": i + 1},
            user_message=core.translator.t(f"error.{args.kind}"),
            timestamp=clock(),
        )
        try:
            result = await core.handle(record)
        except ErrorRecord:
            logger.error(f"Occurrence {i + 1} raised a fatal error")
            continue
        status = core.get_cooldown_status(record)
        if status.is_active and not result.success:
            suppressed += 1
        logger.debug(
            f"Occurrence {i + 1}: success={result.success} cooldown={status.is_active} "
            f"level={status.escalation_level}"
        )
        await core.scheduler.drain()
        clock.advance(args.interval)

    core.tick()
    stats = core.get_system_stats()
    summary = dict(stats["errors"])
    summary["suppressed"] = suppressed
    console.print_summary(summary)
    await core.dispose()
    return 0


def simulate_command(args: argparse.Namespace, console: ConsoleManager) -> int:
    if args.count < 1:
        logger.error("--count must be at least 1")
        return 1
    try:
        return asyncio.run(_run_simulation(args, console))
    except ResilienceConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1


def diagnose_command(args: argparse.Namespace, console: ConsoleManager) -> int:
    from .diagnostics import ErrorDiagnostic
    from .normalizer import ErrorNormalizer

    record = ErrorNormalizer().normalize(args.message)
    if args.kind or args.severity:
        record = ErrorRecord(
            record.message,
            ErrorKind(args.kind) if args.kind else record.kind,
            Severity(args.severity) if args.severity else record.severity,
            user_message=record.user_message,
            suggestion=record.suggestion,
            timestamp=record.timestamp,
        )
    console.print_report(ErrorDiagnostic().generate_report(record))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    LoggingFactory.initialize(level="DEBUG" if args.verbose else "WARNING", json_output=args.json_output)
    console = ConsoleManager(verbose=args.verbose, json_output=args.json_output)

    try:
        if args.command == "simulate":
            return simulate_command(args, console)
        elif args.command == "diagnose":
            return diagnose_command(args, console)
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        logger.error("Operation cancelled by user")
        return 1


if __name__ == "__main__":
    sys.exit(main())
