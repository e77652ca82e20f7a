"""
Command line entry point.

    ordersync sync-orders [--account NAME ...]
    ordersync update-tracking [--account NAME ...]

Exit status: 0 when every account succeeded, 1 when the run was
partial or failed, 2 on configuration errors.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from ordersync import __version__
from ordersync.core.config import get_settings
from ordersync.core.logging_config import setup_logging
from ordersync.services.orders.orchestrator import SyncResult
from ordersync.services.progress import ProgressEvent
from ordersync.services.sync_service import SyncService
from ordersync.services.tracking.orchestrator import TrackingResult
from ordersync.utils.error_handler import ConfigurationException, SyncAlreadyRunningException, error_message

logger = logging.getLogger(__name__)
console = Console()

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ordersync",
        description="Whatnot → ShipStation order sync and ShipStation → Whatnot tracking updates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: LOG_LEVEL setting)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    for command, help_text in (
        ("sync-orders", "Create ShipStation orders from new Whatnot orders"),
        ("update-tracking", "Push ShipStation tracking numbers to Whatnot"),
    ):
        subparser = subparsers.add_parser(command, help=help_text)
        subparser.add_argument(
            "--account",
            action="append",
            dest="accounts",
            metavar="NAME",
            help="Account to process (repeatable, default: every enabled account)",
        )

    return parser


def print_progress(event: ProgressEvent) -> None:
    if not event.message:
        return
    if event.log_only:
        console.print(f"[dim]{event.message}[/dim]")
        return
    style = {"error": "red", "warning": "yellow"}.get(event.level, "cyan")
    console.print(f"[{style}]{event.processed}/{event.total}[/{style}] {event.message}")


def print_sync_summary(result: SyncResult) -> None:
    table = Table(title="Order Sync Summary")
    table.add_column("Account", style="cyan")
    table.add_column("Fetched", justify="right")
    table.add_column("Invalid", justify="right", style="yellow")
    table.add_column("Groups", justify="right", style="dim")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Errors", justify="right", style="red")

    for account in result.accounts:
        table.add_row(
            account.name,
            str(account.processed),
            str(account.invalid),
            str(account.grouped),
            str(account.created),
            str(len(account.errors)),
        )

    table.add_row(
        "[bold]Total[/bold]",
        str(result.processed),
        str(result.invalid),
        str(sum(account.grouped for account in result.accounts)),
        str(result.created),
        str(len(result.errors)),
    )
    console.print(table)
    print_errors(result.errors)


def print_tracking_summary(result: TrackingResult) -> None:
    table = Table(title="Tracking Update Summary")
    table.add_column("Account", style="cyan")
    table.add_column("Shipments", justify="right")
    table.add_column("Skipped", justify="right", style="dim")
    table.add_column("Updated", justify="right", style="green")
    table.add_column("Already tracked", justify="right", style="yellow")
    table.add_column("Errors", justify="right", style="red")

    for account in result.accounts:
        table.add_row(
            account.name,
            str(account.total),
            str(account.skipped),
            str(account.updated),
            str(account.already_tracked),
            str(len(account.errors)),
        )

    table.add_row(
        "[bold]Total[/bold]",
        str(result.total),
        str(sum(account.skipped for account in result.accounts)),
        str(result.updated),
        str(result.already_tracked),
        str(len(result.errors)),
    )
    console.print(table)
    print_errors(result.errors)


def print_errors(errors: List[dict]) -> None:
    if not errors:
        return

    console.print("\n[bold red]Errors[/bold red]")
    for error in errors:
        if error.get("account"):
            label = f"Account {error['account']}"
        elif error.get("shipment_id"):
            label = f"Shipment {error['shipment_id']}"
        elif error.get("session_id"):
            label = f"Stream {error['session_id']}"
        else:
            label = "Unknown"
        console.print(f"  - {label}: {error.get('error')}")


async def run(args: argparse.Namespace) -> int:
    service = SyncService(settings=get_settings())

    try:
        if args.command == "sync-orders":
            result = await service.run_order_sync(args.accounts, on_progress=print_progress)
            print_sync_summary(result)
        else:
            result = await service.run_tracking_update(args.accounts, on_progress=print_progress)
            print_tracking_summary(result)
    finally:
        await service.close()

    return EXIT_OK if result.success else EXIT_PARTIAL


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level)

    try:
        return asyncio.run(run(args))
    except ConfigurationException as e:
        console.print(f"[red]Configuration error:[/red] {error_message(e)}")
        return EXIT_CONFIG
    except SyncAlreadyRunningException as e:
        console.print(f"[yellow]{error_message(e)}[/yellow]")
        return EXIT_PARTIAL
    except KeyboardInterrupt:
        logger.info("Run interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Run failed with error: {e}", exc_info=True)
        return EXIT_PARTIAL


if __name__ == "__main__":
    sys.exit(main())
