"""
Where's My Pizza CLI

Single entry point for every service and for administration.

Commands:
- run: Start a service (--mode order-service | kitchen-worker | tracking-service | notification-subscriber)
- migrate: Apply database migrations
- replay-dlq: Move dead-lettered work messages back to the work exchange
- workers: Show the kitchen worker roster
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

app = typer.Typer(
    name="wheres-my-pizza",
    help="Restaurant order fulfillment pipeline",
)

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    port: int
    max_concurrent: int
    worker_name: Optional[str]
    order_types: Optional[str]
    heartbeat_interval: int
    prefetch: int
    include_general: bool
    group: Optional[str] = None


def _no_required_args(options: RunOptions) -> Optional[str]:
    return None


def _kitchen_worker_args(options: RunOptions) -> Optional[str]:
    if not options.worker_name:
        return "--worker-name is required for kitchen-worker mode"
    if options.prefetch < 1:
        return "--prefetch must be at least 1"
    if options.heartbeat_interval < 1:
        return "--heartbeat-interval must be at least 1"
    from fulfillment_core.contracts.types import parse_order_types

    try:
        parse_order_types(options.order_types)
    except ValueError as e:
        return f"--order-types: {e}"
    return None


def _http_args(options: RunOptions) -> Optional[str]:
    if not 1 <= options.port <= 65535:
        return "--port must be between 1 and 65535"
    if options.max_concurrent < 1:
        return "--max-concurrent must be at least 1"
    return None


def _serve_http(mode: str, options: RunOptions) -> None:
    import uvicorn

    from order_api.main import create_app

    uvicorn.run(
        create_app(mode, max_concurrent=options.max_concurrent),
        host="0.0.0.0",
        port=options.port,
        timeout_graceful_shutdown=10,
        log_config=None,
    )


def _run_order_service(options: RunOptions) -> None:
    _serve_http("order-service", options)


def _run_tracking_service(options: RunOptions) -> None:
    _serve_http("tracking-service", options)


def _run_kitchen_worker(options: RunOptions) -> None:
    from fulfillment_core.contracts.types import parse_order_types
    from kitchen_worker.main import run

    run(
        options.worker_name,
        order_types=parse_order_types(options.order_types),
        heartbeat_interval=options.heartbeat_interval,
        prefetch=options.prefetch,
        include_general=options.include_general,
    )


def _run_notification_subscriber(options: RunOptions) -> None:
    from notification_relay.main import run

    run(group=options.group, prefetch=options.prefetch)


@dataclass
class ServiceMode:
    runner: Callable[[RunOptions], None]
    validate: Callable[[RunOptions], Optional[str]]


SERVICE_MODES: dict[str, ServiceMode] = {
    "order-service": ServiceMode(_run_order_service, _http_args),
    "kitchen-worker": ServiceMode(_run_kitchen_worker, _kitchen_worker_args),
    "tracking-service": ServiceMode(_run_tracking_service, _http_args),
    "notification-subscriber": ServiceMode(_run_notification_subscriber, _no_required_args),
}


@app.command()
def run(
    mode: str = typer.Option(..., help="Service mode: " + ", ".join(SERVICE_MODES)),
    port: int = typer.Option(3000, help="HTTP port (order-service, tracking-service)"),
    max_concurrent: int = typer.Option(50, help="Maximum concurrent orders (order-service)"),
    worker_name: Optional[str] = typer.Option(None, help="Unique worker name (kitchen-worker)"),
    order_types: Optional[str] = typer.Option(
        None, help="Comma-separated order types this worker handles, e.g. dine_in,takeout (kitchen-worker)"
    ),
    heartbeat_interval: int = typer.Option(30, help="Seconds between heartbeats (kitchen-worker)"),
    prefetch: int = typer.Option(1, help="Unacknowledged messages allowed in flight"),
    include_general: bool = typer.Option(
        False, help="Also consume the general queue when --order-types is set (kitchen-worker)"
    ),
    group: Optional[str] = typer.Option(
        None, help="Shared notification queue group; private queue when unset (notification-subscriber)"
    ),
):
    """
    Start a service.
    """
    service = SERVICE_MODES.get(mode)
    if service is None:
        rprint(f"[red]Unknown mode: {mode}. Expected one of: {', '.join(SERVICE_MODES)}[/red]")
        raise typer.Exit(1)

    options = RunOptions(
        port=port,
        max_concurrent=max_concurrent,
        worker_name=worker_name,
        order_types=order_types,
        heartbeat_interval=heartbeat_interval,
        prefetch=prefetch,
        include_general=include_general,
        group=group,
    )
    problem = service.validate(options)
    if problem:
        rprint(f"[red]{problem}[/red]")
        raise typer.Exit(1)

    from fulfillment_core.errors import WorkerAlreadyOnline
    from kitchen_base.amqp import BrokerUnavailable

    try:
        service.runner(options)
    except WorkerAlreadyOnline as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)
    except BrokerUnavailable as e:
        logger.error(f"{mode} stopped: {e}")
        raise typer.Exit(1)


@app.command()
def migrate(
    revision: str = typer.Option("head", help="Target revision"),
):
    """
    Apply database migrations.
    """
    from fulfillment_core.migrations import run_migrations
    from kitchen_base.db import wait_for_database
    from kitchen_base.logging import setup_logging

    setup_logging("migrate")
    wait_for_database()
    run_migrations(revision=revision)
    rprint(f"[green]Database migrated to {revision}[/green]")


@app.command()
def replay_dlq(
    limit: int = typer.Option(10, help="Maximum messages to replay"),
):
    """
    Replay work messages from the dead letter queue.

    Each message is republished to the work exchange with its own
    routing key. Orders that were already cooked are skipped by the workers.
    """
    from fulfillment_core.messaging.replay import replay_dead_letters
    from fulfillment_core.messaging.topology import work_topology
    from kitchen_base.amqp import BrokerUnavailable, close_quietly, connect

    try:
        connection, channel = connect(work_topology())
    except BrokerUnavailable as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    try:
        result = replay_dead_letters(channel, limit=limit)
    finally:
        close_quietly(connection)

    if not result.replayed and not result.skipped:
        rprint("[yellow]No messages in DLQ[/yellow]")
        raise typer.Exit(0)

    for order_number in result.replayed:
        rprint(f"[green]Replayed {order_number}[/green]")
    if result.skipped:
        rprint(f"[yellow]Skipped {result.skipped} unparseable message(s)[/yellow]")
    rprint(f"[cyan]Replayed {len(result.replayed)} message(s)[/cyan]")


@app.command()
def workers():
    """
    Show kitchen workers and their derived status.
    """
    from fulfillment_core.tracking.service import TrackingService
    from kitchen_base.db import session_scope

    with session_scope() as db:
        roster = TrackingService(db).list_workers()

    if not roster:
        rprint("[yellow]No workers registered[/yellow]")
        raise typer.Exit(0)

    table = Table(title="Kitchen workers")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Processed", justify="right")
    table.add_column("Last Seen")

    for worker in roster:
        style = "green" if worker["status"] == "online" else "red"
        table.add_row(
            worker["worker_name"],
            f"[{style}]{worker['status']}[/{style}]",
            str(worker["orders_processed"]),
            worker["last_seen"],
        )

    console.print(table)


if __name__ == "__main__":
    app()
