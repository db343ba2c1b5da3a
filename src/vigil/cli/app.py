"""Typer CLI for the Vigil collector."""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console

from vigil.config import VigilConfig
from vigil.core.broadcaster import Broadcaster
from vigil.core.pipeline import IngestionPipeline
from vigil.core.store import VigilStore
from vigil.errors import VigilError
from vigil.models import ApplicationStatus, Severity

app = typer.Typer(
    name="vigil",
    help="Application performance monitoring collector: ingest, push and watch.",
    no_args_is_help=True,
)
console = Console(stderr=True)


def _config() -> VigilConfig:
    return VigilConfig.load()


def _open_store(config: VigilConfig) -> VigilStore:
    return VigilStore(config.db_path, seed=config.store.seed_on_startup)


def _fail(message: str) -> None:
    console.print(f"[red]{message}[/red]")
    raise typer.Exit(1)


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address")] = None,
    port: Annotated[Optional[int], typer.Option("--port", help="Bind port")] = None,
    no_generator: Annotated[
        bool, typer.Option("--no-generator", help="Disable synthetic load")
    ] = False,
) -> None:
    """Run the collector (HTTP API + /ws push channel)."""
    import dataclasses

    import uvicorn

    from vigil.api.app import create_app
    from vigil.logging_setup import setup_logging

    setup_logging(server=True)
    config = _config()
    if no_generator:
        config = dataclasses.replace(
            config, generator=dataclasses.replace(config.generator, enabled=False)
        )
    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
        log_config=None,
    )


@app.command()
def apps() -> None:
    """List monitored applications."""
    config = _config()

    with _open_store(config) as store:
        rows = store.list_applications()

    if not rows:
        console.print("[dim]No applications registered.[/dim]")
        return

    from rich.table import Table

    table = Table(title="Applications")
    table.add_column("ID")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Uptime", justify="right")
    table.add_column("Avg RT (ms)", justify="right")

    styles = {
        ApplicationStatus.HEALTHY.value: "green",
        ApplicationStatus.WARNING.value: "yellow",
        ApplicationStatus.CRITICAL.value: "red",
    }
    for a in rows:
        style = styles.get(a.status, "")
        table.add_row(
            a.id,
            a.name,
            f"[{style}]{a.status}[/{style}]" if style else a.status,
            f"{a.uptime:.1f}%",
            f"{a.avg_response_time:.0f}",
        )
    console.print(table)


@app.command()
def register(
    name: str,
    environment: Annotated[Optional[str], typer.Option("--env", help="Deployment environment")] = None,
    version: Annotated[Optional[str], typer.Option("--version", help="Application version")] = None,
) -> None:
    """Register an application and print its id."""
    config = _config()

    with _open_store(config) as store:
        pipeline = IngestionPipeline(store, Broadcaster())
        try:
            application = asyncio.run(
                pipeline.register_application(
                    {"name": name, "environment": environment, "version": version}
                )
            )
        except VigilError as exc:
            _fail(exc.message)

    console.print(f"[green]Registered application:[/green] {application.name}")
    console.print(f"  ID: {application.id}")


@app.command()
def alerts(
    application_id: Annotated[Optional[str], typer.Option("--app", "-a", help="Filter by application id")] = None,
    acknowledged: Annotated[
        Optional[bool],
        typer.Option("--acknowledged/--unacknowledged", help="Filter by acknowledge state"),
    ] = None,
) -> None:
    """List alerts, newest first."""
    config = _config()

    with _open_store(config) as store:
        rows = store.list_alerts(application_id, acknowledged)

    if not rows:
        console.print("[dim]No alerts found.[/dim]")
        return

    from rich.table import Table

    table = Table(title="Alerts")
    table.add_column("ID")
    table.add_column("Time")
    table.add_column("Severity")
    table.add_column("Type", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Threshold", justify="right")
    table.add_column("Ack")

    for a in rows:
        sev = "red" if a.severity == Severity.CRITICAL else "yellow"
        table.add_row(
            a.id[:12],
            a.timestamp.isoformat(timespec="seconds"),
            f"[{sev}]{a.severity}[/{sev}]",
            a.alert_type,
            f"{a.current_value:.2f}",
            f"{a.threshold:g}",
            "yes" if a.acknowledged else "no",
        )
    console.print(table)


@app.command()
def ack(alert_id: str) -> None:
    """Acknowledge an alert."""
    config = _config()

    with _open_store(config) as store:
        pipeline = IngestionPipeline(store, Broadcaster())
        try:
            alert = asyncio.run(pipeline.acknowledge_alert(alert_id))
        except VigilError as exc:
            _fail(f"{exc.message}: {alert_id}")

    console.print(
        f"[green]Acknowledged:[/green] {alert.alert_type} at {alert.acknowledged_at.isoformat()}"
    )


@app.command()
def generate(
    ticks: Annotated[int, typer.Option("--ticks", "-n", help="Rounds to run")] = 1,
) -> None:
    """Run synthetic load rounds against the local store."""
    from vigil.core.generator import LoadGenerator

    config = _config()

    async def _run(pipeline: IngestionPipeline):
        generator = LoadGenerator(pipeline, config.generator)
        return [await generator.tick() for _ in range(ticks)]

    with _open_store(config) as store:
        results = asyncio.run(_run(IngestionPipeline(store, Broadcaster())))

    for i, r in enumerate(results, start=1):
        console.print(
            f"Round {i}: {r.metrics} metrics, {r.errors} errors, {r.alerts} alerts"
            + (f" [red]({r.failures} failures)[/red]" if r.failures else "")
        )


@app.command()
def report(
    application_id: str,
    pid: Annotated[int, typer.Option("--pid", help="Process ID to sample")],
    url: Annotated[Optional[str], typer.Option("--url", help="Health URL to time")] = None,
    collector: Annotated[Optional[str], typer.Option("--collector", help="Collector base URL")] = None,
) -> None:
    """Sample a local process and send one metric to a running collector."""
    import httpx

    from vigil.core.probe import capture_sample, sample_to_metric

    config = _config()
    sample = capture_sample(pid, url=url)
    if sample is None:
        _fail(f"Cannot sample process {pid}")

    base = collector or config.client.base_url
    try:
        response = httpx.post(
            f"{base.rstrip('/')}/api/ingest/metrics",
            json=sample_to_metric(application_id, sample),
            timeout=10.0,
        )
    except httpx.HTTPError as exc:
        _fail(f"Collector unreachable: {exc}")

    if response.status_code != 201:
        _fail(f"Collector rejected metric ({response.status_code}): {response.text}")
    console.print(
        f"[green]Reported:[/green] CPU {sample.cpu_percent}%  Mem {sample.memory_percent}%"
        f"  RT {sample.response_time_ms}ms"
    )


@app.command()
def watch(
    application_id: Annotated[Optional[str], typer.Option("--app", "-a", help="Scope queries to one application")] = None,
) -> None:
    """Follow a running collector like a dashboard session."""
    from vigil.client.subscriber import DashboardSession
    from vigil.logging_setup import setup_logging

    setup_logging()
    config = _config()
    params = (
        {d: {"applicationId": application_id} for d in ("metrics", "errors", "alerts")}
        if application_id
        else {}
    )

    def _print(domain: str, data) -> None:
        console.print(f"[dim]refreshed[/dim] {domain}: {len(data)} rows")

    async def _run() -> None:
        async with DashboardSession(config.client, params=params, on_refresh=_print):
            await asyncio.Event().wait()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


def main() -> None:
    """Entry point for the vigil CLI."""
    app()


if __name__ == "__main__":
    main()
