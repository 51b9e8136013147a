"""
Command Line Interface for dagplane.
"""

import asyncio
from typing import List, Optional

import typer
import uvicorn
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Settings, load_settings, validate_config
from ..core.service import DeployReport
from ..errors import ConfigurationError, DagplaneError
from ..logs import configure_logging

app = typer.Typer(help="dagplane - job orchestration control plane")
console = Console()


def _settings(**overrides: Optional[str]) -> Settings:
    """Environment settings with command line overrides, validated."""
    try:
        settings = validate_config(load_settings(**overrides))
    except ConfigurationError as e:
        for problem in e.problems:
            console.print(f"[red]{problem}[/red]")
        raise typer.Exit(code=1)
    configure_logging(settings.log_level, settings.log_format)
    return settings


def _print_reports(reports: List[DeployReport]) -> None:
    table = Table(title="Deployment", show_header=True, header_style="bold magenta")
    table.add_column("Project", style="cyan")
    table.add_column("Status")
    table.add_column("Written", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Failures")

    for report in reports:
        sync = report.sync
        failures = [f"{f.job} ({f.operation}): {f.error}" for f in report.failures]
        if report.error is not None:
            failures.insert(0, str(report.error))
        table.add_row(
            report.project,
            "[green]ok[/green]" if report.ok else "[red]failed[/red]",
            str(len(sync.written)) if sync else "-",
            str(len(sync.unchanged)) if sync else "-",
            str(len(sync.deleted)) if sync else "-",
            "\n".join(failures),
        )
    console.print(table)


@app.command()
def serve(
    server_port: Optional[str] = typer.Option(None, help="port to listen on"),
    server_host: Optional[str] = typer.Option(None, help="the network interface to listen on"),
    log_level: Optional[str] = typer.Option(None, help="log level - DEBUG, INFO, WARNING, ERROR, FATAL"),
    log_format: Optional[str] = typer.Option(None, help="log renderer - json or console"),
    db_host: Optional[str] = typer.Option(None, help="database host, optionally host:port"),
    db_user: Optional[str] = typer.Option(None, help="database user"),
    db_password: Optional[str] = typer.Option(None, help="database password"),
    db_name: Optional[str] = typer.Option(None, help="database name"),
    db_ssl_mode: Optional[str] = typer.Option(None, help="database sslmode (require, disable)"),
    max_idle_db_conn: Optional[str] = typer.Option(None, help="maximum allowed idle DB connections"),
    max_open_db_conn: Optional[str] = typer.Option(None, help="maximum allowed open DB connections"),
    database_url: Optional[str] = typer.Option(None, help="full SQLAlchemy database URL"),
    ingress_host: Optional[str] = typer.Option(
        None, help="service ingress host for jobs to communicate back to dagplane"
    ),
    app_key: Optional[str] = typer.Option(None, help="random 32 character key used for encrypting secrets"),
):
    """Start the HTTP server. Flags override the matching environment variables."""
    from ..api import create_app

    settings = _settings(
        server_port=server_port,
        server_host=server_host,
        log_level=log_level,
        log_format=log_format,
        db_host=db_host,
        db_user=db_user,
        db_password=db_password,
        db_name=db_name,
        db_ssl_mode=db_ssl_mode,
        max_idle_db_conn=max_idle_db_conn,
        max_open_db_conn=max_open_db_conn,
        database_url=database_url,
        ingress_host=ingress_host,
        app_key=app_key,
    )
    uvicorn.run(
        create_app(settings=settings),
        host=settings.server_host,
        port=int(settings.server_port),
        log_config=None,
        timeout_graceful_shutdown=int(settings.shutdown_wait_seconds),
    )


@app.command()
def deploy(
    project: Optional[str] = typer.Argument(None, help="Project to deploy; all projects when omitted"),
):
    """Compile and deploy jobs now."""
    from ..wiring import build_pipeline

    pipeline = build_pipeline(_settings())

    async def run() -> List[DeployReport]:
        if project:
            return [await pipeline.service.deploy_project(project)]
        return await pipeline.service.deploy_all()

    try:
        reports = asyncio.run(run())
    except DagplaneError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(code=1)

    _print_reports(reports)
    if not all(r.ok for r in reports):
        raise typer.Exit(code=1)


@app.command()
def bootstrap(
    project: Optional[str] = typer.Argument(None, help="Project to bootstrap; all projects when omitted"),
):
    """Prepare the scheduler for one or every registered project."""
    from ..wiring import build_pipeline

    pipeline = build_pipeline(_settings())

    async def run():
        if project:
            spec = await pipeline.service.get_project(project)
            return [await pipeline.bootstrap.bootstrap_project(spec)]
        return await pipeline.bootstrap.bootstrap_registered(pipeline.repository)

    try:
        results = asyncio.run(run())
    except DagplaneError as e:
        console.print(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(code=1)

    for result in results:
        if result.ok:
            console.print(f"✅ {result.project}")
        else:
            console.print(f"❌ {result.project}: {result.error}")
    if not all(r.ok for r in results):
        raise typer.Exit(code=1)


@app.command()
def version():
    """Show version information."""
    from .. import __version__

    rprint(Panel.fit(f"dagplane v{__version__}", style="bold green"))


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
