from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .agents import AnalystAgent, PlannerAgent, ReporterAgent
from .config import EngineConfig, default_engine_config
from .importer import CSVImportError, load_pl_csv
from .synth import SynthSpec, generate_synthetic_pl

app = typer.Typer(add_completion=False, help="Goal-driven P&L forecasting for small businesses.")
console = Console()


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine decisions.")):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def synth(
    out: Path = typer.Option(..., help="Output CSV path."),
    start: str = typer.Option("2024-07", help="First month (YYYY-MM)."),
    months: int = typer.Option(18, min=1, help="Number of months."),
    revenue: float = typer.Option(1_200_000, help="Approximate annual revenue."),
    seed: int = typer.Option(42, help="RNG seed."),
):
    generate_synthetic_pl(out, SynthSpec(start=start, months=months, seed=seed, annual_revenue=revenue))
    console.print(f"Wrote synthetic P&L to {out}")


@app.command(name="import")
def import_cmd(
    csv: Path = typer.Argument(..., exists=True, dir_okay=False, help="P&L export CSV."),
):
    """Parse a P&L CSV and show the accounts it contains."""
    try:
        parsed = load_pl_csv(csv)
    except CSVImportError as exc:
        console.print(f"[red]Import failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    table = Table(title=f"{csv.name}: {parsed.start_month} to {parsed.end_month}")
    table.add_column("Account")
    table.add_column("Category")
    table.add_column("Months", justify="right")
    table.add_column("Total", justify="right")
    for acct in parsed.accounts:
        table.add_row(acct.name, acct.category.value, str(len(acct.months)), f"{sum(acct.months.values()):,.2f}")
    console.print(table)
    for w in parsed.warnings:
        console.print(f"[yellow]warning:[/yellow] {w}")


@app.command()
def run(
    csv: list[Path] = typer.Option(..., exists=True, dir_okay=False, help="P&L CSV(s); baseline first, then YTD."),
    definition: Path = typer.Option(..., exists=True, dir_okay=False, help="Forecast definition YAML/JSON."),
    out: Path = typer.Option(..., help="Output directory for the forecast pack."),
    scenario: Optional[str] = typer.Option(None, help="Scenario name (omit to run all scenarios)."),
    config: Optional[Path] = typer.Option(None, help="Engine config YAML (default uses packaged config)."),
):
    cfg = EngineConfig.from_yaml(config) if config else default_engine_config()
    plan = PlannerAgent().plan(definition, scenario)
    results = AnalystAgent().run(csv, plan, cfg)
    ReporterAgent().package(out_dir=out, definition=plan.definition, results=results, config=cfg)
    for res in results:
        for w in res.warnings:
            console.print(f"[yellow]warning ({res.scenario}):[/yellow] {w}")
    console.print(f"Wrote forecast pack to {out}")


@app.command(name="init-db")
def init_db_cmd():
    """Create the PostgreSQL tables (DATABASE_URL) if they don't exist."""
    from .db import init_db

    init_db()
    console.print("Database initialized")


def _find_available_port(host: str, preferred: int) -> int:
    """Return *preferred* if free, otherwise try fallbacks then let the OS pick."""
    import socket

    candidates = [preferred] + [p for p in (8000, 8001, 8080, 8888) if p != preferred]
    for port in candidates:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((host, port))
                return port
            except OSError:
                continue
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind (use 0.0.0.0 for LAN)."),
    port: int = typer.Option(8000, help="Port to serve the API on."),
):
    """Start the forecast API server."""
    import uvicorn

    actual_port = _find_available_port(host, port)
    if actual_port != port:
        console.print(f"Port {port} is in use, using port {actual_port} instead.")
    uvicorn.run("plforecast.server:app", host=host, port=actual_port, reload=False)
