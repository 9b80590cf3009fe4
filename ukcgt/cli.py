"""Typer CLI interface for the UK CGT engine."""

import asyncio
import json
import logging
from datetime import date
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ukcgt.models.enums import FX_STRATEGY_DISPLAY_NAMES, FXStrategy
from ukcgt.models.transaction import Transaction
from ukcgt.reports.formatting import format_gbp

DEFAULT_DB_PATH = Path.home() / ".ukcgt" / "ukcgt.db"
DB_ENVVAR = "UKCGT_DB"

console = Console()

app = typer.Typer(
    name="ukcgt",
    help="UK Capital Gains Tax calculator: HMRC share matching, FX conversion and tax-year totals.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """UK Capital Gains Tax calculator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


def _db_option() -> Path:
    return typer.Option(
        DEFAULT_DB_PATH,
        "--db",
        envvar=DB_ENVVAR,
        help="Path to the SQLite database holding cached FX rates and settings",
    )


def _load_transactions(file_path: Path) -> list[Transaction]:
    """Load canonical transactions from a JSON list (or {"transactions": [...]})."""
    if not file_path.exists():
        typer.echo(f"Error: File not found: {file_path}", err=True)
        raise typer.Exit(1)
    try:
        data = json.loads(file_path.read_text())
    except json.JSONDecodeError as exc:
        typer.echo(f"Error: {file_path.name} is not valid JSON: {exc}", err=True)
        raise typer.Exit(1)
    if isinstance(data, dict):
        data = data.get("transactions", [])
    if not isinstance(data, list):
        typer.echo("Error: expected a list of transactions", err=True)
        raise typer.Exit(1)

    transactions: list[Transaction] = []
    for index, item in enumerate(data):
        try:
            transactions.append(Transaction.model_validate(item))
        except ValidationError as exc:
            typer.echo(f"Error: transaction #{index + 1} is invalid:\n{exc}", err=True)
            raise typer.Exit(1)
    return transactions


def _print_summaries(summaries: list) -> None:
    table = Table(title="Tax year summary")
    table.add_column("Tax year")
    table.add_column("Disposals", justify="right")
    table.add_column("Proceeds", justify="right")
    table.add_column("Costs", justify="right")
    table.add_column("Net gain/loss", justify="right")
    table.add_column("Exempt", justify="right")
    table.add_column("Loss c/f", justify="right")
    table.add_column("Taxable gain", justify="right")
    table.add_column("Dividends (gross)", justify="right")
    table.add_column("Interest", justify="right")
    for s in summaries:
        table.add_row(
            s.tax_year,
            str(s.disposal_count),
            format_gbp(s.total_proceeds),
            format_gbp(s.total_allowable_costs),
            format_gbp(s.net_gain_or_loss),
            format_gbp(s.annual_exempt_amount),
            format_gbp(s.loss_carried_forward),
            format_gbp(s.taxable_gain),
            format_gbp(s.gross_dividends_gbp),
            format_gbp(s.total_interest_gbp),
        )
    console.print(table)

    for s in summaries:
        if s.rate_change and s.rate_change.adjustment_required:
            console.print(
                f"[yellow]{s.tax_year}: disposals on or after "
                f"{s.rate_change.change_date.isoformat()} need an SA108 box 51 adjustment.[/yellow]"
            )
        if s.sa106:
            console.print(
                f"{s.tax_year} SA106 foreign dividends: gross {format_gbp(s.sa106.gross_gbp)}, "
                f"tax {format_gbp(s.sa106.withholding_gbp)}, net {format_gbp(s.sa106.net_gbp)}"
            )


@app.command()
def calculate(
    file: Path = typer.Argument(..., help="JSON file of normalized transactions"),
    strategy: FXStrategy | None = typer.Option(
        None,
        "--strategy",
        "-s",
        case_sensitive=False,
        help="FX rate strategy (default: the saved strategy)",
    ),
    db: Path = _db_option(),
    year: str | None = typer.Option(None, "--year", "-y", help='Only show one tax year, e.g. "2024/25"'),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the text report to this file"),
    auto_splits: bool = typer.Option(
        False,
        "--auto-splits",
        help="Add stock splits missing from the broker data, looked up from a public feed",
    ),
) -> None:
    """Convert transactions to GBP, apply HMRC matching rules and total each tax year."""
    from ukcgt.db import (
        SettingsRepository,
        SplitDataRepository,
        SQLiteRateCache,
        create_schema,
    )
    from ukcgt.engines.calculator import CGTCalculator
    from ukcgt.fx.manager import FXManager
    from ukcgt.reports import DisposalReportGenerator, TaxYearReportGenerator
    from ukcgt.splits import JsDelivrSplitSource, with_auto_splits
    from ukcgt.tax_year import parse_tax_year

    if year is not None:
        try:
            parse_tax_year(year)
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--year")

    transactions = _load_transactions(file)

    conn = create_schema(db)
    try:
        settings = SettingsRepository(conn)
        active = strategy or settings.get_fx_strategy()
        if auto_splits:
            source = JsDelivrSplitSource(SplitDataRepository(conn))
            broker_count = len(transactions)
            transactions = asyncio.run(with_auto_splits(transactions, source))
            typer.echo(f"Added {len(transactions) - broker_count} stock split(s) from the split data feed")
        manager = FXManager(SQLiteRateCache(conn), active)
        typer.echo(f"Converting {len(transactions)} transactions using {FX_STRATEGY_DISPLAY_NAMES[active]}...")
        enriched = asyncio.run(manager.enrich(transactions))
        result = CGTCalculator().calculate(enriched)
    finally:
        conn.close()

    summaries = result.summaries
    if year is not None:
        summaries = [s for s in summaries if s.tax_year == year]
        if not summaries:
            typer.echo(f"No taxable events in {year}.")

    if summaries:
        _print_summaries(summaries)

    if result.warnings:
        typer.echo("\nWarnings:")
        for warning in result.warnings:
            typer.echo(f"  - {warning}")

    if output is not None:
        report = TaxYearReportGenerator().render(summaries)
        report += "\n" + DisposalReportGenerator().render(result.disposals, tax_year=year)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(report)
        typer.echo(f"Report written to {output}")


@app.command()
def rate(
    on: str = typer.Argument(..., metavar="DATE", help="Date as YYYY-MM-DD"),
    currency: str = typer.Argument(..., help="ISO currency code, e.g. USD"),
    strategy: FXStrategy | None = typer.Option(
        None, "--strategy", "-s", case_sensitive=False, help="FX rate strategy"
    ),
    db: Path = _db_option(),
) -> None:
    """Look up the rate used to convert CURRENCY to GBP on DATE."""
    from ukcgt.db import SettingsRepository, SQLiteRateCache, create_schema
    from ukcgt.exceptions import RateError
    from ukcgt.fx.manager import FXManager

    try:
        rate_date = date.fromisoformat(on)
    except ValueError:
        raise typer.BadParameter(f"Invalid date: {on}", param_hint="DATE")

    conn = create_schema(db)
    try:
        active = strategy or SettingsRepository(conn).get_fx_strategy()
        manager = FXManager(SQLiteRateCache(conn), active)
        result = asyncio.run(manager.get_rate(rate_date, currency))
    except RateError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    finally:
        conn.close()

    typer.echo(
        f"1 GBP = {result.rate} {result.currency} ({result.source}, period {result.date_key})"
    )


@app.command(name="strategy")
def strategy_cmd(
    name: FXStrategy | None = typer.Argument(
        None, case_sensitive=False, help="Strategy to save as the default"
    ),
    db: Path = _db_option(),
) -> None:
    """Show or set the default FX rate strategy."""
    from ukcgt.db import SettingsRepository, create_schema

    conn = create_schema(db)
    try:
        settings = SettingsRepository(conn)
        if name is not None:
            settings.set_fx_strategy(name)
            typer.echo(f"Default FX strategy set to {name.value} ({FX_STRATEGY_DISPLAY_NAMES[name]})")
            return
        current = settings.get_fx_strategy()
    finally:
        conn.close()

    typer.echo(f"Current FX strategy: {current.value} ({FX_STRATEGY_DISPLAY_NAMES[current]})")
    typer.echo("Available:")
    for option in FXStrategy:
        marker = "*" if option == current else " "
        typer.echo(f"  {marker} {option.value:<16} {FX_STRATEGY_DISPLAY_NAMES[option]}")


if __name__ == "__main__":
    app()
