# -*- coding: utf-8 -*-
"""
odsquota CLI
============

Administrative command line for the ODS quota core.

Commands:
- odsquota init-db                      - Create the schema (optionally seed)
- odsquota load-catalog [FILE]          - Upsert a YAML refrigerant catalog
- odsquota refrigerants [--search TERM] - List or search the catalog
- odsquota calc CODE QTY UNIT           - CO2 equivalent of one line item
- odsquota open-account IMPORTER QUOTA  - Provision a quota account
- odsquota quota IMPORTER               - Show an importer's quota position
- odsquota check IMPORTER --item ...    - Admission check for candidate items
- odsquota submit IMPORTER --item ...   - Record a pending import request
- odsquota requests [IMPORTER]          - List import requests
- odsquota arrived IMPORTER REQUEST     - Record a shipment's arrival
- odsquota schedule-inspection IMPORTER REQUEST DATE
                                        - Schedule the shipment inspection
- odsquota approve IMPORTER REQUEST     - Approve (and settle) a request
- odsquota reject IMPORTER REQUEST      - Reject a request
- odsquota settle IMPORTER REQUEST      - Settle an approved request
- odsquota reallocate IMPORTER QUOTA    - Replace an importer's allocation

Line items are given as ``CODE,CONTAINERS,QUANTITY,UNIT``, for example
``--item R-410A,2,10,kg``.
"""

import asyncio
import dataclasses
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from odsquota import __version__
from odsquota.config import configure_logging, get_config, set_config
from odsquota.exceptions import AlreadySettled, OdsQuotaException
from odsquota.models import ImportLineItem, QuotaInfo, QuotaStatus, RequestStatus
from odsquota.service import QuotaService

T = TypeVar("T")

app = typer.Typer(
    name="odsquota",
    help="ODS import quota accounting and CO2-equivalent calculation",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    QuotaStatus.NO_QUOTA: "dim",
    QuotaStatus.CRITICAL: "bold red",
    QuotaStatus.HIGH: "red",
    QuotaStatus.MEDIUM: "yellow",
    QuotaStatus.GOOD: "green",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decimal(value: str, name: str = "value") -> Decimal:
    try:
        result = Decimal(value)
    except InvalidOperation:
        raise typer.BadParameter(f"{name} must be a number, got {value!r}")
    if not result.is_finite():
        raise typer.BadParameter(f"{name} must be finite, got {value!r}")
    return result


def _line_item(code: str, count: int, quantity: Decimal, unit: str) -> ImportLineItem:
    try:
        return ImportLineItem(
            substance_code=code,
            container_count=count,
            quantity_per_container=quantity,
            unit=unit,
        )
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise typer.BadParameter(f"Invalid line item: {problems}")


def _parse_item(raw: str) -> ImportLineItem:
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 4:
        raise typer.BadParameter(
            f"Line item must be CODE,CONTAINERS,QUANTITY,UNIT, got {raw!r}"
        )
    code, containers, quantity, unit = parts
    try:
        count = int(containers)
    except ValueError:
        raise typer.BadParameter(f"Container count must be an integer, got {containers!r}")
    return _line_item(code, count, _decimal(quantity, "quantity"), unit)


def _run(work: Callable[[QuotaService], Awaitable[T]]) -> T:
    """Run ``work`` against a database-backed service; map core errors to exit codes."""

    async def _go() -> T:
        async with QuotaService.from_database() as svc:
            return await work(svc)

    try:
        return asyncio.run(_go())
    except AlreadySettled as e:
        console.print(f"[yellow]{e.message} (no change)[/yellow]")
        raise typer.Exit(0)
    except OdsQuotaException as e:
        console.print(f"[red]Error:[/red] {e}")
        for key, value in e.context.items():
            console.print(f"[dim]  {key}: {value}[/dim]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _print_quota(info: QuotaInfo) -> None:
    style = STATUS_STYLES[info.status]
    console.print(Panel.fit(
        f"[bold]{info.importer_id}[/bold]\n"
        f"Allocated:  {info.allocated} kg CO2e\n"
        f"Consumed:   {info.consumed} kg CO2e\n"
        f"Remaining:  {info.remaining} kg CO2e\n"
        f"Used:       {info.percentage_used}% "
        f"[{style}]{info.status.value.replace('_', ' ').title()}[/{style}]",
        title="Quota",
        border_style="cyan",
    ))


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@app.callback(invoke_without_command=True)
def _root(
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="Async SQLAlchemy URL (overrides ODS_QUOTA_DATABASE_URL)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
    version: bool = typer.Option(False, "--version", help="Show version and exit"),
):
    """
    odsquota - ODS import quota core
    """
    if version:
        console.print(f"odsquota v{__version__}")
        raise typer.Exit(0)

    config = get_config()
    overrides = {}
    if database_url:
        overrides["database_url"] = database_url
    if verbose:
        overrides["log_level"] = "DEBUG"
    if overrides:
        config = dataclasses.replace(config, **overrides)
        set_config(config)
    configure_logging(config)


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@app.command("init-db")
def init_db_command(
    seed: bool = typer.Option(False, "--seed", help="Load the packaged refrigerant catalog"),
):
    """Create the database schema"""

    async def work(svc: QuotaService) -> int:
        await svc.init_db()
        return await svc.load_catalog() if seed else 0

    loaded = _run(work)
    console.print("[green]✓[/green] Database schema ready")
    if seed:
        console.print(f"[green]✓[/green] Loaded {loaded} refrigerants")


@app.command("load-catalog")
def load_catalog_command(
    catalog_file: Optional[Path] = typer.Argument(
        None,
        help="Refrigerant catalog YAML (default: packaged catalog)",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
):
    """Insert or update refrigerants from a YAML catalog"""
    loaded = _run(lambda svc: svc.load_catalog(catalog_file))
    console.print(f"[green]✓[/green] Loaded {loaded} refrigerants")


@app.command()
def refrigerants(
    search: Optional[str] = typer.Option(
        None, "--search", "-s", help="Filter by code, name, HS code or type"
    ),
):
    """List refrigerants in the catalog"""
    records = _run(lambda svc: svc.catalog.search(search or ""))

    table = Table(title="Refrigerants", show_header=True, header_style="bold cyan")
    table.add_column("Code", style="cyan")
    table.add_column("Chemical name")
    table.add_column("HS code")
    table.add_column("Type")
    table.add_column("GWP", justify="right")
    for record in records:
        table.add_row(
            record.code,
            record.chemical_name,
            record.hs_code or "",
            record.refrigerant_type or "",
            str(record.gwp_coefficient) if record.gwp_coefficient is not None else "-",
        )
    console.print(table)


@app.command()
def calc(
    substance: str = typer.Argument(..., help="Refrigerant code, e.g. R-410A"),
    quantity: str = typer.Argument(..., help="Quantity per container"),
    unit: str = typer.Argument(..., help="Unit: g, kg, lb, oz, ton"),
    containers: int = typer.Option(1, "--containers", "-n", min=1, help="Number of containers"),
):
    """Compute the CO2 equivalent of one line item"""
    item = _line_item(substance, containers, _decimal(quantity, "quantity"), unit)
    co2e = _run(lambda svc: svc.calculator.compute_line_item(item))
    console.print(
        f"{containers} x {quantity} {unit} {substance} = [bold]{co2e}[/bold] kg CO2e"
    )


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@app.command("open-account")
def open_account(
    importer: str = typer.Argument(..., help="Importer id"),
    allocated: str = typer.Argument("0", help="Allocated quota in kg CO2e"),
):
    """Provision a quota account"""
    amount = _decimal(allocated, "allocated")
    _run(lambda svc: svc.ledger.open_account(importer, amount))
    console.print(f"[green]✓[/green] Opened account {importer} with {amount} kg CO2e")


@app.command()
def quota(importer: str = typer.Argument(..., help="Importer id")):
    """Show an importer's quota position"""
    _print_quota(_run(lambda svc: svc.ledger.get_quota_info(importer)))


@app.command()
def reallocate(
    importer: str = typer.Argument(..., help="Importer id"),
    allocated: str = typer.Argument(..., help="New allocated quota in kg CO2e"),
):
    """Replace an importer's allocation"""
    amount = _decimal(allocated, "allocated")
    _print_quota(_run(lambda svc: svc.ledger.reallocate_quota(importer, amount)))


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@app.command()
def check(
    importer: str = typer.Argument(..., help="Importer id"),
    item: List[str] = typer.Option(..., "--item", "-i", help="CODE,CONTAINERS,QUANTITY,UNIT"),
):
    """Check whether candidate items fit in the remaining quota"""
    items = [_parse_item(raw) for raw in item]
    result = _run(lambda svc: svc.ledger.check_admission(importer, items))

    console.print(f"Required:   {result.required_co2} kg CO2e")
    console.print(f"Remaining:  {result.remaining_before} kg CO2e")
    if result.would_exceed:
        console.print(f"[red]✗ Would exceed quota by {result.deficit} kg CO2e[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Within quota[/green]")


@app.command()
def submit(
    importer: str = typer.Argument(..., help="Importer id"),
    item: List[str] = typer.Option(..., "--item", "-i", help="CODE,CONTAINERS,QUANTITY,UNIT"),
):
    """Record a pending import request"""
    items = [_parse_item(raw) for raw in item]
    request = _run(lambda svc: svc.ledger.submit_request(importer, items))
    console.print(
        f"[green]✓[/green] Request [bold]{request.request_id}[/bold] "
        f"(#{request.import_number}/{request.import_year}) submitted: "
        f"{request.total_co2_equivalent} kg CO2e"
    )


@app.command("requests")
def list_requests(
    importer: Optional[str] = typer.Argument(None, help="Importer id"),
    status: Optional[RequestStatus] = typer.Option(None, "--status", help="Filter by status"),
    year: Optional[int] = typer.Option(None, "--year", help="Filter by import year"),
):
    """List import requests"""
    requests = _run(
        lambda svc: svc.ledger.list_requests(importer_id=importer, status=status, year=year)
    )

    table = Table(title="Import requests", show_header=True, header_style="bold cyan")
    table.add_column("Request", style="cyan")
    table.add_column("Importer")
    table.add_column("Number", justify="right")
    table.add_column("Status")
    table.add_column("Settled")
    table.add_column("CO2e (kg)", justify="right")
    for request in requests:
        table.add_row(
            request.request_id,
            request.importer_id,
            f"{request.import_number}/{request.import_year}",
            request.status.value,
            "yes" if request.settled else "no",
            str(request.total_co2_equivalent),
        )
    console.print(table)


@app.command()
def arrived(
    importer: str = typer.Argument(..., help="Importer id"),
    request_id: str = typer.Argument(..., help="Import request id"),
):
    """Record that a pending request's shipment has arrived"""
    _run(lambda svc: svc.ledger.mark_arrived(importer, request_id))
    console.print(f"[green]✓[/green] Shipment for request {request_id} arrived")


@app.command("schedule-inspection")
def schedule_inspection(
    importer: str = typer.Argument(..., help="Importer id"),
    request_id: str = typer.Argument(..., help="Import request id"),
    inspection_date: datetime = typer.Argument(..., help="Inspection date, e.g. 2026-05-04"),
):
    """Schedule the inspection of an arrived shipment"""
    request = _run(
        lambda svc: svc.ledger.schedule_inspection(importer, request_id, inspection_date)
    )
    console.print(
        f"[green]✓[/green] Inspection of request {request_id} scheduled for "
        f"{request.inspection_date:%Y-%m-%d}"
    )


@app.command()
def approve(
    importer: str = typer.Argument(..., help="Importer id"),
    request_id: str = typer.Argument(..., help="Import request id"),
    no_settle: bool = typer.Option(False, "--no-settle", help="Approve without settling"),
):
    """Approve an open request and settle it"""
    request = _run(lambda svc: svc.ledger.approve(importer, request_id, settle=not no_settle))
    state = "approved and settled" if request.settled else "approved"
    console.print(f"[green]✓[/green] Request {request_id} {state}")


@app.command()
def reject(
    importer: str = typer.Argument(..., help="Importer id"),
    request_id: str = typer.Argument(..., help="Import request id"),
    reason: str = typer.Option(..., "--reason", "-r", help="Reason shown to the importer"),
):
    """Reject an open or approved request"""
    _run(lambda svc: svc.ledger.reject(importer, request_id, reason))
    console.print(f"[green]✓[/green] Request {request_id} rejected")


@app.command()
def settle(
    importer: str = typer.Argument(..., help="Importer id"),
    request_id: str = typer.Argument(..., help="Import request id"),
):
    """Apply an approved request to the importer's quota"""
    result = _run(lambda svc: svc.ledger.settle(importer, request_id))
    console.print(
        f"[green]✓[/green] Settled {result.settled_co2} kg CO2e: "
        f"consumed={result.new_consumed} remaining={result.new_remaining}"
    )


def main():
    """Main entry point for the odsquota CLI"""
    app()


if __name__ == "__main__":
    main()
