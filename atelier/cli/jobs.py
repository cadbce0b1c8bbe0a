"""CLI commands for running fulfillment jobs and inspecting order labels."""

import asyncio
from datetime import date
from typing import Optional

import click
from tabulate import tabulate

from atelier.business.labels import decode, encode
from atelier.errors import (
    AdapterRequestError,
    CarrierAuthenticationError,
    InvalidLabelState,
    TransientAdapterError,
)
from atelier.observability.logging import init_logging
from atelier.schemas.jobs import JobReport
from atelier.services.registry import (
    aclose_all,
    build_carrier_reconciliation_job,
    build_escalation_scheduler,
)
from atelier.settings import settings


def _parse_today(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"expected YYYY-MM-DD, got {value!r}", param_hint="--today")


def _echo_report(report: JobReport) -> None:
    table_data = [
        [name, result.successful, result.skipped, result.failed]
        for name, result in report.passes.items()
    ]
    table_data.append(["total", report.successful, report.skipped, report.failed])

    headers = ["Pass", "Successful", "Skipped", "Failed"]
    click.echo(f"{report.job} for {report.today}")
    if report.parcels_fetched is not None:
        click.echo(f"Parcels fetched: {report.parcels_fetched}")
    click.echo("\n" + tabulate(table_data, headers=headers, tablefmt="grid"))

    for error in report.errors:
        click.echo(f"❌ {error}")


@click.group()
@click.option('--log-level', default=None, help='Override LOG_LEVEL')
def fulfillment(log_level: Optional[str]):
    """Fulfillment job commands."""
    init_logging(log_level or settings.LOG_LEVEL)


@fulfillment.command()
@click.option('--today', help='Business date override (YYYY-MM-DD)')
def escalate(today: Optional[str]):
    """Run both escalation phases once."""
    run_date = _parse_today(today)

    async def run() -> JobReport:
        try:
            return await build_escalation_scheduler().run(run_date)
        finally:
            await aclose_all()

    try:
        report = asyncio.run(run())
    except (TransientAdapterError, AdapterRequestError) as e:
        raise click.ClickException(f"Escalation aborted: {e}")

    _echo_report(report)


@fulfillment.command()
@click.option('--today', help='Business date override (YYYY-MM-DD)')
def reconcile(today: Optional[str]):
    """Run one carrier reconciliation cycle."""
    run_date = _parse_today(today)

    async def run() -> JobReport:
        try:
            return await build_carrier_reconciliation_job().run(run_date)
        finally:
            await aclose_all()

    try:
        report = asyncio.run(run())
    except (CarrierAuthenticationError, TransientAdapterError, AdapterRequestError) as e:
        raise click.ClickException(f"Carrier reconciliation aborted: {e}")

    _echo_report(report)


@fulfillment.command('decode-labels')
@click.argument('labels')
@click.option('--strict', is_flag=True, help='Fail on more than one status label')
def decode_labels(labels: str, strict: bool):
    """Show how a comma-separated label string decodes and re-encodes."""
    try:
        state = decode(labels, strict=strict)
    except InvalidLabelState as e:
        raise click.ClickException(str(e))

    table_data = [
        ["status", state.status.value],
        ["status since", state.status_since.isoformat() if state.status_since else "-"],
        ["confirmed", "✅" if state.confirmed else "❌"],
        ["tracking token", state.tracking_token or "-"],
        ["flags", ", ".join(state.flags) or "-"],
    ]
    table_data.extend([f"{key}:", value] for key, value in state.keyed.items())

    click.echo(tabulate(table_data, tablefmt="grid"))
    click.echo(f"Re-encoded: {', '.join(encode(state))}")
