"""
Command-line interface for AlertCPL.

Usage:
    alertcpl serve               # API + periodic engine
    alertcpl run-once            # one reconciliation cycle
    alertcpl init-db             # create tables and indexes
    alertcpl health              # PostgreSQL and credential check
    alertcpl sync-account-names  # refresh account names from Meta
    alertcpl exchange-token      # trade a short-lived Meta token for a long-lived one
    alertcpl test-telegram       # send a test Telegram message
"""

import asyncio
import json
import os
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

import click
import structlog

from alertcpl.config.settings import get_settings
from alertcpl.observability.logging import setup_logging
from alertcpl.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TEST_MESSAGE = "AlertCPL test alert 🚨"
RULE = "-" * 40


async def _with_database(work: Callable[[Any], Awaitable[T]]) -> T:
    """Run ``work(db)`` against a dedicated pool that is closed afterwards."""
    from alertcpl.storage.database import Database

    db = Database()
    await db.connect()
    try:
        return await work(db)
    finally:
        await db.close()


def _print_section(title: str, lines: list[str]) -> None:
    click.echo(f"\n{title}")
    click.echo(RULE)
    for line in lines:
        click.echo(line)
    click.echo(RULE)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, debug: bool) -> None:
    """AlertCPL - cost-per-lead alerts for Meta ad accounts."""
    if debug:
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()

    settings = get_settings()
    if settings.tracing_enabled:
        from alertcpl.observability.tracing import setup_tracing, shutdown_tracing

        setup_tracing(settings.otel_service_name, settings.otel_exporter_otlp_endpoint)
        ctx.call_on_close(shutdown_tracing)


@main.command()
@click.option("--host", default=None, help="Bind address (default: API_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default: API_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes (development only)")
@click.option("--metrics-port", default=None, type=int, help="Prometheus exporter port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Run the HTTP API; the engine scheduler starts with it unless ENGINE_ENABLED=false."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    get_metrics().start_server(port=metrics_port)

    schedule = (
        f"{settings.engine_cron} ({settings.engine_timezone})"
        if settings.engine_enabled
        else "disabled"
    )
    click.echo(f"AlertCPL API on {host}:{port}, docs at /docs")
    click.echo(f"Prometheus metrics on :{metrics_port}/metrics")
    click.echo(f"Engine schedule: {schedule}")

    uvicorn.run(
        "alertcpl.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@main.command("run-once")
@click.option("--json", "as_json", is_flag=True, help="Print the cycle summary as JSON")
def run_once(as_json: bool) -> None:
    """Run one reconciliation cycle and print its summary.

    Exits 1 when the cycle failed (e.g. accounts could not be listed).
    Per-account errors are part of the summary and do not change the exit code.
    """
    from alertcpl.engine.reconciliation import build_reconciliation_loop
    from alertcpl.engine.schemas import CycleStatus

    async def cycle(db):
        return await build_reconciliation_loop(db).run()

    result = asyncio.run(_with_database(cycle))
    summary = result.to_dict()

    if as_json:
        click.echo(json.dumps(summary, indent=2, default=str))
    else:
        _print_section("Reconciliation Results:", [
            f"  status: {summary['status']}",
            f"  cycle: {summary['cycle_id']}",
            f"  accounts: {summary['accounts']}",
            f"  samples evaluated: {summary['samples_evaluated']}",
            f"  history written: {summary['history_written']}",
            f"  alerts: {summary['alerts']}",
        ])
        if summary["error"]:
            click.secho(f"error: {summary['error']}", fg="red")

    sys.exit(1 if result.status == CycleStatus.FAILED else 0)


@main.command("init-db")
def init_db() -> None:
    """Create the AlertCPL tables and indexes (safe to re-run)."""
    from alertcpl.storage.schema import create_tables

    asyncio.run(_with_database(create_tables))
    click.echo("Database initialized successfully")


@main.command()
def health() -> None:
    """Check PostgreSQL connectivity and which credentials are configured.

    Only an unreachable database fails the check; missing tokens are reported.
    """

    async def ping(db) -> bool:
        return await db.health_check()

    try:
        postgres_ok = asyncio.run(_with_database(ping))
    except Exception as e:
        logger.error("PostgreSQL unreachable", error=str(e))
        postgres_ok = False

    settings = get_settings()
    checks = {
        "postgres": postgres_ok,
        "meta_configured": settings.meta_configured,
        "telegram_configured": settings.telegram_configured,
        "trigger_enabled": settings.trigger_enabled,
    }

    _print_section("Health Check Results:", [
        click.style(f"  {'✓' if ok else '✗'} {name}: {ok}", fg="green" if ok else "red")
        for name, ok in checks.items()
    ])

    if not postgres_ok:
        click.secho("PostgreSQL is unreachable", fg="red")
        sys.exit(1)
    click.secho("Database reachable", fg="green")


@main.command("sync-account-names")
def sync_account_names() -> None:
    """Refresh each account's display name from the Meta Graph API.

    Only names that differ from the stored value are written.
    """
    from alertcpl.accounts.repository import AccountRepository
    from alertcpl.insights.client import MetaInsightsClient

    client = MetaInsightsClient()
    if not client.is_configured:
        click.secho("META_ACCESS_TOKEN is not set", fg="red")
        sys.exit(1)

    async def sync(db) -> tuple[int, int, int]:
        repo = AccountRepository(db)
        accounts = await repo.list_all()
        click.echo(f"Found {len(accounts)} accounts. Checking names...")
        updated = unchanged = failed = 0

        for account in accounts:
            name = await client.fetch_account_name(account.account_id)
            if not name:
                failed += 1
                click.secho(f"  ✗ {account.account_id}: could not fetch name", fg="yellow")
            elif name == account.account_name:
                unchanged += 1
            else:
                try:
                    await repo.update_name(account.id, name)
                except Exception as e:
                    failed += 1
                    click.secho(f"  ✗ {account.account_id}: update failed: {e}", fg="red")
                else:
                    updated += 1
                    click.echo(f"  ✓ {account.account_id}: {account.account_name!r} -> {name!r}")

        return updated, unchanged, failed

    updated, unchanged, failed = asyncio.run(_with_database(sync))
    click.echo(f"\nSync complete: {updated} updated, {unchanged} unchanged, {failed} failed")


@main.command("exchange-token")
@click.option(
    "--short-lived-token",
    default=None,
    help="Token from Graph API Explorer (default: META_SHORT_LIVED_TOKEN)",
)
def exchange_token(short_lived_token: str | None) -> None:
    """Exchange a short-lived Meta user token for a long-lived one.

    Needs META_APP_ID and META_APP_SECRET. Prints the new token; put it in
    META_ACCESS_TOKEN and restart the service.
    """
    from alertcpl.insights.client import MetaInsightsClient, MetricsSourceError

    settings = get_settings()
    short_lived_token = short_lived_token or settings.meta_short_lived_token
    missing = [
        name
        for name, value in (
            ("META_APP_ID", settings.meta_app_id),
            ("META_APP_SECRET", settings.meta_app_secret),
            ("META_SHORT_LIVED_TOKEN", short_lived_token),
        )
        if not value
    ]
    if missing:
        click.secho(f"Missing: {', '.join(missing)}", fg="red")
        sys.exit(1)

    try:
        token = asyncio.run(MetaInsightsClient().exchange_token(short_lived_token))
    except MetricsSourceError as e:
        payload = e.payload if isinstance(e.payload, dict) else {}
        detail = (payload.get("error") or {}).get("message") or str(e)
        click.secho(f"Token exchange failed: {detail}", fg="red")
        sys.exit(1)

    if token.expires_in is None:
        expiry = "does not expire"
    else:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=token.expires_in)
        expiry = (
            f"{token.expires_in} seconds ({token.expires_in_days} days, "
            f"until {expires_at:%Y-%m-%d %H:%M} UTC)"
        )

    _print_section("Long-lived token:", [token.access_token, f"Expires: {expiry}"])
    click.echo("Set META_ACCESS_TOKEN to this value and restart the service.")


@main.command("test-telegram")
@click.option("--chat-id", default=None, help="Target chat (default: TELEGRAM_TEST_CHAT_ID)")
def test_telegram(chat_id: str | None) -> None:
    """Send a plain-text test message through the Telegram channel."""
    from alertcpl.accounts.schemas import NotificationDestination
    from alertcpl.notifications.channels import NotificationError, TelegramChannel

    chat_id = chat_id or get_settings().telegram_test_chat_id
    if not chat_id:
        click.secho("TELEGRAM_TEST_CHAT_ID is not set", fg="red")
        sys.exit(1)

    channel = TelegramChannel(dialect="plain")
    destination = NotificationDestination(agency_id="", agency_name="test", chat_id=chat_id)
    try:
        asyncio.run(channel.send(destination, TEST_MESSAGE))
    except NotificationError as e:
        click.secho(f"Telegram test failed: {e}", fg="red")
        sys.exit(1)
    click.secho("Telegram alert sent successfully!", fg="green")


if __name__ == "__main__":
    main()
