"""Operator commands: run the API, create tables, send a test push."""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from nongki.config import settings
from nongki.push.config import ApnsConfig
from nongki.push.dispatcher import FanoutDispatcher
from nongki.push.models import (
    DetailedAlert,
    Endpoint,
    EventType,
    NotificationEvent,
    Platform,
    PushOptions,
    PushPayload,
    RecipientRule,
)

console = Console()


@click.group()
@click.version_option(version="0.1.0", prog_name="nongki")
def cli():
    """
    Nongki - hangout sessions with friend notifications
    """
    pass


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=settings.PORT, type=int, help="Bind port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the API server"""
    import uvicorn

    uvicorn.run("nongki.main:app", host=host, port=port, reload=reload)


@cli.command("init-db")
def init_db():
    """Create database tables"""
    from nongki.database import models  # noqa: F401
    from nongki.database.database import Base, engine

    Base.metadata.create_all(bind=engine)
    console.print(f"[green]Tables created on {engine.url.render_as_string(hide_password=True)}[/green]")


def build_test_event(title: str, body: str) -> NotificationEvent:
    return NotificationEvent(
        type=EventType.NEW_SESSION,
        actor_id=0,
        payload=PushPayload(
            alert=DetailedAlert(title=title, body=body),
            sound="default",
            custom={"notificationType": "test"},
        ),
        options=PushOptions(),
        rule=RecipientRule.TARGET_USER,
        target_user_id=0,
    )


@cli.command("send-test")
@click.argument("device_token")
@click.option("--title", default="Nongki", help="Alert title")
@click.option("--body", default="Test notification", help="Alert body")
@click.option("--production", is_flag=True, help="Use the production gateway")
def send_test(device_token: str, title: str, body: str, production: bool):
    """Send one alert to a device token and print the outcome"""
    config = ApnsConfig.from_settings(settings)
    if production:
        config.environment = "production"

    endpoint = Endpoint(id=0, owner_id=0, token=device_token, platform=Platform.IOS)
    dispatcher = FanoutDispatcher(config)

    async def run():
        try:
            return await dispatcher.deliver(build_test_event(title, body), [endpoint])
        finally:
            await dispatcher.transport.close()

    result = asyncio.run(run())

    table = Table(title=f"APNs delivery ({config.host})")
    table.add_column("Token", style="cyan")
    table.add_column("Status")
    table.add_column("Reason")
    table.add_column("Attempts")
    table.add_column("Ports")

    for outcome in result.outcomes:
        style = "green" if outcome.succeeded else "red"
        table.add_row(
            outcome.endpoint.short_token,
            f"[{style}]{outcome.status.value}[/{style}]",
            outcome.failure_reason or "",
            str(outcome.attempts),
            ", ".join(str(path.value) for path in outcome.paths),
        )

    console.print(table)
    if result.failure_count:
        raise SystemExit(1)


if __name__ == "__main__":
    cli()
