"""CLI commands for running poll cycles and inspecting state."""

import json
import logging
import sys
from pathlib import Path

import click

from outage_radar import __version__
from outage_radar.app import RadarApp, build_app
from outage_radar.config.loader import ConfigValidationError
from outage_radar.observability.logging import configure_logging
from outage_radar.poll.errors import PollInProgressError
from outage_radar.settings.app import RadarSettings, get_settings
from outage_radar.store.errors import StateStoreError


STDOUT_RECIPIENT = "-"


class EchoMailer:
    """Mailer that prints messages instead of delivering them."""

    def send(
        self,
        recipient: str,
        subject: str,
        text: str,
        html: str,
        headers: dict[str, str],
    ) -> bool:
        """Print the plain-text rendering of a message."""
        click.echo(f"To: {recipient}")
        click.echo(f"Subject: {subject}")
        for name, value in sorted(headers.items()):
            click.echo(f"{name}: {value}")
        click.echo("")
        click.echo(text)
        click.echo("-" * 40)
        return True


def _settings(db_path: Path | None, providers_path: Path | None) -> RadarSettings:
    settings = get_settings()
    update: dict[str, object] = {}
    if db_path is not None:
        update["db_path"] = db_path
    if providers_path is not None:
        update["providers_path"] = providers_path
    return settings.model_copy(update=update) if update else settings


def _open_app(settings: RadarSettings, print_alerts: bool = False) -> RadarApp:
    """Build the app, exiting with a readable message on config or store errors."""
    mailer = None
    if print_alerts:
        mailer = EchoMailer()
        if not settings.alert_recipients:
            settings = settings.model_copy(update={"alert_recipients": [STDOUT_RECIPIENT]})
    try:
        return build_app(settings, mailer=mailer)
    except ConfigValidationError as e:
        click.echo(f"Configuration validation failed: {e.file_path}", err=True)
        for error in e.errors:
            click.echo(f"  - {error['loc']}: {error['msg']}", err=True)
        sys.exit(1)
    except StateStoreError as e:
        click.echo(f"Cannot open state database: {e}", err=True)
        sys.exit(1)


def _setup_logging(json_logs: bool, verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    configure_logging(level=level, json_format=json_logs)


db_option = click.option(
    "--state",
    "db_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to SQLite state database (default: settings).",
)
providers_option = click.option(
    "--providers",
    "providers_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to providers.yaml (default: built-in directory).",
)


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """Outage Radar status monitor CLI."""


@cli.command()
@db_option
@providers_option
@click.option(
    "--print-alerts",
    is_flag=True,
    help="Print alert mails to stdout instead of discarding them.",
)
@click.option(
    "--json-logs/--no-json-logs",
    default=True,
    help="Use JSON format for logs (default: true).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging.")
def poll(
    db_path: Path | None,
    providers_path: Path | None,
    print_alerts: bool,
    json_logs: bool,
    verbose: bool,
) -> None:
    """Run one poll cycle and print provider status."""
    _setup_logging(json_logs, verbose)
    settings = _settings(db_path, providers_path)

    with _open_app(settings, print_alerts=print_alerts) as app:
        try:
            result = app.runner.run()
        except PollInProgressError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

        for state in result.states:
            line = f"  {state.name:<24} {state.status.label}"
            if state.error:
                line = f"{line} ({state.error})"
            click.echo(line)
        click.echo(
            f"Poll {result.poll_id}: {len(result.states)} providers, "
            f"{result.providers_failed} failed, {len(result.incidents)} incidents"
        )
        if result.trending and result.trending.trending:
            for signal in result.trending.signals:
                click.echo(f"  trending: {signal}")
        if not result.persisted:
            click.echo("Warning: state could not be persisted", err=True)


@cli.command()
@db_option
@click.option("--lite", is_flag=True, help="Only report whether an event is trending.")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
def snapshot(db_path: Path | None, lite: bool, json_output: bool) -> None:
    """Show the last known snapshot without polling."""
    configure_logging(level=logging.WARNING, json_format=False)
    settings = _settings(db_path, None)

    with _open_app(settings) as app:
        response = app.read_api.summary(lite=lite)

    if json_output or lite:
        click.echo(json.dumps(response.payload, indent=2))
        return

    payload = response.payload
    stale = " (stale)" if payload["stale"] else ""
    click.echo(f"Snapshot at {payload['updated_at']}{stale}")
    click.echo("=" * 40)
    for service in payload["providers"]:
        click.echo(f"  {service['name']:<24} {service['status_text']}")
    if not payload["providers"]:
        click.echo("  No snapshot available")


@cli.command()
@db_option
@click.option(
    "--provider",
    "providers",
    multiple=True,
    help="Provider id to include (repeatable; default: all).",
)
@click.option("--days", type=int, default=30, help="Window in days (max 90).")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON.")
def history(
    db_path: Path | None,
    providers: tuple[str, ...],
    days: int,
    json_output: bool,
) -> None:
    """Show per-day incident counts from the status history."""
    configure_logging(level=logging.WARNING, json_format=False)
    settings = _settings(db_path, None)

    with _open_app(settings) as app:
        report = app.read_api.history(providers=list(providers) or None, days=days)

    if json_output:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
        return

    click.echo(f"History for the last {report.days} days")
    click.echo("=" * 40)
    for provider_id, rollup in report.providers.items():
        total = sum(rollup.daily_incidents.values())
        click.echo(f"  {provider_id:<24} {total} incidents, last: {rollup.last_status or 'n/a'}")
    if not report.providers:
        click.echo("  No history recorded")


@cli.command()
@db_option
def feed(db_path: Path | None) -> None:
    """Print the status feed as RSS."""
    configure_logging(level=logging.WARNING, json_format=False)
    settings = _settings(db_path, None)

    with _open_app(settings) as app:
        click.echo(app.feed.render_rss())


if __name__ == "__main__":
    cli()
