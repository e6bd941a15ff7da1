#!/usr/bin/env python3
"""
Callwatch CLI - Command Line Interface
Inspect configuration, check collector connectivity and read spooled payloads
"""

import json
import os
import sys
import zlib
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from callwatch._version import __version__
from callwatch.core.config import Settings
from callwatch.core.exceptions import CallwatchError
from callwatch.core.logging import SensitiveDataMasker
from callwatch.reporting.codec import codec
from callwatch.reporting.reporter import Reporter
from callwatch.reporting.router import DeliveryRouter, scheme_of
from callwatch.scm import detect_scm
from callwatch.session import Session


console = Console()


def load_settings(config: Optional[str]) -> Settings:
    """Settings from an explicit file or the working directory."""
    try:
        return Settings(Path(config) if config else None)
    except CallwatchError as e:
        raise click.ClickException(e.message)


@click.group()
@click.version_option(version=__version__, prog_name="callwatch")
def cli():
    """
    Callwatch - in-process call instrumentation

    Times intercepted calls and reports them to a collector.
    """
    pass


@cli.command()
@click.option('--config', type=click.Path(dir_okay=False), help='Configuration file (default: ./.callwatch)')
def endpoints(config: Optional[str]):
    """Show the update locations in the order they are tried"""
    settings = load_settings(config)
    router = DeliveryRouter.from_settings(settings)
    masker = SensitiveDataMasker()

    table = Table(title="Update locations")
    table.add_column("#", justify="right")
    table.add_column("Transport")
    table.add_column("Endpoint")

    position = 1
    for scheme, uris in router.uris_by_scheme(settings.update_locations):
        for uri in uris:
            table.add_row(str(position), scheme, masker.mask(uri))
            position += 1

    console.print(table)
    console.print(f"[dim]Interval: {settings.interval}s[/dim]")
    if not settings.app_token and any(scheme_of(uri) == "http" for uri in settings.update_locations):
        console.print("[yellow]No application token set (CALLWATCH_APP); HTTP delivery will fail[/yellow]")


@cli.command()
@click.option('--config', type=click.Path(dir_okay=False), help='Configuration file (default: ./.callwatch)')
def ping(config: Optional[str]):
    """Send a ping payload through the configured endpoints"""
    settings = load_settings(config)
    reporter = Reporter(
        Session(),
        DeliveryRouter.from_settings(settings),
        settings.update_locations,
        interval=settings.interval,
        scm=detect_scm(),
    )

    try:
        with console.status("[bold cyan]Pinging collector...[/bold cyan]"):
            delivered = reporter.ping()
    finally:
        reporter.shutdown()

    if delivered:
        console.print("[bold green]✓ Ping delivered[/bold green]")
    else:
        console.print("[bold red]✗ No endpoint accepted the ping[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--compact', is_flag=True, help='Print without indentation')
def decode(path: str, compact: bool):
    """Print the JSON body of a payload written by the file transport"""
    blob = Path(path).read_bytes()
    try:
        data = codec.unpack(blob)
    except (zlib.error, ValueError) as e:
        raise click.ClickException(f"Not a callwatch payload: {e}")

    if compact:
        click.echo(json.dumps(data, separators=(",", ":")))
    else:
        console.print_json(json.dumps(data))


def main():
    """Main entry point"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user.")
        sys.exit(0)
    except Exception as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        if os.environ.get('CALLWATCH_DEBUG'):
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
