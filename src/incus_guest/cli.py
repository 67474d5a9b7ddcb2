"""incus-guest CLI.

Talks to the dev-incus socket from inside an instance.

Usage:
    incus-guest check                     # Exit 0 when inside an instance
    incus-guest info                      # Instance and API information
    incus-guest devices                   # Attached devices
    incus-guest config list               # Available config keys
    incus-guest config get <key>          # Value of a key (user. implied)
    incus-guest config has <key>          # Exit 0 when the key is set
    incus-guest metadata                  # cloud-init meta-data
    incus-guest events --type config      # Follow change notifications
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import click

from .client import GuestClient
from .config import GuestConfig
from .decoder import encode_event
from .errors import GuestAPIError
from .transport import is_inside_instance
from .types import ConfigEvent, DeviceEvent, EventType

T = TypeVar("T")

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

format_option = click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)


def format_event(event: ConfigEvent | DeviceEvent) -> str:
    """Render an event as one line of text."""
    if isinstance(event, ConfigEvent):
        update = event.metadata
        return (
            f"[{event.timestamp}] config {update.key}: "
            f"{update.old_value!r} -> {update.value!r}"
        )

    update = event.metadata
    details = ", ".join(part for part in (update.config.type, update.config.path) if part)
    line = f"[{event.timestamp}] device {update.name} {update.action}"
    return f"{line} ({details})" if details else line


def _client(ctx: click.Context) -> GuestClient:
    return GuestClient(ctx.obj["config"], transport=ctx.obj.get("transport"))


def _run(ctx: click.Context, call: Callable[[GuestClient], Awaitable[T]]) -> T:
    """Run one client call, exiting with status 1 on API errors."""

    async def execute() -> T:
        async with _client(ctx) as client:
            return await call(client)

    try:
        return asyncio.run(execute())
    except GuestAPIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("--socket", "socket_path", default=None, help="Path of the dev-incus socket")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level for messages on stderr",
)
@click.pass_context
def main(ctx: click.Context, socket_path: str | None, log_level: str | None) -> None:
    """Query the Incus guest API from inside an instance."""
    try:
        guest_config = GuestConfig.from_env(socket_path=socket_path, log_level=log_level)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    logging.basicConfig(
        level=getattr(logging, guest_config.log_level.upper(), logging.WARNING),
        format="%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = guest_config


@main.command()
@click.pass_context
def check(ctx: click.Context) -> None:
    """Check whether the dev-incus socket is reachable."""
    socket_path = ctx.obj["config"].socket_path
    if not is_inside_instance(socket_path):
        click.echo(f"Not running inside an Incus instance ({socket_path} unreachable)", err=True)
        sys.exit(1)
    click.echo("Running inside an Incus instance")


@main.command()
@format_option
@click.pass_context
def info(ctx: click.Context, output_format: str) -> None:
    """Show API and instance information."""
    result = _run(ctx, lambda client: client.info())

    if output_format == FORMAT_JSON:
        click.echo(result.model_dump_json(indent=2))
        return

    click.echo(f"API version:   {result.api_version or 'N/A'}")
    click.echo(f"Location:      {result.location or 'N/A'}")
    click.echo(f"Instance type: {result.instance_type or 'N/A'}")
    click.echo(f"State:         {result.state or 'N/A'}")


@main.command()
@format_option
@click.pass_context
def devices(ctx: click.Context, output_format: str) -> None:
    """List devices attached to the instance."""
    result = _run(ctx, lambda client: client.devices())

    if output_format == FORMAT_JSON:
        click.echo(json.dumps(result, indent=2, sort_keys=True))
        return

    if not result:
        click.echo("No devices found.")
        return

    click.echo(f"{'Name':<20} {'Type':<12} {'Details':<40}")
    click.echo("-" * 74)
    for name, device in sorted(result.items()):
        details = ", ".join(f"{k}={v}" for k, v in sorted(device.items()) if k != "type")
        click.echo(f"{name:<20} {device.get('type', ''):<12} {details:<40}")


# =============================================================================
# Config Commands
# =============================================================================


@main.group()
def config() -> None:
    """Read instance config keys."""


@config.command("list")
@format_option
@click.pass_context
def config_list(ctx: click.Context, output_format: str) -> None:
    """List config keys available to the instance."""
    keys = _run(ctx, lambda client: client.list_config())

    if output_format == FORMAT_JSON:
        click.echo(json.dumps(keys, indent=2))
        return

    for key in keys:
        click.echo(key)


@config.command("get")
@click.argument("key")
@click.option("--require", is_flag=True, help="Fail when the key is unset or blank")
@click.pass_context
def config_get(ctx: click.Context, key: str, require: bool) -> None:
    """Print the value of KEY (looked up under user. unless namespaced)."""
    if require:
        value = _run(ctx, lambda client: client.must_config(key))
    else:
        value = _run(ctx, lambda client: client.get_config(key))
    click.echo(value)


@config.command("has")
@click.argument("key")
@click.pass_context
def config_has(ctx: click.Context, key: str) -> None:
    """Exit 0 if KEY is set, 1 otherwise."""
    if not _run(ctx, lambda client: client.has_config(key)):
        click.echo(f"Config key not set: {key}", err=True)
        sys.exit(1)
    click.echo(f"Config key set: {key}")


@main.command()
@click.pass_context
def metadata(ctx: click.Context) -> None:
    """Print the cloud-init meta-data."""
    click.echo(_run(ctx, lambda client: client.metadata()), nl=False)


# =============================================================================
# Events
# =============================================================================


@main.command()
@click.option(
    "--type",
    "-t",
    "event_types",
    multiple=True,
    type=click.Choice([t.value for t in EventType]),
    help="Event type to follow (repeatable, default: all)",
)
@format_option
@click.pass_context
def events(ctx: click.Context, event_types: tuple[str, ...], output_format: str) -> None:
    """Follow config and device events until interrupted."""

    async def on_event(event: ConfigEvent | DeviceEvent) -> None:
        if output_format == FORMAT_JSON:
            click.echo(encode_event(event))
        else:
            click.echo(format_event(event))

    async def follow(client: GuestClient) -> Any:
        try:
            await client.listen_for_events(on_event, *event_types)
        finally:
            await client.listener.join()

    click.echo("Listening for events, press Ctrl+C to stop", err=True)
    try:
        _run(ctx, follow)
    except KeyboardInterrupt:
        click.echo("\nStopped", err=True)
