"""
Command-line interface for the UTA bridge.

Validates configuration, reports adapter availability and runs single
turns against any runtime mode for smoke testing.
"""

import asyncio
import importlib
import json
import logging
import sys
from typing import Optional

import click
import yaml

from uta.lib.config import initialize_config, ConfigurationError
from uta.lib.logging_config import setup_logging
from uta.lib.observability import initialize_telemetry, shutdown_telemetry
from uta.lib.metrics import initialize_metrics
from uta.models.bridge_event import BridgeEvent
from uta.services.bridge_router import build_router
from uta.services.tool_dispatcher import ToolDispatcher, ToolRegistry


logger = logging.getLogger("uta.cli")


def load_dispatcher(path: Optional[str]) -> ToolDispatcher:
    """Load a dispatcher from ``module:attribute``.

    The attribute may be a dispatcher instance or a zero-argument factory
    (including a dispatcher class). Without a path an empty registry is used,
    so every tool call reports the tool as unavailable.
    """
    if not path:
        return ToolRegistry()

    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise click.BadParameter("expected module:attribute", param_hint="--dispatcher")

    target = getattr(importlib.import_module(module_name), attr)
    dispatcher = target if hasattr(target, "execute_tool") and not isinstance(target, type) else target()

    if not hasattr(dispatcher, "execute_tool"):
        raise click.BadParameter(f"{path} does not provide execute_tool", param_hint="--dispatcher")
    return dispatcher


def _print_event(event: BridgeEvent, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(event.to_wire()))
        return

    payload = event.payload
    if event.is_stream_delta:
        click.echo(payload.delta, nl=False)
    elif event.type == "tool_result":
        click.echo(f"\n[tool_result] {payload.tool}.{payload.action}: {json.dumps(payload.data, default=str)}")
    elif event.type == "status" and payload.tool:
        click.echo(f"\n[tool] {payload.tool}.{payload.action} invoked")
    elif event.type == "status" and payload.level:
        click.echo(f"\n[{payload.level}] {payload.message}", err=True)
    elif event.type == "message" and event.message.role == "user":
        click.echo(f"> {event.message.content}")


@click.group()
@click.option('--config', '-c', help='Configuration file path')
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """UTA bridge CLI."""
    ctx.ensure_object(dict)
    ctx.obj['config_path'] = config
    ctx.obj['debug'] = debug

    if debug:
        logging.basicConfig(level=logging.DEBUG)


@cli.command()
@click.pass_context
def validate(ctx):
    """Validate the bridge configuration."""
    try:
        config_manager = initialize_config(ctx.obj.get('config_path'))
        config = config_manager.get_config()
        warnings = config_manager.validate_config()

        click.echo("Configuration validation completed successfully!")
        click.echo(f"Configuration file: {config.config_file_path or '(defaults)'}")
        click.echo(f"Default mode: {config.runtime.default_mode}")
        click.echo(f"Adapter priority: {', '.join(config.runtime.adapter_priority)}")
        click.echo(f"Failover: {'enabled' if config.runtime.failover_enabled else 'disabled'}")

        if warnings:
            click.echo("\nWarnings:")
            for warning in warnings:
                click.echo(f"  - {warning}")
        else:
            click.echo("\nNo warnings found.")

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error validating configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--json', 'as_json', is_flag=True, help='Print the heartbeat as JSON')
@click.pass_context
def status(ctx, as_json):
    """Show adapter availability."""
    try:
        config = initialize_config(ctx.obj.get('config_path')).get_config()
        router = build_router(config, ToolRegistry())
        heartbeat = router.heartbeat()
        asyncio.run(router.aclose())

        if as_json:
            click.echo(json.dumps(heartbeat, indent=2))
            return

        click.echo("UTA Bridge Status")
        click.echo("=================")
        click.echo(f"Status: {heartbeat['status']}")
        click.echo(f"Default mode: {heartbeat['runtime']}")
        click.echo(f"\nAdapters ({len(heartbeat['adapters'])}):")
        for adapter in heartbeat['adapters']:
            indicator = "+" if adapter['available'] else "-"
            click.echo(f"  {indicator} {adapter['id']}: {adapter['detail']}")

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error getting status: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('message')
@click.option('--adapter', '-a', help='Runtime mode to use (defaults to the configured default)')
@click.option('--user', '-u', default='cli-user', help='User id for the session')
@click.option('--dispatcher', '-d', help='Tool dispatcher as module:attribute')
@click.option('--json', 'as_json', is_flag=True, help='Print events as JSON lines')
@click.pass_context
def send(ctx, message, adapter, user, dispatcher, as_json):
    """Run a single turn and print the streamed events."""
    try:
        config = initialize_config(ctx.obj.get('config_path')).get_config()
        setup_logging(config.logging.model_dump())

        if config.observability.enabled:
            initialize_telemetry(config.observability.model_dump())
        metrics_collector = initialize_metrics()

        router = build_router(config, load_dispatcher(dispatcher), metrics_collector=metrics_collector)
        asyncio.run(_send_impl(router, message, adapter, user, as_json))

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except click.BadParameter:
        raise
    except Exception as e:
        click.echo(f"Error processing message: {e}", err=True)
        sys.exit(1)
    finally:
        shutdown_telemetry()


async def _send_impl(router, message: str, adapter: Optional[str], user: str, as_json: bool) -> None:
    session = router.create_session(user, adapter)
    session.events.add_listener(lambda event: _print_event(event, as_json))

    try:
        routed = await router.handle_message(session.id, session.token, message)
    finally:
        snapshot = router.telemetry.snapshot()
        router.store.delete(session.id)
        await router.aclose()

    if not as_json:
        final = routed.events[-1].message if routed.events else None
        click.echo(f"\n\n[{routed.adapter_id}] {final.content if final else ''}")
        if final and final.voice_hint:
            click.echo(f"(voice) {final.voice_hint}")

        for adapter_id, totals in snapshot.totals.items():
            click.echo(
                f"telemetry {adapter_id}: {totals.success_count} ok, "
                f"{totals.failure_count} failed, avg {totals.average_ms}ms"
            )


@cli.command()
@click.option('--output', '-o', type=click.Path(), help='Output file path')
@click.pass_context
def export_config(ctx, output):
    """Export the current configuration."""
    try:
        config = initialize_config(ctx.obj.get('config_path')).get_config()
        config_dict = config.model_dump(mode="json")
        for provider in ("claude", "openai"):
            if config_dict["providers"][provider].get("api_key"):
                config_dict["providers"][provider]["api_key"] = "***"

        if output:
            with open(output, 'w') as f:
                yaml.dump(config_dict, f, default_flow_style=False, indent=2)
            click.echo(f"Configuration exported to: {output}")
        else:
            click.echo(yaml.dump(config_dict, default_flow_style=False, indent=2))

    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error exporting configuration: {e}", err=True)
        sys.exit(1)


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
