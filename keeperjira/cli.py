#!/usr/bin/env python3
"""CLI tool for keeperjira operations."""

import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from .common import generate_token, sanitize
from .config import AppConfig
from .keeper import AsyncCommandClient
from .models import AuditEntry, WebTriggerConfig
from .storage import AUDIT_LOG_KEY, WEB_TRIGGER_CONFIG_KEY, create_store

console = Console()


def load_config(config_path: str) -> AppConfig:
    if Path(config_path).exists():
        return AppConfig.load(config_path)
    return AppConfig.from_env()


@click.group()
@click.option("--config", default="config.yml", help="Configuration file path")
@click.pass_context
def cli(ctx, config):
    """keeperjira CLI for the Keeper webhook service and the Commander queue."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to webhook.host)")
@click.option("--port", default=None, type=int, help="Port (defaults to webhook.port)")
@click.pass_context
def serve(ctx, host, port):
    """Run the webhook server."""
    import uvicorn

    from .webhook.server import create_app

    config = load_config(ctx.obj["config_path"])
    host = host or config.webhook.host
    port = port or config.webhook.port

    console.print(f"🚀 Starting webhook server on {host}:{port}{config.webhook.endpoint}")
    uvicorn.run(create_app(config), host=host, port=port, log_level="info")


@cli.command("exec")
@click.argument("command")
@click.pass_context
def exec_command(ctx, command):
    """Run a Commander command through the async queue and print the result."""
    config = load_config(ctx.obj["config_path"])

    async def run():
        async with AsyncCommandClient.from_config(config.keeper) as client:
            return await client.execute_command(command)

    try:
        console.print(f"⏳ Submitting: {command}")
        result = asyncio.run(run())
        console.print_json(json.dumps(result["data"], default=str))
        console.print(f"✅ {result['message']}")
    except Exception as e:
        console.print(f"❌ Command failed: {e}", style="red")
        sys.exit(1)


@cli.command()
@click.pass_context
def test_connection(ctx):
    """Check that the Commander service answers ``service-status``."""
    config = load_config(ctx.obj["config_path"])

    async def run():
        async with AsyncCommandClient.from_config(config.keeper) as client:
            return await client.test_connection()

    try:
        result = asyncio.run(run())
        console.print(f"✅ {result['message']}")
    except Exception as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)


@cli.command()
@click.pass_context
def show_config(ctx):
    """Print the loaded configuration with secrets masked."""
    try:
        config = load_config(ctx.obj["config_path"])
        console.print_json(json.dumps(sanitize(asdict(config)), default=str))
    except Exception as e:
        console.print(f"❌ Error loading configuration: {e}", style="red")
        sys.exit(1)


@cli.command()
@click.option("--project-key", required=True, help="Jira project for new tickets")
@click.option("--issue-type", required=True, help="Jira issue type for new tickets")
@click.option("--token", default=None, help="Webhook bearer token (generated when omitted)")
@click.pass_context
def configure_webhook(ctx, project_key, issue_type, token):
    """Store the web trigger configuration used by the webhook."""
    config = load_config(ctx.obj["config_path"])
    trigger = WebTriggerConfig(
        projectKey=project_key, issueType=issue_type, webhookToken=token or generate_token()
    )

    async def run():
        store = create_store(config.storage, config.retry.storage)
        try:
            await store.set(WEB_TRIGGER_CONFIG_KEY, trigger.model_dump())
        finally:
            await store.close()

    try:
        asyncio.run(run())
        console.print(f"✅ Webhook configured for {project_key} ({issue_type})")
        if not token:
            console.print(f"🔑 Generated webhook token: {trigger.webhookToken}")
    except Exception as e:
        console.print(f"❌ Error configuring webhook: {e}", style="red")
        sys.exit(1)


@cli.command()
@click.option("--limit", default=20, help="Number of entries to show")
@click.pass_context
def audit(ctx, limit):
    """Show the most recent webhook outcomes."""
    config = load_config(ctx.obj["config_path"])

    async def run():
        store = create_store(config.storage, config.retry.storage)
        try:
            return await store.get(AUDIT_LOG_KEY) or []
        finally:
            await store.close()

    try:
        entries = [AuditEntry.model_validate(e) for e in asyncio.run(run())]
    except Exception as e:
        console.print(f"❌ Error reading audit log: {e}", style="red")
        sys.exit(1)

    if not entries:
        console.print("No webhook deliveries recorded")
        return

    table = Table(title="Webhook Audit Log")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Outcome", style="green")
    table.add_column("Status", style="yellow")
    table.add_column("Request", style="magenta")
    table.add_column("Issue", style="white")

    for entry in entries[:limit]:
        table.add_row(
            entry.timestamp,
            entry.outcome,
            str(entry.statusCode),
            entry.requestUid or "-",
            entry.issueKey or "-",
        )

    console.print(table)


if __name__ == "__main__":
    cli()
