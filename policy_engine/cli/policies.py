"""
CLI commands for policy store management.

Provides commands to show, import and clear the policies held in a JSON
policy file.
"""

import asyncio
import functools
import json
import sys
from pathlib import Path

import click

from policy_engine.cli.main import CLIContext, pass_context
from policy_engine.exceptions import PolicyEngineError
from policy_engine.logging_config import get_logger
from policy_engine.utils.json_handler import JsonHandler

logger = get_logger(__name__)

SCREEN_NAME = "PolicyCLI"


def handle_policy_engine_error(func):
    """
    Decorator to handle PolicyEngineError exceptions in CLI commands.

    Catches PolicyEngineError exceptions and displays user-friendly error messages.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PolicyEngineError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    return wrapper


def _summarize(value) -> str:
    text = json.dumps(value, separators=(',', ':'))
    if len(text) > 60:
        return text[:57] + "..."
    return text


@click.group(name='policies')
def policies_group():
    """Policy store operations."""
    pass


@policies_group.command(name='show')
@click.option(
    '--format',
    '-f',
    'output_format',
    type=click.Choice(['table', 'json'], case_sensitive=False),
    default='table',
    help='Output format (default: table)',
)
@pass_context
@handle_policy_engine_error
def show(ctx: CLIContext, output_format: str):
    """
    Show the policies stored in the policy file.

    Examples:

        policy-engine policies show

        policy-engine --store ./policies.json policies show --format json
    """
    log = ctx.log_handler
    log.set_screen(SCREEN_NAME)
    storage = ctx.get_storage()

    policies = asyncio.run(log.time_async("load_policies", storage.load_policies))

    if output_format.lower() == 'json':
        click.echo(json.dumps(policies, indent=2))
        return

    if not policies:
        click.echo(f"No policies stored in {ctx.policy_path}")
        return

    width = max(len("Policy ID"), *(len(policy_id) for policy_id in policies))
    click.echo(f"{'Policy ID'.ljust(width)}  Configuration")
    click.echo(f"{'-' * width}  {'-' * 13}")
    for policy_id in sorted(policies):
        click.echo(f"{policy_id.ljust(width)}  {_summarize(policies[policy_id])}")
    click.echo()
    click.echo(f"Total: {len(policies)} policies")


@policies_group.command(name='import')
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@pass_context
@handle_policy_engine_error
def import_policies(ctx: CLIContext, source: str):
    """
    Replace the stored policies with the contents of a JSON file.

    SOURCE must contain a single JSON object mapping policy identifiers to
    policy configuration.

    Examples:

        policy-engine policies import ./policies.json
    """
    log = ctx.log_handler
    log.set_screen(SCREEN_NAME)
    storage = ctx.get_storage()

    try:
        content = Path(source).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise click.ClickException(f"Failed to read {source}: {e}")

    policies = JsonHandler(log).parse_json_string(content, context=source)
    asyncio.run(log.time_async("save_policies", lambda: storage.save_policies(policies)))

    logger.info(f"Imported {len(policies)} policies from {source} into {ctx.policy_path}")
    click.echo(f"✓ Imported {len(policies)} policies into {ctx.policy_path}")


@policies_group.command(name='clear')
@click.option(
    '--yes',
    '-y',
    is_flag=True,
    help='Do not prompt for confirmation',
)
@pass_context
@handle_policy_engine_error
def clear(ctx: CLIContext, yes: bool):
    """
    Permanently delete all stored policies and their backups.

    Examples:

        policy-engine policies clear --yes
    """
    if not yes:
        click.confirm(
            f"Delete all policies in {ctx.policy_path}? This cannot be undone",
            abort=True,
        )

    log = ctx.log_handler
    log.set_screen(SCREEN_NAME)
    storage = ctx.get_storage()

    asyncio.run(log.time_async("clear_policies", storage.clear_policies))
    click.echo(f"✓ Cleared policies in {ctx.policy_path}")
