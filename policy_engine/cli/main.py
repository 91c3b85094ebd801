"""
Entry point for the policy-engine command-line interface.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click

from policy_engine._version import __version__
from policy_engine.config import PolicyEngineConfig, load_config
from policy_engine.core.file_storage import FilePolicyStorage
from policy_engine.exceptions import ConfigurationError
from policy_engine.logging_config import setup_logging
from policy_engine.utils.log_handler import LogHandler


@dataclass
class CLIContext:
    """
    Shared state for CLI commands.

    Attributes:
        config: Loaded configuration
        log_handler: LogHandler built from the configuration
        store_override: Policy file given on the command line, if any
    """
    config: PolicyEngineConfig
    log_handler: LogHandler
    store_override: Optional[Path] = None

    @property
    def policy_path(self) -> Path:
        if self.store_override is not None:
            return self.store_override
        return self.config.storage.policy_store_path

    def get_storage(self) -> FilePolicyStorage:
        return FilePolicyStorage(
            self.policy_path,
            backup_count=self.config.storage.backup_count,
            log_handler=self.log_handler,
        )


pass_context = click.make_pass_decorator(CLIContext)


@click.group()
@click.version_option(__version__, prog_name="policy-engine")
@click.option(
    '--config',
    '-c',
    'config_path',
    type=click.Path(dir_okay=False),
    default=None,
    help='Path to YAML configuration file',
)
@click.option(
    '--store',
    '-s',
    type=click.Path(dir_okay=False),
    default=None,
    help='Policy file to operate on (overrides storage.policy_store)',
)
@click.pass_context
def cli(ctx, config_path: Optional[str], store: Optional[str]):
    """Inspect and manage stored policy definitions."""
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    setup_logging(
        level=config.logging.level,
        log_file=Path(config.logging.file).expanduser() if config.logging.file else None,
        json_format=config.logging.json_format,
    )

    ctx.obj = CLIContext(
        config=config,
        log_handler=config.build_log_handler(),
        store_override=Path(store).expanduser() if store else None,
    )


def _register_commands() -> None:
    from policy_engine.cli.policies import policies_group

    cli.add_command(policies_group)


_register_commands()


def main() -> None:
    cli()


if __name__ == '__main__':
    main()
