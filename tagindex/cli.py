#!/usr/bin/env python3

import sys
from pathlib import Path

import click

from tagindex.config import configure_logging, load_config
from tagindex.exit_codes import ConfigError

# Command groups
from tagindex.commands.repo import repo_cmd
from tagindex.commands.guild import guild_cmd
from tagindex.commands.tag import tag_cmd
from tagindex.commands.db import db_cmd

# Individual commands
from tagindex.commands.serve import serve_cmd


@click.group()
@click.version_option(package_name='tagindex')
@click.option('-c', '--config', 'config_path', type=click.Path(dir_okay=False, path_type=Path),
              help='Configuration file (default: $TAGINDEX_CONFIG or ~/.tagindex/config.*)')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Override logging.level from the configuration')
@click.pass_context
def cli(ctx, config_path, log_level):
    """tagindex - Tag catalog synchronized from git repositories.

    Registers tag repositories, keeps them in sync with their remotes and
    answers guild-scoped tag lookups with priority-based name resolution.
    """
    try:
        config = load_config(config_path)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)

    configure_logging(config, log_level)
    ctx.ensure_object(dict)
    ctx.obj['config'] = config


cli.add_command(repo_cmd)
cli.add_command(guild_cmd)
cli.add_command(tag_cmd)
cli.add_command(db_cmd)
cli.add_command(serve_cmd)


def main():
    cli()

if __name__ == "__main__":
    main()
