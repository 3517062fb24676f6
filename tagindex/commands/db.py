"""
Database maintenance commands for tagindex.
"""

import click

from ..cli_utils import console, get_config, json_option, output_jsonl, standard_command
from ..database import get_database_info, reset_database


@click.group(name='db')
def db_cmd():
    """Inspect or reset the catalog database."""
    pass


@db_cmd.command('info')
@json_option
@click.pass_context
@standard_command
def db_info(ctx, json_output):
    """Show database location, schema version and row counts."""
    info = get_database_info(get_config(ctx))
    if json_output:
        output_jsonl([info])
        return

    if not info['exists']:
        console.print(f"[yellow]No database at {info['path']}[/yellow]")
        return

    for key, value in info.items():
        if key != 'exists':
            console.print(f"[cyan]{key}[/cyan]: {value}")


@db_cmd.command('reset')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
@standard_command
def db_reset(ctx, yes):
    """Delete all tags, repositories and subscriptions."""
    if not yes:
        click.confirm("This deletes every repository, tag and subscription. Continue?", abort=True)
    reset_database(get_config(ctx))
    console.print("[green]Database reset[/green]")
