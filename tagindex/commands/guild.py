"""
Guild subscription commands for tagindex.
"""

import click
from rich.table import Table

from ..cli_utils import console, get_config, json_option, output_jsonl, standard_command
from ..services import RepositoryService


@click.group(name='guild')
def guild_cmd():
    """Manage guild subscriptions.

    When several subscribed repositories define the same tag name, the one
    with the highest priority answers for the bare name.
    """
    pass


@guild_cmd.command('subscribe')
@click.argument('guild_id', type=int)
@click.argument('repository')
@click.option('-p', '--priority', type=int, default=1, show_default=True, help='Higher wins name collisions')
@click.pass_context
@standard_command
def guild_subscribe(ctx, guild_id, repository, priority):
    """Subscribe GUILD_ID to REPOSITORY (id or identifier)."""
    service = RepositoryService(get_config(ctx))
    subscription = service.subscribe(guild_id, repository, priority)
    console.print(
        f"[green]Guild {guild_id} subscribed to {service.get(subscription.repository_id).identifier}"
        f" with priority {subscription.priority}[/green]"
    )


@guild_cmd.command('unsubscribe')
@click.argument('guild_id', type=int)
@click.argument('repository')
@click.pass_context
@standard_command
def guild_unsubscribe(ctx, guild_id, repository):
    """Unsubscribe GUILD_ID from REPOSITORY."""
    if RepositoryService(get_config(ctx)).unsubscribe(guild_id, repository):
        console.print(f"[green]Guild {guild_id} unsubscribed from {repository}[/green]")
    else:
        console.print(f"[yellow]Guild {guild_id} is not subscribed to {repository}[/yellow]")


@guild_cmd.command('list')
@click.argument('guild_id', type=int)
@json_option
@click.pass_context
@standard_command
def guild_list(ctx, guild_id, json_output):
    """List the subscriptions of GUILD_ID, highest priority first."""
    subscriptions = RepositoryService(get_config(ctx)).subscriptions(guild_id)

    if json_output:
        output_jsonl(
            {**s.repository.to_dict(), 'priority': s.priority, 'meta': s.meta.to_dict()}
            for s in subscriptions
        )
        return

    if not subscriptions:
        console.print(f"[yellow]Guild {guild_id} has no subscriptions[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Identifier")
    table.add_column("Name")
    table.add_column("Categories")
    for s in subscriptions:
        table.add_row(str(s.priority), s.repository.identifier, s.meta.name or "", ", ".join(s.meta.categories))
    console.print(table)
