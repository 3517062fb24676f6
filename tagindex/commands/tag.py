"""
Tag lookup commands for tagindex.

Operator access to the guild-scoped query surface: the same resolution,
completion and ranking a chat frontend would use.
"""

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..cli_utils import console, get_config, json_option, output_jsonl, standard_command
from ..domain.tag import Tag
from ..services import TagService


@click.group(name='tag')
def tag_cmd():
    """Look up tags as a guild sees them."""
    pass


@tag_cmd.command('show')
@click.argument('guild_id', type=int)
@click.argument('name_or_id')
@click.option('--page', type=int, default=1, show_default=True, help='Page of the tag content')
@click.option('--count-use', is_flag=True, help='Count this lookup as a use of the tag')
@json_option
@click.pass_context
@standard_command
def tag_show(ctx, guild_id, name_or_id, page, count_use, json_output):
    """Resolve NAME_OR_ID for GUILD_ID and show it."""
    service = TagService(guild_id, config=get_config(ctx))
    tag = service.resolve_tag(name_or_id)
    if tag is None:
        raise click.ClickException(f"No tag '{name_or_id}' for guild {guild_id}")

    if count_use:
        service.used(tag)

    if json_output:
        output_jsonl([{**tag.to_dict(), 'pages': tag.pages()}])
        return

    _print_tag(tag, page)


@tag_cmd.command('complete')
@click.argument('guild_id', type=int)
@click.argument('value', default='')
@json_option
@click.pass_context
@standard_command
def tag_complete(ctx, guild_id, value, json_output):
    """Autocomplete VALUE against the tags of GUILD_ID."""
    suggestions = TagService(guild_id, config=get_config(ctx)).complete(value)
    if json_output:
        output_jsonl({'id': s.id, 'name': s.name} for s in suggestions)
        return
    for suggestion in suggestions:
        console.print(f"{escape(suggestion.name)} [dim]#{suggestion.id}[/dim]")


@tag_cmd.command('ranking')
@click.argument('guild_id', type=int)
@click.option('--page', type=int, default=1, show_default=True)
@click.option('--size', type=int, default=10, show_default=True)
@json_option
@click.pass_context
@standard_command
def tag_ranking(ctx, guild_id, page, size, json_output):
    """Most used tags of GUILD_ID."""
    entries = TagService(guild_id, config=get_config(ctx)).ranking_page(page - 1, size)
    if json_output:
        output_jsonl({'rank': e.rank, 'name': e.name, 'views': e.views} for e in entries)
        return

    if not entries:
        console.print("[yellow]No tags[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Rank", justify="right")
    table.add_column("Tag")
    table.add_column("Views", justify="right")
    for entry in entries:
        table.add_row(str(entry.rank), entry.name, str(entry.views))
    console.print(table)


@tag_cmd.command('random')
@click.argument('guild_id', type=int)
@json_option
@click.pass_context
@standard_command
def tag_random(ctx, guild_id, json_output):
    """Show a random tag of GUILD_ID."""
    tag = TagService(guild_id, config=get_config(ctx)).random()
    if tag is None:
        raise click.ClickException(f"Guild {guild_id} has no tags")
    if json_output:
        output_jsonl([tag.to_dict()])
        return
    _print_tag(tag, 1)


@tag_cmd.command('count')
@click.argument('guild_id', type=int)
@json_option
@click.pass_context
@standard_command
def tag_count(ctx, guild_id, json_output):
    """Number of tags visible to GUILD_ID."""
    total = TagService(guild_id, config=get_config(ctx)).count()
    if json_output:
        output_jsonl([{'guild_id': guild_id, 'count': total}])
        return
    console.print(str(total))


def _print_tag(tag: Tag, page: int) -> None:
    pages = tag.pages() or [""]
    page = min(max(page, 1), len(pages))
    subtitle = f"{tag.repository.identifier} · page {page}/{len(pages)}"
    console.print(Panel(Text(pages[page - 1]), title=Text(f"{tag.name} #{tag.id}"), subtitle=Text(subtitle)))
    if tag.aliases:
        console.print(f"[dim]Aliases: {', '.join(tag.aliases)}[/dim]")
    if tag.categories:
        console.print(f"[dim]Categories: {', '.join(tag.categories)}[/dim]")
    if tag.meta:
        console.print(
            f"[dim]Created {tag.meta.created:%Y-%m-%d} by {tag.meta.created_by.name}, "
            f"modified {tag.meta.modified:%Y-%m-%d} by {tag.meta.modified_by.name}[/dim]"
        )
