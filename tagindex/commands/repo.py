"""
Repository commands for tagindex.

Register tag repositories, sync them and inspect sync errors.
"""

import sys
from typing import Optional

import click
from rich.table import Table

from ..cli_utils import console, err_console, get_config, json_option, output_jsonl, standard_command
from ..exit_codes import PARTIAL_SUCCESS, RATE_LIMITED, SUCCESS
from ..services import RepositoryService, SyncReport, SyncRequest, SyncService, SyncState
from ..utils import format_timestamp


@click.group(name='repo')
def repo_cmd():
    """Manage tag repositories.

    \b
    Repositories are named by identifier:
        github:user/repo
        gitlab:group/repo/sub/dir   (catalog in a sub-directory)
    """
    pass


@repo_cmd.command('add')
@click.argument('identifier')
@click.option('--url', help='Clone URL (default: from the platform template)')
@click.option('--sync', 'sync_now', is_flag=True, help='Sync right after registering')
@click.pass_context
@standard_command
def repo_add(ctx, identifier, url, sync_now):
    """Register a repository."""
    config = get_config(ctx)
    repository = RepositoryService(config).add(identifier, url=url)
    console.print(f"[green]Registered {repository.identifier}[/green] ({repository.url})")

    if sync_now:
        report = SyncService(config).sync(repository, force=True)
        _print_report(report)
        sys.exit(_exit_code([report]))


@repo_cmd.command('remove')
@click.argument('identifier')
@click.option('--keep-files', is_flag=True, help='Keep the local working copy')
@click.pass_context
@standard_command
def repo_remove(ctx, identifier, keep_files):
    """Unregister a repository and delete its tags."""
    repository = RepositoryService(get_config(ctx)).remove(identifier, keep_files=keep_files)
    console.print(f"[green]Removed {repository.identifier}[/green]")


@repo_cmd.command('list')
@click.option('--public', 'public_only', is_flag=True, help='Only publicly listed repositories')
@click.option('--category', help='With --public: filter by category')
@click.option('--language', help='With --public: filter by language')
@json_option
@click.pass_context
@standard_command
def repo_list(ctx, public_only, category, language, json_output):
    """List registered repositories."""
    service = RepositoryService(get_config(ctx))
    if public_only or category or language:
        repositories = service.public_repositories(category=category, language=language)
    else:
        repositories = service.list()

    rows = []
    for repository in repositories:
        data, meta = service.status(repository)
        rows.append((repository, data, meta))

    if json_output:
        output_jsonl(
            {
                **repository.to_dict(),
                'revision': data.revision,
                'updated': format_timestamp(data.updated),
                'checked': format_timestamp(data.checked),
                'meta': meta.to_dict(),
            }
            for repository, data, meta in rows
        )
        return

    if not rows:
        console.print("[yellow]No repositories registered[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("Identifier")
    table.add_column("Name")
    table.add_column("Revision")
    table.add_column("Checked")
    table.add_column("Public")
    for repository, data, meta in rows:
        table.add_row(
            str(repository.id),
            repository.identifier,
            meta.name or "",
            (data.revision or "")[:12],
            format_timestamp(data.checked) or "never",
            "yes" if meta.public else "",
        )
    console.print(table)


@repo_cmd.command('sync')
@click.argument('identifier', required=False)
@click.option('--force', is_flag=True, help='Sync even if the repository is not due yet')
@json_option
@click.pass_context
@standard_command
def repo_sync(ctx, identifier, force, json_output):
    """Sync one repository, or every registered repository.

    A repository checked less than repositories.min_check_minutes ago is
    never synced, even with --force.
    """
    config = get_config(ctx)
    repositories = RepositoryService(config)
    targets = [repositories.get(identifier)] if identifier else repositories.list()

    service = SyncService(config)
    try:
        reports = list(service.sync_all(targets, force=force))
    finally:
        service.shutdown()

    if json_output:
        output_jsonl(report.to_dict() for report in reports)
    else:
        for report in reports:
            _print_report(report)

    sys.exit(_exit_code(reports))


@repo_cmd.command('errors')
@click.argument('identifier', required=False)
@click.option('--clear', is_flag=True, help='Delete the recorded errors')
@click.option('--limit', type=int, help='Show at most this many errors')
@json_option
@click.pass_context
@standard_command
def repo_errors(ctx, identifier, clear, limit, json_output):
    """Show documents skipped and syncs failed during the last syncs."""
    service = RepositoryService(get_config(ctx))
    if clear:
        cleared = service.clear_errors(identifier)
        console.print(f"Cleared {cleared} error(s)")
        return

    errors = service.errors(identifier, limit=limit)
    if json_output:
        output_jsonl(errors)
        return

    if not errors:
        console.print("[green]No sync errors[/green]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Repository")
    table.add_column("Path")
    table.add_column("Type")
    table.add_column("Message")
    table.add_column("Revision")
    for error in errors:
        table.add_row(
            error['identifier'],
            error['path'] or "-",
            error['error_type'],
            error['error_message'] or "",
            (error['revision'] or "")[:12],
        )
    console.print(table)


def _print_report(report: SyncReport) -> None:
    if report.request == SyncRequest.RATE_LIMITED:
        err_console.print(f"[yellow]{report.repository}: checked recently, try again later[/yellow]")
        return
    if report.state == SyncState.FAILED:
        err_console.print(f"[red]{report.repository}: sync failed: {report.error}[/red]")
        return
    if report.state == SyncState.UP_TO_DATE:
        console.print(f"{report.repository}: up to date at {_short(report.revision)}")
        return

    console.print(
        f"[green]{report.repository}[/green]: synced {_short(report.previous_revision) or 'nothing'}"
        f" -> {_short(report.revision)}: {report.inserted} added, {report.updated} updated,"
        f" {report.removed} removed"
    )
    for path, error in report.skipped:
        err_console.print(f"  [yellow]skipped {path}: {error}[/yellow]")


def _short(revision: Optional[str]) -> str:
    return (revision or "")[:12]


def _exit_code(reports) -> int:
    if not reports:
        return SUCCESS
    if len(reports) == 1:
        report = reports[0]
        if report.request == SyncRequest.RATE_LIMITED:
            return RATE_LIMITED
        if report.error is not None:
            return report.error.exit_code
    if any(r.failed or r.skipped for r in reports):
        return PARTIAL_SUCCESS
    return SUCCESS
