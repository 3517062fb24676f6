"""
Handles the 'serve' command: run the background sync scheduler.
"""

import logging

import click

from ..cli_utils import console, get_config, standard_command
from ..services import SyncRequest, SyncScheduler, SyncService

logger = logging.getLogger(__name__)


@click.command(name='serve')
@click.option('--tick', type=float, default=60.0, show_default=True,
              help='Seconds between checks for due repositories')
@click.option('--once', is_flag=True, help='Dispatch due repositories once, wait for them and exit')
@click.pass_context
@standard_command
def serve_cmd(ctx, tick, once):
    """Keep all registered repositories in sync.

    \b
    Every TICK seconds, repositories whose last check is older than
    repositories.check_interval_minutes are synced on a pool of
    repositories.workers threads.
    """
    service = SyncService(get_config(ctx))
    scheduler = SyncScheduler(service, tick_seconds=tick)

    if once:
        dispatched = scheduler.run_once()
        service.shutdown(wait=True)
        accepted = sum(1 for _, request in dispatched if request == SyncRequest.ACCEPTED)
        console.print(f"Dispatched {accepted} of {len(dispatched)} due repositories")
        return

    logger.info(f"Serving with {service.workers} workers")
    scheduler.run_forever()
