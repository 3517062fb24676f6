"""
Background sync scheduler for tagindex.

Wakes up periodically and hands every repository that is due for a check
to the SyncService worker pool. The scheduler thread itself never touches
git, so a slow remote cannot stall it.
"""

import logging
import threading
from typing import List, Optional, Tuple

from ..database import Database, get_due_repositories
from ..domain.repository import Repository
from .sync_service import SyncRequest, SyncService

logger = logging.getLogger(__name__)


class SyncScheduler:
    """
    Timer loop dispatching due repositories.

    Example:
        scheduler = SyncScheduler(SyncService(config), tick_seconds=60)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(self, service: SyncService, tick_seconds: float = 60.0):
        self.service = service
        self.tick_seconds = tick_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> List[Tuple[Repository, SyncRequest]]:
        """Submit every due repository once."""
        now = self.service.clock()
        with Database(db_path=self.service.db_path) as db:
            due = get_due_repositories(db, self.service.check_interval, now)

        dispatched = []
        for repository in due:
            request = self.service.request_sync(repository)
            if request == SyncRequest.ACCEPTED:
                logger.debug(f"Scheduled sync of {repository.identifier}")
            dispatched.append((repository, request))
        return dispatched

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="tagindex-scheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started, checking every {self.tick_seconds:g}s")

    def stop(self, wait: bool = True) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self.service.shutdown(wait=wait)
        logger.info("Scheduler stopped")

    def run_forever(self) -> None:
        """Run the loop on the calling thread until ``stop()`` or Ctrl-C."""
        try:
            self._loop()
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            self.service.shutdown(wait=True)

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                # Keep scheduling; the next tick retries
                logger.exception("Scheduler tick failed")
            self._stop.wait(self.tick_seconds)
