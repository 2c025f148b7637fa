"""
auth/reaper.py -- Periodic purge of stale refresh-token records.

A record becomes eligible once it has been expired for a full refresh-TTL
window: each sweep deletes rows with expires_at < now - refresh_ttl. Rows
that expired more recently are left alone; refresh() already rejects them.

run_forever() is started as an asyncio task from the FastAPI lifespan. Each
tick sleeps until the schedule's next fire time, then runs one sweep to
completion in a worker thread before sleeping again, so request handlers on
the event loop are never blocked and sweeps never overlap. CancelledError
from task.cancel() during shutdown propagates out of asyncio.sleep and
unwinds the coroutine cleanly.

The schedule is any object with seconds_until_next(now) -> float;
core/schedule.py provides the cron and fixed-interval ones.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta

from auth.ledger import RefreshTokenLedger
from auth.store import utcnow

logger = logging.getLogger("authservice.reaper")


class ExpiryReaper:
    """Deletes ledger rows whose expiry predates now - refresh_ttl.

    Usage:
        reaper = ExpiryReaper(ledger, refresh_ttl=604800, schedule=parse_schedule("@hourly"))
        reaper.sweep()                                    # one-shot, returns count
        task = asyncio.create_task(reaper.run_forever())  # periodic
    """

    def __init__(self, ledger: RefreshTokenLedger, refresh_ttl: int, schedule) -> None:
        self.ledger = ledger
        self.refresh_ttl = refresh_ttl
        self.schedule = schedule
        self._running = threading.Lock()

    def cutoff(self, now: datetime | None = None) -> datetime:
        return (now or utcnow()) - timedelta(seconds=self.refresh_ttl)

    def sweep(self, now: datetime | None = None) -> int:
        """Run one bulk delete. Returns rows removed; 0 if another sweep is in progress."""
        if not self._running.acquire(blocking=False):
            logger.info("Reaper sweep skipped: previous sweep still running")
            return 0
        try:
            cutoff = self.cutoff(now)
            removed = self.ledger.purge_expired_before(cutoff)
        finally:
            self._running.release()
        logger.info("Reaper removed %d refresh token record(s) expired before %s", removed, cutoff.isoformat())
        return removed

    async def run_forever(self) -> None:
        """Sweep on every schedule tick until cancelled.

        A failed sweep is logged and the loop keeps its schedule; the next
        tick retries naturally.
        """
        while True:
            await asyncio.sleep(self.schedule.seconds_until_next(utcnow()))
            try:
                await asyncio.to_thread(self.sweep)
            except Exception:
                logger.exception("Reaper sweep failed")
