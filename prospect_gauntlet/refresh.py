"""Stale-prospect refresh: re-run the gauntlet for prospects not seen lately."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from prospect_gauntlet.storage.database import Database

logger = logging.getLogger(__name__)

DEFAULT_DAYS_OLD = 7
DEFAULT_LIMIT = 50
DEFAULT_DISPATCH_DELAY_SECONDS = 0.1


@dataclass
class RefreshSummary:
    """What a refresh batch did."""

    total_needing_refresh: int = 0
    enqueued: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)
    started_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "total_needing_refresh": self.total_needing_refresh,
            "enqueued": self.enqueued,
            "error_count": len(self.errors),
            "errors": self.errors,
        }


class RefreshScheduler:
    """Dispatches gauntlet runs for stale prospects without waiting on them.

    Each dispatched run is an independent task. A failure while dispatching
    one prospect is recorded and the batch carries on; failures inside a run
    that already started are logged and kept in ``run_failures``.
    """

    def __init__(
        self,
        db: Database,
        run_gauntlet: Callable[[str], Awaitable[Any]],
        dispatch_delay: float = DEFAULT_DISPATCH_DELAY_SECONDS,
    ):
        """Initialize scheduler.

        Args:
            db: Database holding the prospects
            run_gauntlet: Called with a company number, returns an awaitable run
            dispatch_delay: Seconds to wait between dispatches
        """
        self.db = db
        self.run_gauntlet = run_gauntlet
        self.dispatch_delay = dispatch_delay
        self.run_failures: List[Dict[str, str]] = []
        self._in_flight: Set[asyncio.Task] = set()

    async def refresh_stale(
        self,
        days_old: int = DEFAULT_DAYS_OLD,
        limit: int = DEFAULT_LIMIT,
        now: Optional[datetime] = None,
    ) -> RefreshSummary:
        """Dispatch runs for up to `limit` prospects older than `days_old` days."""
        summary = RefreshSummary(started_at=datetime.now())

        stale = self.db.get_prospects_needing_refresh(days_old, now=now)
        summary.total_needing_refresh = len(stale)
        batch = stale[:max(0, limit)]

        logger.info(
            f"{len(stale)} prospects need refresh (older than {days_old} days), "
            f"dispatching {len(batch)}"
        )

        for index, prospect in enumerate(batch, start=1):
            company_number = prospect.company_number
            try:
                if not company_number:
                    raise ValueError(f"Prospect {prospect.id} has no company number")

                self._dispatch(company_number)
                summary.enqueued += 1
                logger.info(f"[{index}/{len(batch)}] Dispatched {company_number}")

            except Exception as e:
                logger.error(f"[{index}/{len(batch)}] Dispatch failed for {company_number}: {e}")
                summary.errors.append(
                    {"company_number": company_number or "", "error": str(e)}
                )

            if index < len(batch) and self.dispatch_delay > 0:
                await asyncio.sleep(self.dispatch_delay)

        logger.info(
            f"Refresh dispatch complete: {summary.enqueued} enqueued, "
            f"{len(summary.errors)} errors"
        )
        return summary

    def _dispatch(self, company_number: str):
        run = self.run_gauntlet(company_number)
        task = asyncio.create_task(self._run_detached(company_number, run))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _run_detached(self, company_number: str, run: Awaitable[Any]):
        try:
            await run
        except Exception as e:
            logger.error(f"Gauntlet run for {company_number} failed: {e}")
            self.run_failures.append({"company_number": company_number, "error": str(e)})

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def wait_for_dispatched(self):
        """Block until every dispatched run has finished."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
