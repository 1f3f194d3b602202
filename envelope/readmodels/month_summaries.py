"""
Carryover Propagator - owner of the month summary read model

Each cached summary is the closing state of one (budget, month). An edit in
month M makes M and every later cached month stale; recalculate_from(M)
rebuilds them in ascending order, each month opening with the previous
month's closing balances. Earlier months are never touched.
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from envelope.application.balances import compute_month_summary
from envelope.config import get_settings
from envelope.domain.month import current_month as real_current_month
from envelope.domain.month import month_range, next_month, previous_month
from envelope.domain.month_summary import MonthSummary
from envelope.errors import NotFoundError
from envelope.infrastructure.ledger.repository import LedgerStore
from envelope.utils.validation import require_month

logger = logging.getLogger(__name__)


class CarryoverPropagator:
    """
    Maintains month_summaries for a budget

    Writes are all-or-nothing: every summary of a range is computed first,
    then all are written inside one SAVEPOINT. If anything fails the cache
    stays as it was and the exception propagates.

    Example:
        >>> propagator = CarryoverPropagator(db)
        >>> propagator.recalculate_from(budget_id, "2025-01", current_month="2025-03")
        >>> propagator.get_summary(budget_id, "2025-02").available(rent_id)
        30000
    """

    def __init__(self, db: Session):
        self.db = db
        self.store = LedgerStore(db)

    def _require_budget(self, budget_id: str) -> None:
        if self.store.get_budget(budget_id) is None:
            raise NotFoundError(f"Budget {budget_id} not found")

    def _write(self, summaries: List[MonthSummary]) -> None:
        with self.db.begin_nested():
            for summary in summaries:
                self.store.save_month_summary(summary)
        self.db.commit()

    def _compute_chain(
        self,
        budget_id: str,
        months: List[str],
        previous: Optional[MonthSummary],
    ) -> List[MonthSummary]:
        summaries = []
        for month in months:
            previous = compute_month_summary(self.db, budget_id, month, previous)
            summaries.append(previous)
        return summaries

    def get_summary(self, budget_id: str, month: str) -> MonthSummary:
        """
        Summary of month, from cache or computed (and cached)

        A miss is filled forward from the nearest cached earlier month, or
        from the full history when nothing earlier is cached.
        """
        require_month(month)
        self._require_budget(budget_id)

        cached = self.store.get_month_summary(budget_id, month)
        if cached is not None:
            return cached

        base = self.store.get_latest_month_summary_before(budget_id, month)
        if base is not None:
            summaries = self._compute_chain(budget_id, month_range(next_month(base.month), month), base)
        else:
            summaries = self._compute_chain(budget_id, [month], None)

        self._write(summaries)
        logger.debug("Month summary cache filled for budget %s: %s", budget_id, [s.month for s in summaries])
        return summaries[-1]

    def recalculate_from(
        self,
        budget_id: str,
        start_month: str,
        current_month: Optional[str] = None,
    ) -> List[MonthSummary]:
        """
        Recompute start_month and every later month

        The range ends at the latest cached month when one exists at or after
        start_month; otherwise at the real current month (or start_month
        itself when it is later).

        Args:
            budget_id: Budget
            start_month: Earliest affected month (YYYY-MM)
            current_month: Override of "now" (default: from TIMEZONE setting)

        Returns:
            Recomputed summaries in ascending month order
        """
        require_month(start_month)
        self._require_budget(budget_id)

        latest = self.store.get_latest_cached_month(budget_id)
        if latest is not None and latest >= start_month:
            end_month = latest
        else:
            now = current_month or real_current_month(get_settings().TIMEZONE)
            require_month(now)
            end_month = max(start_month, now)

        base = self.store.get_month_summary(budget_id, previous_month(start_month))
        summaries = self._compute_chain(budget_id, month_range(start_month, end_month), base)
        self._write(summaries)

        logger.info(
            "Recalculated %d month(s) for budget %s: %s..%s",
            len(summaries), budget_id, start_month, end_month,
        )
        return summaries

    def cached_months(self, budget_id: str) -> List[str]:
        return [s.month for s in self.store.list_month_summaries(budget_id)]

    def invalidate(self, budget_id: str) -> int:
        """
        Drop every cached month of budget

        Returns:
            Number of removed summaries
        """
        removed = self.store.delete_month_summaries(budget_id)
        self.db.commit()
        logger.info("Month summary cache invalidated for budget %s (%d months)", budget_id, removed)
        return removed
