from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from sqlalchemy.orm import Session

from scorecard.models.scorecard import MetricsDaily
from scorecard.services.common import coerce_uuid

logger = logging.getLogger(__name__)


def compute_streaks(rows: Iterable[MetricsDaily], seed: int = 0) -> dict[date, int]:
    """Running streak per row, rows taken in ascending date order.

    Days that are not counted carry the streak through unchanged. A counted
    day that is late or failing resets it; a passing on-time counted day
    extends it by one.
    """
    streak = max(int(seed or 0), 0)
    out: dict[date, int] = {}
    for row in rows:
        if not row.is_counted_day:
            out[row.date] = streak
            continue
        if row.pass_ and not row.is_late:
            streak += 1
        else:
            streak = 0
        out[row.date] = streak
    return out


class StreakRecalculator:
    def _seed(self, db: Session, team_member_id, start: date) -> int:
        previous = (
            db.query(MetricsDaily.streak_count)
            .filter(MetricsDaily.team_member_id == team_member_id, MetricsDaily.date < start)
            .order_by(MetricsDaily.date.desc())
            .first()
        )
        return int(previous[0] or 0) if previous else 0

    def recompute(self, db: Session, team_member_id: str, start: date, end: date) -> dict[date, int]:
        """Rewrite ``streak_count`` for a member's rows in ``[start, end]``.

        Seeded from the latest row before ``start``. Only existing rows are
        updated; the caller owns the transaction.
        """
        if start > end:
            return {}
        member_id = coerce_uuid(team_member_id)
        rows = (
            db.query(MetricsDaily)
            .filter(
                MetricsDaily.team_member_id == member_id,
                MetricsDaily.date >= start,
                MetricsDaily.date <= end,
            )
            .order_by(MetricsDaily.date.asc())
            .populate_existing()
            .all()
        )
        if not rows:
            return {}

        streaks = compute_streaks(rows, seed=self._seed(db, member_id, start))
        changed = 0
        for row in rows:
            value = streaks[row.date]
            if row.streak_count != value:
                row.streak_count = value
                changed += 1
        db.flush()
        if changed:
            logger.debug("Updated %d streak(s) for member=%s between %s and %s", changed, member_id, start, end)
        return streaks


streak_recalculator = StreakRecalculator()
