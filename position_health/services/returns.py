"""Annualized return (APY) from a position's current snapshot segment.

The segment's first entry is the anchor. The period return between the
anchor and the latest entry is compounded over the elapsed time:

    apy = (1 + period_return) ** (1 / elapsed_years) - 1

The same compounding form is used for every window length above the minimum
observation window, so successive recomputations stay consistent as more
snapshots accrue. Every condition under which the figure is not meaningful
yields ``None`` rather than an exception.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from ..errors import DegenerateBasisError
from ..models import Snapshot

logger = logging.getLogger(__name__)

SECONDS_PER_YEAR = 365.25 * 24 * 60 * 60
DEFAULT_MIN_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class ApyResult:
    apy: float
    period_return: float
    elapsed_years: float
    anchor_ts: datetime
    latest_ts: datetime


def _period_return(anchor: Snapshot, latest: Snapshot) -> float:
    if anchor.valuation <= 0:
        raise DegenerateBasisError(
            f"Anchor valuation {anchor.valuation} at {anchor.ts.isoformat()} is not positive"
        )
    period_return = latest.valuation / anchor.valuation - 1
    if period_return <= -1:
        raise DegenerateBasisError(f"Period return {period_return:.4f} wipes out the basis")
    return period_return


def compute_apy(
    segment: Sequence[Snapshot],
    min_window: timedelta = DEFAULT_MIN_WINDOW,
) -> ApyResult | None:
    """Compute the APY of a segment, or ``None`` for insufficient data."""
    if len(segment) < 2:
        return None

    anchor, latest = segment[0], segment[-1]
    elapsed = latest.ts - anchor.ts
    if elapsed < min_window or elapsed.total_seconds() <= 0:
        return None

    try:
        period_return = _period_return(anchor, latest)
    except DegenerateBasisError as e:
        logger.debug("APY unavailable for %s: %s", anchor.position_id, e)
        return None

    elapsed_years = elapsed.total_seconds() / SECONDS_PER_YEAR
    try:
        apy = (1 + period_return) ** (1 / elapsed_years) - 1
    except OverflowError:
        logger.warning(
            "APY overflow for %s (period return %.6f over %.6f years)",
            anchor.position_id,
            period_return,
            elapsed_years,
        )
        return None

    return ApyResult(
        apy=apy,
        period_return=period_return,
        elapsed_years=elapsed_years,
        anchor_ts=anchor.ts,
        latest_ts=latest.ts,
    )


def compute_ema_apy(
    current_apy: float, previous_ema: float | None, alpha: float = 0.2
) -> float:
    """Exponentially smoothed APY; the first value seeds the average."""
    if previous_ema is None:
        return current_apy
    return alpha * current_apy + (1 - alpha) * previous_ema
