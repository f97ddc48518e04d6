"""Breach detection — stateless evaluators over current values and settings."""
from __future__ import annotations

import math

from ..models import AlertType, Breach, Direction, NotificationSettings


def depeg_direction(
    price: float, lower_threshold: float, upper_threshold: float | None
) -> Direction | None:
    """Which side of the band ``price`` falls on, or None when pegged."""
    if price < lower_threshold:
        return Direction.BELOW
    if upper_threshold is not None and price > upper_threshold:
        return Direction.ABOVE
    return None


def detect_depeg(
    symbol: str, price: float, settings: NotificationSettings
) -> list[Breach]:
    """Depeg breaches of one stablecoin for one user."""
    if not settings.depeg_enabled or not settings.watches_symbol(symbol):
        return []

    direction = depeg_direction(
        price, settings.depeg_lower_threshold, settings.depeg_upper_threshold
    )
    if direction is None:
        return []

    threshold = (
        settings.depeg_upper_threshold
        if direction is Direction.ABOVE
        else settings.depeg_lower_threshold
    )
    return [
        Breach(
            type=AlertType.DEPEG,
            subject=symbol.upper(),
            severity=settings.depeg_severity,
            direction=direction,
            observed_value=price,
            threshold=threshold,
            metadata={"stablecoin": symbol.upper()},
        )
    ]


def detect_apy_drop(
    position_id: str,
    previous_apy: float | None,
    new_apy: float | None,
    settings: NotificationSettings,
    position_name: str = "",
) -> list[Breach]:
    """APY drop breach when the absolute decline reaches the user's threshold.

    Without a previous value (first computation) or a new value (insufficient
    data) there is nothing to compare.
    """
    if not settings.apy_enabled or previous_apy is None or new_apy is None:
        return []

    drop = previous_apy - new_apy
    # Subtraction noise must not hide a drop of exactly the threshold
    if drop < settings.apy_threshold and not math.isclose(
        drop, settings.apy_threshold, abs_tol=1e-12
    ):
        return []

    return [
        Breach(
            type=AlertType.APY_DROP,
            subject=position_id,
            severity=settings.apy_severity,
            direction=Direction.BELOW,
            observed_value=new_apy,
            threshold=settings.apy_threshold,
            metadata={
                "positionId": position_id,
                "positionName": position_name or position_id,
                "previousApy": previous_apy,
                "drop": drop,
            },
        )
    ]
