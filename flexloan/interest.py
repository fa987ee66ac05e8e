"""Simple per-second interest accrual — pure functions, no I/O."""
from __future__ import annotations

from dataclasses import replace

from .constants import SCALE, SECONDS_PER_YEAR
from .models import Position


def calculate_interest(principal: int, rate: int, elapsed_seconds: int) -> int:
    """Interest on ``principal`` at ``rate`` ppm/year over ``elapsed_seconds``.

    interest = principal * rate * elapsed / (SECONDS_PER_YEAR * SCALE), floored.
    """
    if elapsed_seconds <= 0 or principal <= 0 or rate <= 0:
        return 0
    return principal * rate * elapsed_seconds // (SECONDS_PER_YEAR * SCALE)


def pending_interest(position: Position, now: int) -> int:
    """Interest accrued since the last update, not yet folded into the record."""
    if not position.is_active:
        return 0
    return calculate_interest(
        position.principal,
        position.interest_rate,
        now - position.last_interest_update,
    )


def accrue(position: Position, now: int) -> Position:
    """Fold pending interest into the record.

    Returns the same object when no time has elapsed, so accruing twice in
    one instant is a no-op.
    """
    if not position.is_active or now <= position.last_interest_update:
        return position
    return replace(
        position,
        accrued_interest=position.accrued_interest + pending_interest(position, now),
        last_interest_update=now,
    )


def accrued_interest(position: Position, now: int) -> int:
    """Recorded plus pending interest."""
    return position.accrued_interest + pending_interest(position, now)


def total_debt(position: Position, now: int) -> int:
    return position.principal + accrued_interest(position, now)
