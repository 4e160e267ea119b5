"""Vesting schedule: maps elapsed time to the unlocked share of a grant.

Formula:
    now < start                → 0
    elapsed = (now - start) // period_duration
    unlocked_periods = min(elapsed + 1, period_count)
    unlocked = (total // period_count) * unlocked_periods, capped at total

The first period unlocks at ``start``; one more unlocks after each full
period. Integer division per period is kept as is: when ``total`` is not
divisible by ``period_count`` the fully vested amount falls short of
``total`` by ``total % period_count``. ``credit_remainder=True`` pays that
remainder once the final period unlocks instead.

A one-shot claim is the degenerate schedule: everything unlocked at once,
no start gate (``InstantSchedule``).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Protocol, runtime_checkable

from claimgate.models.claim import VestingConfig


def unlocked_amount(
    total_amount: int,
    now: int,
    start: int,
    period_duration: int,
    period_count: int,
    credit_remainder: bool = False,
) -> int:
    """Return how much of ``total_amount`` is unlocked at ``now``.

    Pure. A non-positive ``period_duration`` unlocks every period at
    ``start``.
    """
    if period_count < 1:
        raise ValueError(f"period_count must be >= 1, got {period_count}")
    if now < start:
        return 0
    if period_duration <= 0:
        unlocked_periods = period_count
    else:
        elapsed_periods = (now - start) // period_duration
        unlocked_periods = min(elapsed_periods + 1, period_count)

    if credit_remainder and unlocked_periods == period_count:
        return total_amount
    per_period = total_amount // period_count
    return min(per_period * unlocked_periods, total_amount)


@runtime_checkable
class UnlockSchedule(Protocol):
    """What the claim engine needs from a release schedule."""

    @property
    def requires_start(self) -> bool:
        """True if claims before the start time must be rejected."""
        ...

    def has_started(self, now: int) -> bool:
        ...

    def unlocked_amount(self, total_amount: int, now: int) -> int:
        ...


@dataclass(frozen=True)
class InstantSchedule:
    """One-shot release: the full amount is available immediately."""

    @property
    def requires_start(self) -> bool:
        return False

    def has_started(self, now: int) -> bool:
        return True

    def unlocked_amount(self, total_amount: int, now: int) -> int:
        return total_amount


@dataclass(frozen=True)
class PeriodicVestingSchedule:
    """Equal instalments over ``config.period_count`` periods."""
    config: VestingConfig
    credit_remainder: bool = False

    @property
    def requires_start(self) -> bool:
        return True

    @property
    def start_time(self) -> int:
        return self.config.start_time

    def has_started(self, now: int) -> bool:
        return now >= self.config.start_time

    def unlocked_amount(self, total_amount: int, now: int) -> int:
        return unlocked_amount(
            total_amount,
            now,
            self.config.start_time,
            self.config.period_duration,
            self.config.period_count,
            credit_remainder=self.credit_remainder,
        )

    def with_start(self, new_start: int) -> PeriodicVestingSchedule:
        """Return a copy starting at ``new_start``."""
        return replace(self, config=replace(self.config, start_time=new_start))


def vesting_config_of(schedule: UnlockSchedule) -> Optional[VestingConfig]:
    """The schedule's vesting config, or None for non-vesting schedules."""
    if isinstance(schedule, PeriodicVestingSchedule):
        return schedule.config
    return None
