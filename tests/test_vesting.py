"""Tests for vesting schedules: proves unlocks follow the period formula."""

import pytest

from claimgate.engine.vesting import (
    InstantSchedule,
    PeriodicVestingSchedule,
    UnlockSchedule,
    unlocked_amount,
    vesting_config_of,
)
from claimgate.errors import InvalidVestingConfig
from claimgate.models.claim import VestingConfig

START = 1_767_225_600
MONTH = 30 * 24 * 60 * 60


class TestUnlockedAmount:
    def test_nothing_before_start(self) -> None:
        assert unlocked_amount(1000, START - 1, START, MONTH, 4) == 0

    @pytest.mark.parametrize("offset,expected", [
        (0, 250),
        (MONTH - 1, 250),
        (MONTH, 500),
        (2 * MONTH, 750),
        (3 * MONTH, 1000),
        (10 * MONTH, 1000),
    ])
    def test_quarterly_release_of_1000(self, offset: int, expected: int) -> None:
        assert unlocked_amount(1000, START + offset, START, MONTH, 4) == expected

    def test_truncation_is_kept_by_default(self) -> None:
        # 1001 // 4 == 250, the remaining 1 is never unlocked
        assert unlocked_amount(1001, START + 3 * MONTH, START, MONTH, 4) == 1000

    def test_credit_remainder_pays_it_at_the_end(self) -> None:
        assert unlocked_amount(
            1001, START + 3 * MONTH, START, MONTH, 4, credit_remainder=True,
        ) == 1001
        assert unlocked_amount(
            1001, START + 2 * MONTH, START, MONTH, 4, credit_remainder=True,
        ) == 750

    def test_total_smaller_than_period_count(self) -> None:
        assert unlocked_amount(3, START + 10 * MONTH, START, MONTH, 4) == 0
        assert unlocked_amount(
            3, START + 10 * MONTH, START, MONTH, 4, credit_remainder=True,
        ) == 3

    def test_zero_duration_unlocks_everything_at_start(self) -> None:
        assert unlocked_amount(1000, START, START, 0, 4) == 1000

    def test_single_period(self) -> None:
        assert unlocked_amount(999, START, START, MONTH, 1) == 999

    def test_never_exceeds_total(self) -> None:
        for offset in range(0, 6 * MONTH, MONTH // 3):
            assert unlocked_amount(1000, START + offset, START, MONTH, 4) <= 1000

    def test_period_count_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            unlocked_amount(1000, START, START, MONTH, 0)


class TestSchedules:
    def test_instant_schedule(self) -> None:
        schedule = InstantSchedule()
        assert isinstance(schedule, UnlockSchedule)
        assert not schedule.requires_start
        assert schedule.has_started(0)
        assert schedule.unlocked_amount(777, 0) == 777

    def test_periodic_schedule(self) -> None:
        schedule = PeriodicVestingSchedule(VestingConfig(START, MONTH, 4))
        assert isinstance(schedule, UnlockSchedule)
        assert schedule.requires_start
        assert not schedule.has_started(START - 1)
        assert schedule.has_started(START)
        assert schedule.unlocked_amount(1000, START + MONTH) == 500

    def test_with_start_returns_copy(self) -> None:
        schedule = PeriodicVestingSchedule(VestingConfig(START, MONTH, 4), credit_remainder=True)
        moved = schedule.with_start(START + 100)
        assert moved.start_time == START + 100
        assert moved.credit_remainder
        assert schedule.start_time == START

    def test_vesting_config_of(self) -> None:
        config = VestingConfig(START, MONTH, 4)
        assert vesting_config_of(PeriodicVestingSchedule(config)) == config
        assert vesting_config_of(InstantSchedule()) is None


class TestVestingConfig:
    def test_end_time(self) -> None:
        assert VestingConfig(START, MONTH, 4).end_time() == START + 3 * MONTH

    def test_rejects_zero_periods(self) -> None:
        with pytest.raises(InvalidVestingConfig):
            VestingConfig(START, MONTH, 0)

    def test_rejects_negative_duration(self) -> None:
        with pytest.raises(InvalidVestingConfig):
            VestingConfig(START, -1, 4)

    def test_rejects_zero_duration_with_many_periods(self) -> None:
        with pytest.raises(InvalidVestingConfig):
            VestingConfig(START, 0, 4)

    def test_zero_duration_single_period_allowed(self) -> None:
        assert VestingConfig(START, 0, 1).period_count == 1
