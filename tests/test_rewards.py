# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Engine Tests

Reward = principal * n * elapsed // (d * SECONDS_PER_YEAR), computed from
max(staking start, checkpoint).
"""

import pytest
from stakevault.vault.core.registry import StakeRegistry
from stakevault.vault.core.rewards import RewardEngine
from stakevault.protocol.config.params import SECONDS_PER_DAY, SECONDS_PER_YEAR, DECIMALS

TOKEN = 10**DECIMALS
T0 = 1_700_000_000
NINETY_DAYS = 90 * SECONDS_PER_DAY


class StartClock:
    """Mutable staking start used in place of vault state."""

    def __init__(self, started_at=None):
        self.started_at = started_at

    def __call__(self):
        return self.started_at


@pytest.fixture
def start():
    return StartClock()


@pytest.fixture
def registry():
    return StakeRegistry()


@pytest.fixture
def engine(registry, start):
    return RewardEngine(registry, 89, 1000, started_at=start)


def expected_reward(principal, elapsed, n=89, d=1000):
    return principal * n * elapsed // (d * SECONDS_PER_YEAR)


def test_zero_before_staking_starts(engine, registry):
    registry.deposit("alice", 100 * TOKEN)

    assert engine.pending_reward("alice", T0) == 0
    assert engine.pending_reward("alice", T0 + 10 * NINETY_DAYS) == 0
    assert engine.settle("alice", T0 + NINETY_DAYS) == 0


def test_zero_for_unknown_account(engine, start):
    start.started_at = T0
    assert engine.pending_reward("nobody", T0 + NINETY_DAYS) == 0
    assert engine.settle("nobody", T0 + NINETY_DAYS) == 0


def test_ninety_day_reward(engine, registry, start):
    """100 tokens at 8.9% over 90 days is about 2.19 tokens."""
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0

    assert engine.pending_reward("alice", T0) == 0

    reward = engine.pending_reward("alice", T0 + NINETY_DAYS)
    assert reward == expected_reward(100 * TOKEN, NINETY_DAYS)
    assert abs(reward - int(2.19 * TOKEN)) < TOKEN // 10
    # Exact: 100 * 0.089 * 90 / 365 = 2.19452054794520547945...
    assert reward == 2194520547945205479


def test_time_before_start_is_not_rewarded(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0
    assert engine.pending_reward("alice", T0 - 1000) == 0


def test_pending_reward_is_pure(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0
    before = registry.get_record("alice").model_copy()

    engine.pending_reward("alice", T0 + NINETY_DAYS)
    engine.pending_reward("alice", T0 + 2 * NINETY_DAYS)

    assert registry.get_record("alice") == before


def test_settle_twice_at_same_time_pays_once(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0

    first = engine.settle("alice", T0 + NINETY_DAYS)
    second = engine.settle("alice", T0 + NINETY_DAYS)

    assert first == expected_reward(100 * TOKEN, NINETY_DAYS)
    assert second == 0
    assert engine.pending_reward("alice", T0 + NINETY_DAYS) == 0
    assert registry.get_record("alice").reward_checkpoint == T0 + NINETY_DAYS


def test_second_settle_covers_only_new_window(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0
    delta = 30 * SECONDS_PER_DAY

    engine.settle("alice", T0 + NINETY_DAYS)
    reward = engine.settle("alice", T0 + NINETY_DAYS + delta)

    assert reward == expected_reward(100 * TOKEN, delta)


def test_checkpoints_are_per_account(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    registry.deposit("bob", 300 * TOKEN)
    start.started_at = T0

    engine.settle("alice", T0 + NINETY_DAYS)

    assert engine.pending_reward("alice", T0 + NINETY_DAYS) == 0
    assert engine.pending_reward("bob", T0 + NINETY_DAYS) == expected_reward(300 * TOKEN, NINETY_DAYS)


def test_checkpoint_keeps_reward_on_old_principal(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0

    engine.checkpoint("alice", T0 + NINETY_DAYS)
    registry.deposit("alice", 100 * TOKEN)

    record = registry.get_record("alice")
    assert record.accrued_reward == expected_reward(100 * TOKEN, NINETY_DAYS)
    assert record.reward_checkpoint == T0 + NINETY_DAYS

    later = T0 + 2 * NINETY_DAYS
    assert engine.pending_reward("alice", later) == (
        expected_reward(100 * TOKEN, NINETY_DAYS) + expected_reward(200 * TOKEN, NINETY_DAYS)
    )
    assert engine.settle("alice", later) == (
        expected_reward(100 * TOKEN, NINETY_DAYS) + expected_reward(200 * TOKEN, NINETY_DAYS)
    )
    assert registry.get_record("alice").accrued_reward == 0


def test_checkpoint_before_start_is_noop(engine, registry):
    registry.deposit("alice", 100 * TOKEN)
    engine.checkpoint("alice", T0)
    record = registry.get_record("alice")
    assert record.reward_checkpoint == 0
    assert record.accrued_reward == 0


def test_reward_is_linear_in_principal_and_time(engine):
    base = engine.projected_reward(10 * TOKEN, SECONDS_PER_YEAR)
    assert base == 10 * TOKEN * 89 // 1000
    assert engine.projected_reward(20 * TOKEN, SECONDS_PER_YEAR) == 2 * base
    assert engine.projected_reward(10 * TOKEN, 0) == 0
    assert engine.projected_reward(0, SECONDS_PER_YEAR) == 0
    assert engine.projected_reward(10 * TOKEN, -5) == 0


def test_splitting_claims_never_overpays(engine, registry, start):
    """Floor rounding per claim can only lose dust, never add it."""
    registry.deposit("alice", 7 * TOKEN + 13)
    start.started_at = T0

    paid = sum(engine.settle("alice", T0 + step * 7919) for step in range(1, 200))
    total = expected_reward(7 * TOKEN + 13, 199 * 7919)

    assert paid <= total
    assert total - paid < 200


def test_rate_validation(registry, start):
    with pytest.raises(ValueError, match="rate_denominator"):
        RewardEngine(registry, 9, 0, started_at=start)
    with pytest.raises(ValueError, match="rate_numerator"):
        RewardEngine(registry, -1, 100, started_at=start)
    with pytest.raises(ValueError, match="reward_period"):
        RewardEngine(registry, 9, 100, started_at=start, reward_period=-1)


# ═══════════════════════════════════════════════════════════════════
# REWARD PERIOD & PARTIAL SETTLEMENT
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def bounded_engine(registry, start):
    return RewardEngine(registry, 9, 100, started_at=start, reward_period=NINETY_DAYS)


def test_accrual_stops_at_period_end(bounded_engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    assert bounded_engine.accrual_end() is None

    start.started_at = T0
    full = expected_reward(100 * TOKEN, NINETY_DAYS, n=9, d=100)

    assert bounded_engine.accrual_end() == T0 + NINETY_DAYS
    assert bounded_engine.pending_reward("alice", T0 + NINETY_DAYS) == full
    assert bounded_engine.pending_reward("alice", T0 + 4 * NINETY_DAYS) == full
    assert full == 2219178082191780821


def test_unbounded_engine_has_no_accrual_end(engine, start):
    start.started_at = T0
    assert engine.accrual_end() is None


def test_settle_after_period_end_pays_nothing_more(bounded_engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0

    first = bounded_engine.settle("alice", T0 + NINETY_DAYS + 5)
    second = bounded_engine.settle("alice", T0 + 2 * NINETY_DAYS)

    assert first == expected_reward(100 * TOKEN, NINETY_DAYS, n=9, d=100)
    assert second == 0


def test_deposit_after_period_end_earns_nothing(bounded_engine, registry, start):
    start.started_at = T0
    bounded_engine.checkpoint("bob", T0 + 2 * NINETY_DAYS)
    registry.deposit("bob", 100 * TOKEN)

    assert bounded_engine.pending_reward("bob", T0 + 3 * NINETY_DAYS) == 0


def test_settle_with_limit_keeps_remainder(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0
    owed = expected_reward(100 * TOKEN, NINETY_DAYS)

    paid = engine.settle("alice", T0 + NINETY_DAYS, limit=TOKEN)

    assert paid == TOKEN
    assert registry.get_record("alice").accrued_reward == owed - TOKEN
    assert engine.pending_reward("alice", T0 + NINETY_DAYS) == owed - TOKEN
    assert engine.settle("alice", T0 + NINETY_DAYS) == owed - TOKEN
    assert engine.pending_reward("alice", T0 + NINETY_DAYS) == 0


def test_settle_with_zero_limit_defers_everything(engine, registry, start):
    registry.deposit("alice", 100 * TOKEN)
    start.started_at = T0
    owed = expected_reward(100 * TOKEN, NINETY_DAYS)

    assert engine.settle("alice", T0 + NINETY_DAYS, limit=0) == 0
    assert registry.get_record("alice").accrued_reward == owed
    assert registry.get_record("alice").reward_checkpoint == T0 + NINETY_DAYS
