# MIT License
# Copyright (c) 2025 Hashborn

"""
Time-proportional reward computation.

Reward on a principal P over `elapsed` seconds at annual rate n/d is

    P * n * elapsed // (d * SECONDS_PER_YEAR)

computed on integer base units with a single floor division, so there is
no intermediate rounding. Each stake record carries a checkpoint: reward is
only ever computed from max(staking start, checkpoint), which is what keeps
a claim from paying the same window twice.

With a reward period configured, accrual stops at staking start + period.
"""
from typing import Callable, Optional
import logging
from .registry import StakeRegistry
from ...protocol.config.params import SECONDS_PER_YEAR

logger = logging.getLogger(__name__)


class RewardEngine:
    def __init__(self, registry: StakeRegistry, rate_numerator: int, rate_denominator: int,
                 started_at: Callable[[], Optional[int]], reward_period: int = 0):
        """
        Args:
            registry: Stake records the engine reads and checkpoints
            rate_numerator: Annual rate numerator (9 for 9% with denominator 100)
            rate_denominator: Annual rate denominator, must be positive
            started_at: Returns the staking start timestamp, or None before start
            reward_period: Seconds after staking start during which reward accrues (0 = no end)
        """
        if rate_denominator <= 0:
            raise ValueError("rate_denominator must be positive")
        if rate_numerator < 0:
            raise ValueError("rate_numerator must not be negative")
        if reward_period < 0:
            raise ValueError("reward_period must not be negative")
        self.registry = registry
        self.rate_numerator = rate_numerator
        self.rate_denominator = rate_denominator
        self.reward_period = reward_period
        self._started_at = started_at

    def projected_reward(self, principal: int, elapsed: int) -> int:
        if principal <= 0 or elapsed <= 0:
            return 0
        return (principal * self.rate_numerator * elapsed) // (self.rate_denominator * SECONDS_PER_YEAR)

    def accrual_end(self) -> Optional[int]:
        """Timestamp after which nothing accrues, None if unbounded or not started."""
        started_at = self._started_at()
        if started_at is None or not self.reward_period:
            return None
        return started_at + self.reward_period

    def _earned_since_checkpoint(self, account: str, now: int) -> int:
        started_at = self._started_at()
        if started_at is None:
            return 0
        end = self.accrual_end()
        if end is not None:
            now = min(now, end)
        record = self.registry.get_record(account)
        effective_start = max(started_at, record.reward_checkpoint)
        return self.projected_reward(record.principal, now - effective_start)

    def pending_reward(self, account: str, now: int) -> int:
        """Reward owed to `account` at `now`. Does not mutate state."""
        if self._started_at() is None:
            return 0
        record = self.registry.get_record(account)
        return record.accrued_reward + self._earned_since_checkpoint(account, now)

    def checkpoint(self, account: str, now: int):
        """Moves reward earned so far into the record without paying it out."""
        if self._started_at() is None:
            return
        earned = self._earned_since_checkpoint(account, now)
        record = self.registry.get_record(account).model_copy()
        record.accrued_reward += earned
        record.reward_checkpoint = max(record.reward_checkpoint, now)
        self.registry.set_record(record)
        logger.debug(f"Checkpointed {account} at {now}: accrued {record.accrued_reward}")

    def settle(self, account: str, now: int, limit: Optional[int] = None) -> int:
        """
        Marks reward as settled up to `now` and returns the amount to pay.

        With `limit`, at most that much is released; the remainder stays in
        `accrued_reward` for a later settlement.
        """
        reward = self.pending_reward(account, now)
        if self._started_at() is None:
            return 0
        record = self.registry.get_record(account).model_copy()
        if record.is_empty:
            return 0
        paid = reward if limit is None else min(reward, max(0, limit))
        record.accrued_reward = reward - paid
        record.reward_checkpoint = max(record.reward_checkpoint, now)
        self.registry.set_record(record)
        if paid < reward:
            logger.warning(f"Reward of {account} partly deferred: paid {paid}, owed {reward}")
        return paid
