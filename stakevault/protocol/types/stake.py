# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel
from typing import Optional
from .common import VaultPhase


class StakeRecord(BaseModel):
    """Stake of a single account."""
    account: str
    principal: int = 0             # Deposited amount in base units
    reward_checkpoint: int = 0     # Reward settled up to this timestamp (0 = never)
    accrued_reward: int = 0        # Settled but not yet paid out

    @property
    def is_empty(self) -> bool:
        return self.principal == 0 and self.accrued_reward == 0


class VaultState(BaseModel):
    """Global vault parameters and lifecycle."""
    token: str                     # Ledger address
    vault_address: str             # Custody account on the ledger
    owner: str
    rate_numerator: int
    rate_denominator: int
    lockup_duration: int           # Seconds after staking start
    reward_period: int = 0         # Accrual window after staking start, 0 = no end
    staking_started_at: Optional[int] = None
    total_deposited: int = 0

    @property
    def phase(self) -> VaultPhase:
        if self.staking_started_at is None:
            return VaultPhase.CREATED
        return VaultPhase.STAKING

    @property
    def unlock_time(self) -> Optional[int]:
        if self.staking_started_at is None:
            return None
        return self.staking_started_at + self.lockup_duration
