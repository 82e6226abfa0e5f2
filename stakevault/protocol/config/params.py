# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict, Optional

# Global Constants
DENOM = "svt"
DECIMALS = 18
SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_YEAR = 365 * SECONDS_PER_DAY
# Annual reward rates are whole percents
RATE_DENOMINATOR = 100

# Bech32 prefixes
ACCOUNT_PREFIX = "svt"
VAULT_PREFIX = "svtvault"
TOKEN_PREFIX = "svttoken"


class VaultConfig:
    def __init__(self,
                 profile_id: str,
                 token_name: str,
                 token_symbol: str,
                 initial_supply: int,
                 # Annual reward rate in percent
                 rate_percent: int = 9,
                 lockup_days: int = 90,
                 # Days after staking start during which reward accrues (0 = no end)
                 reward_period_days: int = 90,
                 # Devnet specific deterministic owner key (hex string)
                 owner_priv_key: Optional[str] = None):
        if rate_percent < 0:
            raise ValueError("rate_percent must not be negative")
        if lockup_days < 0:
            raise ValueError("lockup_days must not be negative")
        if reward_period_days < 0:
            raise ValueError("reward_period_days must not be negative")

        self.profile_id = profile_id
        self.token_name = token_name
        self.token_symbol = token_symbol
        self.initial_supply = initial_supply
        self.rate_percent = rate_percent
        self.lockup_days = lockup_days
        self.reward_period_days = reward_period_days
        self.owner_priv_key = owner_priv_key

    @property
    def lockup_duration(self) -> int:
        return self.lockup_days * SECONDS_PER_DAY

    def to_dict(self) -> dict:
        return {
            "profile_id": self.profile_id,
            "token_name": self.token_name,
            "token_symbol": self.token_symbol,
            "initial_supply": self.initial_supply,
            "rate_percent": self.rate_percent,
            "lockup_days": self.lockup_days,
            "reward_period_days": self.reward_period_days,
        }


PROFILES: Dict[str, VaultConfig] = {
    "devnet": VaultConfig(
        profile_id="devnet",
        token_name="Vault Token",
        token_symbol="SVT",
        initial_supply=10_000 * 10**DECIMALS,
        rate_percent=9,
        lockup_days=90,
        reward_period_days=90,
        # Deterministic owner key for devnet
        owner_priv_key="6b1d3c9e0f2a4b5c7d8e9f0a1b2c3d4e5f60718293a4b5c6d7e8f90a1b2c3d4e"
    ),
    "testnet": VaultConfig(
        profile_id="testnet",
        token_name="Vault Token",
        token_symbol="tSVT",
        initial_supply=1_000_000 * 10**DECIMALS,
        rate_percent=9,
        lockup_days=30,
        reward_period_days=30
    ),
    "mainnet": VaultConfig(
        profile_id="mainnet",
        token_name="Vault Token",
        token_symbol="SVT",
        initial_supply=100_000_000 * 10**DECIMALS,
        rate_percent=9,
        lockup_days=90,
        reward_period_days=90
    )
}

# Default to devnet unless overridden
CURRENT_PROFILE = PROFILES[os.environ.get("STAKEVAULT_PROFILE", "devnet")]
