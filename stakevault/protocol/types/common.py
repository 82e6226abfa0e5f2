# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class CallType(str, Enum):
    APPROVE = "APPROVE"                 # Allow the vault to pull tokens
    DEPOSIT = "DEPOSIT"
    START_STAKING = "START_STAKING"     # Owner only, once
    CLAIM = "CLAIM"
    WITHDRAW_ALL = "WITHDRAW_ALL"       # Principal + reward after lockup
    FUND_REWARDS = "FUND_REWARDS"       # Top up the reward reserve
    TRANSFER_OWNERSHIP = "TRANSFER_OWNERSHIP"


class VaultPhase(str, Enum):
    CREATED = "CREATED"
    STAKING = "STAKING"


class ProtocolError(Exception):
    pass


class ValidationError(ProtocolError):
    pass


class LedgerError(ProtocolError):
    pass


class VaultError(ProtocolError):
    """Base class for failures of a vault operation. State is left untouched."""
    pass


class InvalidAmount(VaultError):
    pass


class NotOwner(VaultError):
    pass


class AlreadyStarted(VaultError):
    pass


class StillLocked(VaultError):
    pass


class TransferFailed(VaultError):
    pass
