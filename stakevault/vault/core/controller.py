# MIT License
# Copyright (c) 2025 Hashborn

from contextlib import contextmanager
from typing import Callable, Dict, List, Optional, Tuple, Any
import logging
import threading
import time
from ...protocol.types.stake import VaultState
from ...protocol.types.call import VaultCall
from ...protocol.types.common import (
    CallType, VaultPhase, ValidationError, LedgerError, InvalidAmount, NotOwner, AlreadyStarted,
    StillLocked, TransferFailed,
)
from ...protocol.crypto.keys import verify
from ...protocol.crypto.addresses import address_from_pubkey, derive_address, decode_address, is_valid_address
from ...protocol.config.params import SECONDS_PER_DAY, RATE_DENOMINATOR, VAULT_PREFIX
from ..storage.db import StorageDB
from ..observability.metrics import failed_calls_total
from .access import AccessGuard, OwnerGuard
from .events import (
    EventBus, DEPOSIT, STAKING_STARTED, REWARDS_CLAIMED, WITHDRAWN, REWARDS_FUNDED, OWNERSHIP_TRANSFERRED,
)
from .ledger import Ledger
from .registry import StakeRegistry
from .rewards import RewardEngine

logger = logging.getLogger(__name__)


class VaultController:
    """
    Fixed-duration staking vault.

    Users deposit tokens at any time. The owner starts staking once; from
    then on principal earns a time-proportional reward which can be claimed
    at will. After the lockup has elapsed, `withdraw_all` pays principal and
    outstanding reward in one transfer.

    Every mutating operation runs under one lock and either applies fully
    or leaves vault state untouched. Notifications are emitted only after
    the operation committed.
    """

    def __init__(self, ledger: Ledger, rate_percent: int, lockup_days: int, reward_period_days: int, *,
                 owner: str,
                 guard: Optional[AccessGuard] = None,
                 db: Optional[StorageDB] = None,
                 clock: Optional[Callable[[], int]] = None,
                 event_bus: Optional[EventBus] = None,
                 vault_address: Optional[str] = None):
        """
        Args:
            ledger: Token the vault takes custody of
            rate_percent: Annual reward rate in percent (9 = 9% per 365 days)
            lockup_days: Days after staking start before withdraw_all is allowed
            reward_period_days: Days after staking start during which reward accrues (0 = no end)
        """
        if rate_percent < 0:
            raise ValueError("rate_percent must not be negative")
        if lockup_days < 0:
            raise ValueError("lockup_days must not be negative")
        if reward_period_days < 0:
            raise ValueError("reward_period_days must not be negative")

        self.ledger = ledger
        self.db = db
        self.clock = clock or (lambda: int(time.time()))
        self.event_bus = event_bus or EventBus()
        self._lock = threading.RLock()
        self._depth = 0
        self._pending_events: List[Tuple[str, Dict[str, Any]]] = []

        self.registry = StakeRegistry(db)
        self._nonces: Dict[str, int] = {}

        state = self._load() if db is not None else None
        if state is None:
            state = VaultState(
                token=ledger.address,
                vault_address=vault_address or derive_address(f"vault:{ledger.address}", prefix=VAULT_PREFIX),
                owner=owner,
                rate_numerator=rate_percent,
                rate_denominator=RATE_DENOMINATOR,
                lockup_duration=lockup_days * SECONDS_PER_DAY,
                reward_period=reward_period_days * SECONDS_PER_DAY,
            )
            logger.info(f"Vault created at {state.vault_address} for token {state.token}")
        elif state.token != ledger.address:
            raise ValueError(f"Stored vault belongs to token {state.token}, not {ledger.address}")
        self.state = state

        self.guard = guard or OwnerGuard(state.owner)
        self.rewards = RewardEngine(
            self.registry, state.rate_numerator, state.rate_denominator,
            started_at=lambda: self.state.staking_started_at,
            reward_period=state.reward_period,
        )
        self._persist()

    # --- Views ---
    @property
    def token(self) -> str:
        return self.state.token

    @property
    def vault_address(self) -> str:
        return self.state.vault_address

    @property
    def lockup_duration(self) -> int:
        return self.state.lockup_duration

    @property
    def staking_started_at(self) -> Optional[int]:
        return self.state.staking_started_at

    @property
    def phase(self) -> VaultPhase:
        return self.state.phase

    @property
    def unlock_time(self) -> Optional[int]:
        return self.state.unlock_time

    def owner(self) -> str:
        return self.state.owner

    def amount_staked(self, account: str) -> int:
        return self.registry.principal_of(account)

    def total_deposited(self) -> int:
        return self.registry.total_deposited()

    def reward_of(self, account: str, now: Optional[int] = None) -> int:
        return self.rewards.pending_reward(account, self._now(now))

    def reward_reserve(self) -> int:
        """Custody balance not backing any principal."""
        return max(0, self.ledger.balance_of(self.vault_address) - self.total_deposited())

    def get_nonce(self, account: str) -> int:
        return self._nonces.get(account, 0)

    def stake_info(self, account: str, now: Optional[int] = None) -> dict:
        record = self.registry.get_record(account)
        return {
            "account": account,
            "principal": record.principal,
            "reward": self.reward_of(account, now),
            "reward_checkpoint": record.reward_checkpoint,
            "nonce": self.get_nonce(account),
        }

    def status(self) -> dict:
        return {
            "token": self.token,
            "vault_address": self.vault_address,
            "owner": self.owner(),
            "phase": self.phase.value,
            "rate_numerator": self.state.rate_numerator,
            "rate_denominator": self.state.rate_denominator,
            "lockup_duration": self.lockup_duration,
            "reward_period": self.state.reward_period,
            "staking_started_at": self.staking_started_at,
            "unlock_time": self.unlock_time,
            "accrual_end": self.rewards.accrual_end(),
            "total_deposited": self.total_deposited(),
            "reward_reserve": self.reward_reserve(),
            "stakers": len([r for r in self.registry.records() if r.principal > 0]),
        }

    # --- Operations ---
    def deposit(self, caller: str, amount: int, now: Optional[int] = None) -> int:
        now = self._now(now)
        with self._transaction("deposit"):
            self._require_amount(amount)
            # Reward on the old principal is kept, new principal earns from now on
            self.rewards.checkpoint(caller, now)
            record = self.registry.deposit(caller, amount)
            self._sync_total()
            self._pull(caller, amount)
            self._record_event(DEPOSIT, account=caller, amount=amount)
        logger.info(f"Deposit {amount} from {caller} (principal {record.principal})")
        return record.principal

    def start_staking(self, caller: str, now: Optional[int] = None) -> int:
        now = self._now(now)
        with self._transaction("start_staking"):
            self._require_owner(caller)
            if self.state.staking_started_at is not None:
                raise AlreadyStarted(f"Staking already started at {self.state.staking_started_at}")
            self.state.staking_started_at = now
            self._record_event(STAKING_STARTED, started_at=now, unlock_time=self.state.unlock_time)
        logger.info(f"Staking started at {now}, unlock at {self.unlock_time}")
        return now

    def claim_rewards(self, caller: str, now: Optional[int] = None) -> int:
        now = self._now(now)
        with self._transaction("claim_rewards"):
            # Reward beyond the reserve stays accrued until the vault is funded
            reward = self.rewards.settle(caller, now, limit=self.reward_reserve())
            if reward > 0:
                self._pay(caller, reward)
            deferred = self.registry.get_record(caller).accrued_reward
            self._record_event(REWARDS_CLAIMED, account=caller, amount=reward, deferred=deferred)
        logger.info(f"Claimed {reward} by {caller}")
        return reward

    def withdraw_all(self, caller: str, now: Optional[int] = None) -> int:
        now = self._now(now)
        with self._transaction("withdraw_all"):
            unlock_time = self.state.unlock_time
            if unlock_time is None:
                raise StillLocked("Staking has not started")
            if now < unlock_time:
                raise StillLocked(f"Locked until {unlock_time} ({unlock_time - now}s left)")

            # Principal is always returned; reward only as far as the reserve covers it
            reward = self.rewards.settle(caller, now, limit=self.reward_reserve())
            principal = self.registry.clear(caller)
            deferred = self.registry.get_record(caller).accrued_reward
            if not deferred:
                self.registry.remove(caller)
            self._sync_total()

            payout = principal + reward
            if payout > 0:
                self._pay(caller, payout)
            self._record_event(WITHDRAWN, account=caller, principal=principal, reward=reward, amount=payout,
                               deferred=deferred)
        logger.info(f"Withdrawn {payout} by {caller} (principal {principal}, reward {reward})")
        return payout

    def fund_rewards(self, caller: str, amount: int) -> int:
        """Pulls `amount` from `caller` into custody as reward reserve."""
        with self._transaction("fund_rewards"):
            self._require_amount(amount)
            self._pull(caller, amount)
            self._record_event(REWARDS_FUNDED, account=caller, amount=amount)
        logger.info(f"Reward reserve funded with {amount} by {caller}")
        return self.reward_reserve()

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        with self._transaction("transfer_ownership"):
            if not isinstance(self.guard, OwnerGuard):
                raise ValidationError("Ownership is managed by the injected access guard")
            self._require_owner(caller)
            if not new_owner:
                raise ValidationError("New owner address required")
            previous = self.guard.transfer_ownership(caller, new_owner)
            self.state.owner = new_owner
            self._record_event(OWNERSHIP_TRANSFERRED, previous_owner=previous, new_owner=new_owner)
        return previous

    def approve(self, caller: str, amount: int) -> bool:
        """Sets the vault's allowance on `caller`'s tokens."""
        if not isinstance(amount, int) or amount < 0:
            raise InvalidAmount("Allowance must not be negative")
        try:
            return self.ledger.approve(caller, self.vault_address, amount)
        except LedgerError as e:
            raise TransferFailed(f"Approve failed: {e}") from e

    def apply_call(self, call: VaultCall, now: Optional[int] = None) -> Any:
        """
        Verifies a signed call and runs it.

        The nonce is consumed only when the operation succeeds.

        Args:
            call: Signed call
            now: Override for the current time (defaults to the clock)

        Returns:
            The operation's result (paid amount, new principal, ...)
        """
        self._verify_call(call)

        with self._transaction(f"call {call.method.value}"):
            expected = self.get_nonce(call.sender)
            if call.nonce != expected:
                raise ValidationError(f"Invalid nonce: expected {expected}, got {call.nonce}")

            if call.method == CallType.APPROVE:
                result = self.approve(call.sender, call.amount)
            elif call.method == CallType.DEPOSIT:
                result = self.deposit(call.sender, call.amount, now)
            elif call.method == CallType.START_STAKING:
                result = self.start_staking(call.sender, now)
            elif call.method == CallType.CLAIM:
                result = self.claim_rewards(call.sender, now)
            elif call.method == CallType.WITHDRAW_ALL:
                result = self.withdraw_all(call.sender, now)
            elif call.method == CallType.FUND_REWARDS:
                result = self.fund_rewards(call.sender, call.amount)
            elif call.method == CallType.TRANSFER_OWNERSHIP:
                if not call.target or not is_valid_address(call.target):
                    raise ValidationError(f"Invalid target address: {call.target!r}")
                result = self.transfer_ownership(call.sender, call.target)
            else:
                raise ValidationError(f"Unsupported method {call.method}")

            self._nonces[call.sender] = expected + 1
        return result

    # --- Internals ---
    def _now(self, now: Optional[int]) -> int:
        return int(now) if now is not None else int(self.clock())

    def _verify_call(self, call: VaultCall):
        if not call.signature or not call.pub_key:
            raise ValidationError("Missing signature or pub_key")

        try:
            prefix, _ = decode_address(call.sender)
            derived = address_from_pubkey(bytes.fromhex(call.pub_key), prefix=prefix)
        except ValueError as e:
            raise ValidationError(f"Invalid address format or key: {e}")
        if derived != call.sender:
            raise ValidationError(f"pub_key mismatch: derived {derived}, expected {call.sender}")

        try:
            msg_hash_bytes = bytes.fromhex(call.hash())
            sig_bytes = bytes.fromhex(call.signature)
            pub_bytes = bytes.fromhex(call.pub_key)
        except ValueError as e:
            raise ValidationError(f"Malformed signature: {e}")
        if not verify(msg_hash_bytes, sig_bytes, pub_bytes):
            raise ValidationError("Invalid signature")

    def _require_amount(self, amount: int):
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidAmount("Amount must be greater than 0")

    def _require_owner(self, caller: str):
        if not self.guard.is_owner(caller):
            raise NotOwner(f"Caller {caller} is not the owner")

    def _pull(self, account: str, amount: int):
        try:
            ok = self.ledger.transfer_from(self.vault_address, account, self.vault_address, amount)
        except LedgerError as e:
            raise TransferFailed(f"Pull of {amount} from {account} failed: {e}") from e
        if not ok:
            raise TransferFailed(f"Pull of {amount} from {account} failed (balance or allowance too low)")

    def _pay(self, account: str, amount: int):
        try:
            ok = self.ledger.transfer(self.vault_address, account, amount)
        except LedgerError as e:
            raise TransferFailed(f"Payout of {amount} to {account} failed: {e}") from e
        if not ok:
            raise TransferFailed(f"Payout of {amount} to {account} failed (custody balance too low)")

    def _sync_total(self):
        self.state.total_deposited = self.registry.total_deposited()

    def _record_event(self, event_type: str, **data):
        self._pending_events.append((event_type, data))

    @contextmanager
    def _transaction(self, name: str):
        with self._lock:
            if self._depth:
                # Nested call: the outermost transaction owns rollback and events
                yield
                return

            registry_snapshot = self.registry.snapshot()
            state_snapshot = self.state.model_copy()
            nonces_snapshot = dict(self._nonces)
            owner_snapshot = self.guard.owner if isinstance(self.guard, OwnerGuard) else None
            self._pending_events = []
            self._depth += 1
            try:
                yield
            except Exception as e:
                self.registry.restore(registry_snapshot)
                self.state = state_snapshot
                self._nonces = nonces_snapshot
                if owner_snapshot is not None:
                    self.guard.owner = owner_snapshot
                self._pending_events = []
                failed_calls_total.labels(error=type(e).__name__).inc()
                logger.warning(f"{name} rejected: {e}")
                raise
            finally:
                self._depth -= 1

            events, self._pending_events = self._pending_events, []
            self._persist()
            for event_type, data in events:
                self.event_bus.emit(event_type, **data)

    def _persist(self):
        """Writes vault state, stake records and nonces to DB."""
        if self.db is None:
            return
        self.db.set_state("vault:state", self.state.model_dump_json())
        self.registry.persist()
        self.db.write_batch((f"nonce:{addr}", str(n)) for addr, n in self._nonces.items())

    def _load(self) -> Optional[VaultState]:
        raw = self.db.get_state("vault:state")
        if not raw:
            return None
        state = VaultState.model_validate_json(raw)
        self.registry.load()
        for key, value in self.db.get_state_by_prefix("nonce:").items():
            self._nonces[key.split(":", 1)[1]] = int(value)
        logger.info(f"Vault {state.vault_address} loaded from storage (phase {state.phase.value})")
        return state
