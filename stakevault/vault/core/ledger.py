# MIT License
# Copyright (c) 2025 Hashborn

"""
Fungible token ledger.

`Ledger` is the contract the vault relies on; `TokenLedger` is the
in-memory, optionally sqlite-backed implementation used by the node.
"""
from typing import Dict, Optional, Protocol, Tuple
import json
import logging
import threading
from .events import EventBus, TRANSFER, APPROVAL
from ..storage.db import StorageDB
from ...protocol.types.common import LedgerError
from ...protocol.crypto.addresses import derive_address
from ...protocol.config.params import TOKEN_PREFIX

logger = logging.getLogger(__name__)


class Ledger(Protocol):
    address: str

    def balance_of(self, account: str) -> int: ...

    def allowance(self, owner: str, spender: str) -> int: ...

    def transfer(self, sender: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool: ...

    def approve(self, owner: str, spender: str, amount: int) -> bool: ...


class TokenLedger:
    """
    ERC20-like balance ledger.

    Transfers return False instead of raising when the balance or allowance
    is insufficient and never mutate state in that case. Malformed input
    (negative amounts, empty addresses) raises LedgerError.
    """

    def __init__(self, name: str, symbol: str, initial_supply: int = 0, holder: Optional[str] = None,
                 db: Optional[StorageDB] = None, event_bus: Optional[EventBus] = None,
                 address: Optional[str] = None):
        self.name = name
        self.symbol = symbol
        self.address = address or derive_address(f"token:{symbol}:{name}", prefix=TOKEN_PREFIX)
        self.db = db
        self.event_bus = event_bus
        self._lock = threading.RLock()
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self.total_supply = 0

        if db is not None and self._load():
            logger.info(f"Token {symbol} loaded from storage (supply {self.total_supply})")
            return

        if initial_supply:
            if not holder:
                raise LedgerError("initial supply requires a holder")
            self._mint(holder, initial_supply)
        self.persist()

    # --- Views ---
    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    # --- Mutations ---
    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._check(amount, sender, to)
        with self._lock:
            if self.balance_of(sender) < amount:
                logger.debug(f"Transfer rejected: {sender} has {self.balance_of(sender)}, needs {amount}")
                return False
            self._move(sender, to, amount)
            self.persist()
        self._emit(TRANSFER, sender=sender, to=to, amount=amount)
        return True

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        self._check(amount, owner, to)
        with self._lock:
            allowed = self.allowance(owner, spender)
            if allowed < amount:
                logger.debug(f"TransferFrom rejected: allowance {allowed} < {amount}")
                return False
            if self.balance_of(owner) < amount:
                logger.debug(f"TransferFrom rejected: {owner} has {self.balance_of(owner)}, needs {amount}")
                return False
            self._allowances[(owner, spender)] = allowed - amount
            self._move(owner, to, amount)
            self.persist()
        self._emit(TRANSFER, sender=owner, to=to, amount=amount)
        return True

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        self._check(amount, owner, spender)
        with self._lock:
            self._allowances[(owner, spender)] = amount
            self.persist()
        self._emit(APPROVAL, owner=owner, spender=spender, amount=amount)
        return True

    # --- Internals ---
    def _check(self, amount: int, a: str, b: str):
        if not isinstance(amount, int) or amount < 0:
            raise LedgerError(f"Invalid amount: {amount}")
        if not a or not b:
            raise LedgerError("Missing address")

    def _move(self, sender: str, to: str, amount: int):
        self._balances[sender] = self.balance_of(sender) - amount
        self._balances[to] = self.balance_of(to) + amount

    def _mint(self, to: str, amount: int):
        self._balances[to] = self.balance_of(to) + amount
        self.total_supply += amount
        logger.info(f"Minted {amount} {self.symbol} to {to}")

    def _emit(self, event_type: str, **data):
        if self.event_bus:
            self.event_bus.emit(event_type, token=self.address, **data)

    def persist(self):
        """Writes balances, allowances and supply to DB."""
        if self.db is None:
            return
        items = [(f"bal:{addr}", str(bal)) for addr, bal in self._balances.items()]
        items += [(f"allow:{owner}:{spender}", str(v)) for (owner, spender), v in self._allowances.items()]
        items.append(("token:meta", json.dumps({
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "total_supply": self.total_supply,
        })))
        self.db.write_batch(items)

    def _load(self) -> bool:
        raw = self.db.get_state("token:meta")
        if not raw:
            return False
        meta = json.loads(raw)
        self.address = meta["address"]
        self.name = meta["name"]
        self.symbol = meta["symbol"]
        self.total_supply = int(meta["total_supply"])
        for k, v in self.db.get_state_by_prefix("bal:").items():
            self._balances[k.split(":", 1)[1]] = int(v)
        for k, v in self.db.get_state_by_prefix("allow:").items():
            _, owner, spender = k.split(":", 2)
            self._allowances[(owner, spender)] = int(v)
        return True
