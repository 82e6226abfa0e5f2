# MIT License
# Copyright (c) 2025 Hashborn

from typing import Dict, List, Optional, Set, Tuple
import logging
from ...protocol.types.stake import StakeRecord
from ...protocol.types.common import InvalidAmount
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


class StakeRegistry:
    """Authoritative map from account to stake record, plus the running total."""

    def __init__(self, db: Optional[StorageDB] = None, records: Dict[str, StakeRecord] = None):
        self.db = db
        self._records: Dict[str, StakeRecord] = records if records is not None else {}
        self._total = sum(r.principal for r in self._records.values())
        # Accounts whose record was removed since the last persist
        self._removed: Set[str] = set()

    def load(self):
        """Loads all stake records from DB."""
        if self.db is None:
            return
        for key, raw in self.db.get_state_by_prefix("stake:").items():
            record = StakeRecord.model_validate_json(raw)
            self._records[record.account] = record
        self._total = sum(r.principal for r in self._records.values())
        logger.info(f"Loaded {len(self._records)} stake records (total {self._total})")

    def get_record(self, account: str) -> StakeRecord:
        if account in self._records:
            return self._records[account]
        return StakeRecord(account=account)

    def set_record(self, record: StakeRecord):
        old = self._records.get(record.account)
        old_principal = old.principal if old else 0
        self._total += record.principal - old_principal
        if record.is_empty and record.reward_checkpoint == 0:
            self._records.pop(record.account, None)
            self._removed.add(record.account)
        else:
            self._records[record.account] = record
            self._removed.discard(record.account)

    def remove(self, account: str):
        record = self._records.pop(account, None)
        if record is not None:
            self._total -= record.principal
            self._removed.add(account)

    def records(self) -> List[StakeRecord]:
        return list(self._records.values())

    def deposit(self, account: str, amount: int) -> StakeRecord:
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("Amount must be greater than 0")
        record = self.get_record(account).model_copy()
        record.principal += amount
        self.set_record(record)
        return record

    def principal_of(self, account: str) -> int:
        return self.get_record(account).principal

    def total_deposited(self) -> int:
        return self._total

    def clear(self, account: str) -> int:
        """Zeroes the account's principal and returns the prior value."""
        record = self.get_record(account).model_copy()
        prior = record.principal
        record.principal = 0
        self.set_record(record)
        return prior

    def snapshot(self) -> Tuple[Dict[str, StakeRecord], int, Set[str]]:
        return ({k: v.model_copy() for k, v in self._records.items()}, self._total, set(self._removed))

    def restore(self, snapshot: Tuple[Dict[str, StakeRecord], int, Set[str]]):
        records, total, removed = snapshot
        self._records = records
        self._total = total
        self._removed = removed

    def persist(self):
        """Writes modified records to DB and drops removed ones."""
        if self.db is None:
            return
        self.db.write_batch(
            ((f"stake:{addr}", rec.model_dump_json()) for addr, rec in self._records.items()),
            deletes=[f"stake:{addr}" for addr in self._removed],
        )
        self._removed.clear()
