# MIT License
# Copyright (c) 2025 Hashborn

from typing import Protocol
import logging
from ...protocol.types.common import NotOwner, ValidationError

logger = logging.getLogger(__name__)


class AccessGuard(Protocol):
    def is_owner(self, caller: str) -> bool: ...


class OwnerGuard:
    """Single-owner capability check."""

    def __init__(self, owner: str):
        if not owner:
            raise ValidationError("Owner address required")
        self.owner = owner

    def is_owner(self, caller: str) -> bool:
        return caller == self.owner

    def require_owner(self, caller: str):
        if not self.is_owner(caller):
            raise NotOwner(f"Caller {caller} is not the owner")

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hands ownership to `new_owner`. Returns the previous owner."""
        self.require_owner(caller)
        if not new_owner:
            raise ValidationError("New owner address required")
        previous = self.owner
        self.owner = new_owner
        logger.info(f"Ownership transferred from {previous} to {new_owner}")
        return previous
