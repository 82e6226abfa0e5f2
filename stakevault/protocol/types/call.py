# MIT License
# Copyright (c) 2025 Hashborn

import json
from pydantic import BaseModel
from typing import Optional
from ..crypto.hash import sha256_hex
from ..crypto.keys import sign as crypto_sign
from .common import CallType


class VaultCall(BaseModel):
    """Signed request to run one vault operation on behalf of `sender`."""
    method: CallType
    sender: str
    amount: int = 0                # in base units (10^-18 token)
    target: Optional[str] = None   # New owner for TRANSFER_OWNERSHIP
    nonce: int
    pub_key: str = ""              # hex compressed secp256k1 key of sender
    signature: str = ""            # hex (r,s), default empty

    def hash(self) -> str:
        # Sort keys for deterministic hashing
        payload = {
            "method": self.method.value,
            "sender": self.sender,
            "target": self.target or "",
            "amount": self.amount,
            "nonce": self.nonce,
            "pub_key": self.pub_key,
        }
        payload_str = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return sha256_hex(payload_str.encode("utf-8"))

    def sign(self, priv_key_bytes: bytes):
        """Signs the call hash."""
        msg_hash = bytes.fromhex(self.hash())
        self.signature = crypto_sign(msg_hash, priv_key_bytes).hex()
