# MIT License
# Copyright (c) 2025 Hashborn

import os
import json
import time
from typing import List, Dict, Optional, Tuple
from ..protocol.crypto.keys import generate_private_key, public_key_from_private
from ..protocol.crypto.addresses import address_from_pubkey
from ..protocol.config.params import ACCOUNT_PREFIX

KEYSTORE_DIR = os.path.expanduser(os.environ.get("STAKEVAULT_KEYS", "~/.stakevault/keys"))

class KeyStore:
    """Plain JSON key files, one per name, readable only by the user."""

    def __init__(self, root_dir: str = KEYSTORE_DIR):
        self.root_dir = root_dir
        os.makedirs(self.root_dir, exist_ok=True)

    def create_key(self, name: str) -> Dict[str, str]:
        """Generates and saves a new key."""
        return self._store(name, generate_private_key())

    def import_key(self, name: str, private_key_hex: str) -> Dict[str, str]:
        """Imports an existing 32-byte hex private key."""
        try:
            priv = bytes.fromhex(private_key_hex)
        except ValueError:
            raise ValueError("Invalid hex string")
        if len(priv) != 32:
            raise ValueError("Invalid private key length")
        return self._store(name, priv)

    def get_key(self, name: str) -> Optional[Dict[str, str]]:
        path = self._path(name)
        if not os.path.exists(path):
            return None
        with open(path, "r") as f:
            return json.load(f)

    def load_signer(self, name: str) -> Tuple[str, bytes, str]:
        """Returns (address, private key bytes, public key hex) for a stored key."""
        key = self.get_key(name)
        if not key:
            raise ValueError(f"Key '{name}' not found")
        return key["address"], bytes.fromhex(key["private_key"]), key["public_key"]

    def list_keys(self) -> List[Dict[str, str]]:
        """Lists all available keys (without private info)."""
        keys = []
        for filename in sorted(os.listdir(self.root_dir)):
            if not filename.endswith(".json"):
                continue
            data = self.get_key(filename[:-5])
            if data:
                keys.append({k: v for k, v in data.items() if k != "private_key"})
        return keys

    def delete_key(self, name: str) -> bool:
        path = self._path(name)
        if os.path.exists(path):
            os.remove(path)
            return True
        return False

    def _path(self, name: str) -> str:
        return os.path.join(self.root_dir, f"{name}.json")

    def _store(self, name: str, priv: bytes) -> Dict[str, str]:
        if self.get_key(name):
            raise ValueError(f"Key '{name}' already exists")

        pub = public_key_from_private(priv)
        key_data = {
            "name": name,
            "address": address_from_pubkey(pub, prefix=ACCOUNT_PREFIX),
            "public_key": pub.hex(),
            "private_key": priv.hex(),
            "created_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        }

        path = self._path(name)
        with open(path, "w") as f:
            json.dump(key_data, f, indent=2)
        os.chmod(path, 0o600)
        return key_data
