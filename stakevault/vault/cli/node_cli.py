# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import os
import json
import logging
import asyncio
from uvicorn import Config, Server
from ...protocol.crypto.keys import generate_private_key, public_key_from_private
from ...protocol.crypto.addresses import address_from_pubkey
from ...protocol.config.params import CURRENT_PROFILE, ACCOUNT_PREFIX
from ..core.controller import VaultController
from ..core.events import EventBus
from ..core.ledger import TokenLedger
from ..storage.db import StorageDB
from ..observability.metrics import bind_event_metrics
from ..rpc import api

logger = logging.getLogger(__name__)


def cmd_init(args):
    """Initialize node: owner key, genesis and data dir."""
    data_dir = args.datadir
    os.makedirs(data_dir, exist_ok=True)

    key_path = os.path.join(data_dir, "owner_key.hex")
    if not os.path.exists(key_path):
        if CURRENT_PROFILE.owner_priv_key:
            priv = bytes.fromhex(CURRENT_PROFILE.owner_priv_key)
            print("Using DETERMINISTIC devnet owner key.")
        else:
            priv = generate_private_key()
        with open(key_path, "w") as f:
            f.write(priv.hex())
        os.chmod(key_path, 0o600)
    else:
        print(f"Owner key already exists at {key_path}")
        with open(key_path, "r") as f:
            priv = bytes.fromhex(f.read().strip())

    owner = address_from_pubkey(public_key_from_private(priv), prefix=ACCOUNT_PREFIX)
    print(f"Owner address: {owner}")

    genesis_path = os.path.join(data_dir, "genesis.json")
    if os.path.exists(genesis_path):
        print(f"Genesis already exists at {genesis_path}")
    else:
        genesis = CURRENT_PROFILE.to_dict()
        genesis["owner"] = owner
        genesis["alloc"] = {owner: CURRENT_PROFILE.initial_supply}
        with open(genesis_path, "w") as f:
            json.dump(genesis, f, indent=2)
        print(f"Wrote genesis for profile '{CURRENT_PROFILE.profile_id}'")

    print(f"\nNode initialized in {data_dir}")


def load_vault(data_dir: str) -> VaultController:
    """Builds ledger and vault from genesis.json, resuming stored state."""
    genesis_path = os.path.join(data_dir, "genesis.json")
    if not os.path.exists(genesis_path):
        raise FileNotFoundError(f"No genesis.json in {data_dir}. Run 'init' first.")
    with open(genesis_path, "r") as f:
        genesis = json.load(f)

    db = StorageDB(os.path.join(data_dir, "vault.db"))
    bus = EventBus()

    alloc = genesis.get("alloc", {})
    if len(alloc) != 1:
        raise ValueError("genesis alloc must hold exactly one initial holder")
    holder, supply = next(iter(alloc.items()))

    ledger = TokenLedger(
        name=genesis["token_name"],
        symbol=genesis["token_symbol"],
        initial_supply=int(supply),
        holder=holder,
        db=db,
        event_bus=bus,
    )
    vault = VaultController(
        ledger,
        int(genesis["rate_percent"]),
        int(genesis["lockup_days"]),
        int(genesis["reward_period_days"]),
        owner=genesis["owner"],
        db=db,
        event_bus=bus,
    )
    bind_event_metrics(bus)
    return vault


async def run_node_async(args):
    data_dir = args.datadir

    print(f"Starting StakeVault node...")
    print(f"Data dir: {data_dir}")
    print(f"RPC: {args.host}:{args.port}")

    vault = load_vault(data_dir)
    # Inject into RPC module (global var)
    api.vault = vault
    logger.info(f"Vault {vault.vault_address} ready (phase {vault.phase.value})")

    config = Config(app=api.app, host=args.host, port=args.port, log_level="info")
    server = Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        pass
    finally:
        vault.db.close()


def cmd_run(args):
    """Wrapper to run async main."""
    try:
        asyncio.run(run_node_async(args))
    except KeyboardInterrupt:
        pass


def main():
    parser = argparse.ArgumentParser(description="StakeVault Node CLI")
    parser.add_argument("--datadir", default="./.stakevault", help="Data directory")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Initialize owner key and genesis")

    run_parser = subparsers.add_parser("run", help="Run the node")
    run_parser.add_argument("--host", default="0.0.0.0", help="RPC Host")
    run_parser.add_argument("--port", type=int, default=8000, help="RPC Port")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "init":
        cmd_init(args)
    elif args.command == "run":
        cmd_run(args)

if __name__ == "__main__":
    main()
