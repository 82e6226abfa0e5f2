# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import sys
import json
import os
from decimal import Decimal, InvalidOperation
import requests
from .keystore import KeyStore
from ..protocol.types.call import VaultCall
from ..protocol.types.common import CallType
from ..protocol.config.params import DECIMALS, DENOM

DEFAULT_NODE = "http://localhost:8000"

def get_node_url(args):
    return args.node or os.environ.get("STAKEVAULT_NODE", DEFAULT_NODE)

def to_units(amount: str) -> int:
    """Converts a decimal token amount ("1.5") to base units."""
    try:
        value = Decimal(amount) * (10 ** DECIMALS)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount}")
    if value != value.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {DECIMALS} decimals")
    return int(value)

def from_units(units: int) -> str:
    return f"{(Decimal(units) / (10 ** DECIMALS)).normalize():f}"

def fail(message: str):
    print(f"Error: {message}")
    sys.exit(1)

# --- Keys Commands ---
def cmd_keys_add(args):
    try:
        key = KeyStore().create_key(args.name)
    except ValueError as e:
        fail(str(e))
    print(f"Key '{args.name}' created.")
    print(f"Address: {key['address']}")
    print("Important: Private key saved unencrypted. Do not share!")

def cmd_keys_import(args):
    try:
        key = KeyStore().import_key(args.name, args.private_key)
    except ValueError as e:
        fail(str(e))
    print(f"Key '{args.name}' imported.")
    print(f"Address: {key['address']}")

def cmd_keys_list(args):
    keys = KeyStore().list_keys()
    if not keys:
        print("No keys found.")
        return

    print(f"{'Name':<15} {'Address':<50}")
    print("-" * 65)
    for k in keys:
        print(f"{k['name']:<15} {k['address']:<50}")

def cmd_keys_show(args):
    key = KeyStore().get_key(args.name)
    if not key:
        fail(f"Key '{args.name}' not found.")
    print(json.dumps({k: v for k, v in key.items() if k != 'private_key'}, indent=2))

# --- Query Commands ---
def _get(url: str, path: str) -> dict:
    try:
        resp = requests.get(f"{url}{path}", timeout=10)
    except requests.RequestException as e:
        fail(f"Connection error: {e}")
    if resp.status_code != 200:
        fail(resp.text)
    return resp.json()

def cmd_query_status(args):
    print(json.dumps(_get(get_node_url(args), "/status"), indent=2))

def cmd_query_stake(args):
    data = _get(get_node_url(args), f"/stake/{args.address}")
    print(f"Principal: {from_units(data['principal'])} {DENOM}")
    print(f"Reward:    {from_units(data['reward'])} {DENOM}")
    print(f"Nonce:     {data['nonce']}")

def cmd_query_balance(args):
    data = _get(get_node_url(args), f"/balance/{args.address}")
    print(f"Balance:   {from_units(data['balance'])} {DENOM}")
    print(f"Allowance: {from_units(data['allowance'])} {DENOM}")

# --- Call Commands ---
def send_call(args, method: CallType, amount: int = 0, target: str = None):
    try:
        sender, priv, pub_hex = KeyStore().load_signer(args.from_name)
    except ValueError as e:
        fail(str(e))

    url = get_node_url(args)
    nonce = _get(url, f"/nonce/{sender}")["nonce"]

    call = VaultCall(
        method=method,
        sender=sender,
        amount=amount,
        target=target,
        nonce=nonce,
        pub_key=pub_hex,
    )
    call.sign(priv)

    try:
        resp = requests.post(f"{url}/call", json=call.model_dump(mode="json"), timeout=10)
    except requests.RequestException as e:
        fail(f"Connection error: {e}")
    if resp.status_code != 200:
        fail(resp.text)
    res = resp.json()
    print(f"Success! CallHash: {res['call_hash']}")
    return res

def _amount_arg(args) -> int:
    try:
        return to_units(args.amount)
    except ValueError as e:
        fail(str(e))

def cmd_call_approve(args):
    send_call(args, CallType.APPROVE, _amount_arg(args))

def cmd_call_deposit(args):
    res = send_call(args, CallType.DEPOSIT, _amount_arg(args))
    print(f"Staked principal: {from_units(res['result'])} {DENOM}")

def cmd_call_start_staking(args):
    res = send_call(args, CallType.START_STAKING)
    print(f"Staking started at {res['result']}")

def cmd_call_claim(args):
    res = send_call(args, CallType.CLAIM)
    print(f"Claimed {from_units(res['result'])} {DENOM}")

def cmd_call_withdraw(args):
    res = send_call(args, CallType.WITHDRAW_ALL)
    print(f"Withdrawn {from_units(res['result'])} {DENOM}")

def cmd_call_fund(args):
    res = send_call(args, CallType.FUND_REWARDS, _amount_arg(args))
    print(f"Reward reserve: {from_units(res['result'])} {DENOM}")

def cmd_call_transfer_ownership(args):
    send_call(args, CallType.TRANSFER_OWNERSHIP, target=args.new_owner)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="StakeVault CLI")
    parser.add_argument("--node", help="Node URL (default: http://localhost:8000)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Keys
    p_keys = subparsers.add_parser("keys", help="Manage keys")
    sp_keys = p_keys.add_subparsers(dest="subcommand", required=True)

    pk_add = sp_keys.add_parser("add", help="Create new key")
    pk_add.add_argument("name", help="Key name")
    pk_add.set_defaults(func=cmd_keys_add)

    pk_imp = sp_keys.add_parser("import", help="Import private key")
    pk_imp.add_argument("name", help="Key name")
    pk_imp.add_argument("--private-key", required=True, help="Hex private key")
    pk_imp.set_defaults(func=cmd_keys_import)

    pk_list = sp_keys.add_parser("list", help="List keys")
    pk_list.set_defaults(func=cmd_keys_list)

    pk_show = sp_keys.add_parser("show", help="Show key details")
    pk_show.add_argument("name", help="Key name")
    pk_show.set_defaults(func=cmd_keys_show)

    # Queries
    p_query = subparsers.add_parser("query", help="Query vault state")
    sp_query = p_query.add_subparsers(dest="subcommand", required=True)

    pq_status = sp_query.add_parser("status", help="Vault parameters and totals")
    pq_status.set_defaults(func=cmd_query_status)

    pq_stake = sp_query.add_parser("stake", help="Principal and pending reward of an account")
    pq_stake.add_argument("address", help="Account address")
    pq_stake.set_defaults(func=cmd_query_stake)

    pq_bal = sp_query.add_parser("balance", help="Token balance and vault allowance")
    pq_bal.add_argument("address", help="Account address")
    pq_bal.set_defaults(func=cmd_query_balance)

    # Calls
    p_call = subparsers.add_parser("call", help="Sign and send vault calls")
    sp_call = p_call.add_subparsers(dest="subcommand", required=True)

    def add_call(name, func, help_text, with_amount=False):
        p = sp_call.add_parser(name, help=help_text)
        if with_amount:
            p.add_argument("amount", help=f"Amount in {DENOM}")
        p.add_argument("--from", dest="from_name", required=True, help="Sender key name")
        p.set_defaults(func=func)
        return p

    add_call("approve", cmd_call_approve, "Allow the vault to pull tokens", with_amount=True)
    add_call("deposit", cmd_call_deposit, "Deposit tokens", with_amount=True)
    add_call("start-staking", cmd_call_start_staking, "Start reward accrual (owner)")
    add_call("claim", cmd_call_claim, "Claim pending reward")
    add_call("withdraw", cmd_call_withdraw, "Withdraw principal and reward after lockup")
    add_call("fund", cmd_call_fund, "Add tokens to the reward reserve", with_amount=True)
    p_owner = add_call("transfer-ownership", cmd_call_transfer_ownership, "Hand vault ownership to another address")
    p_owner.add_argument("new_owner", help="New owner address")

    return parser

def main(argv=None):
    args = build_parser().parse_args(argv)
    args.func(args)

if __name__ == "__main__":
    main()
