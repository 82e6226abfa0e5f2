# MIT License
# Copyright (c) 2025 Hashborn

import shutil
import tempfile
from unittest.mock import Mock, patch

import pytest

from stakevault.cli import main as cli
from stakevault.cli.keystore import KeyStore
from stakevault.protocol.crypto.keys import verify
from stakevault.protocol.crypto.addresses import is_valid_address
from stakevault.protocol.config.params import ACCOUNT_PREFIX


@pytest.fixture
def keystore():
    temp_dir = tempfile.mkdtemp()
    yield KeyStore(temp_dir)
    shutil.rmtree(temp_dir)


def test_to_units():
    assert cli.to_units("1") == 10**18
    assert cli.to_units("1.5") == 15 * 10**17
    assert cli.to_units("0.000000000000000001") == 1
    with pytest.raises(ValueError):
        cli.to_units("abc")
    with pytest.raises(ValueError):
        cli.to_units("0.0000000000000000001")


def test_from_units():
    assert cli.from_units(15 * 10**17) == "1.5"
    assert cli.from_units(0) == "0"


def test_keystore_create_and_list(keystore):
    key = keystore.create_key("alice")
    assert is_valid_address(key["address"], ACCOUNT_PREFIX)

    with pytest.raises(ValueError, match="already exists"):
        keystore.create_key("alice")

    listed = keystore.list_keys()
    assert [k["name"] for k in listed] == ["alice"]
    assert "private_key" not in listed[0]

    assert keystore.delete_key("alice") is True
    assert keystore.get_key("alice") is None
    assert keystore.delete_key("alice") is False


def test_keystore_import(keystore):
    priv_hex = "11" * 32
    key = keystore.import_key("bob", priv_hex)
    address, priv, pub_hex = keystore.load_signer("bob")

    assert address == key["address"]
    assert priv.hex() == priv_hex

    with pytest.raises(ValueError, match="length"):
        keystore.import_key("short", "11" * 16)
    with pytest.raises(ValueError, match="hex"):
        keystore.import_key("bad", "zz")
    with pytest.raises(ValueError, match="not found"):
        keystore.load_signer("nobody")


def test_parser_call_commands():
    args = cli.build_parser().parse_args(["call", "deposit", "2.5", "--from", "alice"])
    assert args.func is cli.cmd_call_deposit
    assert args.from_name == "alice"
    assert args.amount == "2.5"

    args = cli.build_parser().parse_args(["call", "transfer-ownership", "svt1new", "--from", "owner"])
    assert args.new_owner == "svt1new"


def test_send_call_signs_with_current_nonce(keystore):
    keystore.create_key("alice")
    args = cli.build_parser().parse_args(["--node", "http://node", "call", "deposit", "3", "--from", "alice"])

    nonce_resp = Mock(status_code=200)
    nonce_resp.json.return_value = {"nonce": 7}
    call_resp = Mock(status_code=200)
    call_resp.json.return_value = {"call_hash": "ab", "status": "applied", "result": 3 * 10**18}

    with patch.object(cli, "KeyStore", return_value=keystore), \
         patch.object(cli.requests, "get", return_value=nonce_resp), \
         patch.object(cli.requests, "post", return_value=call_resp) as post:
        args.func(args)

    url = post.call_args[0][0]
    payload = post.call_args[1]["json"]
    assert url == "http://node/call"
    assert payload["method"] == "DEPOSIT"
    assert payload["amount"] == 3 * 10**18
    assert payload["nonce"] == 7

    call = cli.VaultCall(**payload)
    assert verify(bytes.fromhex(call.hash()), bytes.fromhex(call.signature), bytes.fromhex(call.pub_key))
