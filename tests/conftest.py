"""
Pytest configuration for txforge tests.

This file helps pytest find the package from a source checkout and provides
the shared fixtures and UTXO factories used across the test modules.
"""

import os
import sys
from unittest.mock import AsyncMock

import cbor2
import pytest

# Add the src directory to the Python path to help with imports
src_root = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if src_root not in sys.path:
    sys.path.insert(0, src_root)

from pycardano.address import Address
from pycardano.network import Network
from pycardano.plutus import PlutusV2Script, script_hash

from txforge.core.contracts import ICreator
from txforge.core.models.asset import LOVELACE, Asset
from txforge.core.models.utxo import UTXO

SENDER = "addr_test1vrm9x2zsux7va6w892g38tvchnzahvcd9tykqf3ygnmwtaqyfg52x"
SENDER_KEY_HASH = "f6532850e1bccee9c72a9113ad98bcc5dbb30d2ac960262444f6e5f4"
RECEIVER = "addr_test1vr2p8st5t5cxqglyjky7vk98k7jtfhdpvhl4e97cezuhn0cqcexl7"
BASE_ADDRESS = "addr1qxx7lc2kyrjp4qf3gkpezp24ugu35em2f5h05apejzzy73c7yf794gk9yzhngdse36rae52c7a6rv5seku25cd8ntves7f5fe4"
STAKE_ADDRESS = "stake_test1upyz3gk6mw5he20apnwfn96cn9rscgvmmsxc9r86dh0k66gswf59n"

POLICY_A = "a0" * 28
POLICY_B = "b0" * 28
TOKEN_A = POLICY_A + "544f4b454e41"
TOKEN_B = POLICY_B + "544f4b454e42"

# Compiled always-succeeds validator, CBOR wrapped, and the testnet address it locks
ALWAYS_SUCCEEDS = "4e4d01000033222220051200120011"
SCRIPT = PlutusV2Script(cbor2.loads(bytes.fromhex(ALWAYS_SUCCEEDS)))
SCRIPT_POLICY = script_hash(SCRIPT).payload.hex()
SCRIPT_ADDRESS = str(Address(script_hash(SCRIPT), network=Network.TESTNET))


def make_utxo(index: int, lovelace: int = 0, tokens=None, address: str = SENDER, tx_hash: str = None) -> UTXO:
    """Create a UTXO holding `lovelace` plus the given {unit: quantity} tokens."""
    amount = []
    if lovelace:
        amount.append(Asset(unit=LOVELACE, quantity=lovelace))
    for unit, quantity in (tokens or {}).items():
        amount.append(Asset(unit=unit, quantity=quantity))
    return UTXO(
        tx_hash=tx_hash or f"{index:064x}",
        output_index=0,
        address=address,
        amount=amount,
    )


def make_creator(utxos=None, collateral=None, change_address: str = SENDER) -> AsyncMock:
    """Create a creator collaborator with async methods returning fixed answers."""
    creator = AsyncMock(spec=ICreator)
    creator.get_change_address.return_value = change_address
    creator.get_used_utxos.return_value = list(utxos or [])
    creator.get_used_collateral.return_value = list(collateral or [])
    return creator


@pytest.fixture
def sender_utxos():
    """A small wallet: two pure lovelace UTXOs and one carrying TOKEN_A."""
    return [
        make_utxo(1, lovelace=20_000_000),
        make_utxo(2, lovelace=3_000_000, tokens={TOKEN_A: 500}),
        make_utxo(3, lovelace=8_000_000),
    ]


@pytest.fixture
def creator(sender_utxos):
    return make_creator(utxos=sender_utxos, collateral=[sender_utxos[2]])
