import pytest

from txforge.core.address import (
    address_to_bytes,
    resolve_payment_key_hash,
    resolve_reward_address,
    resolve_stake_key_hash,
)

from conftest import BASE_ADDRESS, SENDER, SENDER_KEY_HASH, STAKE_ADDRESS


def test_payment_key_hash_of_enterprise_address():
    assert resolve_payment_key_hash(SENDER) == SENDER_KEY_HASH


def test_address_bytes_carry_header_and_credential():
    assert address_to_bytes(SENDER) == bytes.fromhex("60" + SENDER_KEY_HASH)


@pytest.mark.parametrize("address", ["", "not-an-address", "addr_test1qqqq"])
def test_invalid_address_is_rejected(address):
    with pytest.raises(ValueError):
        resolve_payment_key_hash(address)


def test_stake_address_has_no_payment_credential():
    with pytest.raises(ValueError):
        resolve_payment_key_hash(STAKE_ADDRESS)


def test_reward_address_of_base_address():
    reward_address = resolve_reward_address(BASE_ADDRESS)

    assert reward_address.startswith("stake1")
    assert resolve_stake_key_hash(reward_address) == resolve_stake_key_hash(BASE_ADDRESS)


def test_enterprise_address_has_no_stake_credential():
    with pytest.raises(ValueError):
        resolve_stake_key_hash(SENDER)
    with pytest.raises(ValueError):
        resolve_reward_address(SENDER)


def test_stake_key_hash_of_reward_address():
    key_hash = resolve_stake_key_hash(STAKE_ADDRESS)

    assert len(key_hash) == 56
    int(key_hash, 16)
