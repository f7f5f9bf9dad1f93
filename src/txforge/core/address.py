"""
Address helpers for the txforge system.

Bech32 decoding and credential extraction are delegated to pycardano.
"""

from pycardano import Address
from pycardano.exception import PyCardanoException


def _decode(address: str) -> Address:
    try:
        return Address.from_primitive(address)
    except (PyCardanoException, ValueError, TypeError, IndexError) as e:
        raise ValueError(f"Invalid address: {address}") from e


def address_to_bytes(address: str) -> bytes:
    return _decode(address).to_primitive()


def resolve_payment_key_hash(address: str) -> str:
    """Get the payment credential hash of an address.

    Args:
        address: Bech32 encoded Shelley address

    Returns:
        str: Hex encoded payment credential hash

    Raises:
        ValueError: If the address is invalid or has no payment part
    """
    payment_part = _decode(address).payment_part
    if payment_part is None:
        raise ValueError(f"Address has no payment credential: {address}")
    return payment_part.to_primitive().hex()


def resolve_stake_key_hash(address: str) -> str:
    staking_part = _decode(address).staking_part
    if staking_part is None or not hasattr(staking_part, "to_primitive"):
        raise ValueError(f"Address has no stake credential: {address}")
    return staking_part.to_primitive().hex()


def resolve_reward_address(address: str) -> str:
    """Get the stake (reward) address that shares the stake credential of `address`."""
    decoded = _decode(address)
    if decoded.staking_part is None:
        raise ValueError(f"Address has no stake credential: {address}")
    return str(Address(staking_part=decoded.staking_part, network=decoded.network))
