"""
Tests for the pycardano backed transaction encoder.
"""
import cbor2
import pytest
from pycardano.certificate import StakeDeregistration, StakeRegistration
from pycardano.hash import VerificationKeyHash
from pycardano.transaction import Transaction as LedgerTransaction

from txforge.core.models.asset import LOVELACE, Asset
from txforge.core.models.protocol import Protocol
from txforge.core.models.transaction import (
    Action,
    Certificate,
    Mint,
    Recipient,
    TxBuildRequest,
    TxInput,
    TxOutput,
    Withdrawal,
)
from txforge.core.transaction import CborTxEncoder, EncodingError, encode_aiken_script, to_plutus_data

from conftest import (
    ALWAYS_SUCCEEDS,
    POLICY_A,
    RECEIVER,
    SCRIPT,
    SCRIPT_ADDRESS,
    SCRIPT_POLICY,
    SENDER,
    SENDER_KEY_HASH,
    STAKE_ADDRESS,
    TOKEN_A,
    make_utxo,
)

SCRIPT_TOKEN = SCRIPT_POLICY + "4d494e54"

FIXED_FEE = Protocol(min_fee_a=0, min_fee_b=200_000)
WITH_COST_MODELS = Protocol(cost_models={"PlutusV2": [205665, 812, 1, 1, 1000]})


def _output(address, lovelace=0, tokens=None):
    amount = [Asset(unit=LOVELACE, quantity=lovelace)] if lovelace else []
    amount += [Asset(unit=unit, quantity=qty) for unit, qty in (tokens or {}).items()]
    return TxOutput(recipient=Recipient(address=address), amount=amount)


def _request(inputs, outputs, **kwargs):
    return TxBuildRequest(
        inputs=[i if isinstance(i, TxInput) else TxInput(utxo=i) for i in inputs],
        outputs=outputs,
        change_address=kwargs.pop("change_address", SENDER),
        **kwargs,
    )


def _decode(tx_hex):
    return LedgerTransaction.from_cbor(tx_hex)


def _coin(output):
    amount = output.amount
    return amount if isinstance(amount, int) else amount.coin


def _refs(inputs):
    return {(tx_input.transaction_id.payload.hex(), tx_input.index) for tx_input in inputs}


def test_request_without_inputs_is_rejected():
    with pytest.raises(EncodingError):
        CborTxEncoder().build_sync(_request([], [_output(RECEIVER, 2_000_000)]))


def test_every_input_is_spent_into_change():
    late = make_utxo(7, lovelace=4_000_000)
    early = make_utxo(2, lovelace=4_000_000)

    body = _decode(CborTxEncoder(FIXED_FEE).build_sync(_request([late, early], []))).transaction_body

    assert _refs(body.inputs) == {(early.tx_hash, 0), (late.tx_hash, 0)}
    assert body.fee == 200_000
    assert len(body.outputs) == 1
    assert _coin(body.outputs[0]) == 8_000_000 - 200_000


def test_token_output_gets_minimum_lovelace():
    utxo = make_utxo(1, lovelace=10_000_000, tokens={TOKEN_A: 50})

    body = _decode(
        CborTxEncoder(FIXED_FEE).build_sync(_request([utxo], [_output(RECEIVER, tokens={TOKEN_A: 10})]))
    ).transaction_body

    policy, name = bytes.fromhex(POLICY_A), bytes.fromhex(TOKEN_A[56:])
    sent, change = body.outputs
    assert _coin(sent) > 0
    assert sent.amount.multi_asset.to_primitive() == {policy: {name: 10}}
    assert _coin(change) == 10_000_000 - _coin(sent) - 200_000
    assert change.amount.multi_asset.to_primitive() == {policy: {name: 40}}


def test_output_below_minimum_lovelace_is_rejected():
    utxo = make_utxo(1, lovelace=10_000_000)

    with pytest.raises(EncodingError):
        CborTxEncoder(FIXED_FEE).build_sync(_request([utxo], [_output(RECEIVER, 1_000)]))


def test_insufficient_lovelace_is_reported():
    utxo = make_utxo(1, lovelace=1_000_000)

    with pytest.raises(EncodingError) as excinfo:
        CborTxEncoder().build_sync(_request([utxo], [_output(RECEIVER, 5_000_000)]))

    assert "lovelace" in str(excinfo.value)


def test_missing_token_is_reported():
    utxo = make_utxo(1, lovelace=10_000_000)

    with pytest.raises(EncodingError) as excinfo:
        CborTxEncoder().build_sync(
            _request([utxo], [_output(RECEIVER, 2_000_000, tokens={TOKEN_A: 1})])
        )

    assert TOKEN_A in str(excinfo.value)


def test_remainder_too_small_for_change_is_rejected():
    params = Protocol(min_fee_a=0, min_fee_b=100_000)
    utxo = make_utxo(1, lovelace=5_150_000)

    with pytest.raises(EncodingError):
        CborTxEncoder(params).build_sync(_request([utxo], [_output(RECEIVER, 5_000_000)]))


def test_fee_covers_transaction_size():
    utxo = make_utxo(1, lovelace=10_000_000)
    params = Protocol(min_fee_a=44, min_fee_b=155_381)

    tx_hex = CborTxEncoder(params).build_sync(_request([utxo], [_output(RECEIVER, 2_000_000)]))
    body = _decode(tx_hex).transaction_body

    assert body.fee >= 44 * (len(tx_hex) // 2) + 155_381
    assert sum(_coin(output) for output in body.outputs) + body.fee == 10_000_000


def test_fee_buffer_is_added():
    utxo = make_utxo(1, lovelace=10_000_000)

    body = _decode(
        CborTxEncoder(FIXED_FEE, fee_buffer=1_000).build_sync(_request([utxo], [_output(RECEIVER, 2_000_000)]))
    ).transaction_body

    assert body.fee == 201_000


def test_metadata_is_attached_with_its_hash():
    utxo = make_utxo(1, lovelace=10_000_000)

    tx = _decode(
        CborTxEncoder(FIXED_FEE).build_sync(
            _request([utxo], [_output(RECEIVER, 2_000_000)], metadata={674: {"msg": ["hello"]}})
        )
    )

    assert tx.auxiliary_data is not None
    assert tx.transaction_body.auxiliary_data_hash == tx.auxiliary_data.hash()


def test_metadata_string_over_64_bytes_is_rejected():
    utxo = make_utxo(1, lovelace=10_000_000)

    with pytest.raises(EncodingError):
        CborTxEncoder(FIXED_FEE).build_sync(
            _request([utxo], [_output(RECEIVER, 2_000_000)], metadata={674: {"msg": "x" * 65}})
        )


def test_boolean_metadata_is_rejected():
    utxo = make_utxo(1, lovelace=10_000_000)

    with pytest.raises(EncodingError):
        CborTxEncoder(FIXED_FEE).build_sync(_request([utxo], [], metadata={1: True}))


def test_optional_body_fields():
    utxo = make_utxo(1, lovelace=10_000_000)
    collateral = make_utxo(2, lovelace=5_000_000)

    body = _decode(
        CborTxEncoder(FIXED_FEE).build_sync(
            _request(
                [utxo],
                [_output(RECEIVER, 2_000_000)],
                invalid_before=100,
                invalid_after=200,
                required_signers=[SENDER_KEY_HASH],
                collaterals=[collateral],
            )
        )
    ).transaction_body

    assert body.ttl == 200
    assert body.validity_start == 100
    assert _refs(body.collateral) == {(collateral.tx_hash, 0)}
    assert list(body.required_signers) == [VerificationKeyHash(bytes.fromhex(SENDER_KEY_HASH))]
    assert body.mint is None
    assert body.script_data_hash is None


def test_script_input_carries_script_data_hash():
    plain = make_utxo(1, lovelace=5_000_000)
    collateral = make_utxo(2, lovelace=20_000_000)
    locked = make_utxo(20, lovelace=15_000_000, address=SCRIPT_ADDRESS)
    redeemer = Action(data={"alternative": 1, "fields": [5]})
    script_input = TxInput(utxo=locked, script=ALWAYS_SUCCEEDS, datum=42, redeemer=redeemer)

    tx = _decode(
        CborTxEncoder(WITH_COST_MODELS).build_sync(
            _request([script_input, plain], [_output(SENDER, 10_000_000)], collaterals=[collateral])
        )
    )
    body, witness_set = tx.transaction_body, tx.transaction_witness_set

    assert body.script_data_hash is not None
    assert list(witness_set.plutus_v2_script) == [SCRIPT]
    assert len(witness_set.plutus_data) == 1
    assert len(witness_set.redeemer) == 1
    assert _refs(body.collateral) == {(collateral.tx_hash, 0)}
    # execution units alone cost 403900 + 216300 lovelace
    assert body.fee > 620_200
    assert body.ttl is None
    assert body.validity_start is None


def test_script_input_at_key_address_is_rejected():
    locked = make_utxo(20, lovelace=15_000_000, address=RECEIVER)
    script_input = TxInput(utxo=locked, script=ALWAYS_SUCCEEDS, datum=42, redeemer=Action())

    with pytest.raises(EncodingError):
        CborTxEncoder().build_sync(_request([script_input], [_output(SENDER, 10_000_000)]))


def test_mint_is_balanced_and_redeemed():
    utxo = make_utxo(1, lovelace=10_000_000)
    collateral = make_utxo(2, lovelace=20_000_000)
    mint = Mint(unit=SCRIPT_TOKEN, quantity=100, script=ALWAYS_SUCCEEDS, redeemer=Action(tag="MINT"))

    tx = _decode(
        CborTxEncoder(WITH_COST_MODELS).build_sync(
            _request(
                [utxo],
                [_output(RECEIVER, 2_000_000, tokens={SCRIPT_TOKEN: 100})],
                mints=[mint],
                collaterals=[collateral],
            )
        )
    )
    body = tx.transaction_body

    assert body.mint.to_primitive() == {bytes.fromhex(SCRIPT_POLICY): {bytes.fromhex("4d494e54"): 100}}
    assert body.script_data_hash is not None
    assert len(tx.transaction_witness_set.redeemer) == 1
    assert len(body.outputs) == 2


def test_mint_redeemer_with_wrong_tag_is_rejected():
    utxo = make_utxo(1, lovelace=10_000_000)
    mint = Mint(unit=SCRIPT_TOKEN, quantity=1, script=ALWAYS_SUCCEEDS, redeemer=Action(tag="SPEND"))

    with pytest.raises(EncodingError):
        CborTxEncoder().build_sync(_request([utxo], [], mints=[mint], collaterals=[utxo]))


def test_stake_registration_pays_deposit():
    utxo = make_utxo(1, lovelace=10_000_000)
    certificate = Certificate(kind="stake_registration", reward_address=STAKE_ADDRESS)

    body = _decode(
        CborTxEncoder(FIXED_FEE).build_sync(_request([utxo], [], certificates=[certificate]))
    ).transaction_body

    assert isinstance(body.certificates[0], StakeRegistration)
    assert _coin(body.outputs[0]) == 10_000_000 - 2_000_000 - 200_000


def test_stake_deregistration_refunds_deposit():
    utxo = make_utxo(1, lovelace=10_000_000)
    certificate = Certificate(kind="stake_deregistration", reward_address=STAKE_ADDRESS)

    body = _decode(
        CborTxEncoder(FIXED_FEE).build_sync(_request([utxo], [], certificates=[certificate]))
    ).transaction_body

    assert isinstance(body.certificates[0], StakeDeregistration)
    assert _coin(body.outputs[0]) == 10_000_000 + 2_000_000 - 200_000


def test_withdrawal_adds_to_inputs():
    utxo = make_utxo(1, lovelace=10_000_000)

    body = _decode(
        CborTxEncoder(FIXED_FEE).build_sync(
            _request([utxo], [], withdrawals=[Withdrawal(reward_address=STAKE_ADDRESS, quantity=1_000_000)])
        )
    ).transaction_body

    assert len(body.withdraws) == 1
    assert _coin(body.outputs[0]) == 10_000_000 + 1_000_000 - 200_000


def test_encode_aiken_script_wraps_compiled_code():
    assert encode_aiken_script("4d01000033222220051200120011") == ALWAYS_SUCCEEDS
    assert cbor2.loads(bytes.fromhex(encode_aiken_script("0101"))) == b"\x01\x01"


def test_plutus_data_constructors():
    assert to_plutus_data(True) == cbor2.CBORTag(122, [])
    assert to_plutus_data(False) == cbor2.CBORTag(121, [])
    assert to_plutus_data({"alternative": 0, "fields": [1, "ab"]}) == cbor2.CBORTag(121, [1, b"\xab"])
    assert to_plutus_data({"alternative": 8, "fields": []}) == cbor2.CBORTag(1281, [])
    assert to_plutus_data({"alternative": 200, "fields": []}) == cbor2.CBORTag(102, [200, []])


def test_plutus_data_strings_and_maps():
    assert to_plutus_data("hello") == b"hello"
    assert to_plutus_data({"cafe": [1, 2]}) == {b"\xca\xfe": [1, 2]}
    with pytest.raises(EncodingError):
        to_plutus_data(1.5)
