"""
Transaction encoder for the txforge system.

The builder hands a fully resolved TxBuildRequest to a TxEncoder. The bundled
CborTxEncoder maps the request onto a pycardano TransactionBuilder, which
balances it, adds the change output, estimates the fee and computes the
script data hash, and returns the serialized transaction.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import cbor2
from pycardano.address import Address
from pycardano.backend.base import ChainContext, ProtocolParameters
from pycardano.certificate import (
    PoolRetirement,
    StakeCredential,
    StakeDelegation,
    StakeDeregistration,
    StakeRegistration,
)
from pycardano.exception import PyCardanoException
from pycardano.hash import DatumHash, PoolKeyHash, VerificationKeyHash
from pycardano.metadata import AlonzoMetadata, AuxiliaryData, Metadata
from pycardano.network import Network
from pycardano.plutus import (
    ExecutionUnits,
    PlutusV2Script,
    RawPlutusData,
    Redeemer,
    RedeemerTag,
    datum_hash,
)
from pycardano.serialization import RawCBOR
from pycardano.transaction import (
    MultiAsset,
    Transaction as LedgerTransaction,
    TransactionInput,
    TransactionOutput,
    UTxO,
    Value,
    Withdrawals,
)
from pycardano.txbuilder import TransactionBuilder
from pycardano.utils import min_lovelace_post_alonzo

from txforge.core.address import address_to_bytes, resolve_stake_key_hash
from txforge.core.config import config
from txforge.core.models.asset import LOVELACE, merge_values, parse_asset_unit, subtract_values
from txforge.core.models.protocol import DEFAULT_PROTOCOL_PARAMETERS, Protocol
from txforge.core.models.transaction import Action, Certificate, Recipient, TxBuildRequest, TxInput
from txforge.core.models.utxo import UTXO

# Set up logging
logger = logging.getLogger(__name__)

REDEEMER_TAGS = {
    "SPEND": RedeemerTag.SPEND,
    "MINT": RedeemerTag.MINT,
    "CERT": RedeemerTag.CERTIFICATE,
    "REWARD": RedeemerTag.WITHDRAWAL,
}


class EncodingError(Exception):
    """Exception raised when a request cannot be turned into a transaction."""

    pass


class TxEncoder(ABC):
    @abstractmethod
    def build_sync(self, request: TxBuildRequest) -> str:
        """Encode the request and return the transaction as CBOR hex."""
        ...


def encode_aiken_script(compiled_code: str) -> str:
    """Wrap the compiled code of an Aiken validator as a CBOR byte string.

    The result is the script CBOR hex accepted by `redeem_value`, `mint_asset`
    and `Recipient.script_ref`.
    """
    return cbor2.dumps(bytes.fromhex(compiled_code)).hex()


def _to_bytes(text: str) -> bytes:
    try:
        return bytes.fromhex(text)
    except ValueError:
        return text.encode("utf-8")


def to_plutus_data(data: Any) -> Any:
    """Convert a python value to its plutus data CBOR form.

    Constructors are written as {"alternative": n, "fields": [...]}. Strings
    are read as hex when possible and as UTF-8 otherwise.
    """
    if isinstance(data, bool):
        return cbor2.CBORTag(122 if data else 121, [])
    if isinstance(data, int):
        return data
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        return _to_bytes(data)
    if isinstance(data, (list, tuple)):
        return [to_plutus_data(item) for item in data]
    if isinstance(data, dict):
        if set(data.keys()) == {"alternative", "fields"}:
            fields = [to_plutus_data(field) for field in data["fields"]]
            alternative = data["alternative"]
            if alternative < 7:
                return cbor2.CBORTag(121 + alternative, fields)
            if alternative < 128:
                return cbor2.CBORTag(1280 + alternative - 7, fields)
            return cbor2.CBORTag(102, [alternative, fields])
        return {to_plutus_data(key): to_plutus_data(value) for key, value in data.items()}
    raise EncodingError(f"Unsupported datum type: {type(data).__name__}")


def _to_datum(data: Any) -> Any:
    plutus_data = to_plutus_data(data)
    if isinstance(plutus_data, cbor2.CBORTag):
        return RawPlutusData(plutus_data)
    if isinstance(plutus_data, (list, dict)):
        return RawCBOR(cbor2.dumps(plutus_data))
    return plutus_data


def _to_metadatum(value: Any) -> Any:
    if isinstance(value, bool):
        raise EncodingError("Booleans are not valid metadata")
    if isinstance(value, (int, str, bytes)):
        return value
    if isinstance(value, (list, tuple)):
        return [_to_metadatum(item) for item in value]
    if isinstance(value, dict):
        return {_to_metadatum(key): _to_metadatum(item) for key, item in value.items()}
    raise EncodingError(f"Unsupported metadata type: {type(value).__name__}")


def _to_plutus_script(script: str) -> PlutusV2Script:
    # Scripts travel CBOR wrapped, as produced by encode_aiken_script
    flat = cbor2.loads(bytes.fromhex(script))
    if not isinstance(flat, bytes):
        raise EncodingError("Script CBOR must wrap a byte string")
    return PlutusV2Script(flat)


def _encode_multi_asset(value: Dict[str, int]) -> Dict[bytes, Dict[bytes, int]]:
    multi_asset: Dict[bytes, Dict[bytes, int]] = {}
    for unit in sorted(value):
        quantity = value[unit]
        if unit == LOVELACE or quantity == 0:
            continue
        policy_id, asset_name = parse_asset_unit(unit)
        multi_asset.setdefault(bytes.fromhex(policy_id), {})[bytes.fromhex(asset_name)] = quantity
    return multi_asset


def _to_value(value: Dict[str, int]) -> Value:
    return Value(value.get(LOVELACE, 0), MultiAsset.from_primitive(_encode_multi_asset(value)))


def _to_utxo(utxo: UTXO) -> UTxO:
    output = TransactionOutput(Address.from_primitive(utxo.address), _to_value(utxo.value()))
    if utxo.plutus_data is not None:
        output.datum = RawCBOR(bytes.fromhex(utxo.plutus_data))
    elif utxo.data_hash is not None:
        output.datum_hash = DatumHash(bytes.fromhex(utxo.data_hash))
    return UTxO(TransactionInput.from_primitive([utxo.tx_hash, utxo.output_index]), output)


def _to_redeemer(action: Action) -> Redeemer:
    redeemer = Redeemer(_to_datum(action.data), ExecutionUnits(action.budget.mem, action.budget.steps))
    redeemer.tag = REDEEMER_TAGS[action.tag]
    return redeemer


def _to_certificate(certificate: Certificate):
    if certificate.kind == "pool_retirement":
        return PoolRetirement(PoolKeyHash(bytes.fromhex(certificate.pool_id)), certificate.epoch)

    credential = StakeCredential(
        VerificationKeyHash(bytes.fromhex(resolve_stake_key_hash(certificate.reward_address)))
    )
    if certificate.kind == "stake_registration":
        return StakeRegistration(credential)
    if certificate.kind == "stake_deregistration":
        return StakeDeregistration(credential)
    return StakeDelegation(credential, PoolKeyHash(bytes.fromhex(certificate.pool_id)))


def _to_protocol_param(parameters: Protocol) -> ProtocolParameters:
    """Express a txforge protocol snapshot as pycardano protocol parameters."""
    return ProtocolParameters(
        min_fee_constant=parameters.min_fee_b,
        min_fee_coefficient=parameters.min_fee_a,
        max_block_size=parameters.max_block_size,
        max_tx_size=parameters.max_tx_size,
        max_block_header_size=parameters.max_block_header_size,
        key_deposit=parameters.key_deposit,
        pool_deposit=parameters.pool_deposit,
        pool_influence=0.3,
        monetary_expansion=0.003,
        treasury_expansion=0.2,
        decentralization_param=parameters.decentralisation,
        extra_entropy="",
        protocol_major_version=8,
        protocol_minor_version=0,
        min_utxo=1000000,
        min_pool_cost=parameters.min_pool_cost,
        price_mem=parameters.price_mem,
        price_step=parameters.price_step,
        max_tx_ex_mem=parameters.max_tx_ex_mem,
        max_tx_ex_steps=parameters.max_tx_ex_steps,
        max_block_ex_mem=parameters.max_block_ex_mem,
        max_block_ex_steps=parameters.max_block_ex_steps,
        max_val_size=parameters.max_val_size,
        collateral_percent=parameters.collateral_percent,
        max_collateral_inputs=parameters.max_collateral_inputs,
        coins_per_utxo_word=parameters.coins_per_utxo_size * 8,
        coins_per_utxo_byte=parameters.coins_per_utxo_size,
        # Zero padded keys keep the ledger parameter order however they are sorted
        cost_models={
            language: {f"{index:03d}": value for index, value in enumerate(values)}
            for language, values in parameters.cost_models.items()
        },
        maximum_reference_scripts_size={"bytes": 200 * 1024},
        min_fee_reference_scripts={"base": 15, "range": 200 * 1024, "multiplier": 1},
    )


class _OfflineChainContext(ChainContext):
    """Chain context answering from a protocol snapshot, with no UTxO lookups."""

    def __init__(self, parameters: Protocol, network: Network):
        self._protocol_param = _to_protocol_param(parameters)
        self._network = network
        self._epoch = parameters.epoch

    @property
    def protocol_param(self) -> ProtocolParameters:
        return self._protocol_param

    @property
    def network(self) -> Network:
        return self._network

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def last_block_slot(self) -> int:
        return 0

    def utxos(self, address) -> List[UTxO]:
        return []

    def _utxos(self, address) -> List[UTxO]:
        return []


class _LedgerTxBuilder(TransactionBuilder):
    """TransactionBuilder crediting stake deregistration refunds to the balance."""

    def _get_total_key_deposit(self):
        refunds = sum(1 for cert in self.certificates or [] if isinstance(cert, StakeDeregistration))
        return super()._get_total_key_deposit() - refunds * self.context.protocol_param.key_deposit


class CborTxEncoder(TxEncoder):
    """
    Encoder producing Babbage era transactions with pycardano.

    Every input of the request is spent and nothing else is selected, so the
    request must already carry enough value for its outputs and the fee.
    Script redeemers keep the budgets they were given.
    """

    def __init__(self, parameters: Optional[Protocol] = None, fee_buffer: Optional[int] = None):
        self.parameters = parameters or DEFAULT_PROTOCOL_PARAMETERS
        self.fee_buffer = config.fee_buffer if fee_buffer is None else fee_buffer

    def build_sync(self, request: TxBuildRequest) -> str:
        if not request.inputs:
            raise EncodingError("Transaction has no inputs")

        try:
            return self._build(request)
        except (PyCardanoException, ValueError, TypeError, KeyError, NotImplementedError) as e:
            raise EncodingError(str(e)) from e

    def _build(self, request: TxBuildRequest) -> str:
        change_address = Address.from_primitive(request.change_address)
        context = _OfflineChainContext(self.parameters, change_address.network)
        builder = _LedgerTxBuilder(context, fee_buffer=self.fee_buffer or None)

        for tx_input in request.inputs:
            self._add_input(builder, tx_input)

        produced: Dict[str, int] = {}
        for output in request.outputs:
            tx_out = self._to_output(output.recipient, output.value(), context)
            builder.add_output(tx_out)
            topped_up = dict(output.value())
            topped_up[LOVELACE] = tx_out.amount.coin
            produced = merge_values(produced, topped_up)

        mints = sorted(request.mints or [], key=lambda mint: mint.unit)
        if mints:
            self._add_mints(builder, mints)

        if request.certificates:
            builder.certificates = [_to_certificate(cert) for cert in request.certificates]

        if request.withdrawals:
            withdrawals: Dict[bytes, int] = {}
            for withdrawal in request.withdrawals:
                key = address_to_bytes(withdrawal.reward_address)
                withdrawals[key] = withdrawals.get(key, 0) + withdrawal.quantity
            builder.withdrawals = Withdrawals(withdrawals)

        if request.required_signers is not None:
            builder.required_signers = [
                VerificationKeyHash(bytes.fromhex(signer)) for signer in request.required_signers
            ]
        for utxo in request.collaterals or []:
            builder.collaterals.append(_to_utxo(utxo))

        builder.validity_start = request.invalid_before
        builder.ttl = request.invalid_after

        if request.metadata:
            metadata = {label: _to_metadatum(value) for label, value in request.metadata.items()}
            builder.auxiliary_data = AuxiliaryData(AlonzoMetadata(metadata=Metadata(metadata)))

        self._check_balance(request, mints, produced)

        body = builder.build(change_address=change_address, auto_required_signers=False)
        # Script transactions get default validity bounds from the builder; keep the requested ones
        body.validity_start = request.invalid_before
        body.ttl = request.invalid_after

        tx = LedgerTransaction(body, builder.build_witness_set(), True, builder.auxiliary_data)
        logger.debug(f"Encoded transaction with {len(body.inputs)} inputs and fee {body.fee}")
        return tx.to_cbor_hex()

    def _add_input(self, builder: TransactionBuilder, tx_input: TxInput):
        utxo = _to_utxo(tx_input.utxo)
        if tx_input.script is None:
            builder.add_input(utxo)
            return

        datum = None
        if tx_input.datum is not None and tx_input.utxo.plutus_data is None:
            datum = _to_datum(tx_input.datum)
        redeemer = _to_redeemer(tx_input.redeemer) if tx_input.redeemer is not None else None
        builder.add_script_input(utxo, _to_plutus_script(tx_input.script), datum, redeemer)

    def _add_mints(self, builder: TransactionBuilder, mints):
        builder.mint = MultiAsset.from_primitive(
            _encode_multi_asset(merge_values(*({mint.unit: mint.quantity} for mint in mints)))
        )

        # Several scripts or redeemers for one policy collapse to the first
        scripts: Dict[str, str] = {}
        redeemers: Dict[str, Action] = {}
        for mint in mints:
            policy_id = parse_asset_unit(mint.unit)[0]
            if mint.script is not None:
                scripts.setdefault(policy_id, mint.script)
            if mint.redeemer is not None:
                redeemers.setdefault(policy_id, mint.redeemer)

        for policy_id, script in scripts.items():
            redeemer = redeemers.get(policy_id)
            builder.add_minting_script(
                _to_plutus_script(script), _to_redeemer(redeemer) if redeemer is not None else None
            )

    def _to_output(self, recipient: Recipient, value: Dict[str, int], context: ChainContext) -> TransactionOutput:
        tx_out = TransactionOutput(Address.from_primitive(recipient.address), _to_value(value))
        if recipient.datum is not None:
            if recipient.inline_datum:
                tx_out.datum = _to_datum(recipient.datum)
            else:
                tx_out.datum_hash = datum_hash(_to_datum(recipient.datum))
        if recipient.script_ref is not None:
            tx_out.script = _to_plutus_script(recipient.script_ref)

        coin = value.get(LOVELACE, 0)
        if coin > 0:
            required = min_lovelace_post_alonzo(tx_out, context)
            if coin < required:
                raise EncodingError(f"Output holds {coin} lovelace, below the minimum of {required}")
            return tx_out

        # The coin field grows as it is filled in
        tx_out.amount.coin = 1
        while True:
            required = min_lovelace_post_alonzo(tx_out, context)
            if tx_out.amount.coin >= required:
                return tx_out
            tx_out.amount.coin = required

    def _check_balance(self, request: TxBuildRequest, mints, produced: Dict[str, int]):
        """Name the first unit the inputs cannot cover, fee aside."""
        consumed = merge_values(*(tx_input.utxo.value() for tx_input in request.inputs))
        for mint in mints:
            if mint.quantity > 0:
                consumed = merge_values(consumed, {mint.unit: mint.quantity})
            else:
                produced = merge_values(produced, {mint.unit: -mint.quantity})
        for withdrawal in request.withdrawals or []:
            consumed = merge_values(consumed, {LOVELACE: withdrawal.quantity})

        for certificate in request.certificates or []:
            if certificate.kind == "stake_registration":
                produced = merge_values(produced, {LOVELACE: self.parameters.key_deposit})
            elif certificate.kind == "stake_deregistration":
                consumed = merge_values(consumed, {LOVELACE: self.parameters.key_deposit})

        for unit, quantity in sorted(subtract_values(consumed, produced).items()):
            if quantity < 0:
                raise EncodingError(f"Insufficient input value for {unit}: short by {-quantity}")
