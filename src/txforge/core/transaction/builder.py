"""
Transaction builder for the txforge system.

This module provides the Transaction class. Callers accumulate outputs and
optional fields through chained method calls, then `build` resolves whatever
the caller left out through the creator collaborator and hands the result to
the encoder.
"""

import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar, Union

from txforge.core.address import resolve_payment_key_hash
from txforge.core.checkpoints import CheckpointTracker
from txforge.core.contracts import ICreator
from txforge.core.errors import BuildFailedError, CollaboratorError, NoCreatorBoundError
from txforge.core.models.asset import LOVELACE, SUPPORTED_TOKENS, Asset
from txforge.core.models.protocol import DEFAULT_PROTOCOL_PARAMETERS, Protocol
from txforge.core.models.transaction import (
    Action,
    Certificate,
    Mint,
    Recipient,
    TxBuildRequest,
    TxInput,
    TxOutput,
    Withdrawal,
    to_recipient,
)
from txforge.core.models.utxo import UTXO
from txforge.core.selection import required_value_of, select_utxos
from txforge.core.transaction.encoder import CborTxEncoder, TxEncoder

# Set up logging
logger = logging.getLogger(__name__)

T = TypeVar("T")


class Transaction:
    """
    Builder for a single transaction.

    Every mutating method records a checkpoint under its own name. During
    `build`, a field whose setter was never called is resolved from the
    creator, while a field the caller set (even to an empty list) is used
    as given. Auto-resolution runs again on every `build` call.
    """

    def __init__(
        self,
        creator: Optional[ICreator] = None,
        parameters: Optional[Protocol] = None,
        encoder: Optional[TxEncoder] = None,
    ):
        """Initialize the builder.

        Args:
            creator: Optional collaborator supplying UTXOs, collateral and change address
            parameters: Protocol parameters, defaults to DEFAULT_PROTOCOL_PARAMETERS
            encoder: Encoder receiving the assembled request, defaults to CborTxEncoder
        """
        self._creator = creator
        self._parameters = parameters or DEFAULT_PROTOCOL_PARAMETERS
        self._encoder = encoder or CborTxEncoder(self._parameters)
        self._checkpoints = CheckpointTracker()

        self._change_address: Optional[str] = None
        self._tx_inputs: List[TxInput] = []
        self._tx_outputs: List[TxOutput] = []
        self._required_signers: Optional[List[str]] = None
        self._collaterals: Optional[List[UTXO]] = None
        self._mints: Optional[List[Mint]] = None
        self._invalid_before: Optional[int] = None
        self._invalid_after: Optional[int] = None
        self._certificates: Optional[List[Certificate]] = None
        self._withdrawals: Optional[List[Withdrawal]] = None
        self._metadata: Optional[dict] = None

    @property
    def checkpoints(self) -> CheckpointTracker:
        return self._checkpoints

    @property
    def inputs(self) -> List[TxInput]:
        return list(self._tx_inputs)

    @property
    def outputs(self) -> List[TxOutput]:
        return list(self._tx_outputs)

    @property
    def requires_script_witness(self) -> bool:
        """True when an input or a mint must be unlocked with a redeemer."""
        return any(tx_input.is_script_input() for tx_input in self._tx_inputs) or any(
            mint.redeemer is not None for mint in self._mints or []
        )

    async def build(self) -> str:
        """Resolve missing fields and encode the transaction.

        Returns:
            str: CBOR hex of the unsigned transaction

        Raises:
            CollaboratorError: If the creator fails to answer
            InsufficientFundsError: If the creator's UTXOs cannot cover the outputs
            NoCreatorBoundError: If inputs or change address are unset and no creator is bound
            BuildFailedError: If the encoder rejects the assembled transaction
        """
        required_signers = self._required_signers
        collaterals = self._collaterals

        if self.requires_script_witness and self._creator is not None:
            if self._checkpoints.not_visited("set_required_signers"):
                address = await self._ask_creator(self._creator.get_change_address)
                required_signers = [self._creator_key_hash(address)]
                logger.debug(f"Resolved required signer {required_signers[0]} from creator")

            if self._checkpoints.not_visited("set_collateral"):
                collaterals = await self._ask_creator(self._creator.get_used_collateral)
                logger.debug(f"Resolved {len(collaterals)} collateral UTXOs from creator")

        inputs = await self._resolve_inputs()
        change_address = await self._resolve_change_address()

        try:
            request = TxBuildRequest(
                inputs=inputs,
                outputs=self._tx_outputs,
                change_address=change_address,
                required_signers=required_signers,
                collaterals=collaterals,
                mints=self._mints,
                invalid_before=self._invalid_before,
                invalid_after=self._invalid_after,
                certificates=self._certificates,
                withdrawals=self._withdrawals,
                metadata=self._metadata,
            )
            tx = self._encoder.build_sync(request)
        except Exception as e:
            logger.error(f"Error building transaction: {str(e)}")
            raise BuildFailedError(e) from e

        logger.info(
            f"Built transaction with {len(inputs)} inputs and {len(self._tx_outputs)} outputs"
        )
        return tx

    async def _resolve_inputs(self) -> List[TxInput]:
        inputs = list(self._tx_inputs)
        if self._checkpoints.is_visited("set_tx_inputs"):
            return inputs

        if self._creator is None:
            if inputs:
                logger.debug("No creator bound, building from the fixed inputs only")
                return inputs
            raise NoCreatorBoundError(
                "Inputs were not set and no creator is bound to select them"
            )

        utxos = await self._ask_creator(self._creator.get_used_utxos)
        fixed = {tx_input.utxo.ref() for tx_input in inputs}
        available = [utxo for utxo in utxos if utxo.ref() not in fixed]

        required = required_value_of(self._tx_outputs)
        # Burned tokens have to come from the creator's UTXOs as well
        for mint in self._mints or []:
            if mint.quantity < 0:
                required[mint.unit] = required.get(mint.unit, 0) - mint.quantity

        selected = select_utxos(required, available)
        logger.debug(f"Selected {len(selected)} of {len(available)} creator UTXOs")
        return inputs + [TxInput(utxo=utxo) for utxo in selected]

    async def _resolve_change_address(self) -> str:
        if self._change_address is not None:
            return self._change_address
        if self._creator is None:
            raise NoCreatorBoundError(
                "Change address was not set and no creator is bound to supply it"
            )
        return await self._ask_creator(self._creator.get_change_address)

    async def _ask_creator(self, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await call()
        except CollaboratorError:
            raise
        except Exception as e:
            name = getattr(call, "__name__", "creator call")
            logger.error(f"Creator call {name} failed: {str(e)}")
            raise CollaboratorError(f"Creator call {name} failed: {str(e)}") from e

    def _creator_key_hash(self, address: str) -> str:
        try:
            return resolve_payment_key_hash(address)
        except ValueError as e:
            raise CollaboratorError(f"Creator returned an unusable address: {address}") from e

    def send_assets(self, recipient: Union[str, Recipient], assets: List[Asset]) -> "Transaction":
        """Add an output carrying `assets` to `recipient`."""
        self._tx_outputs.append(TxOutput(recipient=to_recipient(recipient), amount=assets))
        self._checkpoints.mark("send_assets")
        return self

    def send_lovelace(self, recipient: Union[str, Recipient], lovelace: Union[str, int]) -> "Transaction":
        self._tx_outputs.append(
            TxOutput(
                recipient=to_recipient(recipient),
                amount=[Asset(unit=LOVELACE, quantity=int(lovelace))],
            )
        )
        self._checkpoints.mark("send_lovelace")
        return self

    def send_token(
        self, recipient: Union[str, Recipient], ticker: str, amount: Union[str, int]
    ) -> "Transaction":
        """Send a token by its ticker.

        Args:
            recipient: Address or recipient of the output
            ticker: Ticker listed in SUPPORTED_TOKENS
            amount: Quantity of the token in its smallest unit

        Raises:
            ValueError: If the ticker is unknown
        """
        if ticker not in SUPPORTED_TOKENS:
            raise ValueError(f"Unsupported token: {ticker}")
        self._tx_outputs.append(
            TxOutput(
                recipient=to_recipient(recipient),
                amount=[Asset(unit=SUPPORTED_TOKENS[ticker], quantity=int(amount))],
            )
        )
        self._checkpoints.mark("send_token")
        return self

    def send_value(self, recipient: Union[str, Recipient], value: UTXO) -> "Transaction":
        """Add an output carrying the same assets as `value`."""
        self._tx_outputs.append(TxOutput(recipient=to_recipient(recipient), amount=value.amount))
        self._checkpoints.mark("send_value")
        return self

    def add_input(self, utxo: UTXO) -> "Transaction":
        """Spend `utxo` in addition to any selected inputs."""
        self._tx_inputs.append(TxInput(utxo=utxo))
        self._checkpoints.mark("add_input")
        return self

    def set_tx_inputs(self, inputs: List[UTXO]) -> "Transaction":
        """Set the inputs of the transaction.

        Replaces previously added plain inputs; script inputs from
        `redeem_value` are kept. Once called, no inputs are selected
        automatically, even if `inputs` is empty.
        """
        script_inputs = [tx_input for tx_input in self._tx_inputs if tx_input.is_script_input()]
        self._tx_inputs = script_inputs + [TxInput(utxo=utxo) for utxo in inputs]
        self._checkpoints.mark("set_tx_inputs")
        return self

    def redeem_value(
        self,
        value: UTXO,
        script: str,
        datum: Any = None,
        redeemer: Optional[Action] = None,
    ) -> "Transaction":
        """Spend a UTXO locked by a script.

        Args:
            value: UTXO to unlock
            script: CBOR hex of the plutus script
            datum: Datum the UTXO was locked with, None when it is inline
            redeemer: Redeemer for the script, defaults to an empty constructor
        """
        self._tx_inputs.append(
            TxInput(utxo=value, script=script, datum=datum, redeemer=redeemer or Action())
        )
        self._checkpoints.mark("redeem_value")
        return self

    def set_change_address(self, change_address: str) -> "Transaction":
        self._change_address = change_address
        self._checkpoints.mark("set_change_address")
        return self

    def set_collateral(self, collateral: List[UTXO]) -> "Transaction":
        self._collaterals = list(collateral)
        self._checkpoints.mark("set_collateral")
        return self

    def set_required_signers(self, addresses: List[str]) -> "Transaction":
        """Require the payment keys of `addresses` to sign.

        Repeated calls add to the signers already set.
        """
        key_hashes = [resolve_payment_key_hash(address) for address in addresses]
        if self._required_signers is None:
            self._required_signers = key_hashes
        else:
            self._required_signers.extend(key_hashes)
        self._checkpoints.mark("set_required_signers")
        return self

    def set_time_to_start(self, slot: Union[str, int]) -> "Transaction":
        self._invalid_before = int(slot)
        self._checkpoints.mark("set_time_to_start")
        return self

    def set_time_to_expire(self, slot: Union[str, int]) -> "Transaction":
        self._invalid_after = int(slot)
        self._checkpoints.mark("set_time_to_expire")
        return self

    def set_metadata(self, key: int, value: Any) -> "Transaction":
        """Set the metadata entry under label `key`, replacing an earlier value."""
        if self._metadata is None:
            self._metadata = {}
        self._metadata[int(key)] = value
        self._checkpoints.mark("set_metadata")
        return self

    def mint_asset(self, mint: Mint) -> "Transaction":
        if mint.quantity <= 0:
            raise ValueError("Minted quantity must be positive, use burn_asset to burn")
        self._add_mint(mint)
        self._checkpoints.mark("mint_asset")
        return self

    def burn_asset(self, mint: Mint) -> "Transaction":
        self._add_mint(mint.model_copy(update={"quantity": -abs(mint.quantity)}))
        self._checkpoints.mark("burn_asset")
        return self

    def _add_mint(self, mint: Mint) -> None:
        if self._mints is None:
            self._mints = []
        self._mints.append(mint)

    def register_stake(self, reward_address: str) -> "Transaction":
        self._add_certificate(Certificate(kind="stake_registration", reward_address=reward_address))
        self._checkpoints.mark("register_stake")
        return self

    def deregister_stake(self, reward_address: str) -> "Transaction":
        self._add_certificate(Certificate(kind="stake_deregistration", reward_address=reward_address))
        self._checkpoints.mark("deregister_stake")
        return self

    def delegate_stake(self, reward_address: str, pool_id: str) -> "Transaction":
        self._add_certificate(
            Certificate(kind="stake_delegation", reward_address=reward_address, pool_id=pool_id)
        )
        self._checkpoints.mark("delegate_stake")
        return self

    def retire_pool(self, pool_id: str, epoch: int) -> "Transaction":
        self._add_certificate(Certificate(kind="pool_retirement", pool_id=pool_id, epoch=epoch))
        self._checkpoints.mark("retire_pool")
        return self

    def _add_certificate(self, certificate: Certificate) -> None:
        if self._certificates is None:
            self._certificates = []
        self._certificates.append(certificate)

    def withdraw_rewards(self, reward_address: str, lovelace: Union[str, int]) -> "Transaction":
        if self._withdrawals is None:
            self._withdrawals = []
        self._withdrawals.append(Withdrawal(reward_address=reward_address, quantity=int(lovelace)))
        self._checkpoints.mark("withdraw_rewards")
        return self
