from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional, Union

from txforge.core.models.asset import Asset, sum_assets
from txforge.core.models.utxo import UTXO


class Recipient(BaseModel):
    address: str = Field(..., description="Address the output is locked to")
    datum: Optional[Any] = Field(None, description="Datum attached to the output")
    inline_datum: bool = Field(False, description="Embed the datum instead of its hash")
    script_ref: Optional[str] = Field(None, description="CBOR hex of a script to carry")


def to_recipient(recipient: Union[str, Recipient]) -> Recipient:
    if isinstance(recipient, Recipient):
        return recipient
    return Recipient(address=recipient)


class Budget(BaseModel):
    mem: int = Field(..., ge=0)
    steps: int = Field(..., ge=0)


DEFAULT_REDEEMER_BUDGET = Budget(mem=7000000, steps=3000000000)


class Action(BaseModel):
    """A redeemer supplied to a script."""

    tag: Literal["SPEND", "MINT", "CERT", "REWARD"] = "SPEND"
    index: int = Field(0, ge=0)
    data: Any = Field(default_factory=lambda: {"alternative": 0, "fields": []})
    budget: Budget = DEFAULT_REDEEMER_BUDGET


class TxInput(BaseModel):
    utxo: UTXO
    script: Optional[str] = Field(None, description="CBOR hex of the spending script")
    datum: Optional[Any] = Field(None, description="Datum the script is given")
    redeemer: Optional[Action] = None

    def is_script_input(self) -> bool:
        return self.redeemer is not None


class TxOutput(BaseModel):
    recipient: Recipient
    amount: List[Asset]

    def value(self) -> Dict[str, int]:
        return sum_assets(self.amount)


class Mint(BaseModel):
    unit: str = Field(..., description="Policy id concatenated with hex asset name")
    quantity: int = Field(..., description="Negative quantities burn")
    script: Optional[str] = Field(None, description="CBOR hex of the minting policy")
    redeemer: Optional[Action] = None


class Withdrawal(BaseModel):
    reward_address: str
    quantity: int = Field(..., ge=0)


class Certificate(BaseModel):
    kind: Literal[
        "stake_registration",
        "stake_deregistration",
        "stake_delegation",
        "pool_retirement",
    ]
    reward_address: Optional[str] = None
    pool_id: Optional[str] = Field(None, description="Pool key hash in hex")
    epoch: Optional[int] = None


class TxBuildRequest(BaseModel):
    """Everything the encoder needs to produce one transaction."""

    inputs: List[TxInput]
    outputs: List[TxOutput]
    change_address: str
    required_signers: Optional[List[str]] = None
    collaterals: Optional[List[UTXO]] = None
    mints: Optional[List[Mint]] = None
    invalid_before: Optional[int] = None
    invalid_after: Optional[int] = None
    certificates: Optional[List[Certificate]] = None
    withdrawals: Optional[List[Withdrawal]] = None
    metadata: Optional[Dict[int, Any]] = None
