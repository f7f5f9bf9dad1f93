from pydantic import BaseModel, Field
from typing import Dict, List, Optional, Tuple

from txforge.core.models.asset import LOVELACE, Asset, sum_assets


class UTXORef(BaseModel):
    tx_hash: str = Field(..., description="Hash of the transaction that created the UTXO")
    output_index: int = Field(
        ..., ge=0, description="Index of the output in the transaction"
    )

    model_config = {"frozen": True}

    def to_key(self) -> str:
        return f"{self.tx_hash}#{self.output_index}"


class UTXO(BaseModel):
    tx_hash: str = Field(..., description="Hash of the transaction that created this output")
    output_index: int = Field(
        ..., ge=0, description="Index of the output in the transaction"
    )
    address: str = Field(..., description="Address that controls this output")
    amount: List[Asset] = Field(..., description="Assets locked in this output")

    data_hash: Optional[str] = Field(None, description="Hash of an attached datum")
    plutus_data: Optional[str] = Field(None, description="CBOR hex of an inline datum")
    script_ref: Optional[str] = Field(None, description="CBOR hex of a reference script")

    model_config = {"frozen": True}

    def ref(self) -> UTXORef:
        return UTXORef(tx_hash=self.tx_hash, output_index=self.output_index)

    def sort_key(self) -> Tuple[str, int]:
        return (self.tx_hash, self.output_index)

    def value(self) -> Dict[str, int]:
        return sum_assets(self.amount)

    def quantity_of(self, unit: str) -> int:
        return sum(asset.quantity for asset in self.amount if asset.unit == unit)

    def has_unit(self, unit: str) -> bool:
        return any(asset.unit == unit and asset.quantity > 0 for asset in self.amount)

    def is_pure_lovelace(self) -> bool:
        return all(asset.unit == LOVELACE for asset in self.amount)
