from pydantic import BaseModel, Field
from typing import Dict, Iterable, List, Tuple

LOVELACE = "lovelace"

# Length of a policy id in hex characters (28 bytes)
POLICY_ID_LENGTH = 56

SUPPORTED_TOKENS: Dict[str, str] = {
    "AGIX": "f43a62fdc3965df486de8a0d32fe800963589c41b38946602a0dc53541474958",
    "INDY": "533bb94a8850ee3ccbe483106489399112b74c905342cb1792a797a0494e4459",
    "MIN": "29d222ce763455e3d7a09a665ce554f00ac89d2e99a1a83d267170c64d494e",
    "SUNDAE": "9a9693a9a37912a5097918f97918d15240c92ab729a0b7c4aa144d7753554e444145",
    "iUSD": "f66d78b4a3cb3d37afa0ec36461e51ecbde00f26c8f0a68f94b6988069555344",
}


class Asset(BaseModel):
    unit: str = Field(..., description="'lovelace' or policy id concatenated with hex asset name")
    quantity: int = Field(..., ge=0, description="Quantity in the smallest unit")

    model_config = {"frozen": True}

    def is_lovelace(self) -> bool:
        return self.unit == LOVELACE

    def policy_id(self) -> str:
        return parse_asset_unit(self.unit)[0]

    def asset_name(self) -> str:
        return parse_asset_unit(self.unit)[1]


def parse_asset_unit(unit: str) -> Tuple[str, str]:
    """Split a unit into (policy_id, asset_name).

    The base currency has neither, so it yields two empty strings.
    """
    if unit == LOVELACE:
        return "", ""
    if len(unit) < POLICY_ID_LENGTH:
        raise ValueError(f"Invalid asset unit: {unit}")
    return unit[:POLICY_ID_LENGTH], unit[POLICY_ID_LENGTH:]


def to_unit(policy_id: str, asset_name: str = "") -> str:
    if len(policy_id) != POLICY_ID_LENGTH:
        raise ValueError(f"Policy id must be {POLICY_ID_LENGTH} hex characters")
    return f"{policy_id}{asset_name}"


def sum_assets(assets: Iterable[Asset]) -> Dict[str, int]:
    """Sum quantities per unit, keeping the order units are first seen in."""
    totals: Dict[str, int] = {}
    for asset in assets:
        totals[asset.unit] = totals.get(asset.unit, 0) + asset.quantity
    return totals


def merge_values(*values: Dict[str, int]) -> Dict[str, int]:
    merged: Dict[str, int] = {}
    for value in values:
        for unit, quantity in value.items():
            merged[unit] = merged.get(unit, 0) + quantity
    return merged


def subtract_values(value: Dict[str, int], other: Dict[str, int]) -> Dict[str, int]:
    """Per-unit difference. Negative results are kept so callers can detect deficits."""
    result = dict(value)
    for unit, quantity in other.items():
        result[unit] = result.get(unit, 0) - quantity
    return result


def value_to_assets(value: Dict[str, int]) -> List[Asset]:
    """Convert a value map back to an asset list, lovelace first, zero units dropped."""
    assets = []
    if value.get(LOVELACE, 0) > 0:
        assets.append(Asset(unit=LOVELACE, quantity=value[LOVELACE]))
    for unit, quantity in value.items():
        if unit != LOVELACE and quantity > 0:
            assets.append(Asset(unit=unit, quantity=quantity))
    return assets
