from pydantic import BaseModel, Field
from typing import Dict, List


class Protocol(BaseModel):
    """Snapshot of the ledger protocol parameters for one epoch."""

    epoch: int = Field(0, ge=0)
    min_fee_a: int = Field(44, description="Fee per transaction byte")
    min_fee_b: int = Field(155381, description="Constant fee per transaction")
    max_block_size: int = 98304
    max_tx_size: int = 16384
    max_block_header_size: int = 1100
    key_deposit: int = 2000000
    pool_deposit: int = 500000000
    decentralisation: float = 0.0
    min_pool_cost: int = 340000000
    price_mem: float = Field(0.0577, description="Lovelace per unit of script memory")
    price_step: float = Field(0.0000721, description="Lovelace per script CPU step")
    max_tx_ex_mem: int = 16000000
    max_tx_ex_steps: int = 10000000000
    max_block_ex_mem: int = 80000000
    max_block_ex_steps: int = 40000000000
    max_val_size: int = 5000
    collateral_percent: int = 150
    max_collateral_inputs: int = 3
    coins_per_utxo_size: int = Field(4310, description="Lovelace per byte of output")
    cost_models: Dict[str, List[int]] = Field(
        default_factory=dict,
        description="Plutus cost model values keyed by language, e.g. 'PlutusV2'",
    )


DEFAULT_PROTOCOL_PARAMETERS = Protocol()
