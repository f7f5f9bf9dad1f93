"""
Coin selection for the txforge system.

This module picks which unspent outputs to spend so that every requested
unit is covered. Selection is greedy and largest-first per unit.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from txforge.core.config import config
from txforge.core.errors import InsufficientFundsError
from txforge.core.models.asset import LOVELACE
from txforge.core.models.transaction import TxOutput
from txforge.core.models.utxo import UTXO, UTXORef

# Set up logging
logger = logging.getLogger(__name__)


def required_value_of(outputs: Iterable[TxOutput]) -> Dict[str, int]:
    """Sum the assets of all requested outputs per unit."""
    required: Dict[str, int] = {}
    for output in outputs:
        for unit, quantity in output.value().items():
            required[unit] = required.get(unit, 0) + quantity
    return required


def _unique(candidates: Sequence[UTXO]) -> List[UTXO]:
    seen: Set[UTXORef] = set()
    pool = []
    for utxo in candidates:
        if utxo.ref() not in seen:
            seen.add(utxo.ref())
            pool.append(utxo)
    return pool


def _ranked(pool: List[UTXO], unit: str) -> List[UTXO]:
    holders = [utxo for utxo in pool if utxo.has_unit(unit)]
    return sorted(holders, key=lambda utxo: (-utxo.quantity_of(unit), utxo.sort_key()))


def select_utxos(
    required_value: Dict[str, int],
    candidates: Sequence[UTXO],
    lovelace_buffer: Optional[int] = None,
) -> List[UTXO]:
    """Select UTXOs covering every unit of the required value.

    Token units are covered first in lexicographic order, lovelace last. The
    lovelace target includes a buffer for fees and minimum output values; the
    buffer is taken when the pool allows it but only the strict requirement
    is enforced.

    Args:
        required_value: Quantity required per unit
        candidates: UTXOs that may be spent, in discovery order
        lovelace_buffer: Extra lovelace to select, defaults to the configured buffer

    Returns:
        List[UTXO]: Selected UTXOs in the order they were picked

    Raises:
        InsufficientFundsError: If the whole pool cannot cover a unit
    """
    if lovelace_buffer is None:
        lovelace_buffer = config.selection_lovelace_buffer

    required = {unit: qty for unit, qty in required_value.items() if qty > 0}
    if not required:
        return []

    pool = _unique(candidates)

    units = sorted(unit for unit in required if unit != LOVELACE)
    for unit in units + [LOVELACE]:
        needed = required.get(unit, 0)
        available = sum(utxo.quantity_of(unit) for utxo in pool)
        if available < needed:
            logger.debug(f"Cannot cover {unit}: required {needed}, available {available}")
            raise InsufficientFundsError(unit, needed, available)

    targets = [(unit, required[unit]) for unit in units]
    targets.append((LOVELACE, required.get(LOVELACE, 0) + lovelace_buffer))

    selected: List[UTXO] = []
    chosen: Set[UTXORef] = set()
    totals: Dict[str, int] = {}

    for unit, target in targets:
        for utxo in _ranked(pool, unit):
            if totals.get(unit, 0) >= target:
                break
            if utxo.ref() in chosen:
                continue
            chosen.add(utxo.ref())
            selected.append(utxo)
            for held_unit, quantity in utxo.value().items():
                totals[held_unit] = totals.get(held_unit, 0) + quantity

    logger.debug(f"Selected {len(selected)} of {len(pool)} UTXOs for {len(required)} units")
    return selected


def select_collateral(
    utxos: Sequence[UTXO], lovelace: int, max_inputs: int = 3
) -> List[UTXO]:
    """Pick pure-lovelace UTXOs to use as collateral.

    The smallest single UTXO holding at least `lovelace` is preferred. Otherwise
    the largest ones are combined, up to `max_inputs`. Returns an empty list
    when no combination qualifies.
    """
    pure = [
        utxo for utxo in utxos
        if utxo.is_pure_lovelace() and utxo.quantity_of(LOVELACE) > 0
    ]

    covering = [utxo for utxo in pure if utxo.quantity_of(LOVELACE) >= lovelace]
    if covering:
        return [min(covering, key=lambda utxo: (utxo.quantity_of(LOVELACE), utxo.sort_key()))]

    picked: List[UTXO] = []
    total = 0
    largest_first = sorted(pure, key=lambda utxo: (-utxo.quantity_of(LOVELACE), utxo.sort_key()))
    for utxo in largest_first[:max_inputs]:
        picked.append(utxo)
        total += utxo.quantity_of(LOVELACE)
        if total >= lovelace:
            return picked
    return []
