import asyncio
import logging
from typing import Dict, List, Optional

from txforge.core.address import resolve_payment_key_hash
from txforge.core.config import config
from txforge.core.contracts import ICreator, IFetcher
from txforge.core.errors import CollaboratorError
from txforge.core.models.asset import merge_values
from txforge.core.models.utxo import UTXO
from txforge.core.selection import select_collateral

logger = logging.getLogger(__name__)


class ReadOnlyWallet(ICreator):
    """Creator backed by a single address and a fetcher.

    It holds no keys: it can build transactions for an address but not sign them.
    """

    def __init__(
        self,
        address: str,
        fetcher: IFetcher,
        collateral_lovelace: Optional[int] = None,
        max_collateral_inputs: int = 3,
    ):
        # Fail early on addresses the builder could not use as change address
        resolve_payment_key_hash(address)
        self.address = address
        self.fetcher = fetcher
        self.collateral_lovelace = collateral_lovelace or config.collateral_lovelace
        self.max_collateral_inputs = max_collateral_inputs

    async def get_change_address(self) -> str:
        return self.address

    async def get_used_utxos(self) -> List[UTXO]:
        return await self._fetch_utxos()

    async def get_used_collateral(self) -> List[UTXO]:
        utxos = await self._fetch_utxos()
        collateral = select_collateral(utxos, self.collateral_lovelace, self.max_collateral_inputs)
        if not collateral:
            logger.warning(f"No collateral of {self.collateral_lovelace} lovelace available at {self.address}")
        return collateral

    async def get_balance(self) -> Dict[str, int]:
        utxos = await self._fetch_utxos()
        return merge_values(*(utxo.value() for utxo in utxos))

    async def _fetch_utxos(self) -> List[UTXO]:
        try:
            return await asyncio.to_thread(self.fetcher.fetch_address_utxos, self.address)
        except Exception as e:
            logger.error(f"Error fetching UTXOs for {self.address}: {str(e)}")
            raise CollaboratorError(f"Could not fetch UTXOs for {self.address}: {str(e)}") from e
