"""
Collaborator contracts for the txforge system.

The transaction builder consumes an ICreator. Creators are usually backed by
a provider implementing IFetcher and ISubmitter.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from txforge.core.models.protocol import Protocol
from txforge.core.models.utxo import UTXO


class ICreator(ABC):
    """Identity that supplies default addresses and spendable UTXOs.

    Implementations raise CollaboratorError when they cannot answer.
    """

    @abstractmethod
    async def get_change_address(self) -> str:
        ...

    @abstractmethod
    async def get_used_utxos(self) -> List[UTXO]:
        ...

    @abstractmethod
    async def get_used_collateral(self) -> List[UTXO]:
        ...


class IFetcher(ABC):
    @abstractmethod
    def fetch_account_info(self, address: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def fetch_address_utxos(self, address: str, asset: Optional[str] = None) -> List[UTXO]:
        ...

    @abstractmethod
    def fetch_asset_addresses(self, asset: str) -> List[Dict[str, str]]:
        ...

    @abstractmethod
    def fetch_asset_metadata(self, asset: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    def fetch_collection_assets(self, policy_id: str, cursor: int = 1) -> Dict[str, Any]:
        ...

    @abstractmethod
    def fetch_protocol_parameters(self, epoch: Optional[int] = None) -> Protocol:
        ...

    @abstractmethod
    def fetch_tx_info(self, tx_hash: str) -> Dict[str, Any]:
        ...


class ISubmitter(ABC):
    @abstractmethod
    def submit_tx(self, tx: str) -> str:
        """Submit a CBOR hex encoded transaction and return its hash."""
        ...


class IListener(ABC):
    @abstractmethod
    def on_tx_confirmed(
        self, tx_hash: str, callback: Callable[[], None], limit: Optional[int] = None
    ) -> threading.Event:
        """Call `callback` once `tx_hash` is confirmed; the returned event stops polling."""
        ...
