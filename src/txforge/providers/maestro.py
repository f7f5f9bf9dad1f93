"""
Maestro provider for the txforge system.

This module provides a client for the Maestro indexer API, used to fetch
UTXOs and protocol parameters, submit transactions and watch for their
confirmation.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import cbor2
import requests

from txforge.core.address import resolve_reward_address
from txforge.core.config import config
from txforge.core.contracts import IFetcher, IListener, ISubmitter
from txforge.core.models.asset import Asset, parse_asset_unit, to_unit
from txforge.core.models.protocol import Protocol
from txforge.core.models.utxo import UTXO
from txforge.providers.errors import HttpError, parse_http_error

# Set up logging
logger = logging.getLogger(__name__)

PAGE_SIZE = 100

PLUTUS_LANGUAGES = {"plutusv1": 1, "plutusv2": 2, "plutusv3": 3}


def parse_rational(value: str) -> float:
    """Parse a Maestro rational of the form "numerator/denominator"."""
    numerator, _, denominator = value.partition("/")
    if not denominator:
        return float(int(numerator))
    return int(numerator) / int(denominator)


def parse_cost_models(raw: Dict[str, Any]) -> Dict[str, List[int]]:
    """Map Maestro cost models such as {"plutus:v2": [...]} to {"PlutusV2": [...]}."""
    cost_models = {}
    for language, values in (raw or {}).items():
        version = language.lower().replace(":", "").replace("_", "")
        if version not in PLUTUS_LANGUAGES:
            continue
        if isinstance(values, dict):
            values = list(values.values())
        cost_models[f"PlutusV{PLUTUS_LANGUAGES[version]}"] = [int(value) for value in values]
    return cost_models


def _data(payload: Any) -> Any:
    # Most endpoints wrap their result as {"data": ..., "last_updated": ...}
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class MaestroProvider(IFetcher, ISubmitter, IListener):
    """
    Client for the Maestro indexer.

    Reads that page through results are lenient: a failure mid-way is logged
    and whatever was collected so far is returned. Every other call raises
    HttpError on a non-success status.
    """

    def __init__(
        self,
        network: Optional[str] = None,
        api_key: Optional[str] = None,
        turbo_submit: Optional[bool] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the provider.

        Args:
            network: One of mainnet, preprod or preview, defaults to the configured network
            api_key: Maestro API key, defaults to the configured key
            turbo_submit: Submit through the paid turbo endpoint
            session: Optional requests session, mostly useful for tests

        Raises:
            ValueError: If no API key is available
        """
        self.network = (network or config.network).lower()
        api_key = api_key or config.maestro_api_key
        if not api_key:
            raise ValueError("A Maestro API key is required")

        self.turbo_submit = config.maestro_turbo_submit if turbo_submit is None else turbo_submit
        self.base_url = f"https://{self.network}.gomaestro-api.org/v1"
        self.timeout = config.request_timeout_seconds
        self.max_pages = config.max_pagination_pages
        self.poll_interval = config.confirmation_poll_interval_seconds
        self.poll_limit = config.confirmation_poll_limit

        self.session = session or requests.Session()
        self.session.headers.update({"api-key": api_key})
        logger.info(f"Maestro provider initialized for network={self.network}")

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None):
        return self.session.get(f"{self.base_url}/{path}", params=params, timeout=self.timeout)

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET `path` and return its JSON body, raising HttpError on anything but 200."""
        try:
            response = self._get(path, params)
        except requests.RequestException as e:
            raise parse_http_error(e) from e

        if response.status_code != 200:
            raise parse_http_error(response)
        return response.json()

    def _paginate(self, path: str, to_item: Callable[[Dict[str, Any]], Any]) -> List[Any]:
        """Follow `next_cursor` until it is absent, keeping discovery order."""
        items: List[Any] = []
        cursor = None

        for _ in range(self.max_pages):
            params: Dict[str, Any] = {"count": PAGE_SIZE}
            if cursor is not None:
                params["cursor"] = cursor

            try:
                payload = self._get_json(path, params)
                page = [to_item(entry) for entry in _data(payload)]
            except (HttpError, ValueError, KeyError, TypeError) as e:
                logger.warning(f"Stopped reading {path} after {len(items)} items: {str(e)}")
                return items

            items.extend(page)
            cursor = payload.get("next_cursor") if isinstance(payload, dict) else None
            if cursor is None:
                return items

        logger.warning(f"Stopped reading {path} after {self.max_pages} pages")
        return items

    def _to_utxo(self, address: str, entry: Dict[str, Any]) -> UTXO:
        datum = entry.get("datum") or {}
        return UTXO(
            tx_hash=entry["tx_hash"],
            output_index=entry["index"],
            address=entry.get("address") or address,
            amount=[
                Asset(unit=asset["unit"], quantity=int(asset["amount"]))
                for asset in entry["assets"]
            ],
            data_hash=datum.get("hash"),
            plutus_data=datum.get("bytes"),
            script_ref=self._resolve_script(entry.get("reference_script")),
        )

    def _resolve_script(self, script: Optional[Dict[str, Any]]) -> Optional[str]:
        if not script:
            return None
        language = PLUTUS_LANGUAGES.get(script.get("type", ""))
        if language is None or not script.get("bytes"):
            # Native reference scripts only come back as JSON
            logger.debug(f"Skipping reference script {script.get('hash')} of type {script.get('type')}")
            return None
        return cbor2.dumps([language, bytes.fromhex(script["bytes"])]).hex()

    def fetch_account_info(self, address: str) -> Dict[str, Any]:
        reward_address = resolve_reward_address(address) if address.startswith("addr") else address
        data = _data(self._get_json(f"accounts/{reward_address}"))
        return {
            "pool_id": data.get("delegated_pool"),
            "active": data["registered"],
            "balance": str(data["total_balance"]),
            "rewards": str(data["total_rewarded"]),
            "withdrawals": str(data["total_withdrawn"]),
        }

    def fetch_address_utxos(self, address: str, asset: Optional[str] = None) -> List[UTXO]:
        """
        Get the UTXOs held by an address or a payment credential.

        Args:
            address: Bech32 address, or an addr_vkh/addr_shared_vkh credential
            asset: Optional unit, only UTXOs holding it are returned

        Returns:
            List[UTXO]: UTXOs in the order Maestro returned them
        """
        if address.startswith(("addr_vkh", "addr_shared_vkh")):
            path = f"addresses/cred/{address}/utxos"
        else:
            path = f"addresses/{address}/utxos"

        utxos = self._paginate(path, lambda entry: self._to_utxo(address, entry))
        if asset:
            utxos = [utxo for utxo in utxos if any(a.unit == asset for a in utxo.amount)]

        logger.debug(f"Fetched {len(utxos)} UTXOs for {address}")
        return utxos

    def fetch_asset_addresses(self, asset: str) -> List[Dict[str, str]]:
        policy_id, asset_name = parse_asset_unit(asset)
        return self._paginate(
            f"assets/{policy_id}{asset_name}/addresses",
            lambda entry: {"address": entry["address"], "quantity": str(entry["amount"])},
        )

    def fetch_asset_metadata(self, asset: str) -> Dict[str, Any]:
        policy_id, asset_name = parse_asset_unit(asset)
        data = _data(self._get_json(f"assets/{policy_id}{asset_name}"))
        standards = data.get("asset_standards") or {}
        return {
            **(standards.get("cip25_metadata") or {}),
            **(standards.get("cip68_metadata") or {}),
        }

    def fetch_collection_assets(self, policy_id: str, cursor: int = 1) -> Dict[str, Any]:
        try:
            data = _data(self._get_json(f"assets/policy/{policy_id}", {"page": cursor}))
            assets = [
                Asset(unit=to_unit(policy_id, entry["asset_name"]), quantity=int(entry["total_supply"]))
                for entry in data
            ]
        except (HttpError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Error fetching collection {policy_id}: {str(e)}")
            return {"assets": [], "next": None}

        return {"assets": assets, "next": cursor + 1 if len(assets) == PAGE_SIZE else None}

    def fetch_protocol_parameters(self, epoch: Optional[int] = None) -> Protocol:
        """
        Get the protocol parameters of the current epoch.

        Raises:
            ValueError: If a specific epoch is requested
            HttpError: If either request fails
        """
        if epoch is not None:
            raise ValueError("Maestro only supports fetching protocol parameters of the latest epoch")

        data = _data(self._get_json("protocol-params"))
        epoch_data = _data(self._get_json("epochs/current"))

        return Protocol(
            epoch=int(epoch_data["epoch_no"]),
            min_fee_a=int(data["min_fee_coefficient"]),
            min_fee_b=int(data["min_fee_constant"]),
            max_block_size=int(data["max_block_body_size"]),
            max_tx_size=int(data["max_tx_size"]),
            max_block_header_size=int(data["max_block_header_size"]),
            key_deposit=int(data["stake_key_deposit"]),
            pool_deposit=int(data["pool_deposit"]),
            decentralisation=0,  # Deprecated in Babbage era.
            min_pool_cost=int(data["min_pool_cost"]),
            price_mem=parse_rational(data["prices"]["memory"]),
            price_step=parse_rational(data["prices"]["steps"]),
            max_tx_ex_mem=int(data["max_execution_units_per_transaction"]["memory"]),
            max_tx_ex_steps=int(data["max_execution_units_per_transaction"]["steps"]),
            max_block_ex_mem=int(data["max_execution_units_per_block"]["memory"]),
            max_block_ex_steps=int(data["max_execution_units_per_block"]["steps"]),
            max_val_size=int(data["max_value_size"]),
            collateral_percent=int(data["collateral_percentage"]),
            max_collateral_inputs=int(data["max_collateral_inputs"]),
            coins_per_utxo_size=int(data["coins_per_utxo_byte"]),
            cost_models=parse_cost_models(data.get("cost_models", {})),
        )

    def fetch_tx_info(self, tx_hash: str) -> Dict[str, Any]:
        data = _data(self._get_json(f"transactions/{tx_hash}"))
        cbor_data = _data(self._get_json(f"transactions/{tx_hash}/cbor"))
        return {
            "block": data["block_hash"],
            "deposit": str(data["deposit"]),
            "fees": str(data["fee"]),
            "hash": data["tx_hash"],
            "index": data["block_tx_index"],
            "invalid_after": data.get("invalid_hereafter") or "",
            "invalid_before": data.get("invalid_before") or "",
            "slot": str(data["block_absolute_slot"]),
            "size": len(cbor_data["cbor"]) // 2 - 1,
        }

    def submit_tx(self, tx: str) -> str:
        """
        Submit a signed transaction.

        Args:
            tx: CBOR hex of the transaction

        Returns:
            str: Hash of the submitted transaction

        Raises:
            HttpError: If Maestro does not accept the transaction
        """
        path = "txmanager/turbosubmit" if self.turbo_submit else "txmanager"
        try:
            response = self.session.post(
                f"{self.base_url}/{path}",
                data=bytes.fromhex(tx),
                headers={"Content-Type": "application/cbor"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise parse_http_error(e) from e

        if response.status_code != 202:
            raise parse_http_error(response)

        tx_hash = response.text.strip().strip('"')
        logger.info(f"Submitted transaction {tx_hash}")
        return tx_hash

    def on_tx_confirmed(
        self,
        tx_hash: str,
        callback: Callable[[], None],
        limit: Optional[int] = None,
        max_pending_polls: Optional[int] = None,
    ) -> threading.Event:
        """
        Poll the transaction manager until `tx_hash` is confirmed.

        Only failed polls count toward `limit`. A transaction reported as
        still pending is polled again indefinitely unless `max_pending_polls`
        is given. Polling stops silently when either bound is reached.

        Args:
            tx_hash: Hash of the submitted transaction
            callback: Called once, from the polling thread, on confirmation
            limit: Failed polls tolerated, defaults to the configured limit
            max_pending_polls: Optional bound on "still pending" answers

        Returns:
            threading.Event: Set it to stop polling
        """
        limit = self.poll_limit if limit is None else limit
        stop = threading.Event()

        def poll():
            attempts = 0
            pending_polls = 0
            while not stop.wait(self.poll_interval):
                if attempts >= limit:
                    logger.warning(f"Gave up on {tx_hash} after {attempts} failed polls")
                    return

                try:
                    state = _data(self._get_json(f"txmanager/{tx_hash}")).get("state")
                except (HttpError, ValueError, AttributeError) as e:
                    attempts += 1
                    logger.debug(f"Poll {attempts} for {tx_hash} failed: {str(e)}")
                    continue

                if state == "Confirmed":
                    logger.info(f"Transaction {tx_hash} confirmed")
                    callback()
                    return

                pending_polls += 1
                if max_pending_polls is not None and pending_polls >= max_pending_polls:
                    logger.warning(f"Stopped polling {tx_hash}, still {state} after {pending_polls} polls")
                    return

        thread = threading.Thread(target=poll, name=f"maestro-confirm-{tx_hash[:8]}", daemon=True)
        thread.start()
        return stop
