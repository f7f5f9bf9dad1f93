#!/usr/bin/env python3
"""
Build an unsigned payment transaction for an address using Maestro.

This script:
1. Fetches the current protocol parameters
2. Selects inputs from the sender's UTXOs and sends change back to the sender
3. Prints the CBOR hex of the unsigned transaction

Usage:
    python build_unsigned_tx.py SENDER RECIPIENT LOVELACE [--network preprod] [--metadata-label 674 --message TEXT]

The Maestro API key is read from TXFORGE_MAESTRO_API_KEY.
"""

import argparse
import asyncio
import logging
import sys

from txforge.core.config import load_config_from_env
from txforge.core.errors import TransactionBuildError
from txforge.core.transaction import Transaction
from txforge.providers import HttpError, MaestroProvider
from txforge.wallet import ReadOnlyWallet

settings = load_config_from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("build_unsigned_tx")


async def build(args) -> str:
    provider = MaestroProvider(network=args.network or settings.network, api_key=settings.maestro_api_key)
    parameters = provider.fetch_protocol_parameters()
    wallet = ReadOnlyWallet(args.sender, provider)

    tx = Transaction(creator=wallet, parameters=parameters).send_lovelace(args.recipient, args.lovelace)
    if args.message:
        tx.set_metadata(args.metadata_label, {"msg": [args.message]})
    return await tx.build()


def main():
    parser = argparse.ArgumentParser(description="Build an unsigned payment transaction")
    parser.add_argument("sender", help="Address paying for the transaction")
    parser.add_argument("recipient", help="Address receiving the payment")
    parser.add_argument("lovelace", type=int, help="Amount to send in lovelace")
    parser.add_argument("--network", choices=["mainnet", "preprod", "preview"], help="Cardano network")
    parser.add_argument("--metadata-label", type=int, default=674, help="Metadata label for --message")
    parser.add_argument("--message", help="Optional message attached as metadata")
    args = parser.parse_args()

    try:
        print(asyncio.run(build(args)))
    except (TransactionBuildError, HttpError, ValueError) as e:
        logger.error(f"Could not build transaction: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
