"""
Transaction building for txforge.
"""
from txforge.core.transaction.builder import Transaction
from txforge.core.transaction.encoder import CborTxEncoder, EncodingError, TxEncoder, encode_aiken_script, \
    to_plutus_data
from txforge.core.errors import TransactionBuildError, InsufficientFundsError, NoCreatorBoundError, \
    CollaboratorError, BuildFailedError

__all__ = [
    "Transaction",
    "TxEncoder",
    "CborTxEncoder",
    "EncodingError",
    "encode_aiken_script",
    "to_plutus_data",
    "TransactionBuildError",
    "InsufficientFundsError",
    "NoCreatorBoundError",
    "CollaboratorError",
    "BuildFailedError"
]
