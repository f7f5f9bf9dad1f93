from txforge.wallet.wallet import ReadOnlyWallet

__all__ = ["ReadOnlyWallet"]
