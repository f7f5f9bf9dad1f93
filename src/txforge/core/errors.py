"""
Errors raised while building a transaction.
"""


class TransactionBuildError(Exception):
    """Base exception for transaction building errors."""

    pass


class InsufficientFundsError(TransactionBuildError):
    """Exception raised when the available UTXOs cannot cover a unit."""

    def __init__(self, unit: str, required: int, available: int):
        self.unit = unit
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(
            f"Insufficient funds for {unit}: required {required}, "
            f"available {available} (short by {self.shortfall})"
        )


class NoCreatorBoundError(TransactionBuildError):
    """Exception raised when a field must be resolved but no creator was supplied."""

    pass


class CollaboratorError(TransactionBuildError):
    """Exception raised when the creator collaborator fails to answer."""

    pass


class BuildFailedError(TransactionBuildError):
    """Exception raised when the encoder rejects the assembled transaction."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"An error occurred during build: {cause}")
