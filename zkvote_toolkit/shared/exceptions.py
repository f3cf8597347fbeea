"""
Exception hierarchy for the zkVote toolkit.

Exception Categories:
- RetryableException: Transient failures that may succeed on retry (RPC, stale registry)
- NonRetryableException: Permanent failures that won't benefit from retry (bad data)
- ConfigurationException: Startup/config errors that prevent operation

Pipeline exceptions are categorized:
- RetrievalError -> RetryableException (fatal for one fetch, but the RPC may recover)
- SizeLimitExceeded -> RetryableException (handled by range bisection, never surfaced)
- StaleRegistryError -> RetryableException (local tree lags the chain)
- DecodeError, CapacityError, NotFoundError, WitnessError, ProvingError
  -> NonRetryableException (the same inputs will fail the same way)
"""

from typing import Optional


class RetryableException(Exception):
    """
    Base class for exceptions that may succeed on retry.

    Use for transient failures like:
    - RPC timeouts
    - Rate limiting
    - A registry that moved while we were reading it
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NonRetryableException(Exception):
    """
    Base class for exceptions that won't benefit from retry.

    Use for permanent failures like:
    - Malformed event data
    - A commitment that is not registered
    - A witness the circuit rejects
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationException(NonRetryableException):
    """
    Exception for configuration/startup errors.

    Use when:
    - Required environment variables are missing
    - Invalid configuration values
    - Missing circuit artifacts or ABI files
    """

    pass


class RetrievalError(RetryableException):
    """Fatal RPC failure while fetching registration events."""

    def __init__(
        self,
        message: str,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ):
        super().__init__(message)
        self.from_block = from_block
        self.to_block = to_block


class SizeLimitExceeded(RetryableException):
    """
    The provider refused a log query because the response would be too large.

    Raised by the RPC adapter and consumed by LogRetriever, which bisects the
    block range. It never escapes the retriever.
    """

    def __init__(self, message: str, from_block: int, to_block: int):
        super().__init__(message)
        self.from_block = from_block
        self.to_block = to_block


class StaleRegistryError(RetryableException):
    """The locally rebuilt root is not in the contract's accepted-root window."""

    def __init__(self, message: str, local_root: int):
        super().__init__(message)
        self.local_root = local_root


class DecodeError(NonRetryableException):
    """A log record does not match the expected event schema."""

    pass


class CapacityError(NonRetryableException):
    """The registry holds more leaves than the configured tree depth allows."""

    pass


class NotFoundError(NonRetryableException):
    """The commitment is not a leaf of the tree."""

    pass


class WitnessError(NonRetryableException):
    """Witness inputs are inconsistent with the tree."""

    pass


class ProvingError(NonRetryableException):
    """The proving backend rejected the witness or produced no proof."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        super().__init__(message)
        self.stderr = stderr


class TransactionError(NonRetryableException):
    """A vote transaction reverted or could not be sent."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash
