"""Error taxonomy for custody and transfer operations.

Every chain or secret-store failure is re-raised as one of these before it
leaves a wallet backend or secret store. The HTTP layer maps them to status
codes via ``status_code``.
"""

from typing import Optional


class WalletError(Exception):
    """Base class for all custody/transfer errors."""

    status_code = 500
    retryable = False


class InvalidInput(WalletError):
    """Malformed amount or address. No chain call was attempted."""

    status_code = 400


class InvalidAmount(InvalidInput):
    """Amount is not a positive decimal representable in the chain's units."""

    pass


class InvalidAddress(InvalidInput):
    """Address is not well-formed for the target chain."""

    pass


class InsufficientFunds(WalletError):
    """Balance check failed before submission."""

    status_code = 400


class UserUnknown(WalletError):
    """No account exists for the given identity."""

    status_code = 404


class NoSecret(WalletError):
    """Account exists but the secret store holds no key for it.

    This is a data-integrity gap (the user was never provisioned) and is kept
    distinct from ``UserUnknown`` so operators can detect it.
    """

    status_code = 404


class AccountExists(WalletError):
    """Registration conflicts with an existing account."""

    status_code = 409


class ChainDispatchError(WalletError):
    """The chain rejected the transaction logic.

    The message is the chain's own error text.
    """

    status_code = 400


class TransportError(WalletError):
    """Secret store or chain RPC unreachable or timed out."""

    status_code = 503
    retryable = True


class SecretStoreUnavailable(TransportError):
    """Secret store could not be reached or refused the request."""

    pass


class SubmissionUnconfirmed(TransportError):
    """A signed transaction was handed to the node but its fate is unknown.

    It may still be included, so this is not retryable: sending again can
    move the funds twice. ``tx_hash`` identifies the transaction for
    reconciliation.
    """

    status_code = 504
    retryable = False

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(message)
        self.tx_hash = tx_hash


class SecretAlreadyExists(WalletError):
    """A create-only write found an existing secret at the path."""

    status_code = 409


class ConfigurationError(WalletError):
    """The connected chain offers no usable transfer mechanism, or the
    deployment is misconfigured. Needs operator intervention."""

    status_code = 500
