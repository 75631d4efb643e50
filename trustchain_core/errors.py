"""
trustchain_core.errors
----------------------
Error taxonomy for the trust-chain engine. Messages are user-facing; no
internal diagnostics are attached to ordinary validation failures.
"""


class TrustChainError(Exception):
    pass


class KeyMismatch(TrustChainError):
    """A key of the wrong role was supplied."""


class KeyNotFound(TrustChainError):
    """An explicit key reference points at nothing."""


class NoSigningKey(TrustChainError):
    """Only a public key is available where a private key is required."""


class AlreadyExists(TrustChainError):
    pass


class NotFound(TrustChainError):
    pass


class SignatureInvalid(TrustChainError):
    pass


class IssuerMismatch(TrustChainError):
    pass


class ValidationFailed(TrustChainError):
    pass


class Conflict(TrustChainError):
    """A stored record changed between read and write."""


class AccountServerError(TrustChainError):
    pass


class AccountServerTransientError(AccountServerError):
    pass
