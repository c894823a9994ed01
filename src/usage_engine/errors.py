"""Error taxonomy shared by the credential store, fetcher and engine."""

from __future__ import annotations


class UsageEngineError(Exception):
    """Base class for every error raised by the usage engine."""


# ── Credential errors ────────────────────────────────────────────────────────


class CredentialError(UsageEngineError):
    """Raised when usable credentials cannot be obtained."""


class NoCredentials(CredentialError):
    """Raised when the credentials file is missing or unreadable."""


class InvalidCredentials(CredentialError):
    """Raised when the credentials file is malformed or has no access token."""


# ── Fetch errors ─────────────────────────────────────────────────────────────


class FetchError(UsageEngineError):
    """Raised when the usage API call fails."""


class AuthError(FetchError):
    """Raised when the usage API rejects the bearer token."""

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"Usage API rejected credentials ({status_code})")


class NetworkError(FetchError):
    """Raised on transport failures and unexpected HTTP statuses."""


class ParseError(FetchError):
    """Raised when the usage API response cannot be understood."""
