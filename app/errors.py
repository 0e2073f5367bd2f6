"""
Error taxonomy shared by the identity and telemetry layers.

The HTTP layer maps these to status codes in fastapi_app.py; the message of
anything that ends up as a 500 is logged but never sent to the client.
"""
from typing import Optional


class AssetWatchError(Exception):
    """Base class for every error raised on purpose by this package."""


class HashingError(AssetWatchError):
    """The digest-then-argon2 chain failed while producing a hash."""


class VerificationError(AssetWatchError):
    """A stored password hash could not be parsed."""


class RecordNotFound(AssetWatchError):
    def __init__(self, what: str, key: Optional[object] = None):
        self.what = what
        self.key = key
        super().__init__(f"{what} not found" + (f": {key}" if key is not None else ""))


class PersistenceError(AssetWatchError):
    """Storage I/O failed; the caller sees an opaque 500."""


class InvalidInput(AssetWatchError):
    def __init__(self, message: str, *, conflict: bool = False):
        # conflict=True marks a uniqueness clash (409) rather than a malformed field (400)
        self.conflict = conflict
        super().__init__(message)


class AuthenticationFailure(AssetWatchError):
    """Bad credentials at login, or a token that fails signature/expiry checks."""
