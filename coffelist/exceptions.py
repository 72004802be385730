"""Exception hierarchy for Coffelist.

Each error carries a machine-readable ``kind`` and the HTTP status it maps
to, so the web layer can render any of them without a lookup table.
"""


class CoffelistError(Exception):
    """Base exception for all Coffelist errors."""

    kind = "error"
    status_code = 500


class ValidationError(CoffelistError):
    """Raised when request input is missing or malformed."""

    kind = "validation_error"
    status_code = 400


class ConflictError(CoffelistError):
    """Raised when a username or email is already taken."""

    kind = "conflict_error"
    status_code = 409


class StateError(CoffelistError):
    """Raised when a ceremony is verified without a matching start."""

    kind = "state_error"
    status_code = 400


class NotFoundError(CoffelistError):
    """Raised when a user or credential does not exist."""

    kind = "not_found_error"
    status_code = 404


class VerificationError(CoffelistError):
    """Raised when a WebAuthn response fails verification.

    The message is deliberately generic; callers must not learn which
    check failed.
    """

    kind = "verification_error"
    status_code = 400


class StorageError(CoffelistError):
    """Raised when storage operations fail."""

    kind = "storage_error"


class ConfigError(CoffelistError):
    """Raised when configuration is invalid."""

    kind = "config_error"
