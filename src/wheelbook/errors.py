"""Exception hierarchy shared by all wheelbook services.

Every failure a caller can act on is one of four kinds:

- ValidationError: malformed input; nothing was touched
- NotFoundError: entity missing or owned by somebody else
- ConflictError: entity exists but its state forbids the operation
- PersistenceError: the storage transaction failed and was rolled back
"""


class WheelbookError(Exception):
    """Base exception for wheelbook errors."""

    pass


class ValidationError(WheelbookError):
    """Input failed validation (bad numbers, missing fields, ticker mismatch)."""

    pass


class NotFoundError(WheelbookError):
    """Trade, share lot or portfolio does not exist or is not visible to the caller."""

    pass


class ConflictError(WheelbookError):
    """Entity state does not allow the requested transition."""

    pass


class PersistenceError(WheelbookError):
    """Storage transaction failed; all changes in it were rolled back."""

    pass
