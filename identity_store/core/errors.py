"""
Domain-specific exceptions for the identity store query layer.

Callers receive either a value, an empty/absent result, or one of these
errors. Raw storage-engine exceptions never cross the repository boundary.
"""

from typing import Any


class IdentityStoreError(Exception):
    """Base exception for all identity store errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(IdentityStoreError):
    """
    Raised when a request argument is rejected before reaching the store.

    Examples:
    - Negative skip_count or max_result_count
    - Filter text longer than the configured maximum
    """

    pass


class InvalidSortFieldError(ValidationError):
    """
    Raised when a sort expression names a field or direction that is not sortable.

    Examples:
    - "password_hash desc"
    - "user_name sideways"
    """

    pass


class NotFoundError(IdentityStoreError):
    """
    Raised when a required entity does not exist.

    Lookup operations return None instead; this is only raised by
    operations whose contract is "get or fail".
    """

    pass


class StoreUnavailableError(IdentityStoreError):
    """
    Raised when the underlying data source cannot be reached or fails to
    execute a query.

    The original engine exception is chained as ``__cause__``.
    """

    pass


class QueryCancelledError(IdentityStoreError):
    """
    Raised when the caller's cancel scope is cancelled or its deadline
    passes before the operation completes.
    """

    pass
