"""
Shared execution policy for repository operations.

Every public repository coroutine is wrapped with ``store_operation``, which:

- threads the caller's ``cancel_scope`` keyword through the whole operation
- converts cancellation or an expired deadline into QueryCancelledError
- converts storage-engine failures into StoreUnavailableError
- records Prometheus metrics for the operation

Usage:
    scope = anyio.move_on_after(2.0)
    user = await identity_user_repo.find_by_login(
        db, "github", "12345", cancel_scope=scope
    )

A cancel scope can be entered only once, so pass a fresh scope per call.
"""

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import anyio
from sqlalchemy.exc import SQLAlchemyError

from identity_store.core.config import settings
from identity_store.core.errors import QueryCancelledError, StoreUnavailableError
from identity_store.core.observability import db_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _default_scope() -> anyio.CancelScope:
    if settings.query_timeout_seconds is not None:
        return anyio.move_on_after(settings.query_timeout_seconds)
    return anyio.CancelScope()


def _cancelled(operation: str) -> QueryCancelledError:
    logger.info(f"Identity query cancelled: {operation}", extra={"operation": operation})
    return QueryCancelledError(
        f"Identity query '{operation}' was cancelled",
        details={"operation": operation},
    )


def store_operation(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Wrap a repository coroutine with cancellation and error translation."""
    operation = func.__name__

    @functools.wraps(func)
    async def wrapper(
        *args: Any, cancel_scope: anyio.CancelScope | None = None, **kwargs: Any
    ) -> T:
        scope = cancel_scope if cancel_scope is not None else _default_scope()

        with db_metrics.track(operation):
            if scope.cancel_called:
                raise _cancelled(operation)

            try:
                with scope:
                    return await func(*args, **kwargs)
            except (SQLAlchemyError, OSError) as e:
                logger.warning(
                    f"Identity store unavailable during {operation}: {type(e).__name__}",
                    extra={"operation": operation, "error": str(e)},
                )
                raise StoreUnavailableError(
                    f"Identity store unavailable during '{operation}'",
                    details={"operation": operation, "error_type": type(e).__name__},
                ) from e

            # Only reached when the scope absorbed a cancellation.
            raise _cancelled(operation)

    return wrapper
