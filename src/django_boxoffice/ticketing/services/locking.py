"""Transaction helpers shared by ticket issuance and redemption.

Row locks are taken with ``select_for_update()`` inside the transaction
opened by :func:`locked_transaction`. On PostgreSQL the transaction also sets
a local ``lock_timeout`` so a caller blocked behind another confirmation
gives up instead of waiting forever. Database failures that a retry can fix
(lock timeouts, deadlocks, dropped connections) are re-raised as
:class:`TransientStoreError` after the transaction has rolled back.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from django.db import InterfaceError, OperationalError, connection, transaction

from django_boxoffice.settings import get_config
from django_boxoffice.ticketing.exceptions import TransientStoreError

logger = logging.getLogger(__name__)


def apply_lock_timeout() -> None:
    """Bound how long the current transaction may wait for row locks."""
    timeout_ms = get_config().lock_timeout_ms
    if not timeout_ms or connection.vendor != "postgresql":
        return
    with connection.cursor() as cursor:
        cursor.execute(f"SET LOCAL lock_timeout = {int(timeout_ms)}")


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise retryable database errors as :class:`TransientStoreError`.

    Args:
        operation: Short description used in the log line and error message.
    """
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.warning("Store error during %s: %s", operation, exc)
        msg = f"Could not complete {operation}; the store is temporarily unavailable."
        raise TransientStoreError(msg) from exc


@contextmanager
def locked_transaction(operation: str) -> Iterator[None]:
    """Open an atomic block with a lock timeout and error translation.

    Everything done inside the block commits together or not at all.

    Args:
        operation: Short description used in logs and error messages.
    """
    with translate_store_errors(operation), transaction.atomic():
        apply_lock_timeout()
        yield
