"""Bounded retry around one optimistic-locking unit of work.

`operation` performs read -> compute -> guarded write on `db`; this helper
commits it, or rolls back and re-runs the whole cycle when a guarded write
lost a race. Any other error rolls back and propagates.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from src.pm_common.errors import ConcurrentModificationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_with_retry(
    db: Any,
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    label: str,
) -> T:
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            result = await operation()
            await db.commit()
            return result
        except ConcurrentModificationError as exc:
            await db.rollback()
            if attempt == attempts:
                logger.error("%s: giving up after %d attempts: %s", label, attempts, exc.message)
                raise
            logger.warning(
                "%s: conflict on attempt %d/%d, retrying: %s",
                label, attempt, attempts, exc.message,
            )
        except Exception:
            await db.rollback()
            raise
    raise AssertionError("unreachable")
