import time
import logging
from typing import Callable, TypeVar

import httpx
from postgrest.exceptions import APIError

from app.core.config import STORE_MAX_RETRIES, STORE_RETRY_BACKOFF_SECONDS
from app.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# The request never reached the store, so replaying it cannot duplicate a write.
NOT_SENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


def execute_with_retry(
    operation: str,
    query: Callable[[], T],
    *,
    idempotent: bool = True,
    retries: int | None = None,
    backoff: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run a store query, retrying transport failures with exponential backoff.

    `query` is called once per attempt. Transport errors (timeouts, dropped
    connections) are retried up to `retries` extra times; for non-idempotent
    writes only errors raised before the request was sent are retried.
    PostgREST rejections are never retried. Either way the caller only ever
    sees `StoreUnavailableError`.
    """
    retries = STORE_MAX_RETRIES if retries is None else retries
    backoff = STORE_RETRY_BACKOFF_SECONDS if backoff is None else backoff

    attempt = 0
    while True:
        attempt += 1
        try:
            return query()

        except APIError as error:
            logger.error(
                f"store_rejected operation={operation} code={error.code} message={error.message}"
            )
            raise StoreUnavailableError(
                "The data store rejected the request.", operation=operation
            ) from error

        except httpx.TransportError as error:
            retryable = idempotent or isinstance(error, NOT_SENT_ERRORS)
            if not retryable or attempt > retries:
                logger.error(
                    f"store_unavailable operation={operation} attempts={attempt} error={error!r}"
                )
                raise StoreUnavailableError(
                    "The data store is unavailable.",
                    operation=operation,
                    attempts=attempt,
                ) from error

            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                f"store_retry operation={operation} attempt={attempt} delay={delay:.2f}s error={error!r}"
            )
            sleep(delay)
