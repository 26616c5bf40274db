import time
import uuid
import logging

from fastapi import Request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


async def logging_middleware(request: Request, call_next):
    """Tag the request with an id (reusing the client's if sent) and log its outcome."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()

    logger.info(f"[REQ {request_id}] {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            f"[REQ {request_id}] unhandled_error method={request.method} path={request.url.path}"
        )
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"[REQ {request_id}] status={response.status_code} duration_ms={elapsed_ms:.1f}"
    )
    response.headers[REQUEST_ID_HEADER] = request_id
    return response
