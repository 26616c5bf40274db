import logging
from contextlib import asynccontextmanager
from dotenv import load_dotenv

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .threads import routers as threads_router
from .messages import routers as messages_router
from .connections import routers as connections_router
from .uploads import routers as uploads_router

from .chat.realtime import close_realtime_bridge
from .core.config import FRONTEND_ORIGINS
from .core.errors import LineUpError
from .core.middleware import logging_middleware
from .utils.logging_config import setup_logging

load_dotenv()
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_realtime_bridge()


app = FastAPI(title="LineUp API", lifespan=lifespan)
app.include_router(threads_router.router, prefix="/api/threads", tags=["Threads"])
app.include_router(messages_router.router, prefix="/api/messages", tags=["Messages"])
app.include_router(
    connections_router.router, prefix="/api/connections", tags=["Connections"]
)
app.include_router(uploads_router.router, prefix="/api/uploads", tags=["Uploads"])

app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.middleware("http")(logging_middleware)


@app.exception_handler(LineUpError)
async def lineup_error_handler(request: Request, exc: LineUpError):
    if exc.status_code >= 500:
        logger.error(f"{exc.category} path={request.url.path} {exc.describe()}")
    else:
        logger.warning(f"{exc.category} path={request.url.path} {exc.describe()}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.category, "detail": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"validation_error path={request.url.path}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "detail": "Request body or parameters are invalid.",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


@app.get("/")
def index():
    return {
        "message": "Welcome to the LineUp API",
        "endpoints": {
            "threads": "/api/threads",
            "messages": "/api/messages",
            "connections": "/api/connections",
            "uploads": "/api/uploads",
        },
    }
