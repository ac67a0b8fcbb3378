# backend/studysphere/main.py
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import Settings
from .errors import register_error_handlers
from .routes import router
from .sessions import SessionManager, session_middleware
from .storage import FileStorage

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

LOG_LINE_LIMIT = 80


async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value
    return response


async def log_api_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api"):
        duration_ms = int((time.perf_counter() - start) * 1000)
        line = f"{request.method} {path} {response.status_code} in {duration_ms}ms"
        if len(line) > LOG_LINE_LIMIT:
            line = line[: LOG_LINE_LIMIT - 1] + "…"
        logger.info(line)
    return response


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[FileStorage] = None,
    sessions: Optional[SessionManager] = None,
) -> FastAPI:
    """
    Build the API with its own store and session manager. Anything not passed
    in is constructed from `settings`.
    """
    if settings is None:
        settings = Settings()
    if storage is None:
        storage = FileStorage(settings.data_dir)
    if sessions is None:
        sessions = SessionManager.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await storage.connect(seed=settings.seed_sample_data)
        yield

    app = FastAPI(title="StudySphere API", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.storage = storage
    app.state.sessions = sessions

    # last added runs first
    app.middleware("http")(session_middleware)
    app.middleware("http")(security_headers)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_api_requests)

    register_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


def run():
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    settings: Settings = app.state.settings
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
