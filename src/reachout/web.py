from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse

from reachout.config import Settings, load_settings
from reachout.db import init_db
from reachout.errors import (
    ConcurrencyError,
    NetworkError,
    NotFoundError,
    ReachoutError,
    UndoWindowExpired,
    ValidationError,
)
from reachout.routes import contacts, interactions, reminders
from reachout.services.engine import build_engine

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    NotFoundError: 404,
    ConcurrencyError: 409,
    UndoWindowExpired: 410,
    ValidationError: 422,
    NetworkError: 502,
}


async def _reachout_error(request: Request, exc: ReachoutError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 500
    )
    body = {"error": str(exc), "kind": type(exc).__name__}
    if isinstance(exc, NetworkError):
        body["retryable"] = exc.retryable
    return JSONResponse(body, status_code=status_code)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    init_db(settings.db_path)
    engine = build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine.start()
        try:
            yield
        finally:
            engine.stop()

    app = FastAPI(title="Reachout", lifespan=lifespan)
    app.state.engine = engine
    app.add_exception_handler(ReachoutError, _reachout_error)

    app.include_router(contacts.router)
    app.include_router(interactions.router)
    app.include_router(reminders.router)

    @app.get("/")
    async def index(request: Request):
        return RedirectResponse(url="/reminders", status_code=302)

    return app
