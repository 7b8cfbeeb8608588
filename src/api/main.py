"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers import titles_config
from src.api.routers.runtime_utils import env_flag
from src.api.routers.titles import get_ledger_store
from src.api.routers.titles import router as title_transfer_router
from src.core.titles import LedgerUpdateListener

logger = logging.getLogger(__name__)


def _start_ledger_listener() -> Optional[LedgerUpdateListener]:
    if not env_flag("LEDGER_LISTENER_ENABLED", False):
        return None
    try:
        store = get_ledger_store()
        participant = titles_config.ledger_node_identity()
    except (HTTPException, RuntimeError) as exc:
        logger.warning(
            "ledger.listener.not_started",
            extra={"extra_fields": {"reason": getattr(exc, "detail", str(exc))}},
        )
        return None
    listener = LedgerUpdateListener(store=store, participant=participant)
    listener.start()
    return listener


@asynccontextmanager
async def _app_lifespan(_app: FastAPI):
    validate_persistence_profile_guardrails()
    listener = _start_ledger_listener()
    try:
        yield
    finally:
        if listener is not None:
            listener.stop()


app = FastAPI(
    title="Land Title Conveyancing API",
    version="0.1.0",
    description=(
        "Read-and-act facade over a land registry ledger.\n\n"
        "Each title transfer view carries a single aggregate `status` derived from the "
        "latest ledger record of every entity type sharing the title number."
    ),
    openapi_tags=[
        {
            "name": "Title Transfers",
            "description": "Title transfer views, node identity, and payment confirmation.",
        },
        {
            "name": "Health",
            "description": "Liveness and readiness probes.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
app.include_router(title_transfer_router)


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok"}


@app.get("/health/live", tags=["Health"])
def health_live():
    return {"status": "live"}


@app.get("/health/ready", tags=["Health"])
def health_ready():
    return {"status": "ready"}
