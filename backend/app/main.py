"""Expose the billing engine FastAPI app."""

import logging
import os
import re
from contextlib import asynccontextmanager
from typing import Iterable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .migrations import run_database_migrations
from .routers import billing_router, invoices_router

LOGGER = logging.getLogger(__name__)

LOCALHOST_ORIGIN_REGEX = r"https?://(localhost|127\.0\.0\.1|0\.0\.0\.0)(:\d+)?$"


def _read_bool_env(name: str, default: bool = True) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _read_allowed_origins(raw_origins: Iterable[str]) -> list[str]:
    normalized = {origin.strip().rstrip("/") for origin in raw_origins}
    return sorted(origin for origin in normalized if origin)


def _load_allowed_origins_from_env() -> list[str]:
    raw_value = os.getenv("CORS_ALLOWED_ORIGINS")
    if not raw_value:
        return []
    # Accept comma or whitespace separated lists.
    return _read_allowed_origins(re.split(r"[\s,]+", raw_value))


def ensure_database_is_ready() -> None:
    """Apply pending database migrations when the service starts."""

    if not _read_bool_env("RUN_MIGRATIONS_ON_STARTUP", True):
        LOGGER.info("Skipping migrations; RUN_MIGRATIONS_ON_STARTUP is disabled")
        return
    LOGGER.info("Ensuring database schema is up to date before serving requests")
    run_database_migrations()


@asynccontextmanager
async def lifespan(_: FastAPI):
    ensure_database_is_ready()
    yield


app = FastAPI(title="Tenant Billing Engine API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_load_allowed_origins_from_env(),
    allow_origin_regex=LOCALHOST_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(billing_router, prefix="/billing", tags=["billing"])
app.include_router(invoices_router, prefix="/invoices", tags=["invoices"])


@app.get("/", tags=["health"])
def read_root() -> dict[str, str]:
    """Return a simple health check response."""
    return {"status": "ok"}
