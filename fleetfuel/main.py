"""FastAPI application entrypoint. No business logic; only wiring, middleware and startup checks."""

from dotenv import load_dotenv

load_dotenv()

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from fleetfuel.api.errors import register_exception_handlers
from fleetfuel.api.v1 import router as v1_router
from fleetfuel.core.config import get_settings
from fleetfuel.core.database import SessionLocal
from fleetfuel.core.security import AuthConfig
from fleetfuel.services.bootstrap import ensure_default_admin

logger = logging.getLogger(__name__)

# Raises pydantic.ValidationError when JWT_SECRET / JWT_REFRESH_SECRET are missing:
# the process refuses to start rather than sign tokens with empty secrets.
settings = get_settings()
auth_config = AuthConfig.from_settings(settings)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    db = SessionLocal()
    try:
        ensure_default_admin(db, settings, auth_config)
    except SQLAlchemyError:
        logger.exception("Default admin provisioning failed; continuing startup")
    finally:
        db.close()
    yield


app = FastAPI(
    title="Fleet Fuel API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Fleet Fuel API"}
