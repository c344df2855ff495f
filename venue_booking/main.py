import logging
import os
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from venue_booking.api.routes.routes import router
from venue_booking.application.ports import AccessPolicy, AllowAllPolicy
from venue_booking.infrastructure.db import models  # noqa: F401  registers tables
from venue_booking.infrastructure.db.session import (
    Base,
    DatabaseConfig,
    build_engine,
    build_session_factory,
)

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _wait_for_db(engine: Engine, config: DatabaseConfig) -> None:
    # Handles the common case where API starts before Postgres is ready.
    for attempt in range(1, config.connect_max_retries + 1):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database is reachable.")
            return
        except OperationalError:
            if attempt == config.connect_max_retries:
                logger.exception(
                    "Database not reachable after %s attempts. Check DATABASE_URL and Postgres status.",
                    config.connect_max_retries,
                )
                raise
            logger.warning(
                "Database not ready (attempt %s/%s). Retrying in %.1f seconds...",
                attempt,
                config.connect_max_retries,
                config.connect_retry_delay,
            )
            time.sleep(config.connect_retry_delay)


def create_app(
    config: DatabaseConfig | None = None,
    access_policy: AccessPolicy | None = None,
) -> FastAPI:
    config = config or DatabaseConfig.from_env()
    engine = build_engine(config)

    app = FastAPI(title="Venue Booking Engine")
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.access_policy = access_policy or AllowAllPolicy()
    app.include_router(router)

    @app.on_event("startup")
    def on_startup() -> None:
        _wait_for_db(engine, config)
        Base.metadata.create_all(bind=engine)

    return app


def get_app() -> FastAPI:
    """Application configured from the environment."""
    configure_logging()
    return create_app()
