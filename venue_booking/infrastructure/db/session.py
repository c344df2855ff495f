# venue_booking/infrastructure/db/session.py

from contextlib import contextmanager
from dataclasses import dataclass
import os
from typing import Iterator

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


# -----------------------------
# Database URL
# -----------------------------
def _default_database_url() -> str:
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    user = os.getenv("POSTGRES_USER", "postgres")
    password = os.getenv("POSTGRES_PASSWORD", "postgres")
    name = os.getenv("POSTGRES_DB", "venue_booking")
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    connect_max_retries: int = 30
    connect_retry_delay: float = 1.5

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        load_dotenv()
        url = os.getenv("DATABASE_URL") or _default_database_url()
        return cls(
            url=url,
            echo=os.getenv("DB_ECHO", "false").lower() in ("1", "true", "yes"),
            connect_max_retries=int(os.getenv("DB_CONNECT_MAX_RETRIES", "30")),
            connect_retry_delay=float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5")),
        )


# -----------------------------
# Base Class for Models
# -----------------------------
class Base(DeclarativeBase):
    pass


# -----------------------------
# Engine & Session Factory
# -----------------------------
def build_engine(config: DatabaseConfig) -> Engine:
    if config.url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads.
        return create_engine(
            config.url,
            echo=config.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        config.url,
        echo=config.echo,
        pool_pre_ping=True,
    )


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


# -----------------------------
# Context Manager (Non-FastAPI usage)
# -----------------------------
@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
