# gold_ledger/core/db.py

from datetime import datetime, timezone
from functools import lru_cache

from sqlalchemy import Column, DateTime
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base, declared_attr

from gold_ledger.core.config import settings
from gold_ledger.utils.logger import get_logger

# --- Configure logging ---
logger = get_logger(__name__)

# --- Create declarative base ---
Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# --- Mixins ---
class AuditMixin:
    @declared_attr
    def created_on(cls):
        """
        Column for the timestamp when this record was created
        """
        return Column(
            DateTime(timezone=True),
            default=utcnow,
            nullable=False,
            index=True,
            comment="Timestamp when this record was created",
        )

    @declared_attr
    def updated_on(cls):
        """
        Column for the timestamp when this record was last updated
        """
        return Column(
            DateTime(timezone=True),
            default=utcnow,
            onupdate=utcnow,
            nullable=False,
            comment="Timestamp when this record was last updated",
        )


# --- Asynchronous database setup ---

def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL
    """
    if url.startswith("sqlite"):
        return create_async_engine(
            url, echo=echo, connect_args={"check_same_thread": False}
        )
    return create_async_engine(
        url, echo=echo, pool_pre_ping=True, pool_recycle=3600
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory used by the ledger store
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@lru_cache
def get_async_engine() -> AsyncEngine:
    logger.info("Creating async DB engine", environment=settings.environment)
    return build_engine(settings.async_db_url)


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return build_session_factory(get_async_engine())


async def create_schema(engine: AsyncEngine) -> None:
    """
    Create all tables registered on the declarative base
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured")
