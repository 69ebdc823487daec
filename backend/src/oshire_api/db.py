from __future__ import annotations

import datetime as dt
from typing import Any, AsyncIterator, Dict, Type

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .config import get_settings


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(AsyncAttrs, DeclarativeBase):
    pass


class Document:
    """One JSON document per identity; writes overlay top-level fields."""

    identity: Mapped[str] = mapped_column(String(128), primary_key=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON)
    synced_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ProfileDocument(Document, Base):
    __tablename__ = "profiles"


class DashboardDocument(Document, Base):
    __tablename__ = "dashboards"


class GitHubIdentityDocument(Document, Base):
    __tablename__ = "github_identities"


DOCUMENTS: Dict[str, Type[Document]] = {
    "profile": ProfileDocument,
    "dashboard": DashboardDocument,
    "github": GitHubIdentityDocument,
}


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=False, future=True)


def make_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, expire_on_commit=False, class_=AsyncSession)


settings = get_settings()
engine = make_engine(settings.database_url)
SessionLocal = make_sessionmaker(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session
