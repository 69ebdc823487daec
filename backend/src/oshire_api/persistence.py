from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Optional, Type

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .db import DashboardDocument, Document, GitHubIdentityDocument, ProfileDocument
from .errors import PersistenceError

log = logging.getLogger(__name__)


async def merge_upsert(
    session: AsyncSession,
    model: Type[Document],
    identity: str,
    fields: Dict[str, Any],
    synced_at: Optional[dt.datetime] = None,
) -> Document:
    """Create the document if absent, otherwise overlay ``fields`` onto it.

    Top-level keys not present in ``fields`` keep their stored values.
    """
    doc = await session.get(model, identity)
    if doc is None:
        doc = model(identity=identity, data=dict(fields))
        session.add(doc)
    else:
        # Reassign so the JSON column is marked dirty.
        doc.data = {**(doc.data or {}), **fields}
    if synced_at is not None:
        doc.synced_at = synced_at
    return doc


async def write_sync_documents(
    session: AsyncSession,
    identity: str,
    *,
    profile: Dict[str, Any],
    dashboard: Dict[str, Any],
    github: Dict[str, Any],
    synced_at: Optional[dt.datetime] = None,
) -> None:
    """Merge-upsert the three documents of one sync in a single transaction.

    Either all three are committed or none is.
    """
    synced_at = synced_at or dt.datetime.now(dt.timezone.utc)
    try:
        await merge_upsert(session, ProfileDocument, identity, profile, synced_at)
        await merge_upsert(session, DashboardDocument, identity, dashboard, synced_at)
        await merge_upsert(session, GitHubIdentityDocument, identity, github, synced_at)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        log.exception("Persisting sync documents failed for %s", identity)
        raise PersistenceError(f"Could not persist documents for {identity}: {e}") from e
    log.info("Documents written for %s", identity)
