import pytest
from sqlalchemy.exc import OperationalError

from oshire_api import persistence
from oshire_api.db import DashboardDocument, GitHubIdentityDocument, ProfileDocument
from oshire_api.errors import PersistenceError
from oshire_api.persistence import merge_upsert, write_sync_documents


@pytest.mark.anyio
async def test_merge_upsert_creates_then_overlays(session_factory):
    async with session_factory() as session:
        await merge_upsert(session, DashboardDocument, "uid-1", {"summary": "first", "repos": [{"name": "a/b"}]})
        await session.commit()

    async with session_factory() as session:
        await merge_upsert(session, DashboardDocument, "uid-1", {"summary": "second", "repos": []})
        await merge_upsert(session, DashboardDocument, "uid-1", {"contribution_streak": 3})
        await session.commit()

    async with session_factory() as session:
        doc = await session.get(DashboardDocument, "uid-1")
        assert doc.data == {"summary": "second", "repos": [], "contribution_streak": 3}


@pytest.mark.anyio
async def test_write_sync_documents_writes_all_three(session_factory):
    async with session_factory() as session:
        await write_sync_documents(
            session,
            "uid-1",
            profile={"name": "Alice"},
            dashboard={"contribution_strength": 42},
            github={"login": "alice"},
        )

    async with session_factory() as session:
        assert (await session.get(ProfileDocument, "uid-1")).data == {"name": "Alice"}
        dashboard = await session.get(DashboardDocument, "uid-1")
        assert dashboard.data["contribution_strength"] == 42
        assert dashboard.synced_at is not None
        assert (await session.get(GitHubIdentityDocument, "uid-1")).data["login"] == "alice"


@pytest.mark.anyio
async def test_failed_write_leaves_previous_documents_untouched(session_factory, monkeypatch):
    async with session_factory() as session:
        await write_sync_documents(
            session, "uid-1", profile={"name": "Old"}, dashboard={"summary": "old"}, github={"login": "old"}
        )

    real = persistence.merge_upsert

    async def flaky(session, model, identity, fields, synced_at=None):
        if model is GitHubIdentityDocument:
            raise OperationalError("UPDATE github_identities", {}, Exception("disk I/O error"))
        return await real(session, model, identity, fields, synced_at)

    monkeypatch.setattr(persistence, "merge_upsert", flaky)

    async with session_factory() as session:
        with pytest.raises(PersistenceError):
            await write_sync_documents(
                session, "uid-1", profile={"name": "New"}, dashboard={"summary": "new"}, github={"login": "new"}
            )

    async with session_factory() as session:
        assert (await session.get(ProfileDocument, "uid-1")).data == {"name": "Old"}
        assert (await session.get(DashboardDocument, "uid-1")).data == {"summary": "old"}
        assert (await session.get(GitHubIdentityDocument, "uid-1")).data == {"login": "old"}
