import httpx
import pytest
import respx
from httpx import Response
from sqlalchemy.exc import OperationalError

from factories import NOW, USER_JSON, calendar_json, make_settings, repo_json
from oshire_api import persistence
from oshire_api.db import DashboardDocument, GitHubIdentityDocument, ProfileDocument
from oshire_api.errors import NoCredentialError, PersistenceError, UpstreamError
from oshire_api.sync import SyncGuard, run_guarded_sync, sync_github_insights

REPOS = [
    repo_json("alice/api", private=True, language="Python", size=400, stargazers_count=4),
    repo_json("alice/web", language="TypeScript", size=100, pushed_at="2026-10-17T08:00:00Z"),
]


def mock_github(rsx, search_status=200):
    rsx.get(path="/user").mock(return_value=Response(200, json=USER_JSON))
    rsx.get(path="/user/repos").mock(return_value=Response(200, json=REPOS))
    rsx.get(path="/search/issues").mock(return_value=Response(search_status, json={"total_count": 5}))
    rsx.post(path="/graphql").mock(return_value=Response(200, json=calendar_json([[0, 1, 2, 3, 4, 5, 6]])))
    rsx.get(path__regex=r"^/repos/alice/\w+/branches/main$").mock(
        return_value=Response(200, json={"commit": {"commit": {"tree": {"sha": "abc"}}}})
    )
    rsx.get(path__regex=r"^/repos/alice/\w+/git/trees/abc$").mock(
        return_value=Response(200, json={"tree": [{"path": "README.md", "type": "blob"}]})
    )


async def _sync(session_factory, settings=None, token="user-tok", **kwargs):
    async with session_factory() as session, httpx.AsyncClient() as http:
        return await sync_github_insights(
            session, http, settings or make_settings(), "uid-1", token, now=NOW, **kwargs
        )


@pytest.mark.anyio
async def test_full_sync_persists_documents(session_factory):
    with respx.mock() as rsx:
        mock_github(rsx)
        result = await _sync(session_factory, fallback_email="alice@example.com")

    assert result.repo_count == 2
    assert result.private_repo_count == 1
    assert result.public_repo_count == 1
    assert result.repos_with_files == 2
    assert result.prs_merged == 5

    async with session_factory() as session:
        dashboard = (await session.get(DashboardDocument, "uid-1")).data
        profile = (await session.get(ProfileDocument, "uid-1")).data
        github = (await session.get(GitHubIdentityDocument, "uid-1")).data

    assert dashboard["heading"] == "Welcome back, Alice Liddell"
    assert dashboard["collaboration"] == {"prs_merged": 5, "code_reviews": 5, "issues_closed": 5}
    assert 15 <= dashboard["contribution_strength"] <= 99
    assert dashboard["heatmap_weeks"] == [[0, 1, 2, 3, 3, 4, 4]]
    assert dashboard["repos"][0]["files"] == ["README.md"]
    assert profile["headline"] == "Python Developer"
    assert profile["links"] == [
        {"label": "GitHub", "url": "https://github.com/alice"},
        {"label": "Portfolio", "url": "https://alice.dev"},
    ]
    assert github["email"] == "alice@example.com"
    assert github["total_repos"] == 2


@pytest.mark.anyio
async def test_rate_limited_search_still_syncs(session_factory):
    with respx.mock() as rsx:
        mock_github(rsx, search_status=403)
        result = await _sync(session_factory)

    assert (result.prs_merged, result.code_reviews, result.issues_closed) == (0, 0, 0)
    assert result.repo_count == 2


@pytest.mark.anyio
async def test_sync_keeps_fields_it_does_not_write(session_factory):
    async with session_factory() as session:
        session.add(DashboardDocument(identity="uid-1", data={"pinned_note": "keep me", "summary": "old"}))
        await session.commit()

    with respx.mock() as rsx:
        mock_github(rsx)
        await _sync(session_factory)

    async with session_factory() as session:
        data = (await session.get(DashboardDocument, "uid-1")).data
    assert data["pinned_note"] == "keep me"
    assert data["summary"] != "old"


@pytest.mark.anyio
async def test_no_credential_fails_before_any_request(session_factory):
    with respx.mock() as rsx:
        with pytest.raises(NoCredentialError):
            await _sync(session_factory, token="")
        assert len(rsx.calls) == 0


@pytest.mark.anyio
async def test_fallback_token_is_used_when_user_token_missing(session_factory):
    with respx.mock() as rsx:
        mock_github(rsx)
        await _sync(session_factory, settings=make_settings(GITHUB_TOKEN="env-tok"), token=None)
        assert rsx.calls.call_count > 0
        assert {c.request.headers["Authorization"] for c in rsx.calls} == {"Bearer env-tok"}


@pytest.mark.anyio
async def test_viewer_lookup_failure_aborts_without_writes(session_factory):
    with respx.mock() as rsx:
        rsx.get(path="/user").mock(return_value=Response(401))
        with pytest.raises(UpstreamError):
            await _sync(session_factory)

    async with session_factory() as session:
        assert await session.get(DashboardDocument, "uid-1") is None


@pytest.mark.anyio
async def test_persistence_failure_reports_and_writes_nothing(session_factory, monkeypatch):
    real = persistence.merge_upsert

    async def flaky(session, model, identity, fields, synced_at=None):
        if model is GitHubIdentityDocument:
            raise OperationalError("INSERT INTO github_identities", {}, Exception("database is locked"))
        return await real(session, model, identity, fields, synced_at)

    monkeypatch.setattr(persistence, "merge_upsert", flaky)

    with respx.mock() as rsx:
        mock_github(rsx)
        with pytest.raises(PersistenceError):
            await _sync(session_factory)

    async with session_factory() as session:
        assert await session.get(ProfileDocument, "uid-1") is None
        assert await session.get(DashboardDocument, "uid-1") is None


@pytest.mark.anyio
async def test_fixture_source_makes_no_requests(session_factory):
    with respx.mock() as rsx:
        result = await _sync(session_factory, settings=make_settings(DATA_SOURCE="fixture"), token=None)
        assert len(rsx.calls) == 0
    assert result.repo_count == 6
    assert result.private_repo_count == 2
    assert result.repos_with_files == 3

    async with session_factory() as session:
        profile = (await session.get(ProfileDocument, "uid-1")).data
    assert profile["name"] == "Demo Developer"


def test_guard_coalesces_duplicate_identity():
    guard = SyncGuard()
    with guard.hold("uid-1") as first:
        assert first
        with guard.hold("uid-1") as second:
            assert not second
        with guard.hold("uid-2") as other:
            assert other
        assert guard.is_running("uid-1")
    assert not guard.is_running("uid-1")


def test_guard_resets_after_failure():
    guard = SyncGuard()
    with pytest.raises(RuntimeError):
        with guard.hold("uid-1"):
            raise RuntimeError("boom")
    assert not guard.is_running("uid-1")


@pytest.mark.anyio
async def test_guarded_sync_returns_none_when_in_flight(session_factory):
    guard = SyncGuard()
    async with session_factory() as session, httpx.AsyncClient() as http:
        with guard.hold("uid-1"):
            result = await run_guarded_sync(guard, session, http, make_settings(DATA_SOURCE="fixture"), "uid-1", None)
    assert result is None
