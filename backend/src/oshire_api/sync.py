from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
import logging
from typing import Any, Dict, Iterator, Optional, Set, Tuple

import httpx
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from .collectors import collect_activity, collect_repositories, sample_file_trees
from .config import Settings
from .errors import DecodeError, NoCredentialError
from .fixtures import demo_snapshot
from .github import GitHubClient
from .metrics import synthesize
from .persistence import write_sync_documents
from .schemas import DerivedMetrics, GitHubUser, Snapshot, SyncResult
from .tokens import TokenResolver

log = logging.getLogger(__name__)


class SyncGuard:
    """Tracks identities with a sync in flight so duplicate triggers become no-ops."""

    def __init__(self) -> None:
        self._in_flight: Set[str] = set()

    def is_running(self, identity: str) -> bool:
        return identity in self._in_flight

    @contextlib.contextmanager
    def hold(self, identity: str) -> Iterator[bool]:
        if self.is_running(identity):
            yield False
            return
        self._in_flight.add(identity)
        try:
            yield True
        finally:
            self._in_flight.discard(identity)


async def fetch_viewer(client: GitHubClient) -> GitHubUser:
    payload = await client.rest("/user")
    try:
        return GitHubUser.model_validate(payload)
    except ValidationError as e:
        raise DecodeError("/user") from e


async def collect_snapshot(client: GitHubClient, user: GitHubUser) -> Snapshot:
    repos, activity = await asyncio.gather(
        collect_repositories(client, user.login),
        collect_activity(client, user.login),
    )
    private_count = sum(1 for r in repos if r.private)
    log.info("Repos: %s total (%s private, %s public)", len(repos), private_count, len(repos) - private_count)
    samples = await sample_file_trees(client, repos)
    return Snapshot(user=user, repositories=repos, activity=activity, file_samples=samples)


def build_documents(
    snapshot: Snapshot,
    metrics: DerivedMetrics,
    fallback_name: Optional[str] = None,
    fallback_email: Optional[str] = None,
) -> Tuple[Dict[str, Any], Dict[str, Any], Dict[str, Any]]:
    user = snapshot.user
    repos = snapshot.repositories
    private_count = sum(1 for r in repos if r.private)
    public_count = len(repos) - private_count
    name = user.name or fallback_name or user.login

    links = [{"label": "GitHub", "url": user.html_url}]
    if user.blog:
        links.append({"label": "Portfolio", "url": user.blog})
    profile = {
        "name": name,
        "headline": f"{metrics.primary_language} Developer",
        "bio": user.bio or f"Building with {metrics.primary_language} across {len(repos)} repositories.",
        "links": links,
    }

    dashboard = metrics.model_dump(mode="json")
    dashboard.update(
        heading=f"Welcome back, {name}",
        subheading=f"Insights from {len(repos)} repositories ({private_count} private, {public_count} public).",
        collaboration={
            "prs_merged": snapshot.activity.prs_merged,
            "code_reviews": snapshot.activity.code_reviews,
            "issues_closed": snapshot.activity.issues_closed,
        },
    )

    github = {
        "login": user.login,
        "email": user.email or fallback_email or "",
        "avatar_url": user.avatar_url,
        "private_repo_count": private_count,
        "public_repo_count": public_count,
        "total_repos": len(repos),
    }
    return profile, dashboard, github


def summarize(snapshot: Snapshot) -> SyncResult:
    repos = snapshot.repositories
    private_count = sum(1 for r in repos if r.private)
    return SyncResult(
        repo_count=len(repos),
        private_repo_count=private_count,
        public_repo_count=len(repos) - private_count,
        repos_with_files=sum(1 for s in snapshot.file_samples if s.files),
        prs_merged=snapshot.activity.prs_merged,
        code_reviews=snapshot.activity.code_reviews,
        issues_closed=snapshot.activity.issues_closed,
    )


async def sync_github_insights(
    session: AsyncSession,
    http: httpx.AsyncClient,
    settings: Settings,
    identity: str,
    access_token: Optional[str],
    fallback_name: Optional[str] = None,
    fallback_email: Optional[str] = None,
    now: Optional[dt.datetime] = None,
) -> SyncResult:
    """Collect, synthesize and persist GitHub insights for one identity.

    Raises ``NoCredentialError`` before any network call when neither a user
    nor a fallback token is available, ``GitHubError`` when the viewer lookup
    fails and ``PersistenceError`` when the final write fails. Every other
    failure degrades to partial data.
    """
    now = now or dt.datetime.now(dt.timezone.utc)
    log.info("Starting GitHub sync for %s (source: %s)", identity, settings.data_source)

    if settings.use_fixtures:
        snapshot = demo_snapshot(now)
    else:
        resolver = TokenResolver(access_token, settings.fallback_token)
        if not resolver.has_credential:
            raise NoCredentialError()
        log.info("Token source: %s", resolver.source)
        client = GitHubClient.from_settings(http, resolver, settings)
        user = await fetch_viewer(client)
        log.info("GitHub user: %s (%s)", user.login, user.name or "no name")
        snapshot = await collect_snapshot(client, user)

    metrics = synthesize(snapshot, now=now, display_name=snapshot.user.name or fallback_name)
    log.info(
        "Strength: %s/100 | Consistency: %s/10 | Streak: %s days",
        metrics.contribution_strength,
        metrics.consistency_score,
        metrics.contribution_streak,
    )

    profile, dashboard, github = build_documents(snapshot, metrics, fallback_name, fallback_email)
    await write_sync_documents(session, identity, profile=profile, dashboard=dashboard, github=github, synced_at=now)

    result = summarize(snapshot)
    log.info("Sync complete for %s: %s repos, %s with file trees", identity, result.repo_count, result.repos_with_files)
    return result


async def run_guarded_sync(
    guard: SyncGuard,
    session: AsyncSession,
    http: httpx.AsyncClient,
    settings: Settings,
    identity: str,
    access_token: Optional[str],
    **kwargs: Any,
) -> Optional[SyncResult]:
    """Run a sync unless one is already in flight for ``identity``; returns None when coalesced."""
    with guard.hold(identity) as acquired:
        if not acquired:
            log.info("Sync already running for %s, skipping", identity)
            return None
        return await sync_github_insights(session, http, settings, identity, access_token, **kwargs)
