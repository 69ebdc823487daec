from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from .errors import GitHubError
from .github import CALENDAR_QUERY, GitHubClient
from .metrics import most_recent
from .schemas import ActivityCounters, ContributionWeek, RemoteRepository, RepoFileSample

log = logging.getLogger(__name__)

PAGE_SIZE = 100
MAX_PAGES = 10

FILE_SAMPLE_LIMIT = 8
TREE_PATH_LIMIT = 80
SHALLOW_ENTRY_LIMIT = 20


async def _load_pages(
    client: GitHubClient,
    path_for_page: Callable[[int], str],
    seen: Dict[str, RemoteRepository],
    token: Optional[str] = None,
) -> None:
    for page in range(1, MAX_PAGES + 1):
        batch = await client.rest(path_for_page(page), token)
        if not isinstance(batch, list) or not batch:
            break
        for raw in batch:
            repo = RemoteRepository.model_validate(raw)
            seen.setdefault(repo.full_name, repo)
        if len(batch) < PAGE_SIZE:
            break


async def collect_repositories(client: GitHubClient, login: str) -> List[RemoteRepository]:
    """Return every repository visible to ``login``, de-duplicated by full name.

    Tries the authenticated listing (private, collaborator and organization
    repositories) first and falls back to the public listing. Returns an empty
    list if both fail.
    """
    seen: Dict[str, RemoteRepository] = {}
    try:
        await _load_pages(
            client,
            lambda page: (
                "/user/repos?visibility=all&affiliation=owner,collaborator,organization_member"
                f"&sort=updated&per_page={PAGE_SIZE}&page={page}"
            ),
            seen,
        )
        log.info("Fetched %s repos for %s (including private)", len(seen), login)
    except (GitHubError, ValueError) as e:
        log.warning("Authenticated repo listing failed for %s, trying public: %s", login, e)
        try:
            await _load_pages(
                client,
                lambda page: f"/users/{quote(login)}/repos?sort=updated&per_page={PAGE_SIZE}&page={page}",
                seen,
                token=client.resolver.public_token,
            )
            log.info("Fallback: %s public repos fetched for %s", len(seen), login)
        except (GitHubError, ValueError) as e2:
            log.warning("Both repo listings failed for %s: %s", login, e2)
    return list(seen.values())


async def search_count(client: GitHubClient, query: str) -> int:
    result = await client.fetch(f"/search/issues?q={quote(query)}&per_page=1")
    if not result.ok:
        log.warning("Search skipped for %r: %s", query, result.error)
    payload = result.unwrap_or({})
    count = payload.get("total_count", 0) if isinstance(payload, dict) else 0
    return int(count or 0)


def _calendar_weeks(payload: Any) -> List[ContributionWeek]:
    calendar = (
        ((((payload or {}).get("data") or {}).get("viewer") or {}).get("contributionsCollection") or {})
        .get("contributionCalendar")
        or {}
    )
    return [ContributionWeek.model_validate(w) for w in calendar.get("weeks") or []]


async def fetch_calendar(client: GitHubClient) -> List[ContributionWeek]:
    result = await client.fetch_graphql(CALENDAR_QUERY)
    if not result.ok:
        log.warning("Contribution calendar skipped: %s", result.error)
        return []
    try:
        return _calendar_weeks(result.value)
    except (AttributeError, ValueError) as e:
        log.warning("Contribution calendar unreadable: %s", e)
        return []


async def collect_activity(client: GitHubClient, login: str) -> ActivityCounters:
    prs_merged, issues_closed, code_reviews, calendar = await asyncio.gather(
        search_count(client, f"author:{login} is:pr is:merged"),
        search_count(client, f"author:{login} is:issue is:closed"),
        search_count(client, f"reviewed-by:{login} is:pr"),
        fetch_calendar(client),
    )
    log.info("PRs merged: %s | Issues closed: %s | Reviews: %s", prs_merged, issues_closed, code_reviews)
    return ActivityCounters(
        prs_merged=prs_merged,
        issues_closed=issues_closed,
        code_reviews=code_reviews,
        calendar=calendar,
    )


async def _tree_paths(client: GitHubClient, repo: RemoteRepository) -> List[str]:
    branch = await client.fetch(f"/repos/{repo.full_name}/branches/{quote(repo.default_branch)}")
    payload = branch.unwrap_or({}) or {}
    tree_sha = (((payload.get("commit") or {}).get("commit") or {}).get("tree") or {}).get("sha")
    if not tree_sha:
        return []
    tree = await client.fetch(f"/repos/{repo.full_name}/git/trees/{tree_sha}?recursive=1")
    entries = (tree.unwrap_or({}) or {}).get("tree") or []
    paths = [e["path"] for e in entries if e.get("type") == "blob" and isinstance(e.get("path"), str)]
    return paths[:TREE_PATH_LIMIT]


async def _shallow_listing(client: GitHubClient, repo: RemoteRepository) -> List[str]:
    contents = await client.rest(f"/repos/{repo.full_name}/contents?ref={quote(repo.default_branch)}")
    if not isinstance(contents, list):
        return []
    names = [e["name"] for e in contents if e.get("type") in ("file", "dir") and isinstance(e.get("name"), str)]
    return names[:SHALLOW_ENTRY_LIMIT]


async def fetch_repo_files(client: GitHubClient, repo: RemoteRepository) -> List[str]:
    try:
        files = await _tree_paths(client, repo)
        if files:
            return files
        return await _shallow_listing(client, repo)
    except (GitHubError, AttributeError, TypeError) as e:
        log.warning("File tree skipped for %s: %s", repo.full_name, e)
        return []


async def sample_file_trees(client: GitHubClient, repos: List[RemoteRepository]) -> List[RepoFileSample]:
    """File listings for the most recently pushed repositories.

    Only the first ``FILE_SAMPLE_LIMIT`` of the twelve most recent
    repositories are fetched; the rest get an empty list.
    """
    recent = most_recent(repos)
    sampled = recent[:FILE_SAMPLE_LIMIT]
    log.info("Fetching file trees for top %s repos", len(sampled))
    listings = await asyncio.gather(*(fetch_repo_files(client, r) for r in sampled))
    samples = [RepoFileSample(full_name=r.full_name, files=files) for r, files in zip(sampled, listings)]
    samples.extend(RepoFileSample(full_name=r.full_name) for r in recent[FILE_SAMPLE_LIMIT:])
    return samples
