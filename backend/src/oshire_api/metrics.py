"""Dashboard metrics derived from a collected GitHub snapshot.

Everything here is a pure function of its arguments; ``now`` is always passed
in explicitly so that results are reproducible.
"""
from __future__ import annotations

import datetime as dt
import math
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from .schemas import (
    ContributionWeek,
    DerivedMetrics,
    LanguageShare,
    RemoteRepository,
    RepoGlimpse,
    RepoImpact,
    Snapshot,
)

N = TypeVar("N", int, float)

MONTHS = 12
EMPTY_BAR = 8
LANGUAGE_LIMIT = 6
INTELLIGENCE_LIMIT = 5
GLIMPSE_LIMIT = 12
DEFAULT_LANGUAGE = "TypeScript"

STRENGTH_MIN, STRENGTH_MAX = 15, 99
CONSISTENCY_MIN, CONSISTENCY_MAX = 1.0, 10.0

_EPOCH = dt.datetime.min.replace(tzinfo=dt.timezone.utc)


def clamp(value: N, lo: N, hi: N) -> N:
    return max(lo, min(hi, value))


def round_half_up(value: float, digits: int = 0) -> float:
    scale = 10**digits
    return math.floor(value * scale + 0.5) / scale


def _utc(ts: dt.datetime) -> dt.datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc)


def most_recent(repos: Sequence[RemoteRepository], limit: int = GLIMPSE_LIMIT) -> List[RemoteRepository]:
    return sorted(repos, key=lambda r: _utc(r.pushed_at) if r.pushed_at else _EPOCH, reverse=True)[:limit]


def month_keys(now: dt.datetime) -> List[Tuple[int, int]]:
    """(year, month) for the trailing twelve calendar months, oldest first."""
    keys = []
    for back in range(MONTHS - 1, -1, -1):
        index = now.year * 12 + (now.month - 1) - back
        keys.append((index // 12, index % 12 + 1))
    return keys


def normalize_bars(counts: Sequence[int]) -> List[int]:
    peak = max([*counts, 1])
    return [EMPTY_BAR if c == 0 else int(round_half_up(c / peak * 100)) for c in counts]


def build_monthly_bars(repos: Sequence[RemoteRepository], now: dt.datetime) -> List[int]:
    keys = month_keys(_utc(now))
    counts: Dict[Tuple[int, int], int] = {k: 0 for k in keys}
    for repo in repos:
        if repo.pushed_at is None:
            continue
        pushed = _utc(repo.pushed_at)
        key = (pushed.year, pushed.month)
        if key in counts:
            counts[key] += 1
    return normalize_bars([counts[k] for k in keys])


def heatmap_level(count: int, peak: int) -> int:
    if count <= 0:
        return 0
    ratio = count / max(peak, 1)
    if ratio < 0.25:
        return 1
    if ratio < 0.5:
        return 2
    if ratio < 0.75:
        return 3
    return 4


def build_heatmap_weeks(weeks: Sequence[ContributionWeek]) -> List[List[int]]:
    if not weeks:
        return []
    peak = max([d.contribution_count for w in weeks for d in w.contribution_days] + [1])
    return [[heatmap_level(d.contribution_count, peak) for d in w.contribution_days] for w in weeks]


def build_language_distribution(
    repos: Sequence[RemoteRepository], limit: int = LANGUAGE_LIMIT
) -> List[LanguageShare]:
    totals: Dict[str, int] = {}
    for repo in repos:
        if not repo.language:
            continue
        totals[repo.language] = totals.get(repo.language, 0) + max(1, repo.size)
    total = sum(totals.values())
    if not total:
        return []
    shares = [LanguageShare(name=name, value=int(round_half_up(size / total * 100))) for name, size in totals.items()]
    shares.sort(key=lambda s: s.value, reverse=True)
    return shares[:limit]


def impact_score(repo: RemoteRepository, now: dt.datetime) -> float:
    recency_boost = 0
    if repo.pushed_at is not None:
        days = math.floor((_utc(now) - _utc(repo.pushed_at)).total_seconds() / 86400)
        recency_boost = max(0, 30 - days)
    raw = (
        repo.stargazers_count * 0.4
        + repo.forks_count * 0.3
        + math.log10(max(repo.size, 10)) * 2
        + recency_boost * 0.1
    )
    return round_half_up(clamp(raw, 0.0, 10.0), 1)


def build_repo_intelligence(
    repos: Sequence[RemoteRepository], now: dt.datetime, limit: int = INTELLIGENCE_LIMIT
) -> List[RepoImpact]:
    ranked = [RepoImpact(name=r.full_name, impact=impact_score(r, now)) for r in repos]
    ranked.sort(key=lambda r: r.impact, reverse=True)
    return ranked[:limit]


def build_streak(repos: Sequence[RemoteRepository]) -> int:
    """Longest run of consecutive calendar days with at least one push."""
    days = sorted({_utc(r.pushed_at).date() for r in repos if r.pushed_at is not None})
    if not days:
        return 0
    longest = current = 1
    for prev, day in zip(days, days[1:]):
        current = current + 1 if (day - prev).days == 1 else 1
        longest = max(longest, current)
    return longest


def contribution_strength(
    repo_count: int,
    private_count: int,
    prs_merged: int,
    issues_closed: int,
    intelligence: Sequence[RepoImpact],
) -> int:
    raw = (
        repo_count * 1.2
        + private_count * 1.5
        + prs_merged * 0.25
        + issues_closed * 0.15
        + sum(r.impact for r in intelligence)
    )
    return int(clamp(round_half_up(raw), STRENGTH_MIN, STRENGTH_MAX))


def consistency_score(bars: Sequence[int]) -> float:
    average = sum(bars) / max(len(bars), 1)
    return clamp(round_half_up(average / 10, 1), CONSISTENCY_MIN, CONSISTENCY_MAX)


def build_glimpse(snapshot: Snapshot) -> List[RepoGlimpse]:
    files = {s.full_name: s.files for s in snapshot.file_samples}
    return [
        RepoGlimpse(
            name=r.full_name,
            url=r.html_url,
            is_private=r.private,
            language=r.language or "Unknown",
            stars=r.stargazers_count,
            updated_at=r.pushed_at,
            files=files.get(r.full_name, []),
        )
        for r in most_recent(snapshot.repositories)
    ]


def synthesize(snapshot: Snapshot, *, now: dt.datetime, display_name: Optional[str] = None) -> DerivedMetrics:
    repos = snapshot.repositories
    activity = snapshot.activity
    user = snapshot.user
    name = display_name or user.name or user.login

    private_count = sum(1 for r in repos if r.private)
    public_count = len(repos) - private_count

    bars = build_monthly_bars(repos, now)
    languages = build_language_distribution(repos)
    primary = languages[0].name if languages else DEFAULT_LANGUAGE
    intelligence = build_repo_intelligence(repos, now)
    strength = contribution_strength(
        len(repos), private_count, activity.prs_merged, activity.issues_closed, intelligence
    )
    streak = build_streak(repos)

    summary = (
        f"{name} maintains {len(repos)} repositories ({private_count} private, {public_count} public) "
        f"with a primary focus on {primary}. Contribution strength: {strength}/100. "
        f"{activity.prs_merged} PRs merged, {activity.issues_closed} issues closed, "
        f"{activity.code_reviews} code reviews."
    )
    impact = [
        f"{activity.prs_merged} pull requests merged across repositories.",
        f"{private_count} private repositories contributing to experience depth.",
        f"{user.followers} followers, {user.following} following on GitHub.",
    ]
    if activity.code_reviews > 0:
        impact.append(f"{activity.code_reviews} pull requests reviewed.")
    if streak > 1:
        impact.append(f"{streak}-day contribution streak on record.")

    return DerivedMetrics(
        contribution_strength=strength,
        consistency_score=consistency_score(bars),
        consistency_bars=bars,
        heatmap_weeks=build_heatmap_weeks(activity.calendar),
        language_distribution=languages,
        repo_intelligence=intelligence,
        repos=build_glimpse(snapshot),
        contribution_streak=streak,
        primary_language=primary,
        summary=summary,
        open_source_impact=impact,
    )
