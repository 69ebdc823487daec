"""Demo snapshot used when ``DATA_SOURCE=fixture``.

The snapshot is anchored to ``now`` so that monthly bars, recency and streaks
look alive whenever the demo is shown. It goes through the same synthesizer
and writer as live data; only collection is replaced.
"""
from __future__ import annotations

import datetime as dt
from typing import List

from .schemas import (
    ActivityCounters,
    ContributionDay,
    ContributionWeek,
    GitHubUser,
    RemoteRepository,
    RepoFileSample,
    Snapshot,
)

_REPOS = [
    # full_name, private, language, stars, forks, size, days since push
    ("demo-dev/job-radar", False, "TypeScript", 31, 6, 4200, 0),
    ("demo-dev/gh-analytics-engine", True, "Python", 12, 2, 2800, 1),
    ("demo-dev/interview-tracker-pro", False, "Go", 22, 4, 1900, 2),
    ("demo-dev/infra-recipes", False, "Dockerfile", 3, 1, 120, 9),
    ("demo-dev/warehouse-sql", True, "SQL", 0, 0, 640, 45),
    ("demo-dev/dotfiles", False, None, 1, 0, 8, 120),
]

_FILES = {
    "demo-dev/job-radar": [
        "src/app/dashboard.tsx",
        "src/lib/trends.ts",
        "src/components/fit-score-card.tsx",
        "README.md",
        "package.json",
    ],
    "demo-dev/gh-analytics-engine": [
        "engine/collector.py",
        "engine/scoring.py",
        "engine/heatmap.py",
        "tests/test_scoring.py",
        "pyproject.toml",
    ],
    "demo-dev/interview-tracker-pro": [
        "cmd/server/main.go",
        "internal/applications/service.go",
        "internal/jobs/repository.go",
        "README.md",
    ],
}


def _calendar(today: dt.date, weeks: int = 52) -> List[ContributionWeek]:
    start = today - dt.timedelta(days=weeks * 7 - 1)
    out = []
    for w in range(weeks):
        days = []
        for d in range(7):
            count = 0 if (w * d + 3) % 6 == 0 else (w + d) % 9
            days.append(ContributionDay(contribution_count=count, date=start + dt.timedelta(days=w * 7 + d)))
        out.append(ContributionWeek(contribution_days=days))
    return out


def demo_snapshot(now: dt.datetime) -> Snapshot:
    repos = [
        RemoteRepository(
            full_name=name,
            html_url=f"https://github.com/{name}",
            private=private,
            language=language,
            stargazers_count=stars,
            forks_count=forks,
            size=size,
            pushed_at=now - dt.timedelta(days=age),
            default_branch="main",
        )
        for name, private, language, stars, forks, size, age in _REPOS
    ]
    return Snapshot(
        user=GitHubUser(
            login="demo-dev",
            name="Demo Developer",
            bio="I build developer-focused products and workflow automation.",
            email="demo@opensourcehire.dev",
            blog="https://demo-dev.example",
            html_url="https://github.com/demo-dev",
            avatar_url="https://api.dicebear.com/9.x/thumbs/svg?seed=Demo%20Developer",
            followers=128,
            following=37,
        ),
        repositories=repos,
        activity=ActivityCounters(
            prs_merged=41,
            issues_closed=18,
            code_reviews=29,
            calendar=_calendar(now.date()),
        ),
        file_samples=[RepoFileSample(full_name=r.full_name, files=_FILES.get(r.full_name, [])) for r in repos],
    )
