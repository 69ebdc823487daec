from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class GitHubUser(BaseModel):
    login: str
    name: Optional[str] = None
    bio: Optional[str] = None
    email: Optional[str] = None
    blog: Optional[str] = None
    html_url: str = ""
    avatar_url: str = ""
    followers: int = 0
    following: int = 0


class RemoteRepository(BaseModel):
    full_name: str
    html_url: str = ""
    private: bool = False
    language: Optional[str] = None
    stargazers_count: int = 0
    forks_count: int = 0
    size: int = 0
    pushed_at: Optional[dt.datetime] = None
    default_branch: str = "main"


class ContributionDay(BaseModel):
    contribution_count: int = Field(default=0, ge=0, alias="contributionCount")
    date: dt.date

    model_config = {"populate_by_name": True}


class ContributionWeek(BaseModel):
    contribution_days: List[ContributionDay] = Field(default_factory=list, alias="contributionDays")

    model_config = {"populate_by_name": True}


class ActivityCounters(BaseModel):
    prs_merged: int = 0
    issues_closed: int = 0
    code_reviews: int = 0
    calendar: List[ContributionWeek] = Field(default_factory=list)


class RepoFileSample(BaseModel):
    full_name: str
    files: List[str] = Field(default_factory=list)


class Snapshot(BaseModel):
    user: GitHubUser
    repositories: List[RemoteRepository]
    activity: ActivityCounters
    file_samples: List[RepoFileSample]


class LanguageShare(BaseModel):
    name: str
    value: int


class RepoImpact(BaseModel):
    name: str
    impact: float


class RepoGlimpse(BaseModel):
    name: str
    url: str
    is_private: bool
    language: str
    stars: int
    updated_at: Optional[dt.datetime]
    files: List[str]


class DerivedMetrics(BaseModel):
    contribution_strength: int
    consistency_score: float
    consistency_bars: List[int]
    heatmap_weeks: List[List[int]]
    language_distribution: List[LanguageShare]
    repo_intelligence: List[RepoImpact]
    repos: List[RepoGlimpse]
    contribution_streak: int
    primary_language: str
    summary: str
    open_source_impact: List[str]


class SyncResult(BaseModel):
    repo_count: int
    private_repo_count: int
    public_repo_count: int
    repos_with_files: int
    prs_merged: int = 0
    code_reviews: int = 0
    issues_closed: int = 0


class SyncRequest(BaseModel):
    identity: str = Field(min_length=1)
    access_token: Optional[str] = None
    fallback_name: Optional[str] = None
    fallback_email: Optional[str] = None


class SyncOut(SyncResult):
    status: Literal["ok", "skipped"] = "ok"


DocumentKind = Literal["profile", "dashboard", "github"]


class DocumentOut(BaseModel):
    identity: str
    kind: DocumentKind
    data: Dict[str, Any]
    synced_at: dt.datetime | None
