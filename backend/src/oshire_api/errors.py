from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class SyncError(Exception):
    """Base class for everything a GitHub sync can raise."""


class NoCredentialError(SyncError):
    def __init__(self) -> None:
        super().__init__("No GitHub token available (user token empty, no fallback configured)")


class GitHubError(SyncError):
    def __init__(self, endpoint: str, message: str) -> None:
        self.endpoint = endpoint
        super().__init__(message)


class UpstreamError(GitHubError):
    """Non-2xx response from GitHub. Status 0 means no response was received."""

    def __init__(self, status: int, endpoint: str, detail: str = "") -> None:
        self.status = status
        self.detail = detail
        message = f"GitHub API {status}: {endpoint}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(endpoint, message)


class DecodeError(GitHubError):
    def __init__(self, endpoint: str) -> None:
        super().__init__(endpoint, f"GitHub returned malformed JSON: {endpoint}")


class PersistenceError(SyncError):
    pass


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a GitHub call: either a decoded payload or the error that stopped it."""

    value: Optional[T] = None
    error: Optional[GitHubError] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: GitHubError) -> "Result[Any]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        if self.error is not None:
            return default
        return self.value  # type: ignore[return-value]
