from __future__ import annotations

from typing import Optional

from .errors import NoCredentialError


def _clean(token: Optional[str]) -> Optional[str]:
    token = (token or "").strip()
    return token or None


class TokenResolver:
    """Picks the credential for each GitHub call.

    The user-granted token wins when present. The fallback token (process
    configuration) is used when the user token is missing, and is offered
    exactly once as a substitute for a token that GitHub rejected.
    """

    def __init__(self, user_token: Optional[str], fallback_token: Optional[str] = None) -> None:
        self.user_token = _clean(user_token)
        self.fallback_token = _clean(fallback_token)

    @property
    def has_credential(self) -> bool:
        return bool(self.user_token or self.fallback_token)

    @property
    def source(self) -> str:
        return "user OAuth" if self.user_token else "env fallback"

    @property
    def effective(self) -> str:
        token = self.user_token or self.fallback_token
        if not token:
            raise NoCredentialError()
        return token

    @property
    def public_token(self) -> str:
        # Public listings prefer the fallback for its separate rate limit.
        return self.fallback_token or self.effective

    def fallback_for(self, failed: str) -> Optional[str]:
        if self.fallback_token and self.fallback_token != failed:
            return self.fallback_token
        return None
