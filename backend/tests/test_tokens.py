import pytest

from oshire_api.errors import NoCredentialError
from oshire_api.tokens import TokenResolver


def test_user_token_wins():
    r = TokenResolver("user-tok", "env-tok")
    assert r.effective == "user-tok"
    assert r.source == "user OAuth"


def test_fallback_used_when_user_token_missing():
    r = TokenResolver("", "env-tok")
    assert r.effective == "env-tok"
    assert r.source == "env fallback"


def test_blank_tokens_count_as_absent():
    r = TokenResolver("   ", None)
    assert not r.has_credential
    with pytest.raises(NoCredentialError):
        r.effective


def test_fallback_for_only_offers_a_distinct_token():
    r = TokenResolver("user-tok", "env-tok")
    assert r.fallback_for("user-tok") == "env-tok"
    assert r.fallback_for("env-tok") is None
    assert TokenResolver("same", "same").fallback_for("same") is None
    assert TokenResolver("user-tok", None).fallback_for("user-tok") is None


def test_public_token_prefers_fallback():
    assert TokenResolver("user-tok", "env-tok").public_token == "env-tok"
    assert TokenResolver("user-tok", None).public_token == "user-tok"
