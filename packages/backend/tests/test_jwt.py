"""TokenIssuer tests — claims, tampering, expiry against the injected clock."""

import uuid

import jwt as pyjwt
import pytest

from conftest import TEST_SECRET
from wayfarer.auth.jwt import ACCESS, REFRESH, TokenError, TokenIssuer
from wayfarer.auth.principal import Principal


@pytest.fixture()
def principal():
    return Principal(account_id=uuid.uuid4(), roles=("User",))


def _tamper(token: str) -> str:
    """Flip one character in the middle of the signature segment."""
    header, payload, signature = token.split(".")
    i = len(signature) // 2
    flipped = "A" if signature[i] != "A" else "B"
    return ".".join([header, payload, signature[:i] + flipped + signature[i + 1:]])


# ═══════════════════════════════════════════════════════════
# Access tokens
# ═══════════════════════════════════════════════════════════


def test_access_token_round_trip(issuer, principal):
    token = issuer.issue_access_token(principal)
    decoded = issuer.decode_access_token(token)
    assert decoded == principal


def test_access_token_claims(issuer, clock, principal):
    token = issuer.issue_access_token(principal)
    payload = pyjwt.decode(token, options={"verify_signature": False})
    assert payload["sub"] == str(principal.account_id)
    assert payload["roles"] == ["User"]
    assert payload["type"] == ACCESS
    assert payload["iat"] == int(clock.now().timestamp())
    assert payload["exp"] - payload["iat"] == 900
    assert payload["iss"] == issuer.issuer
    assert payload["aud"] == issuer.audience


def test_tampered_access_token_rejected(issuer, principal):
    token = issuer.issue_access_token(principal)
    assert issuer.decode_access_token(_tamper(token)) is None


def test_access_token_signed_with_other_secret_rejected(issuer, principal):
    other = TokenIssuer(secret="some-other-secret-0123456789abcdefgh")
    token = other.issue_access_token(principal)
    assert issuer.decode_access_token(token) is None


def test_access_token_expires(issuer, clock, principal):
    token = issuer.issue_access_token(principal)
    clock.advance(minutes=14, seconds=59)
    assert issuer.decode_access_token(token) is not None
    clock.advance(seconds=1)
    assert issuer.decode_access_token(token) is None


def test_refresh_token_is_not_an_access_token(issuer, principal):
    token = issuer.issue_refresh_token(principal.account_id)
    assert issuer.decode_access_token(token) is None


def test_garbage_is_not_a_token(issuer):
    assert issuer.decode_access_token("not.a.jwt") is None
    assert issuer.decode_access_token("") is None


def test_tokens_minted_in_same_second_differ(issuer, principal):
    assert issuer.issue_access_token(principal) != issuer.issue_access_token(principal)
    assert issuer.issue_refresh_token(principal.account_id) != issuer.issue_refresh_token(
        principal.account_id
    )


# ═══════════════════════════════════════════════════════════
# Refresh tokens
# ═══════════════════════════════════════════════════════════


def test_validate_refresh_token(issuer, principal):
    token = issuer.issue_refresh_token(principal.account_id)
    assert issuer.validate_refresh_token(token) == principal.account_id


def test_refresh_token_claims(issuer, principal):
    token = issuer.issue_refresh_token(principal.account_id)
    payload = pyjwt.decode(token, options={"verify_signature": False})
    assert payload["type"] == REFRESH
    assert "roles" not in payload
    assert payload["exp"] - payload["iat"] == 7 * 24 * 3600


def test_refresh_token_expires(issuer, clock, principal):
    token = issuer.issue_refresh_token(principal.account_id)
    clock.advance(days=7)
    assert issuer.validate_refresh_token(token) is None


def test_access_token_is_not_a_refresh_token(issuer, principal):
    token = issuer.issue_access_token(principal)
    assert issuer.validate_refresh_token(token) is None


def test_tampered_refresh_token_rejected(issuer, principal):
    token = issuer.issue_refresh_token(principal.account_id)
    assert issuer.validate_refresh_token(_tamper(token)) is None


def test_verify_raises_token_error(issuer, principal):
    token = issuer.issue_access_token(principal)
    with pytest.raises(TokenError):
        issuer.verify(token, REFRESH)


def test_wrong_audience_rejected(clock, principal):
    a = TokenIssuer(secret=TEST_SECRET, audience="wayfarer", clock=clock)
    b = TokenIssuer(secret=TEST_SECRET, audience="someone-else", clock=clock)
    assert b.decode_access_token(a.issue_access_token(principal)) is None


def test_ttls_exposed(issuer):
    assert issuer.access_token_expires_in == 900
    assert issuer.refresh_token_expires_in_days == 7


def test_secret_required():
    with pytest.raises(ValueError):
        TokenIssuer(secret="")
