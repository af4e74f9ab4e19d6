import base64
import hashlib
import hmac
import json
from datetime import UTC, datetime, timedelta

import pytest

from app.core.auth_token import (
    AuthTokenPayload,
    auth_cookie_options,
    issue_auth_token,
    parse_cookie_header,
    verify_auth_token,
)

SECRET = "unit-test-secret"
TTL = timedelta(days=30)
NOW = datetime(2026, 5, 1, 12, 0, tzinfo=UTC)


def _encode(data: dict) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _resign(payload: str) -> str:
    digest = hmac.new(SECRET.encode(), payload.encode(), hashlib.sha256).digest()
    signature = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return f"{payload}.{signature}"


def test_issue_then_verify_returns_uid_and_expiry():
    token = issue_auth_token(42, secret=SECRET, ttl=TTL, now=NOW)

    payload = verify_auth_token(token, secret=SECRET, now=NOW)

    assert payload == AuthTokenPayload(uid=42, exp=int((NOW + TTL).timestamp()))


def test_token_is_unpadded_base64url_pair():
    token = issue_auth_token(7, secret=SECRET, ttl=TTL, now=NOW)

    payload, _, signature = token.partition(".")
    assert "=" not in token
    assert json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4))) == {
        "uid": 7,
        "exp": int((NOW + TTL).timestamp()),
    }
    assert len(base64.urlsafe_b64decode(signature + "=")) == 32


@pytest.mark.parametrize("position", [0, 5, -1])
def test_flipped_signature_character_is_rejected(position):
    token = issue_auth_token(42, secret=SECRET, ttl=TTL, now=NOW)
    payload, _, signature = token.partition(".")
    chars = list(signature)
    chars[position] = "A" if chars[position] != "A" else "B"
    tampered = f"{payload}.{''.join(chars)}"

    assert verify_auth_token(tampered, secret=SECRET, now=NOW) is None


def test_tampered_payload_is_rejected():
    token = issue_auth_token(42, secret=SECRET, ttl=TTL, now=NOW)
    _, _, signature = token.partition(".")
    forged = _encode({"uid": 1, "exp": int((NOW + TTL).timestamp())})

    assert verify_auth_token(f"{forged}.{signature}", secret=SECRET, now=NOW) is None


def test_expired_token_is_rejected_even_when_signed():
    token = issue_auth_token(42, secret=SECRET, ttl=TTL, now=NOW)

    assert verify_auth_token(token, secret=SECRET, now=NOW + TTL) is None
    assert verify_auth_token(token, secret=SECRET, now=NOW + TTL + timedelta(seconds=1)) is None


def test_other_secret_is_rejected():
    token = issue_auth_token(42, secret=SECRET, ttl=TTL, now=NOW)

    assert verify_auth_token(token, secret="another-secret", now=NOW) is None


@pytest.mark.parametrize(
    "token",
    [None, "", ".", "abc", "abc.", ".abc", "not-base64!.sig"],
)
def test_malformed_tokens_are_rejected(token):
    assert verify_auth_token(token, secret=SECRET, now=NOW) is None


def test_truncated_signature_is_rejected():
    token = issue_auth_token(42, secret=SECRET, ttl=TTL, now=NOW)

    assert verify_auth_token(token[:-2], secret=SECRET, now=NOW) is None


@pytest.mark.parametrize(
    "body",
    [
        {"uid": 0, "exp": 9999999999},
        {"uid": -3, "exp": 9999999999},
        {"uid": True, "exp": 9999999999},
        {"uid": "42", "exp": 9999999999},
        {"uid": 42, "exp": "9999999999"},
        {"uid": 42},
        ["uid", 42],
    ],
)
def test_wrong_field_types_are_rejected_even_when_signed(body):
    raw = json.dumps(body).encode("utf-8")
    payload = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")

    assert verify_auth_token(_resign(payload), secret=SECRET, now=NOW) is None


def test_signed_garbage_payload_is_rejected():
    payload = base64.urlsafe_b64encode(b"not json").rstrip(b"=").decode("ascii")

    assert verify_auth_token(_resign(payload), secret=SECRET, now=NOW) is None


def test_parse_cookie_header_skips_malformed_pairs():
    cookies = parse_cookie_header("theme=dark; broken; =nokey; auth_token=a%2Eb ;x=1=2")

    assert cookies == {"theme": "dark", "auth_token": "a.b", "x": "1=2"}


def test_parse_cookie_header_handles_missing_header():
    assert parse_cookie_header(None) == {}
    assert parse_cookie_header("") == {}


def test_cookie_options_follow_environment():
    dev = auth_cookie_options(production=False, ttl=TTL)
    prod = auth_cookie_options(production=True, ttl=TTL)

    assert dev == {
        "httponly": True,
        "samesite": "lax",
        "secure": False,
        "path": "/",
        "max_age": 30 * 24 * 3600,
    }
    assert prod["samesite"] == "none"
    assert prod["secure"] is True
