from datetime import datetime, timedelta
from types import SimpleNamespace

import jwt
import pytest

from lessonhub.errors import InvalidTokenError, TokenExpiredError
from lessonhub.security.tokens import ACCESS_TOKEN_TYPE, REFRESH_TOKEN_TYPE, TokenService

ACCESS_SECRET = "access-secret-for-token-tests-000000"
REFRESH_SECRET = "refresh-secret-for-token-tests-00000"


@pytest.fixture
def service():
    return TokenService(ACCESS_SECRET, REFRESH_SECRET)


@pytest.fixture
def principal():
    return SimpleNamespace(id="user-123", email="reader@example.com", role="user")


def test_access_token_carries_identity_claims(service, principal):
    claims = service.verify_access(service.issue_access(principal))

    assert claims["userId"] == "user-123"
    assert claims["email"] == "reader@example.com"
    assert claims["role"] == "user"
    assert claims["type"] == ACCESS_TOKEN_TYPE
    assert claims["exp"] - claims["iat"] == 15 * 60


def test_refresh_token_claims_and_lifetime(service, principal):
    claims = service.verify_refresh(service.issue_refresh(principal))

    assert claims["userId"] == "user-123"
    assert claims["type"] == REFRESH_TOKEN_TYPE
    assert "email" not in claims
    assert claims["exp"] - claims["iat"] == 7 * 24 * 3600


def test_refresh_token_is_not_an_access_token(service, principal):
    with pytest.raises(InvalidTokenError):
        service.verify_access(service.issue_refresh(principal))


def test_access_token_is_not_a_refresh_token(service, principal):
    with pytest.raises(InvalidTokenError):
        service.verify_refresh(service.issue_access(principal))


def test_type_claim_is_enforced_even_with_matching_secret(service):
    now = datetime.utcnow()
    forged = jwt.encode(
        {"userId": "user-123", "type": REFRESH_TOKEN_TYPE, "iat": now, "exp": now + timedelta(minutes=5)},
        ACCESS_SECRET,
        algorithm="HS256",
    )

    with pytest.raises(InvalidTokenError):
        service.verify_access(forged)


def test_expired_access_token(service, principal):
    issued = datetime.utcnow().replace(microsecond=0) - timedelta(hours=1)
    token = service.issue_access(principal, now=issued)

    with pytest.raises(TokenExpiredError):
        service.verify_access(token)


def test_tampered_token_is_rejected(service, principal):
    token = service.issue_access(principal)
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, signature[::-1]])

    with pytest.raises(InvalidTokenError):
        service.verify_access(tampered)


@pytest.mark.parametrize("token", ["", None, "not-a-jwt"])
def test_garbage_is_rejected(service, token):
    with pytest.raises(InvalidTokenError):
        service.verify_access(token)


def test_pair_refresh_tokens_are_unique(service, principal):
    first = service.issue_pair(principal)
    second = service.issue_pair(principal)

    assert first.refresh_token != second.refresh_token
    assert first.to_dict() == {"accessToken": first.access_token, "refreshToken": first.refresh_token}


def test_both_secrets_are_required():
    with pytest.raises(ValueError):
        TokenService("", REFRESH_SECRET)
