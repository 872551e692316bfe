import pytest
from jose import jwt

from authcore.core.exceptions import SigningKeyUnavailableError
from authcore.core.security import (
    AccessTokenIssuer,
    claims_for,
    get_password_hash,
    verify_password,
)

from conftest import TEST_SECRET, MutableClock


def _issuer(clock, ttl=900):
    return AccessTokenIssuer(TEST_SECRET, ttl_seconds=ttl, clock=clock)


def test_access_token_round_trip():
    clock = MutableClock()
    issued = _issuer(clock).issue(claims_for(7, "alice@example.com", {"USER", "EMPLOYEE"}))
    payload = _issuer(clock).verify(issued.token)
    assert payload is not None
    assert payload["sub"] == "7"
    assert payload["email"] == "alice@example.com"
    assert payload["roles"] == ["EMPLOYEE", "USER"]
    assert payload["typ"] == "access"
    assert payload["exp"] - payload["iat"] == 900
    assert issued.expires_in == 900


def test_access_token_valid_until_just_before_expiry():
    clock = MutableClock()
    issuer = _issuer(clock)
    token = issuer.issue(claims_for(1, "a@example.com", {"USER"})).token

    clock.advance(seconds=899)
    assert issuer.verify(token) is not None

    clock.advance(seconds=1)
    assert issuer.verify(token) is None


def test_tokens_from_same_instant_are_distinct():
    clock = MutableClock()
    issuer = _issuer(clock)
    first = issuer.issue(claims_for(1, "a@example.com", {"USER"})).token
    second = issuer.issue(claims_for(1, "a@example.com", {"USER"})).token
    assert first != second


def test_access_token_rejects_other_key_and_tampering():
    clock = MutableClock()
    token = _issuer(clock).issue(claims_for(1, "a@example.com", {"USER"})).token

    other = AccessTokenIssuer("another-secret-key-also-long-enough-0000", clock=clock)
    assert other.verify(token) is None

    head, _, sig = token.split(".")
    claims = jwt.get_unverified_claims(token)
    claims["roles"] = ["ADMIN"]
    forged_body = jwt.encode(claims, "attacker-key", algorithm="HS256").split(".")[1]
    tampered = ".".join([head, forged_body, sig])
    assert _issuer(clock).verify(tampered) is None
    assert _issuer(clock).verify("not-a-jwt") is None


def test_access_token_rejects_wrong_typ():
    clock = MutableClock()
    issuer = _issuer(clock)
    forged = jwt.encode(
        {"sub": "1", "typ": "refresh", "exp": 4102444800},
        TEST_SECRET,
        algorithm="HS256",
    )
    assert issuer.verify(forged) is None


@pytest.mark.parametrize("key", ["", "   "])
def test_missing_signing_key_fails_fast(key):
    with pytest.raises(SigningKeyUnavailableError):
        AccessTokenIssuer(key)


def test_password_hash_round_trip():
    hashed = get_password_hash("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong-pass", hashed)


def test_malformed_hash_is_a_mismatch():
    assert verify_password("anything", "not-a-bcrypt-hash") is False
