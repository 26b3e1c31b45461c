"""Tests for signed access tokens."""
import base64
import json

import jwt
import pytest

from dbo.errors import InvalidToken, TokenExpired
from dbo.services.access_token_service import AccessTokenCodec


def _b64(data: dict) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


@pytest.fixture
def codec(settings, clock):
    return AccessTokenCodec(settings, clock)


class TestIssue:
    def test_claims_cover_fifteen_minutes(self, codec, clock):
        token = codec.issue("player-1")
        payload = codec.verify(token)

        assert payload.sub == "player-1"
        assert payload.iat == int(clock().timestamp())
        assert payload.exp - payload.iat == 15 * 60
        assert payload.issued_at == clock()

    def test_header_names_hs256(self, codec):
        header = jwt.get_unverified_header(codec.issue("player-1"))
        assert header["alg"] == "HS256"


class TestVerify:
    def test_valid_until_expiry(self, codec, clock):
        token = codec.issue("player-1")
        clock.advance(minutes=15)
        assert codec.verify(token).sub == "player-1"

    def test_expired_token(self, codec, clock):
        token = codec.issue("player-1")
        clock.advance(minutes=15, seconds=1)
        with pytest.raises(TokenExpired):
            codec.verify(token)

    def test_tampered_signature(self, codec):
        token = codec.issue("player-1")
        header, payload, signature = token.split(".")
        forged = _b64({"sub": "player-2", "iat": 0, "exp": 2**40})
        with pytest.raises(InvalidToken):
            codec.verify(f"{header}.{forged}.{signature}")

    def test_wrong_secret(self, settings, clock):
        other = AccessTokenCodec(
            settings.model_copy(update={"secret_key": "another-secret-key-for-dbo-tokens"}), clock
        )
        with pytest.raises(InvalidToken):
            AccessTokenCodec(settings, clock).verify(other.issue("player-1"))

    def test_unsigned_token_rejected(self, codec, clock):
        now = int(clock().timestamp())
        token = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64({'sub': 'player-1', 'iat': now, 'exp': now + 60})}."
        with pytest.raises(InvalidToken):
            codec.verify(token)

    def test_other_hmac_algorithm_rejected(self, codec, settings, clock):
        now = int(clock().timestamp())
        token = jwt.encode(
            {"sub": "player-1", "iat": now, "exp": now + 60},
            settings.secret_key,
            algorithm="HS512",
        )
        with pytest.raises(InvalidToken):
            codec.verify(token)

    def test_missing_claim_rejected(self, codec, settings, clock):
        token = jwt.encode({"sub": "player-1", "iat": int(clock().timestamp())}, settings.secret_key, algorithm="HS256")
        with pytest.raises(InvalidToken):
            codec.verify(token)

    @pytest.mark.parametrize("garbage", ["", "not-a-token", "a.b.c"])
    def test_garbage_rejected(self, codec, garbage):
        with pytest.raises(InvalidToken):
            codec.verify(garbage)
