"""Tests for JWT access credentials."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from idbridge.auth.jwt import JwtSigner, TokenSigner
from idbridge.db.models import User


def _user(**kwargs) -> User:
    return User(id=kwargs.get("id", "user-1"), username="alice", roles=kwargs.get("roles", ["Student"]))


class TestAccessToken:
    def test_satisfies_protocol(self, signer):
        assert isinstance(signer, TokenSigner)

    def test_embeds_user_id_and_roles(self, signer):
        token = signer.issue_access(_user(id="abc", roles=["Teacher", "Admin"]))
        payload = signer.verify_access(token)
        assert payload["sub"] == "abc"
        assert payload["roles"] == ["Teacher", "Admin"]
        assert payload["type"] == "access"
        assert payload["iss"] == "idbridge-test"

    def test_expiry_matches_ttl(self, signer):
        before = datetime.now(timezone.utc)
        payload = signer.verify_access(signer.issue_access(_user()))
        exp = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        assert before + timedelta(minutes=59) < exp <= before + timedelta(minutes=61)

    def test_wrong_type_rejected(self, signer, rsa_keys):
        private_pem, _ = rsa_keys
        forged = jwt.encode(
            {"sub": "x", "type": "refresh", "iss": "idbridge-test"},
            private_pem,
            algorithm="RS256",
        )
        with pytest.raises(jwt.InvalidTokenError, match="Expected token type"):
            signer.verify_access(forged)

    def test_expired_rejected(self, rsa_keys):
        private_pem, public_pem = rsa_keys
        short = JwtSigner(private_pem, public_pem, access_token_ttl=timedelta(seconds=-1))
        with pytest.raises(jwt.InvalidTokenError, match="expired"):
            short.verify_access(short.issue_access(_user()))

    def test_foreign_issuer_rejected(self, signer, rsa_keys):
        private_pem, public_pem = rsa_keys
        other = JwtSigner(private_pem, public_pem, issuer="someone-else")
        with pytest.raises(jwt.InvalidTokenError):
            signer.verify_access(other.issue_access(_user()))
