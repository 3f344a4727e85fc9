"""Tests for bearer-token verification."""

from types import SimpleNamespace

import pytest
from supabase import AuthApiError

from concierge.domain.exceptions import AuthError
from concierge.service.auth import SupabaseAuthenticator, bearer_token


class _Auth:
    def __init__(self, users: dict[str, str]):
        self.users = users

    async def get_user(self, jwt: str):
        if jwt not in self.users:
            raise AuthApiError("invalid JWT", 401, "bad_jwt")
        return SimpleNamespace(user=SimpleNamespace(id=self.users[jwt], email="layla@example.com"))


class _Storage:
    def __init__(self, users: dict[str, str]):
        self.client = SimpleNamespace(auth=_Auth(users))

    async def get_database_client(self):
        return self.client


@pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer   ", "Token abc", "abc"])
def test_bearer_token_rejects_malformed_headers(header):
    with pytest.raises(AuthError):
        bearer_token(header)


def test_bearer_token_is_case_insensitive():
    assert bearer_token("bearer abc.def") == "abc.def"


async def test_valid_session_resolves_member():
    authenticator = SupabaseAuthenticator(_Storage({"jwt-1": "member-1"}))

    user = await authenticator.authenticate("Bearer jwt-1")

    assert user.id == "member-1"


async def test_rejected_session_is_auth_error():
    authenticator = SupabaseAuthenticator(_Storage({}))

    with pytest.raises(AuthError):
        await authenticator.authenticate("Bearer expired")
