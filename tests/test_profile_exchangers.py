"""
tests/test_profile_exchangers.py -- Unit tests for the per-provider profile exchangers.

The provider API is replaced by small fakes; no network calls are made.

Covers:
  - GitHub: the entry that is both primary and verified supplies the email
  - GitHub: display name falls back name -> login -> email
  - GitHub: no primary verified email and HTTP errors both raise
  - Google: id_token userinfo preferred, userinfo endpoint as fallback
  - get_profile_exchanger rejects unknown providers
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from auth.models import ProfileFields
from auth.oauth import GitHubProfileExchanger, GoogleProfileExchanger, get_profile_exchanger

_TOKEN = {"access_token": "gho_test", "token_type": "bearer"}


class FakeGitHubClient:
    """Answers GET user and GET user/emails from canned JSON."""

    def __init__(self, profile: dict, emails: list[dict], status_code: int = 200) -> None:
        self.responses = {"user": profile, "user/emails": emails}
        self.status_code = status_code
        self.calls: list[tuple[str, dict]] = []

    async def get(self, path: str, token: dict) -> httpx.Response:
        self.calls.append((path, token))
        request = httpx.Request("GET", f"https://api.github.com/{path}")
        return httpx.Response(self.status_code, json=self.responses[path], request=request)


class FakeGoogleClient:
    def __init__(self, userinfo: dict | None) -> None:
        self._userinfo = userinfo
        self.userinfo_calls = 0

    async def userinfo(self, token: dict) -> dict | None:
        self.userinfo_calls += 1
        return self._userinfo


def _github(profile: dict, emails: list[dict], status_code: int = 200) -> tuple[FakeGitHubClient, ProfileFields]:
    client = FakeGitHubClient(profile, emails, status_code)
    return client, asyncio.run(GitHubProfileExchanger().exchange_profile(client, _TOKEN))


class TestGitHubProfileExchanger:
    def test_primary_verified_email_is_chosen(self) -> None:
        emails = [
            {"email": "old@example.com", "primary": False, "verified": True},
            {"email": "unconfirmed@example.com", "primary": True, "verified": False},
            {"email": "ada@example.com", "primary": True, "verified": True},
        ]
        client, fields = _github({"login": "ada", "name": "Ada Lovelace"}, emails)

        assert fields == ProfileFields(email="ada@example.com", display_name="Ada Lovelace")
        assert [path for path, _ in client.calls] == ["user", "user/emails"]
        assert all(token is _TOKEN for _, token in client.calls)

    @pytest.mark.parametrize(
        "profile, expected",
        [
            ({"login": "ada", "name": "Ada Lovelace"}, "Ada Lovelace"),
            ({"login": "ada", "name": None}, "ada"),
            ({"login": "ada", "name": ""}, "ada"),
            ({}, "ada@example.com"),
        ],
    )
    def test_display_name_fallback(self, profile: dict, expected: str) -> None:
        emails = [{"email": "ada@example.com", "primary": True, "verified": True}]
        _, fields = _github(profile, emails)
        assert fields.display_name == expected

    @pytest.mark.parametrize(
        "emails",
        [
            [],
            [{"email": "ada@example.com", "primary": True, "verified": False}],
            [{"email": "ada@example.com", "primary": False, "verified": True}],
        ],
    )
    def test_no_primary_verified_email_is_refused(self, emails: list[dict]) -> None:
        with pytest.raises(ValueError, match="no primary verified email"):
            _github({"login": "ada"}, emails)

    def test_http_error_propagates(self) -> None:
        with pytest.raises(httpx.HTTPStatusError):
            _github({"message": "Bad credentials"}, [], status_code=401)


class TestGoogleProfileExchanger:
    def test_id_token_userinfo_is_used_without_extra_call(self) -> None:
        client = FakeGoogleClient(None)
        token = {**_TOKEN, "userinfo": {"email": "ada@example.com", "email_verified": True, "name": "Ada"}}

        fields = asyncio.run(GoogleProfileExchanger().exchange_profile(client, token))

        assert fields == ProfileFields(email="ada@example.com", display_name="Ada")
        assert client.userinfo_calls == 0

    def test_userinfo_endpoint_fallback(self) -> None:
        client = FakeGoogleClient({"email": "ada@example.com", "email_verified": True})

        fields = asyncio.run(GoogleProfileExchanger().exchange_profile(client, _TOKEN))

        assert fields == ProfileFields(email="ada@example.com", display_name="ada@example.com")
        assert client.userinfo_calls == 1

    @pytest.mark.parametrize(
        "userinfo",
        [
            None,
            {"email": "ada@example.com", "email_verified": False},
            {"email_verified": True},
        ],
    )
    def test_unusable_userinfo_is_refused(self, userinfo: dict | None) -> None:
        with pytest.raises(ValueError):
            asyncio.run(GoogleProfileExchanger().exchange_profile(FakeGoogleClient(userinfo), _TOKEN))


def test_exchanger_lookup() -> None:
    assert isinstance(get_profile_exchanger("github"), GitHubProfileExchanger)
    assert isinstance(get_profile_exchanger("google"), GoogleProfileExchanger)
    with pytest.raises(ValueError, match="Unknown OAuth provider"):
        get_profile_exchanger("gitlab")
