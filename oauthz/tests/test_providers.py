"""Tests for provider authorize URLs, code exchange and email lookup (httpx mocked)."""
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from oauthz.config import ProviderSettings
from oauthz.errors import IdentityFetchFailed, TokenExchangeFailed
from oauthz.providers import GitHubProvider, GoogleProvider, IdentityProvider, build_provider

CALLBACK = "https://uploader.example/callback"


@pytest.fixture
def google():
    return build_provider(ProviderSettings("google", "google-id", "google-secret"), CALLBACK)


@pytest.fixture
def github():
    return build_provider(ProviderSettings("github", "github-id", "github-secret"), CALLBACK)


def test_build_provider_selects_variant(google, github):
    assert isinstance(google, GoogleProvider)
    assert isinstance(github, GitHubProvider)


def test_build_provider_unknown_name():
    with pytest.raises(ValueError):
        build_provider(ProviderSettings("myspace", "id", "secret"), CALLBACK)


def test_base_provider_is_abstract():
    with pytest.raises(TypeError):
        IdentityProvider(ProviderSettings("google", "id", "secret"), CALLBACK)


def test_authorization_url_includes_required_params(google):
    url = google.authorization_url("abc123")
    parsed = urlparse(url)
    assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == GoogleProvider.auth_url
    params = parse_qs(parsed.query)
    assert params["response_type"] == ["code"]
    assert params["client_id"] == ["google-id"]
    assert params["redirect_uri"] == [CALLBACK]
    assert params["state"] == ["abc123"]
    assert params["scope"] == ["https://www.googleapis.com/auth/userinfo.email"]


def test_configured_endpoints_and_scopes_override_defaults():
    provider = build_provider(
        ProviderSettings(
            "github",
            "id",
            "secret",
            scopes=("read:user", "user:email"),
            auth_url="https://ghe.example/login/oauth/authorize",
            token_url="https://ghe.example/login/oauth/access_token",
        ),
        CALLBACK,
    )
    url = provider.authorization_url("s")
    assert url.startswith("https://ghe.example/login/oauth/authorize?")
    assert parse_qs(urlparse(url).query)["scope"] == ["read:user user:email"]
    assert provider.token_url == "https://ghe.example/login/oauth/access_token"


def test_exchange_returns_access_token(google):
    with patch(
        "oauthz.providers.httpx.post",
        return_value=httpx.Response(200, json={"access_token": "at", "token_type": "Bearer"}),
    ) as post:
        assert google.exchange("the-code") == "at"
    args, kwargs = post.call_args
    assert args[0] == GoogleProvider.token_url
    assert kwargs["data"]["grant_type"] == "authorization_code"
    assert kwargs["data"]["code"] == "the-code"
    assert kwargs["data"]["redirect_uri"] == CALLBACK
    assert kwargs["data"]["client_secret"] == "google-secret"
    assert kwargs["headers"]["Accept"] == "application/json"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, json={"error": "invalid_grant"}),
        httpx.Response(200, json={"error": "bad_verification_code", "error_description": "expired"}),
        httpx.Response(200, json={"token_type": "bearer"}),
        httpx.Response(200, content=b"access_token=at&scope=user"),
    ],
)
def test_exchange_failures(github, response):
    with patch("oauthz.providers.httpx.post", return_value=response):
        with pytest.raises(TokenExchangeFailed):
            github.exchange("code")


def test_exchange_transport_error(google):
    with patch("oauthz.providers.httpx.post", side_effect=httpx.ConnectError("connection refused")):
        with pytest.raises(TokenExchangeFailed):
            google.exchange("code")


def test_google_sends_token_as_query_param(google):
    with patch(
        "oauthz.providers.httpx.get",
        return_value=httpx.Response(200, json={"email": "alice@example.com", "verified_email": True}),
    ) as get:
        assert google.fetch_email("at") == "alice@example.com"
    args, kwargs = get.call_args
    assert args[0] == "https://www.googleapis.com/oauth2/v2/userinfo"
    assert kwargs["params"] == {"access_token": "at"}
    assert "headers" not in kwargs


def test_github_sends_token_in_header(github):
    with patch(
        "oauthz.providers.httpx.get",
        return_value=httpx.Response(200, json={"login": "octocat", "email": "octo@example.com"}),
    ) as get:
        assert github.fetch_email("at") == "octo@example.com"
    args, kwargs = get.call_args
    assert args[0] == "https://api.github.com/user"
    assert kwargs["headers"]["Authorization"] == "token at"


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"login": "octocat"}),
        httpx.Response(200, json={"login": "octocat", "email": None}),
        httpx.Response(200, json={"email": ""}),
        httpx.Response(200, json=["alice@example.com"]),
        httpx.Response(200, content=b"<html>oops</html>"),
        httpx.Response(401, json={"message": "Bad credentials"}),
    ],
)
def test_fetch_email_failures(github, response):
    with patch("oauthz.providers.httpx.get", return_value=response):
        with pytest.raises(IdentityFetchFailed):
            github.fetch_email("at")


def test_fetch_email_transport_error(google):
    with patch("oauthz.providers.httpx.get", side_effect=httpx.ReadTimeout("timed out")):
        with pytest.raises(IdentityFetchFailed):
            google.fetch_email("at")
