"""Tests for login orchestration without the HTTP layer."""
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from oauthz.authenticator import Authenticator
from oauthz.bearer import decode_bearer
from oauthz.errors import (
    BadRequest,
    EpochQueryFailed,
    IdentityFetchFailed,
    InvalidState,
    SigningFailed,
    TokenExchangeFailed,
)
from oauthz.policy import hash_email
from oauthz.state_store import StateStore


def _state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


def _provider_calls(email="alice@example.com"):
    return (
        patch("oauthz.providers.httpx.post", return_value=httpx.Response(200, json={"access_token": "at"})),
        patch("oauthz.providers.httpx.get", return_value=httpx.Response(200, json={"email": email})),
    )


class FailingEpochSource:
    def current_epoch(self) -> int:
        raise EpochQueryFailed("network info returned 503")


@pytest.mark.parametrize("service", [None, "", "myspace"])
def test_login_url_rejects_unknown_service(authenticator, service):
    with pytest.raises(BadRequest):
        authenticator.login_url(service)
    assert len(authenticator.state_store) == 0


def test_login_url_records_state(authenticator):
    url = authenticator.login_url("github")
    assert url.startswith("https://github.com/login/oauth/authorize?")
    assert _state_from(url) in authenticator.state_store


def test_callback_issues_credential(authenticator, policy_builder, epoch_source):
    state = _state_from(authenticator.login_url("google"))
    post, get = _provider_calls()
    with post, get:
        issued = authenticator.callback(state, "code")

    hashed = hash_email("alice@example.com")
    assert issued.hashed_email == hashed
    assert issued.provider == "google"
    assert issued.expiration == 130
    assert epoch_source.calls == 1

    token = decode_bearer(issued.token)
    assert token.policy == policy_builder.build(hashed, 100)
    assert token.expiration == 130
    assert token.subject is None
    assert token.verify(authenticator.signing_key.public_key())

    registry = authenticator.metrics.registry
    assert registry.get_sample_value("oauthz_credentials_issued_total", {"provider": "google"}) == 1.0


def test_subject_is_bound_when_configured(authenticator):
    authenticator.subject = "NbUgTSFvPmsRxmGeWpuuGeJUoRoi6PErcM"
    state = _state_from(authenticator.login_url("google"))
    post, get = _provider_calls()
    with post, get:
        issued = authenticator.callback(state, "code")
    assert decode_bearer(issued.token).subject == "NbUgTSFvPmsRxmGeWpuuGeJUoRoi6PErcM"


def test_replayed_state_fails(authenticator):
    state = _state_from(authenticator.login_url("google"))
    post, get = _provider_calls()
    with post, get:
        authenticator.callback(state, "code")
        with pytest.raises(InvalidState):
            authenticator.callback(state, "code")


def test_unknown_state_never_reaches_provider(authenticator):
    with patch("oauthz.providers.httpx.post") as post:
        with pytest.raises(InvalidState):
            authenticator.callback("never-issued", "code")
    post.assert_not_called()
    registry = authenticator.metrics.registry
    assert registry.get_sample_value("oauthz_login_failures_total", {"reason": "InvalidState"}) == 1.0


def test_provider_error_burns_state(authenticator):
    state = _state_from(authenticator.login_url("google"))
    with pytest.raises(TokenExchangeFailed):
        authenticator.callback(state, None, error="access_denied")
    assert state not in authenticator.state_store


def test_missing_code_fails(authenticator):
    state = _state_from(authenticator.login_url("google"))
    with pytest.raises(TokenExchangeFailed):
        authenticator.callback(state, "")


def test_missing_email_fails(authenticator, epoch_source):
    state = _state_from(authenticator.login_url("github"))
    with patch(
        "oauthz.providers.httpx.post", return_value=httpx.Response(200, json={"access_token": "at"})
    ), patch("oauthz.providers.httpx.get", return_value=httpx.Response(200, json={"login": "octocat"})):
        with pytest.raises(IdentityFetchFailed):
            authenticator.callback(state, "code")
    assert epoch_source.calls == 0


def test_epoch_failure_propagates(authenticator):
    authenticator.epoch_source = FailingEpochSource()
    state = _state_from(authenticator.login_url("google"))
    post, get = _provider_calls()
    with post, get:
        with pytest.raises(EpochQueryFailed):
            authenticator.callback(state, "code")


def test_unusable_key_propagates(authenticator, policy_builder, epoch_source):
    broken = Authenticator(
        authenticator.providers,
        StateStore(),
        policy_builder,
        epoch_source,
        rsa.generate_private_key(public_exponent=65537, key_size=2048),
    )
    state = _state_from(broken.login_url("google"))
    post, get = _provider_calls()
    with post, get:
        with pytest.raises(SigningFailed):
            broken.callback(state, "code")
