"""
Shared fixtures: a session-wide P-256 key, settings for two providers, and an
epoch source stub so no test talks to the network.
"""
from datetime import timedelta

import pytest

from oauthz.authenticator import Authenticator
from oauthz.bearer import generate_signing_key
from oauthz.config import ProviderSettings, Settings
from oauthz.metrics import Metrics
from oauthz.policy import PolicyBuilder
from oauthz.providers import build_provider
from oauthz.state_store import StateStore

CONTAINER_ID = "BeXmu3b9wfS8CxJ3vmhZpyBDjDMHqg56xmtg4ozoP8ZW"
CURRENT_EPOCH = 100


class StaticEpochSource:
    def __init__(self, epoch: int = CURRENT_EPOCH):
        self.epoch = epoch
        self.calls = 0

    def current_epoch(self) -> int:
        self.calls += 1
        return self.epoch


@pytest.fixture(scope="session")
def signing_key():
    return generate_signing_key()


@pytest.fixture
def settings():
    # 4 days at 4h per epoch -> 24 epochs of object lifetime
    return Settings(
        container_id=CONTAINER_ID,
        redirect_url="https://uploader.example/",
        bearer_lifetime=30,
        max_object_lifetime=timedelta(days=4),
        ms_per_epoch=14_400_000,
        providers=(
            ProviderSettings(name="google", client_id="google-id", client_secret="google-secret"),
            ProviderSettings(name="github", client_id="github-id", client_secret="github-secret"),
        ),
    )


@pytest.fixture
def policy_builder(settings):
    return PolicyBuilder.from_settings(settings)


@pytest.fixture
def epoch_source():
    return StaticEpochSource()


@pytest.fixture
def authenticator(settings, policy_builder, epoch_source, signing_key):
    providers = {p.name: build_provider(p, settings.callback_url) for p in settings.providers}
    return Authenticator(
        providers,
        StateStore(ttl=settings.state_ttl),
        policy_builder,
        epoch_source,
        signing_key,
        subject=settings.user_id,
        metrics=Metrics(),
    )
