"""
Login orchestration: state issuing on /login, and on /callback state consumption,
code exchange, email lookup, epoch query, policy building and credential minting.
"""
import logging
from dataclasses import dataclass

from oauthz import bearer
from oauthz.errors import BadRequest, EpochQueryFailed, LoginFailed, SigningFailed, TokenExchangeFailed
from oauthz.metrics import Metrics
from oauthz.network import EpochSource
from oauthz.policy import PolicyBuilder, hash_email
from oauthz.providers import IdentityProvider
from oauthz.state_store import StateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedCredential:
    token: str
    hashed_email: str
    provider: str
    expiration: int


class Authenticator:
    def __init__(
        self,
        providers: dict[str, IdentityProvider],
        state_store: StateStore,
        policy_builder: PolicyBuilder,
        epoch_source: EpochSource,
        signing_key,
        *,
        subject: str | None = None,
        metrics: Metrics | None = None,
    ):
        self.providers = providers
        self.state_store = state_store
        self.policy_builder = policy_builder
        self.epoch_source = epoch_source
        self.signing_key = signing_key
        self.subject = subject
        self.metrics = metrics or Metrics()

    def provider_names(self) -> list[str]:
        return sorted(self.providers)

    def login_url(self, service: str | None) -> str:
        """Issue a state for service and return the provider's authorization URL."""
        if not service:
            raise BadRequest("no valid service param")
        provider = self.providers.get(service)
        if provider is None:
            raise BadRequest("unsupported service")
        state = self.state_store.issue(service)
        logger.debug("Login started with %s", service)
        return provider.authorization_url(state)

    def callback(self, state: str | None, code: str | None, error: str | None = None) -> IssuedCredential:
        """
        Complete a login. LoginFailed subclasses mean the user should just be sent back;
        EpochQueryFailed and SigningFailed are server-side faults.
        """
        try:
            service = self.state_store.consume(state or "")
            provider = self.providers[service]
            if error:
                raise TokenExchangeFailed(f"{service}: provider returned error {error!r}")
            if not code:
                raise TokenExchangeFailed(f"{service}: no code in callback")
            access_token = provider.exchange(code)
            email = provider.fetch_email(access_token)
        except LoginFailed as e:
            logger.warning("Login failed: %s", e)
            self.metrics.login_failed(type(e).__name__)
            raise

        hashed_email = hash_email(email)
        try:
            current_epoch = self.epoch_source.current_epoch()
            policy = self.policy_builder.build(hashed_email, current_epoch)
            expiration = self.policy_builder.credential_expiration(current_epoch)
            token = bearer.mint(policy, self.subject, expiration, self.signing_key)
        except (EpochQueryFailed, SigningFailed) as e:
            logger.error("Could not issue credential for %s: %s", hashed_email, e)
            self.metrics.login_failed(type(e).__name__)
            raise

        logger.info(
            "Issued credential for %s via %s (epoch %d, expires %d)",
            hashed_email,
            service,
            current_epoch,
            expiration,
        )
        self.metrics.credential_issued(service)
        return IssuedCredential(token=token, hashed_email=hashed_email, provider=service, expiration=expiration)
