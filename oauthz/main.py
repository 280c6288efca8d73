"""
oauthz: issues upload-only bearer credentials for the storage network after OAuth2 login.
GET /, /health, /login, /callback. Listens on 0.0.0.0:8083 by default.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from oauthz.authenticator import Authenticator
from oauthz.bearer import load_signing_key
from oauthz.config import Settings, parse_address
from oauthz.errors import ConfigError
from oauthz.metrics import Metrics
from oauthz.network import RestGatewayClient
from oauthz.policy import PolicyBuilder
from oauthz.providers import build_provider
from oauthz.routes import router
from oauthz.state_store import StateStore

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def create_app(authenticator: Authenticator, settings: Settings) -> FastAPI:
    """Wire routes to an already-built authenticator."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        metrics = authenticator.metrics
        if settings.prometheus_enabled:
            metrics.serve(settings.prometheus_address)
        metrics.set_service_started(VERSION)
        logger.info("oauthz %s serving providers: %s", VERSION, ", ".join(authenticator.provider_names()) or "none")
        yield
        metrics.shutdown()

    app = FastAPI(title="OAuthz", version=VERSION, lifespan=lifespan)
    app.state.authenticator = authenticator
    app.state.settings = settings
    app.include_router(router)
    return app


def build_authenticator(settings: Settings) -> Authenticator:
    """Construct every collaborator from settings. Raises ConfigError on bad config."""
    signing_key = load_signing_key(
        settings.signing_key_path,
        settings.signing_key_passphrase,
        generate=settings.signing_key_generate,
    )
    timeout = settings.request_timeout.total_seconds()
    providers = {}
    for provider_settings in settings.providers:
        try:
            providers[provider_settings.name] = build_provider(provider_settings, settings.callback_url, timeout=timeout)
        except ValueError as e:
            raise ConfigError(f"failed to init services: {e}") from e
    return Authenticator(
        providers,
        StateStore(ttl=settings.state_ttl),
        PolicyBuilder.from_settings(settings),
        RestGatewayClient(settings.network_endpoint, timeout=timeout),
        signing_key,
        subject=settings.user_id,
        metrics=Metrics(),
    )


def build_app() -> FastAPI:
    """uvicorn factory: settings from OAUTHZ_* environment."""
    settings = Settings.from_env()
    return create_app(build_authenticator(settings), settings)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run() -> None:
    import uvicorn

    try:
        settings = Settings.from_env()
        host, port = parse_address(settings.listen_address)
    except ConfigError as e:
        raise SystemExit(f"oauthz: {e}") from e

    configure_logging(settings.logger_level)
    if settings.tls_enabled:
        logger.info("running web server (TLS-enabled) on %s", settings.listen_address)
    else:
        logger.info("running web server on %s", settings.listen_address)
    uvicorn.run(
        "oauthz.main:build_app",
        factory=True,
        host=host,
        port=port,
        ssl_certfile=settings.tls_certificate,
        ssl_keyfile=settings.tls_key,
        log_level=settings.logger_level,
    )


if __name__ == "__main__":
    run()
