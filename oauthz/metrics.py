"""
Prometheus metrics. Each Metrics owns its registry so several apps (tests) can coexist.
Scraped from a separate listener when OAUTHZ_PROMETHEUS_ENABLED is set.
"""
import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

from oauthz.config import parse_address

logger = logging.getLogger(__name__)

NAMESPACE = "oauthz"


class Metrics:
    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry()
        self._server = None
        self.up = Gauge("up", "App is up and running", namespace=NAMESPACE, registry=self.registry)
        self.version = Gauge(
            "version", "App version", ["version"], namespace=NAMESPACE, registry=self.registry
        )
        self.credentials_issued = Counter(
            "credentials_issued",
            "Bearer credentials issued",
            ["provider"],
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.login_failures = Counter(
            "login_failures",
            "Logins that ended without a credential",
            ["reason"],
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def set_service_started(self, version: str) -> None:
        self.up.set(1)
        self.version.labels(version).set(1)

    def credential_issued(self, provider: str) -> None:
        self.credentials_issued.labels(provider).inc()

    def login_failed(self, reason: str) -> None:
        self.login_failures.labels(reason).inc()

    def serve(self, address: str) -> bool:
        """
        Start the scrape endpoint in a background thread.
        A busy or unusable port is logged and leaves the service running without it.
        """
        host, port = parse_address(address)
        try:
            self._server, _ = start_http_server(port, addr=host, registry=self.registry)
        except OSError as e:
            logger.warning("Prometheus metrics server couldn't start on %s: %s", address, e)
            return False
        logger.info("Prometheus metrics server started on %s", address)
        return True

    def shutdown(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        logger.info("Prometheus metrics server stopped")
