"""
oauthz configuration. Read from OAUTHZ_* environment variables once at startup.
No secrets in this file; OAuth client secrets and the key passphrase come from env.
"""
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta

from oauthz.errors import ConfigError

ENV_PREFIX = "OAUTHZ_"

DEFAULT_LISTEN_ADDRESS = "0.0.0.0:8083"
# Post-login redirect; the provider callback is this URL + "callback"
DEFAULT_REDIRECT_URL = "http://localhost:8083/"
DEFAULT_LOGGER_LEVEL = "info"

DEFAULT_EMAIL_ATTRIBUTE = "Email"
DEFAULT_BEARER_COOKIE_NAME = "Bearer"
DEFAULT_COOKIE_MAX_AGE = 600
# Pending logins older than this are dropped (seconds)
DEFAULT_STATE_TTL = 600

DEFAULT_BEARER_LIFETIME = 30  # epochs
DEFAULT_MAX_OBJECT_SIZE = 200 << 20  # 200 MiB
DEFAULT_MAX_OBJECT_LIFETIME = timedelta(days=4)
# One epoch is 240 blocks of 15s on the main network
DEFAULT_MS_PER_EPOCH = 3_600_000

DEFAULT_SIGNING_KEY_PATH = ".oauthz_signing_key.pem"
DEFAULT_NETWORK_ENDPOINT = "http://127.0.0.1:8090"
DEFAULT_REQUEST_TIMEOUT = timedelta(seconds=15)

DEFAULT_PROMETHEUS_ADDRESS = "0.0.0.0:8084"

_PROVIDER_ID_RE = re.compile(rf"^{ENV_PREFIX}OAUTH_([A-Z0-9]+)_ID$")
_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|d|h|m|s)")
_DURATION_UNITS = {
    "ms": "milliseconds",
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}
_LOGGER_LEVELS = ("debug", "info", "warning", "error", "critical")
_B58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
# container ID is a SHA-256 digest; user ID is a 25-byte account address
CONTAINER_ID_SIZE = 32
USER_ID_SIZE = 25


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration such as "96h", "4d", "1h30m", "250ms" or bare seconds ("3600").
    Raises ConfigError on anything else.
    """
    text = value.strip().lower()
    if not text:
        raise ConfigError("empty duration")
    if text.isdigit():
        return timedelta(seconds=int(text))
    total = timedelta()
    pos = 0
    for m in _DURATION_RE.finditer(text):
        if m.start() != pos:
            break
        total += timedelta(**{_DURATION_UNITS[m.group(2)]: float(m.group(1))})
        pos = m.end()
    if pos == 0 or pos != len(text):
        raise ConfigError(f"invalid duration: {value!r}")
    return total


def parse_address(address: str) -> tuple[str, int]:
    """Split "host:port" into (host, port)."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigError(f"invalid listen address: {address!r}")
    return host or "0.0.0.0", int(port)


def _b58decode(value: str) -> bytes:
    """Decode a base58 (Bitcoin alphabet) string. Raises ValueError on foreign characters."""
    number = 0
    for char in value:
        digit = _B58_ALPHABET.find(char)
        if digit < 0:
            raise ValueError(f"invalid base58 character {char!r}")
        number = number * 58 + digit
    body = number.to_bytes((number.bit_length() + 7) // 8, "big")
    return b"\x00" * (len(value) - len(value.lstrip("1"))) + body


def _check_base58(name: str, value: str, size: int) -> None:
    try:
        decoded = _b58decode(value)
    except ValueError as e:
        raise ConfigError(f"{ENV_PREFIX}{name} is malformed: {e}") from None
    if len(decoded) != size:
        raise ConfigError(f"{ENV_PREFIX}{name} is malformed: decodes to {len(decoded)} bytes, want {size}")


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(item for item in re.split(r"[,\s]+", value) if item)


class _Env:
    """Typed accessors over an OAUTHZ_-prefixed environment mapping."""

    def __init__(self, environ: Mapping[str, str]):
        self._environ = environ

    def get_str(self, name: str, default: str = "") -> str:
        return self._environ.get(ENV_PREFIX + name, default).strip()

    def get_int(self, name: str, default: int) -> int:
        raw = self.get_str(name)
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError:
            raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None
        if value < 0:
            raise ConfigError(f"{ENV_PREFIX}{name} must not be negative")
        # zero means "use the default"
        return value or default

    def get_bool(self, name: str, default: bool = False) -> bool:
        raw = self.get_str(name).lower()
        if not raw:
            return default
        if raw in _TRUE:
            return True
        if raw in _FALSE:
            return False
        raise ConfigError(f"{ENV_PREFIX}{name} must be a boolean, got {raw!r}")

    def get_duration(self, name: str, default: timedelta) -> timedelta:
        raw = self.get_str(name)
        if not raw:
            return default
        value = parse_duration(raw)
        return value or default

    def provider_names(self) -> tuple[str, ...]:
        """OAUTHZ_OAUTH_PROVIDERS if set, else every <NAME> with an OAUTHZ_OAUTH_<NAME>_ID."""
        explicit = self.get_str("OAUTH_PROVIDERS")
        if explicit:
            return _split_list(explicit.lower())
        found = (_PROVIDER_ID_RE.match(key) for key in self._environ)
        return tuple(sorted(m.group(1).lower() for m in found if m))


@dataclass(frozen=True)
class ProviderSettings:
    """OAuth2 client registration for one identity provider."""

    name: str
    client_id: str
    client_secret: str
    scopes: tuple[str, ...] = ()
    # None means the provider's well-known endpoint
    auth_url: str | None = None
    token_url: str | None = None


@dataclass(frozen=True)
class Settings:
    container_id: str
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    tls_certificate: str | None = None
    tls_key: str | None = None
    logger_level: str = DEFAULT_LOGGER_LEVEL
    redirect_url: str = DEFAULT_REDIRECT_URL
    bearer_cookie_name: str = DEFAULT_BEARER_COOKIE_NAME
    cookie_max_age: int = DEFAULT_COOKIE_MAX_AGE
    state_ttl: int = DEFAULT_STATE_TTL
    email_attribute: str = DEFAULT_EMAIL_ATTRIBUTE
    user_id: str | None = None
    bearer_lifetime: int = DEFAULT_BEARER_LIFETIME
    max_object_size: int = DEFAULT_MAX_OBJECT_SIZE
    max_object_lifetime: timedelta = DEFAULT_MAX_OBJECT_LIFETIME
    ms_per_epoch: int = DEFAULT_MS_PER_EPOCH
    signing_key_path: str = DEFAULT_SIGNING_KEY_PATH
    signing_key_passphrase: str | None = field(default=None, repr=False)
    signing_key_generate: bool = False
    network_endpoint: str = DEFAULT_NETWORK_ENDPOINT
    request_timeout: timedelta = DEFAULT_REQUEST_TIMEOUT
    providers: tuple[ProviderSettings, ...] = ()
    gateway_url: str | None = None
    prometheus_enabled: bool = False
    prometheus_address: str = DEFAULT_PROMETHEUS_ADDRESS

    @property
    def callback_url(self) -> str:
        """Where providers redirect back to after authorization."""
        return self.redirect_url.rstrip("/") + "/callback"

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls_certificate or self.tls_key)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from OAUTHZ_* variables. Raises ConfigError on invalid values."""
        env = _Env(os.environ if environ is None else environ)

        container_id = env.get_str("CONTAINER_ID")
        if not container_id:
            raise ConfigError(f"{ENV_PREFIX}CONTAINER_ID is required")
        _check_base58("CONTAINER_ID", container_id, CONTAINER_ID_SIZE)
        user_id = env.get_str("BEARER_USER_ID") or None
        if user_id is not None:
            _check_base58("BEARER_USER_ID", user_id, USER_ID_SIZE)
        logger_level = env.get_str("LOGGER_LEVEL", DEFAULT_LOGGER_LEVEL).lower()
        if logger_level not in _LOGGER_LEVELS:
            allowed = ", ".join(_LOGGER_LEVELS)
            raise ConfigError(f"{ENV_PREFIX}LOGGER_LEVEL must be one of {allowed}, got {logger_level!r}")

        providers = []
        for name in env.provider_names():
            key = f"OAUTH_{name.upper()}_"
            client_id = env.get_str(key + "ID")
            if not client_id:
                raise ConfigError(f"{ENV_PREFIX}{key}ID is required for provider {name!r}")
            providers.append(
                ProviderSettings(
                    name=name,
                    client_id=client_id,
                    client_secret=env.get_str(key + "SECRET"),
                    scopes=_split_list(env.get_str(key + "SCOPES")),
                    auth_url=env.get_str(key + "ENDPOINT_AUTH") or None,
                    token_url=env.get_str(key + "ENDPOINT_TOKEN") or None,
                )
            )

        settings = cls(
            container_id=container_id,
            listen_address=env.get_str("LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
            tls_certificate=env.get_str("TLS_CERTIFICATE") or None,
            tls_key=env.get_str("TLS_KEY") or None,
            logger_level=logger_level,
            redirect_url=env.get_str("REDIRECT_URL", DEFAULT_REDIRECT_URL),
            bearer_cookie_name=env.get_str("BEARER_COOKIE_NAME", DEFAULT_BEARER_COOKIE_NAME),
            cookie_max_age=env.get_int("COOKIE_MAX_AGE", DEFAULT_COOKIE_MAX_AGE),
            state_ttl=env.get_int("STATE_TTL", DEFAULT_STATE_TTL),
            email_attribute=env.get_str("BEARER_EMAIL_ATTRIBUTE", DEFAULT_EMAIL_ATTRIBUTE),
            user_id=user_id,
            bearer_lifetime=env.get_int("BEARER_LIFETIME", DEFAULT_BEARER_LIFETIME),
            max_object_size=env.get_int("MAX_OBJECT_SIZE", DEFAULT_MAX_OBJECT_SIZE),
            max_object_lifetime=env.get_duration("MAX_OBJECT_LIFETIME", DEFAULT_MAX_OBJECT_LIFETIME),
            ms_per_epoch=env.get_int("MS_PER_EPOCH", DEFAULT_MS_PER_EPOCH),
            signing_key_path=env.get_str("SIGNING_KEY_PATH", DEFAULT_SIGNING_KEY_PATH),
            signing_key_passphrase=env.get_str("SIGNING_KEY_PASSPHRASE") or None,
            signing_key_generate=env.get_bool("SIGNING_KEY_GENERATE"),
            network_endpoint=env.get_str("NETWORK_ENDPOINT", DEFAULT_NETWORK_ENDPOINT).rstrip("/"),
            request_timeout=env.get_duration("REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            providers=tuple(providers),
            gateway_url=env.get_str("GATEWAY_URL") or None,
            prometheus_enabled=env.get_bool("PROMETHEUS_ENABLED"),
            prometheus_address=env.get_str("PROMETHEUS_ADDRESS", DEFAULT_PROMETHEUS_ADDRESS),
        )
        parse_address(settings.listen_address)
        if settings.prometheus_enabled:
            parse_address(settings.prometheus_address)
        return settings
