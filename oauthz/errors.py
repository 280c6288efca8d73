"""
Error taxonomy for credential issuance.
Routes map these to responses: BadRequest -> 400, LoginFailed -> silent redirect to /,
EpochQueryFailed / SigningFailed -> 500.
"""


class OAuthzError(Exception):
    """Base class for all oauthz errors."""


class ConfigError(OAuthzError):
    """Invalid or missing configuration value; raised at startup."""


class BadRequest(OAuthzError):
    """Missing or unknown service parameter on /login."""


class LoginFailed(OAuthzError):
    """Login did not complete. Never shown to the client beyond a redirect."""


class InvalidState(LoginFailed):
    """CSRF state unknown, already consumed or expired (indistinguishable on purpose)."""


class TokenExchangeFailed(LoginFailed):
    """Authorization code could not be exchanged for an access token."""


class IdentityFetchFailed(LoginFailed):
    """Provider user-info call failed or returned no email."""


class EpochQueryFailed(OAuthzError):
    """Current epoch could not be fetched from the storage network."""


class SigningFailed(OAuthzError):
    """Signing key is unusable for minting a credential."""


class CredentialDecodeError(OAuthzError):
    """Encoded credential is not a well-formed signed envelope."""
