"""
External identity providers (OAuth2 authorization code flow).
Each provider builds its /authorize URL, exchanges a code for an access token and
fetches the verified email. Variants differ only in defaults and the user-info request.
"""
from abc import ABC, abstractmethod
from urllib.parse import urlencode

import httpx

from oauthz.config import DEFAULT_REQUEST_TIMEOUT, ProviderSettings
from oauthz.errors import IdentityFetchFailed, TokenExchangeFailed


class IdentityProvider(ABC):
    name: str = ""
    auth_url: str = ""
    token_url: str = ""
    userinfo_url: str = ""
    default_scopes: tuple[str, ...] = ()

    def __init__(self, settings: ProviderSettings, redirect_uri: str, timeout: float | None = None):
        self.client_id = settings.client_id
        self.client_secret = settings.client_secret
        self.redirect_uri = redirect_uri
        self.scopes = settings.scopes or self.default_scopes
        if settings.auth_url:
            self.auth_url = settings.auth_url
        if settings.token_url:
            self.token_url = settings.token_url
        if timeout is None:
            timeout = DEFAULT_REQUEST_TIMEOUT.total_seconds()
        self.timeout = timeout

    def authorization_url(self, state: str) -> str:
        """Provider /authorize URL carrying our client_id, callback and state."""
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        if self.scopes:
            params["scope"] = " ".join(self.scopes)
        sep = "&" if "?" in self.auth_url else "?"
        return f"{self.auth_url}{sep}{urlencode(params)}"

    def exchange(self, code: str) -> str:
        """Exchange authorization code for an access token. Raises TokenExchangeFailed."""
        try:
            r = httpx.post(
                self.token_url,
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                },
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise TokenExchangeFailed(f"{self.name}: token request failed: {e}") from e

        if r.status_code != 200:
            raise TokenExchangeFailed(f"{self.name}: token endpoint returned {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise TokenExchangeFailed(f"{self.name}: unreadable token response") from e
        if not isinstance(data, dict):
            raise TokenExchangeFailed(f"{self.name}: unexpected token response")
        # GitHub reports errors with status 200
        if data.get("error"):
            raise TokenExchangeFailed(f"{self.name}: {data.get('error_description') or data['error']}")
        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise TokenExchangeFailed(f"{self.name}: no access_token in response")
        return access_token

    @abstractmethod
    def userinfo_get(self, token: str) -> httpx.Response:
        """Provider-specific user-info call."""

    def fetch_email(self, token: str) -> str:
        """Return the account email from the user-info endpoint. Raises IdentityFetchFailed."""
        try:
            r = self.userinfo_get(token)
        except httpx.HTTPError as e:
            raise IdentityFetchFailed(f"{self.name}: failed getting user info: {e}") from e

        if r.status_code != 200:
            raise IdentityFetchFailed(f"{self.name}: user info returned {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise IdentityFetchFailed(f"{self.name}: failed reading user info body") from e

        email = data.get("email") if isinstance(data, dict) else None
        if not email or not isinstance(email, str):
            raise IdentityFetchFailed(f"{self.name}: no email in user info")
        return email


class GoogleProvider(IdentityProvider):
    name = "google"
    auth_url = "https://accounts.google.com/o/oauth2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    userinfo_url = "https://www.googleapis.com/oauth2/v2/userinfo"
    default_scopes = ("https://www.googleapis.com/auth/userinfo.email",)

    def userinfo_get(self, token: str) -> httpx.Response:
        # token travels as a query parameter
        return httpx.get(self.userinfo_url, params={"access_token": token}, timeout=self.timeout)


class GitHubProvider(IdentityProvider):
    name = "github"
    auth_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    userinfo_url = "https://api.github.com/user"
    default_scopes = ("user:email",)

    def userinfo_get(self, token: str) -> httpx.Response:
        return httpx.get(
            self.userinfo_url,
            headers={"Authorization": f"token {token}", "Accept": "application/json"},
            timeout=self.timeout,
        )


PROVIDERS: dict[str, type[IdentityProvider]] = {
    GoogleProvider.name: GoogleProvider,
    GitHubProvider.name: GitHubProvider,
}


def build_provider(settings: ProviderSettings, redirect_uri: str, timeout: float | None = None) -> IdentityProvider:
    """Instantiate the provider variant named in settings. Raises ValueError if unsupported."""
    try:
        cls = PROVIDERS[settings.name]
    except KeyError:
        raise ValueError(f"unsupported service {settings.name}") from None
    return cls(settings, redirect_uri, timeout=timeout)
