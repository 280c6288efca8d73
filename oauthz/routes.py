"""
HTTP routes: GET /, /health, /login, /callback.
Login failures never leak details to the client; they redirect back to /.
"""
import html
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from oauthz.authenticator import Authenticator
from oauthz.config import Settings
from oauthz.errors import BadRequest, EpochQueryFailed, LoginFailed, SigningFailed

logger = logging.getLogger(__name__)
router = APIRouter()

EMAIL_COOKIE_PREFIX = "X-Attribute-"


def _authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


def _settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "oauthz"}


@router.get("/", response_class=HTMLResponse)
def index(request: Request):
    """Landing page with one login link per configured provider."""
    settings = _settings(request)
    links = "\n".join(
        f'  <p><a href="/login?service={html.escape(name)}">Log in with {html.escape(name.capitalize())}</a></p>'
        for name in _authenticator(request).provider_names()
    )
    details = f"  <p>Container: <code>{html.escape(settings.container_id)}</code></p>"
    if settings.gateway_url:
        details += f'\n  <p>Gateway: <a href="{html.escape(settings.gateway_url)}">{html.escape(settings.gateway_url)}</a></p>'
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Upload access</title></head>
<body>
  <h1>Upload access</h1>
{links or "  <p>No login providers configured.</p>"}
{details}
</body>
</html>"""
    )


@router.get("/login")
def login(request: Request, service: str | None = None):
    """Issue state for the chosen provider and redirect (307) to its authorization page."""
    try:
        url = _authenticator(request).login_url(service)
    except BadRequest as e:
        return PlainTextResponse(str(e), status_code=400)
    return RedirectResponse(url=url, status_code=307)


@router.get("/callback")
def callback(
    request: Request,
    state: str | None = None,
    code: str | None = None,
    error: str | None = None,
):
    """
    Provider redirect target. On success sets the bearer and hashed-email cookies and
    redirects to the configured URL; any login failure silently redirects to /.
    """
    settings = _settings(request)
    try:
        issued = _authenticator(request).callback(state, code, error)
    except LoginFailed:
        return RedirectResponse(url="/", status_code=307)
    except (EpochQueryFailed, SigningFailed):
        raise HTTPException(status_code=500, detail="could not issue credential")

    response = RedirectResponse(url=settings.redirect_url, status_code=307)
    response.headers["Authorization"] = f"Bearer {issued.token}"
    response.set_cookie(
        settings.bearer_cookie_name,
        issued.token,
        max_age=settings.cookie_max_age,
        secure=settings.tls_enabled,
    )
    response.set_cookie(
        EMAIL_COOKIE_PREFIX + settings.email_attribute,
        issued.hashed_email,
        max_age=settings.cookie_max_age,
        secure=settings.tls_enabled,
    )
    return response
