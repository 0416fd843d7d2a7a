"""OAuth onboarding and session routes.

The session is three HTTP-only cookies set by the callback:
``access_token``, ``refresh_token`` and ``user_info`` (base64url JSON).
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from inbox_health.api.deps import Services, get_services
from inbox_health.exceptions import TokenError
from inbox_health.google import ADMIN_SCOPES, ONBOARDING_SCOPES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

STATE_TTL = 600
SESSION_COOKIES = ("access_token", "refresh_token", "user_info")
REFRESH_COOKIE_MAX_AGE = 30 * 24 * 60 * 60


def _state_key(state: str) -> str:
    return f"oauth_state:{state}"


def encode_user_info(userinfo: dict[str, Any]) -> str:
    raw = json.dumps(userinfo, separators=(",", ":")).encode()
    # Padding is stripped so the value needs no cookie quoting
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


def decode_user_info(value: str) -> dict[str, Any] | None:
    padded = value + "=" * (-len(value) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (binascii.Error, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _begin(services: Services, scopes: list[str]) -> RedirectResponse:
    url, state = services.oauth(scopes).get_authorization_url()
    services.cache.set(_state_key(state), "1", ttl=STATE_TTL)
    return RedirectResponse(url)


@router.get("")
def start_admin_auth(services: Services = Depends(get_services)):
    """Redirect an administrator to Google consent."""
    return _begin(services, ADMIN_SCOPES)


@router.get("/google")
def start_google_auth(services: Services = Depends(get_services)):
    """Redirect a mailbox owner to Google consent."""
    return _begin(services, ONBOARDING_SCOPES)


@router.get("/callback")
def oauth_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    services: Services = Depends(get_services),
):
    """Finish the OAuth flow: store the user and start a session."""
    base_url = str(request.base_url).rstrip("/")
    if not code:
        return RedirectResponse(f"{base_url}/auth?error=no_code")

    try:
        if not state or services.cache.get(_state_key(state)) is None:
            raise TokenError("invalid or expired state")
        services.cache.forget(_state_key(state))

        oauth = services.oauth()
        token = oauth.fetch_token(code)
        userinfo = oauth.fetch_userinfo(token)
        user = services.credentials.upsert_from_userinfo(
            userinfo,
            access_token=token.get("access_token"),
            refresh_token=token.get("refresh_token"),
        )
    except (TokenError, ValueError) as e:
        logger.error(f"Error in OAuth callback: {e}")
        return RedirectResponse(
            f"{base_url}/auth?error=callback_failed&details={quote(str(e))}"
        )

    logger.info(f"User signed in: {user['email']}")
    response = RedirectResponse(f"{base_url}/")
    session_max_age = int(token.get("expires_in") or 3600)
    secure = services.settings.cookie_secure

    response.set_cookie(
        "access_token",
        token["access_token"],
        max_age=session_max_age,
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    if token.get("refresh_token"):
        response.set_cookie(
            "refresh_token",
            token["refresh_token"],
            max_age=REFRESH_COOKIE_MAX_AGE,
            httponly=True,
            secure=secure,
            samesite="lax",
        )
    response.set_cookie(
        "user_info",
        encode_user_info(userinfo),
        max_age=session_max_age,
        httponly=True,
        secure=secure,
        samesite="lax",
    )
    return response


@router.get("/me")
def current_user(request: Request):
    """Return the signed-in user from the session cookies."""
    raw = request.cookies.get("user_info")
    userinfo = decode_user_info(raw) if raw else None
    if userinfo is None:
        return Response(status_code=401)

    return {
        "userInfo": userinfo,
        "access_token": request.cookies.get("access_token"),
        "refresh_token": request.cookies.get("refresh_token"),
    }


@router.get("/details")
def session_details(request: Request, services: Services = Depends(get_services)):
    """Return the session tokens and the OAuth client ID."""
    access_token = request.cookies.get("access_token")
    if not access_token:
        return Response(status_code=401)

    return {
        "accessToken": access_token,
        "refreshToken": request.cookies.get("refresh_token") or "Not available",
        "clientId": services.settings.google_client_id,
    }


@router.get("/logout")
def logout():
    """Clear the session cookies."""
    response = JSONResponse({"success": True})
    for name in SESSION_COOKIES:
        response.delete_cookie(name)
    return response
