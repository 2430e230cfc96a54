# admin_api/api/v1/auth.py
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from admin_api.api.v1.schemas import LoginIn, LogoutOut, TokenOut
from admin_api.core.errors import AdminApiError, ErrorKind
from admin_api.core.http import enforce_login_rate_limit
from admin_api.services.audit import audit_log
from admin_api.services.container import AppServices

REFRESH_COOKIE_NAME = "sng_admin_refresh"

router = APIRouter(prefix="/admin/auth")

# 401 is raised by get_current_admin so the message stays under our control
security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> AppServices:
    return request.app.state.services


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: AppServices = Depends(get_services),
) -> str:
    """Return the username of the authenticated admin. Access tokens are verified statelessly."""
    if credentials is None or not credentials.credentials:
        raise AdminApiError(ErrorKind.UNAUTHORIZED, "Authentication required")
    return services.sessions.verify_access(credentials.credentials)


def _cookie_path(services: AppServices) -> str:
    return f"{services.settings.API_PREFIX.rstrip('/')}/admin/auth"


def _set_refresh_cookie(response, services: AppServices, token: str) -> None:
    response.set_cookie(
        REFRESH_COOKIE_NAME,
        token,
        max_age=services.sessions.refresh_ttl,
        path=_cookie_path(services),
        secure=services.settings.is_production,
        httponly=True,
        samesite="strict",
    )


def _clear_refresh_cookie(response, services: AppServices) -> None:
    response.delete_cookie(
        REFRESH_COOKIE_NAME,
        path=_cookie_path(services),
        secure=services.settings.is_production,
        httponly=True,
        samesite="strict",
    )


@router.post("/login", response_model=TokenOut, dependencies=[Depends(enforce_login_rate_limit)])
async def login(payload: LoginIn, services: AppServices = Depends(get_services)):
    tokens = await services.sessions.login(payload.username, payload.password)
    response = JSONResponse(tokens.body())
    _set_refresh_cookie(response, services, tokens.refresh_token)
    audit_log("login", "auth", tokens.sid, tokens.username)
    return response


@router.post("/refresh", response_model=TokenOut)
async def refresh(request: Request, services: AppServices = Depends(get_services)):
    token = request.cookies.get(REFRESH_COOKIE_NAME)
    try:
        tokens = await services.sessions.refresh(token)
    except AdminApiError as exc:
        # invalid, expired or replayed: the browser must drop the cookie
        response = JSONResponse(status_code=exc.status_code, content={"detail": exc.message})
        if token and exc.kind is ErrorKind.UNAUTHORIZED:
            _clear_refresh_cookie(response, services)
        return response

    response = JSONResponse(tokens.body())
    _set_refresh_cookie(response, services, tokens.refresh_token)
    return response


@router.post("/logout", response_model=LogoutOut)
async def logout(request: Request, services: AppServices = Depends(get_services)):
    sid = await services.sessions.logout(request.cookies.get(REFRESH_COOKIE_NAME))
    response = JSONResponse({"ok": True})
    _clear_refresh_cookie(response, services)
    audit_log("logout", "auth", sid or "session", services.sessions.identity.username)
    return response
