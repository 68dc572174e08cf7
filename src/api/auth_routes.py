"""
Authentication endpoints.

Login mints a token pair and an IP-bound session, refresh rotates the
pair, logout revokes everything the caller presents. Credential checking
itself is delegated to the authenticator installed on ``app.state``.
"""

from typing import Any, Awaitable, Callable, Dict, Optional
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from src.api.dependencies import (
    get_access_claims,
    get_bearer_token,
    require_csrf,
    require_role,
    security_event,
)
from src.core.rate_limit_config import api_limit, auth_limit, get_real_ip
from src.core.security import SecurityContext, Severity, get_security
from src.middleware.sanitization import validate_and_sanitize

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class Principal(BaseModel):
    """Authenticated user as returned by the authenticator"""
    id: str
    username: str
    role: str
    name: Optional[str] = None
    property: Optional[str] = None


Authenticator = Callable[[str, str], Awaitable[Optional[Principal]]]


async def reject_all(username: str, password: str) -> Optional[Principal]:
    """Authenticator used when the host application installs none"""
    logger.warning("No authenticator configured - rejecting login")
    return None


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(alias="refreshToken", min_length=1)


class LogoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


@router.get("/csrf-token")
@api_limit
async def csrf_token(request: Request, security: SecurityContext = Depends(get_security)):
    return {"csrfToken": await security.csrf.generate_csrf_token()}


@router.post("/auth/login")
@auth_limit
async def login(
    request: Request,
    body: LoginRequest = Depends(validate_and_sanitize(LoginRequest)),
    security: SecurityContext = Depends(get_security),
):
    authenticator: Authenticator = getattr(request.app.state, "authenticator", reject_all)
    principal = await authenticator(body.username, body.password)

    if principal is None:
        security.audit.log_security_event(security_event(
            request, "login", False, details={"username": body.username}
        ))
        return JSONResponse(status_code=401, content={"error": "Invalid credentials"})

    pair = security.tokens.generate_token_pair(principal.id, principal.role)
    session_id = await security.sessions.create_session(principal.id, get_real_ip(request))

    security.audit.log_security_event(security_event(request, "login", True, user_id=principal.id))
    return {
        **pair.model_dump(by_alias=True),
        "sessionId": session_id,
        "user": principal.model_dump(exclude_none=True),
    }


@router.post("/auth/refresh")
@auth_limit
async def refresh(
    request: Request,
    body: RefreshRequest = Depends(validate_and_sanitize(RefreshRequest)),
    security: SecurityContext = Depends(get_security),
):
    pair = await security.tokens.rotate_refresh_token(body.refresh_token)
    security.audit.log_security_event(security_event(request, "token_refresh", True))
    return pair.model_dump(by_alias=True)


@router.get("/auth/verify")
@api_limit
async def verify(
    request: Request,
    claims: Dict[str, Any] = Depends(get_access_claims),
    x_session_id: Optional[str] = Header(default=None),
    security: SecurityContext = Depends(get_security),
):
    if x_session_id is not None:
        user_id = await security.sessions.validate_session(x_session_id, get_real_ip(request))
        if user_id != claims["userId"]:
            security.audit.log_security_event(security_event(
                request, "session_validation", False, user_id=claims["userId"]
            ))
            return JSONResponse(status_code=401, content={"error": "Invalid session"})

    return {
        "user": {"id": claims["userId"], "role": claims["role"]},
        "expiresAt": claims["exp"],
    }


@router.post("/auth/logout", dependencies=[Depends(require_csrf)])
@api_limit
async def logout(
    request: Request,
    token: str = Depends(get_bearer_token),
    claims: Dict[str, Any] = Depends(get_access_claims),
    body: LogoutRequest = Depends(validate_and_sanitize(LogoutRequest)),
    x_session_id: Optional[str] = Header(default=None),
    security: SecurityContext = Depends(get_security),
):
    await security.tokens.revoke_token(token)
    if body.refresh_token:
        await security.tokens.revoke_token(body.refresh_token)
    if x_session_id:
        await security.sessions.revoke_session(x_session_id)

    security.audit.log_security_event(security_event(request, "logout", True, user_id=claims["userId"]))
    return {"message": "Logged out"}


@router.get("/auth/sessions/{session_id}")
@api_limit
async def session_info(
    request: Request,
    session_id: str,
    claims: Dict[str, Any] = Depends(require_role("admin")),
    security: SecurityContext = Depends(get_security),
):
    info = await security.sessions.get_session_info(session_id)
    if info is None:
        return JSONResponse(status_code=404, content={"error": "Session not found"})

    security.audit.log_security_event(security_event(
        request, "session_inspect", True, user_id=claims["userId"], severity=Severity.LOW
    ))
    return info
