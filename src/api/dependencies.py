"""FastAPI dependencies shared by the auth endpoints"""

from typing import Any, Dict, Optional
import logging

from fastapi import Depends, Header, Request

from src.core.exceptions import CSRFValidationError, InvalidTokenError, PermissionDeniedError
from src.core.rate_limit_config import get_real_ip
from src.core.security import SecurityContext, SecurityEvent, Severity, get_security

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
SESSION_HEADER = "X-Session-Id"


def security_event(
    request: Request,
    action: str,
    success: bool,
    user_id: Optional[str] = None,
    severity: Optional[Severity] = None,
    details: Optional[Any] = None,
) -> SecurityEvent:
    """Build a SecurityEvent with the caller's IP and user agent filled in"""
    return SecurityEvent(
        user_id=user_id,
        action=action,
        resource=request.url.path,
        ip=get_real_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        success=success,
        severity=severity,
        details=details,
    )


def get_bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    if not authorization:
        raise InvalidTokenError("Missing Authorization header", token_type="access")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise InvalidTokenError("Authorization header must use the Bearer scheme", token_type="access")
    return token.strip()


async def get_access_claims(
    token: str = Depends(get_bearer_token),
    security: SecurityContext = Depends(get_security),
) -> Dict[str, Any]:
    """Claims of a valid, unrevoked access token"""
    return await security.tokens.verify_access_token(token)


def require_role(*roles: str):
    """Dependency factory restricting an endpoint to the given roles"""

    async def dependency(
        request: Request,
        claims: Dict[str, Any] = Depends(get_access_claims),
        security: SecurityContext = Depends(get_security),
    ) -> Dict[str, Any]:
        if claims.get("role") not in roles:
            security.audit.log_security_event(security_event(
                request, "authorization", False,
                user_id=claims.get("userId"),
                severity=Severity.HIGH,
                details={"required_roles": list(roles), "role": claims.get("role")},
            ))
            raise PermissionDeniedError("Insufficient permissions")
        return claims

    return dependency


async def require_csrf(
    request: Request,
    x_csrf_token: Optional[str] = Header(default=None),
    security: SecurityContext = Depends(get_security),
) -> None:
    """Reject state-changing requests without a valid X-CSRF-Token header"""
    if await security.csrf.validate_csrf_token(x_csrf_token or ""):
        return

    security.audit.log_security_event(security_event(
        request, "csrf_validation", False, severity=Severity.MEDIUM
    ))
    raise CSRFValidationError("Invalid CSRF token")
