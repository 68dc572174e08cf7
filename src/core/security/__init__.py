"""
Security layer.

Centralizes all security-related functionality:
- Access/refresh tokens with revocation
- IP-bound server-side sessions
- CSRF tokens
- Security audit logging
- Periodic cleanup of the stores

This package is a clean layer on top of the business logic,
not intertwined with it.
"""

from .audit import SecurityAuditLogger, SecurityEvent, SecurityLogEntry, Severity
from .context import (
    SecurityContext,
    build_security,
    create_security_store,
    get_security,
    set_security,
)
from .csrf import CSRFTokenStore
from .maintenance import SecurityMaintenance
from .session_security import SessionManager, SessionRecord
from .stores import InMemorySecurityStore, RedisSecurityStore, SecurityStore
from .tokens import TokenManager, TokenPair

__all__ = [
    'CSRFTokenStore',
    'InMemorySecurityStore',
    'RedisSecurityStore',
    'SecurityAuditLogger',
    'SecurityContext',
    'SecurityEvent',
    'SecurityLogEntry',
    'SecurityMaintenance',
    'SecurityStore',
    'SessionManager',
    'SessionRecord',
    'Severity',
    'TokenManager',
    'TokenPair',
    'build_security',
    'create_security_store',
    'get_security',
    'set_security',
]
