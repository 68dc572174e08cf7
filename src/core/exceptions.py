# src/core/exceptions.py
"""
Core exceptions - standardized error handling for the security layer.

Token failures are raised, session lookups are not: callers of
SessionManager only ever see ``None``. Everything here derives from
SecurityBaseException so the app can map the whole family to HTTP
responses in one place.
"""

from typing import Optional, Dict, Any, List


class SecurityBaseException(Exception):
    """Base exception for all security layer errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            details: Optional additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class TokenError(SecurityBaseException):
    """Any failure to verify an access or refresh token"""

    def __init__(
        self,
        message: str,
        token_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize token error.

        Args:
            message: Error description
            token_type: "access" or "refresh"
            details: Additional token context (never the token itself)
        """
        super().__init__(message, details)
        self.token_type = token_type

        if token_type:
            self.details['token_type'] = token_type


class TokenRevokedError(TokenError):
    """Token string is on the blacklist"""
    pass


class TokenExpiredError(TokenError):
    """Token signature is fine but its exp claim has passed"""
    pass


class InvalidTokenError(TokenError):
    """Bad signature, malformed token, missing claims or wrong token type"""
    pass


class InputValidationError(SecurityBaseException):
    """Request body failed schema validation after sanitization"""

    def __init__(
        self,
        message: str = "Invalid input data",
        errors: Optional[List[Dict[str, Any]]] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, details)
        self.errors = errors or []


class CSRFValidationError(SecurityBaseException):
    """Missing, unknown or expired CSRF token"""
    pass


class PermissionDeniedError(SecurityBaseException):
    """Authenticated, but the role is not allowed here"""
    pass


class SecurityConfigurationError(SecurityBaseException):
    """Errors in configuration and initialization of the security layer"""

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize configuration error.

        Args:
            message: Error description
            component: Component with configuration issue
            details: Additional configuration context
        """
        super().__init__(message, details)
        self.component = component

        if component:
            self.details['component'] = component


class SecurityServiceError(SecurityBaseException):
    """Errors in external service interactions"""

    def __init__(
        self,
        message: str,
        service_name: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize service error.

        Args:
            message: Error description
            service_name: Name of the failing service
            operation: Operation that failed
            details: Additional service context
        """
        super().__init__(message, details)
        self.service_name = service_name
        self.operation = operation

        if service_name:
            self.details['service'] = service_name
        if operation:
            self.details['operation'] = operation


class RedisServiceError(SecurityServiceError):
    """Errors in Redis operations"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, service_name="Redis", operation=operation, details=details)
        self.key = key

        if key:
            self.details['key'] = key


# Convenience functions for creating common errors

def config_error(message: str, component: str) -> SecurityConfigurationError:
    """Create a configuration error with component context."""
    return SecurityConfigurationError(message, component=component)


def redis_error(message: str, key: str = None, operation: str = None) -> RedisServiceError:
    """Create a Redis service error with key context."""
    return RedisServiceError(message, key=key, operation=operation)


# Aliases for shorter names
ServiceError = SecurityServiceError
ConfigurationError = SecurityConfigurationError
