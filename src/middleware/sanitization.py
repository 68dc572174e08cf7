"""
Input sanitization in front of schema validation.

This is a blacklist-based, best-effort filter: it removes the most common
script injection shapes from request bodies before the pydantic schema
sees them. It is defense-in-depth only and does not replace output
encoding in whatever renders the data.
"""

from typing import Any, Awaitable, Callable, Optional, Type, TypeVar
import json
import logging
import re

from fastapi import Request
from pydantic import BaseModel, ValidationError

from src.core.config import settings
from src.core.exceptions import InputValidationError
from src.core.rate_limit_config import get_real_ip
from src.core.security import SecurityEvent, Severity, get_security

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
SCRIPT_TAG = re.compile(r"</?script\b[^>]*>", re.IGNORECASE)
JAVASCRIPT_URI = re.compile(r"javascript\s*:", re.IGNORECASE)
EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)


def sanitize_string(value: str, max_length: Optional[int] = None) -> str:
    value = SCRIPT_BLOCK.sub("", value)
    value = SCRIPT_TAG.sub("", value)
    value = JAVASCRIPT_URI.sub("", value)
    value = EVENT_HANDLER.sub("", value)
    if max_length is None:
        max_length = settings.MAX_INPUT_LENGTH
    return value[:max_length]


def sanitize_value(value: Any, max_length: Optional[int] = None) -> Any:
    """Recursively sanitize every string inside dicts and lists"""
    if isinstance(value, str):
        return sanitize_string(value, max_length)
    if isinstance(value, dict):
        return {k: sanitize_value(v, max_length) for k, v in value.items()}
    if isinstance(value, list):
        return [sanitize_value(v, max_length) for v in value]
    return value


def validate_and_sanitize(schema: Type[T]) -> Callable[[Request], Awaitable[T]]:
    """
    Build a FastAPI dependency that sanitizes the JSON body and parses it
    with ``schema``.

    Usage:
        async def login(body: LoginRequest = Depends(validate_and_sanitize(LoginRequest))):
            ...

    On failure a medium-severity security event is logged and
    InputValidationError is raised (rendered as 400 by the app).
    """

    async def dependency(request: Request) -> T:
        try:
            raw = await request.json()
        except ValueError:
            raw = {}

        config = getattr(request.app.state, "settings", settings)
        body = sanitize_value(raw, config.MAX_INPUT_LENGTH)

        try:
            return schema.model_validate(body)
        except ValidationError as e:
            errors = json.loads(e.json(include_url=False, include_input=False))
            get_security().audit.log_security_event(SecurityEvent(
                action="input_validation",
                resource=request.url.path,
                ip=get_real_ip(request),
                user_agent=request.headers.get("user-agent", ""),
                success=False,
                severity=Severity.MEDIUM,
                details={"schema": schema.__name__, "error_count": len(errors)},
            ))
            raise InputValidationError(errors=errors) from e

    return dependency
