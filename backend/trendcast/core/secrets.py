# trendcast/core/secrets.py
"""Shared-secret guards for the job and cron endpoints."""
from __future__ import annotations

import hmac
import logging

from fastapi import Depends, Header, Request, status
from fastapi.responses import JSONResponse

from trendcast.config import Settings, get_settings
from trendcast.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SharedSecretError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class SecretNotConfiguredError(SharedSecretError, ConfigurationError):
    def __init__(self, name: str):
        super().__init__(status.HTTP_503_SERVICE_UNAVAILABLE, f"{name} is not configured")
        self.secret_name = name


def _check(provided: str | None, expected: str | None, name: str) -> None:
    if not expected:
        # refuse to run unauthenticated
        logger.error("auth.secret_not_configured", extra={"secret": name})
        raise SecretNotConfiguredError(name)
    if not provided or not hmac.compare_digest(provided.encode(), expected.encode()):
        raise SharedSecretError(status.HTTP_401_UNAUTHORIZED, "Unauthorized")


def require_warmup_secret(
    x_warmup_secret: str | None = Header(None, alias="X-Warmup-Secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    _check(x_warmup_secret, settings.WARMUP_SECRET, "WARMUP_SECRET")


def require_cron_secret(
    authorization: str | None = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    _check(token, settings.CRON_SECRET, "CRON_SECRET")


def shared_secret_exception_handler(request: Request, exc: SharedSecretError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})
