"""Shared FastAPI dependencies."""
from typing import Annotated

from fastapi import Depends, Header, Request

from imagegate.config import Settings
from imagegate.database import Database
from imagegate.errors import ErrorKind, ServiceError
from imagegate.models.user import User
from imagegate.services.auth_service import AuthService
from imagegate.services.gemini import GeminiClient
from imagegate.utils.security import parse_bearer, tokens_match


def get_settings_state(request: Request) -> Settings:
    return request.app.state.settings


def get_database(request: Request) -> Database:
    return request.app.state.db


def get_gemini_client(request: Request) -> GeminiClient:
    return request.app.state.gemini_client


AppSettings = Annotated[Settings, Depends(get_settings_state)]
Db = Annotated[Database, Depends(get_database)]
Gemini = Annotated[GeminiClient, Depends(get_gemini_client)]


def get_request_token(
    authorization: Annotated[str | None, Header()] = None,
    x_plugin_token: Annotated[str | None, Header()] = None,
) -> str | None:
    """Bearer token from ``Authorization``, falling back to ``X-Plugin-Token``."""
    return parse_bearer(authorization) or (x_plugin_token or "").strip() or None


RequestToken = Annotated[str | None, Depends(get_request_token)]


async def get_current_user(db: Db, token: RequestToken) -> User:
    """Authenticate a paid request. Any token problem is a plain 401."""
    if not token:
        raise ServiceError(ErrorKind.UNAUTHORIZED, "Token required")
    try:
        return await AuthService(db).verify(token)
    except ServiceError as exc:
        if exc.kind in (ErrorKind.NOT_FOUND, ErrorKind.INVALID_INPUT):
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid token") from exc
        raise


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_admin(
    settings: AppSettings,
    x_admin_token: Annotated[str | None, Header()] = None,
) -> None:
    """Guard for operator endpoints."""
    if not tokens_match(x_admin_token, settings.admin_token):
        raise ServiceError(ErrorKind.FORBIDDEN, "Invalid admin token")
