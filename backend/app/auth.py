from __future__ import annotations

import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import schemas
from .config import Settings, get_settings
from .errors import AuthError, Forbidden, InvalidCredentials, ProjectNotFound, Unauthenticated
from .observability import get_logger, log_event
from .security import (
    ClientClaims,
    SessionClaims,
    create_client_token,
    create_session_token,
    decode_token,
    parse_client_claims,
    parse_session_claims,
    verify_password,
)
from .storage_db import DatabaseStore

bearer_scheme = HTTPBearer(auto_error=False)
logger = get_logger()


def authenticate_user(store: DatabaseStore, username: str, password: str):
    user = store.get_user_by_username(username)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def login(
    store: DatabaseStore, username: str, password: str, settings: Settings
) -> str:
    user = authenticate_user(store, username, password)
    if not user:
        log_event(logger, "login_failed", level=logging.WARNING, username=username)
        raise InvalidCredentials()
    return create_session_token(user.id, user.role, settings)


def issue_client_token(
    store: DatabaseStore, project_id: str, settings: Settings
) -> str:
    if not store.get_project(project_id):
        raise ProjectNotFound()
    token = create_client_token(project_id, settings)
    log_event(logger, "client_token_issued", project_id=project_id)
    return token


def _auth_exception(exc: AuthError) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return HTTPException(status_code=exc.status_code, detail=exc.detail, headers=headers)


def _bearer_payload(
    credentials: HTTPAuthorizationCredentials | None, settings: Settings
) -> dict:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    return decode_token(credentials.credentials, settings)


def require_authenticated(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> SessionClaims:
    try:
        return parse_session_claims(_bearer_payload(credentials, settings))
    except AuthError as exc:
        raise _auth_exception(exc) from exc


def require_roles(*roles: schemas.Role):
    allowed = frozenset(roles)

    def dependency(claims: SessionClaims = Depends(require_authenticated)) -> SessionClaims:
        if claims.role not in allowed:
            raise _auth_exception(Forbidden())
        return claims

    return dependency


def require_client_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> ClientClaims:
    try:
        payload = _bearer_payload(credentials, settings)
    except AuthError as exc:
        raise _auth_exception(exc) from exc
    claims = parse_client_claims(payload)
    if claims is None:
        raise _auth_exception(Forbidden("invalid_token_scope"))
    return claims


require_privileged = require_roles(schemas.Role.ADMIN, schemas.Role.TEAM_LEADER)
require_admin = require_roles(schemas.Role.ADMIN)
