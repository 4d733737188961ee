"""Password hashing and signed token primitives.

Session tokens carry ``{"id", "role", "exp"}``; client-view tokens carry
``{"projectId", "type": "client", "exp"}``. Both are HS256 JWTs signed with the
configured secret.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import Settings
from .errors import InvalidToken
from .schemas import Role

CLIENT_TOKEN_TYPE = "client"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=12)


@dataclass(frozen=True)
class SessionClaims:
    user_id: UUID
    role: Role


@dataclass(frozen=True)
class ClientClaims:
    project_id: str


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(
    data: dict,
    secret_key: str,
    algorithm: str,
    expires_delta: timedelta,
) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key, algorithm=algorithm)


def create_session_token(user_id: UUID, role: Role | str, settings: Settings) -> str:
    return create_access_token(
        data={"id": str(user_id), "role": Role.parse(role).value},
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_delta=timedelta(hours=settings.session_token_hours),
    )


def create_client_token(project_id: str, settings: Settings) -> str:
    return create_access_token(
        data={"projectId": project_id, "type": CLIENT_TOKEN_TYPE},
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        expires_delta=timedelta(days=settings.client_token_days),
    )


def decode_token(token: str, settings: Settings) -> dict[str, Any]:
    # Expired, malformed and badly signed tokens are reported identically.
    try:
        return jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as exc:
        raise InvalidToken() from exc


def parse_session_claims(payload: dict[str, Any]) -> SessionClaims:
    if payload.get("type") == CLIENT_TOKEN_TYPE:
        raise InvalidToken()
    try:
        return SessionClaims(
            user_id=UUID(str(payload["id"])), role=Role.parse(payload["role"])
        )
    except (KeyError, ValueError) as exc:
        raise InvalidToken() from exc


def parse_client_claims(payload: dict[str, Any]) -> ClientClaims | None:
    """Return client claims, or None when the token is not a client token."""
    project_id = payload.get("projectId")
    if payload.get("type") != CLIENT_TOKEN_TYPE:
        return None
    if not isinstance(project_id, str) or not project_id.strip():
        return None
    return ClientClaims(project_id=project_id)
