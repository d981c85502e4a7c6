from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from work360.errors import ApiError
from work360.models import UserRole
from work360.services.tenancy import AuthContext
from work360.settings import get_settings

bearer_scheme = HTTPBearer(auto_error=False)

JWT_ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _invalid_token(message: str) -> ApiError:
    return ApiError(status_code=401, code="INVALID_TOKEN", message=message)


def create_access_token(
    *,
    user_id: uuid.UUID,
    company_id: uuid.UUID,
    role: UserRole,
    expires_delta: timedelta | None = None,
) -> tuple[str, dict[str, Any]]:
    """Issue a token the API accepts. Login lives in the auth service; this is
    used by tooling and tests."""
    settings = get_settings()
    now = _utcnow()
    exp = now + (expires_delta or timedelta(minutes=settings.access_token_minutes))
    claims = {
        "sub": str(user_id),
        "company_id": str(company_id),
        "role": role.value,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid4()),
        "typ": "access",
    }
    token = jwt.encode(claims, settings.jwt_secret, algorithm=JWT_ALGORITHM)
    return token, claims


def decode_token(token: str) -> AuthContext:
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            options={"require_sub": True, "require_exp": True},
        )
    except JWTError as exc:
        raise _invalid_token("Token is invalid.") from exc

    if payload.get("typ", "access") != "access":
        raise _invalid_token("Token type is invalid.")

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
        company_id = uuid.UUID(str(payload.get("company_id")))
    except ValueError as exc:
        raise _invalid_token("Token subject or company is invalid.") from exc

    try:
        role = UserRole(payload.get("role"))
    except ValueError as exc:
        raise _invalid_token("Token role is invalid.") from exc

    return AuthContext(user_id=user_id, company_id=company_id, role=role)


def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _invalid_token("Missing bearer token.")

    auth = decode_token(credentials.credentials)

    request.state.actor = auth.role.value
    request.state.actor_id = str(auth.user_id)
    request.state.company_id = str(auth.company_id)
    return auth


def require_owner(auth: AuthContext = Depends(require_auth)) -> AuthContext:
    auth.require_owner()
    return auth
