from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Literal

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer


@dataclass(frozen=True)
class AuthContext:
    credential: str
    scheme: Literal["bearer", "api_key"]


def _matches_any(value: str, allowed: list[str]) -> bool:
    # Compare against every entry so timing does not leak which one matched.
    matched = False
    for item in allowed:
        matched |= secrets.compare_digest(value.encode("utf-8"), item.encode("utf-8"))
    return matched


_bearer = HTTPBearer(auto_error=False)
_api_key = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_auth(
    request: Request,
    bearer: HTTPAuthorizationCredentials | None = Depends(_bearer),
    api_key: str | None = Depends(_api_key),
) -> AuthContext:
    config = request.app.state.state.config

    token = bearer.credentials.strip() if bearer and bearer.scheme.lower() == "bearer" else ""
    if token and _matches_any(token, config.auth_tokens):
        return AuthContext(credential=token, scheme="bearer")
    if api_key and _matches_any(api_key, config.api_keys):
        return AuthContext(credential=api_key, scheme="api_key")

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail={"error": "unauthorized"})
