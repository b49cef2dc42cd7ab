#studex/core/auth_deps.py
from __future__ import annotations

import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from studex.core.errors import Unauthorized
from studex.core.security import decode_token
from studex.models.enums import ActorRole
from studex.policies.rbac import Principal

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid
    - user id (user_id claim or sub) and role are present
    - role is a valid ActorRole
    The role is resolved once here; business logic never reads UI mode.
    """
    if creds is None or not creds.credentials:
        raise Unauthorized("Missing bearer token.")

    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        logger.info("[auth] rejected token request_id=%s", getattr(request.state, "request_id", None))
        raise Unauthorized()

    user_id = payload.get("user_id") or payload.get("sub")
    role = payload.get("role")
    display_name = payload.get("display_name") or "Unknown"

    if not role or not user_id:
        raise Unauthorized("Token missing required claims.")

    try:
        role_enum = ActorRole(role)
    except ValueError:
        raise Unauthorized("Invalid role in token.")

    principal = Principal(
        user_id=str(user_id),
        role=role_enum,
        display_name=str(display_name),
    )

    # Make principal available to downstream middleware / handlers
    request.state.principal = principal

    return principal
