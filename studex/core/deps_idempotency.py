from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from studex.core.auth_deps import get_current_principal
from studex.core.errors import InvalidRequest
from studex.db.session import get_db
from studex.policies.rbac import Principal
from studex.services.idempotency_service import IdempotencyClaim, IdempotencyScope, IdempotencyService, Replay

MAX_KEY_LENGTH = 128


def optional_idempotency_key(request: Request) -> Optional[str]:
    key = request.headers.get("Idempotency-Key")
    if key is None:
        return None
    key = key.strip()
    if not key or len(key) > MAX_KEY_LENGTH:
        raise InvalidRequest(errors={"Idempotency-Key": f"Must be 1..{MAX_KEY_LENGTH} characters."})
    return key


class IdempotentRequest:
    """
    Handle given to money-moving POST endpoints.

    Without the header there is nothing to claim. With it, `replay` holds the
    stored response for a request repeated after the first one committed, and
    `claim()` hands the service an IdempotencyClaim so the key is reserved in
    the same transaction as the money movement.
    """

    def __init__(
        self,
        scope: Optional[IdempotencyScope],
        payload: Dict[str, Any],
        replay: Optional[Replay] = None,
    ):
        self.scope = scope
        self.payload = payload
        self.replay = replay

    def claim(self, render: Callable[[Any], Dict[str, Any]], status_code: int) -> Optional[IdempotencyClaim]:
        if self.scope is None:
            return None
        return IdempotencyClaim(self.scope, self.payload, render, status_code)


async def idempotency_guard(
    request: Request,
    idem_key: Optional[str] = Depends(optional_idempotency_key),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> IdempotentRequest:
    if not idem_key:
        return IdempotentRequest(None, {})

    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {"_": payload}

    scope = IdempotencyScope(
        participant_id=principal.user_id,
        endpoint_key=f"{request.method}:{request.url.path}",
        idem_key=idem_key,
    )
    # IdempotencyConflict (409) propagates from here
    replay = IdempotencyService().check(db, scope, payload)
    return IdempotentRequest(scope, payload, replay)
