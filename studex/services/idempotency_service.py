from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, NamedTuple, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from studex.core.errors import IdempotencyConflict
from studex.core.hashing import request_fingerprint
from studex.models.idempotency_key import IdempotencyKeyRecord


@dataclass(frozen=True)
class IdempotencyScope:
    """A key is only meaningful for one caller on one endpoint."""

    participant_id: str
    endpoint_key: str  # e.g. "POST:/api/v1/contracts"
    idem_key: str


class Replay(NamedTuple):
    body: Dict[str, Any]
    status_code: int


class IdempotentReplay(Exception):
    """The key was claimed by an earlier request; its stored response applies."""

    def __init__(self, replay: Replay):
        self.replay = replay
        super().__init__(f"replay ({replay.status_code})")


class IdempotencyService:
    def _lookup(self, db: Session, scope: IdempotencyScope) -> Optional[IdempotencyKeyRecord]:
        return db.execute(
            select(IdempotencyKeyRecord).where(
                IdempotencyKeyRecord.participant_id == scope.participant_id,
                IdempotencyKeyRecord.endpoint_key == scope.endpoint_key,
                IdempotencyKeyRecord.idem_key == scope.idem_key,
            )
        ).scalar_one_or_none()

    def check(
        self,
        db: Session,
        scope: IdempotencyScope,
        request_payload: Dict[str, Any],
    ) -> Optional[Replay]:
        """
        None for a fresh key. A stored response is replayed only for the same
        body; another body under the same key is an IdempotencyConflict.
        """
        existing = self._lookup(db, scope)
        if existing is None:
            return None
        if existing.request_hash != request_fingerprint(request_payload):
            raise IdempotencyConflict()
        return Replay(body=existing.response_json, status_code=existing.response_status)

    def reserve(
        self,
        db: Session,
        scope: IdempotencyScope,
        *,
        request_payload: Dict[str, Any],
        response_status: int,
    ) -> IdempotencyKeyRecord:
        """
        Insert the key row inside the caller's transaction and flush it.

        A concurrent request holding the same key either blocks on the
        unique index until this transaction ends or fails with IntegrityError
        (uq_idem_scope), which the unit of work retries.
        """
        record = IdempotencyKeyRecord(
            participant_id=scope.participant_id,
            endpoint_key=scope.endpoint_key,
            idem_key=scope.idem_key,
            request_hash=request_fingerprint(request_payload),
            response_status=response_status,
            response_json={},
        )
        db.add(record)
        db.flush()
        return record


class IdempotencyClaim:
    """
    Ties an Idempotency-Key to one unit of work.

    `claim()` runs first inside the unit: a key that is already stored raises
    IdempotentReplay (or IdempotencyConflict for another body), otherwise the
    key row is reserved. `complete()` stores the rendered response in the same
    transaction, so the key and the work it guards commit together.
    """

    def __init__(
        self,
        scope: IdempotencyScope,
        request_payload: Dict[str, Any],
        render: Callable[[Any], Dict[str, Any]],
        status_code: int = 200,
    ):
        self.scope = scope
        self.request_payload = request_payload
        self.render = render
        self.status_code = status_code
        self.response: Optional[Dict[str, Any]] = None
        self._record: Optional[IdempotencyKeyRecord] = None
        self._service = IdempotencyService()

    def claim(self, db: Session) -> None:
        replay = self._service.check(db, self.scope, self.request_payload)
        if replay is not None:
            raise IdempotentReplay(replay)
        self._record = self._service.reserve(
            db,
            self.scope,
            request_payload=self.request_payload,
            response_status=self.status_code,
        )

    def complete(self, db: Session, result: Any) -> Dict[str, Any]:
        if self._record is None:
            raise RuntimeError("complete() called before claim()")
        self.response = self.render(result)
        self._record.response_json = self.response
        db.flush()
        return self.response
