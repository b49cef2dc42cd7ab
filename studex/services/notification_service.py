#studex/services/notification_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from studex.core.config import get_settings
from studex.core.errors import NotificationNotFound
from studex.models.notification import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscrowNotification:
    type: str
    contract_id: uuid.UUID
    recipient_ids: Tuple[str, ...]
    payload: Dict[str, Any] = field(default_factory=dict)

    def as_log_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "contract_id": str(self.contract_id),
            "recipient_ids": list(self.recipient_ids),
            "payload": self.payload,
        }


class NotificationSink(Protocol):
    name: str

    def deliver(self, db: Session, event: EscrowNotification) -> None:
        ...


class LoggingSink:
    """Structured log line per event; the log shipper forwards it to chat/push."""

    name = "log"

    def deliver(self, db: Session, event: EscrowNotification) -> None:
        logger.info("[notify] %s", event.type, extra={"notification": event.as_log_dict()})


class InboxSink:
    """Persists one in-app notification per recipient."""

    name = "inbox"

    def deliver(self, db: Session, event: EscrowNotification) -> None:
        for rid in event.recipient_ids:
            db.add(Notification(
                recipient_id=rid,
                event_type=event.type,
                contract_id=event.contract_id,
                payload_json=event.payload,
            ))
        db.commit()


class NotificationEmitter:
    """
    Fire-and-forget fan-out to sinks.

    Called only after the transition's transaction committed; a failing sink
    is logged and skipped, never re-raised into the caller.
    """

    def __init__(self, sinks: Optional[Sequence[NotificationSink]] = None):
        self.sinks: List[NotificationSink] = list(sinks) if sinks is not None else self._default_sinks()

    @staticmethod
    def _default_sinks() -> List[NotificationSink]:
        sinks: List[NotificationSink] = [LoggingSink()]
        if get_settings().notification_inbox_enabled:
            sinks.append(InboxSink())
        return sinks

    def emit(self, db: Session, event: EscrowNotification) -> None:
        for sink in self.sinks:
            try:
                sink.deliver(db, event)
            except Exception:
                db.rollback()
                logger.exception(
                    "[notify] sink=%s failed for %s contract=%s",
                    sink.name, event.type, event.contract_id,
                )


class NotificationService:
    """Read side of the in-app inbox."""

    def list_for_user(
        self,
        db: Session,
        *,
        user_id: str,
        unread_only: bool = False,
        offset: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Notification], int]:
        where = [Notification.recipient_id == user_id]
        if unread_only:
            where.append(Notification.is_read.is_(False))

        total = db.execute(select(func.count(Notification.id)).where(*where)).scalar_one()
        rows = db.execute(
            select(Notification)
            .where(*where)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset)
            .limit(limit)
        ).scalars().all()
        return list(rows), int(total)

    def mark_read(self, db: Session, *, user_id: str, notification_id: uuid.UUID) -> Notification:
        row = db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == user_id,
            )
        ).scalar_one_or_none()
        if not row:
            raise NotificationNotFound()
        row.is_read = True
        db.commit()
        db.refresh(row)
        return row

    def mark_all_read(self, db: Session, *, user_id: str) -> int:
        result = db.execute(
            update(Notification)
            .where(Notification.recipient_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        db.commit()
        return int(result.rowcount or 0)
