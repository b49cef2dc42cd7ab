# studex/api/v1/notifications.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from studex.api.v1.contracts import parse_uuid
from studex.api.v1.presenters import notification_to_resp
from studex.core.auth_deps import get_current_principal
from studex.db.session import get_db
from studex.policies.rbac import Principal
from studex.schemas.notifications import NotificationList, NotificationResponse
from studex.services.notification_service import NotificationService

router = APIRouter(prefix="/notifications")


@router.get("", response_model=NotificationList)
def list_notifications(
    unreadOnly: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    rows, total = NotificationService().list_for_user(
        db, user_id=principal.user_id, unread_only=unreadOnly, limit=limit
    )
    return {"items": [notification_to_resp(n) for n in rows], "total": total, "unreadOnly": unreadOnly}


@router.post("/read-all")
def mark_all_read(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    count = NotificationService().mark_all_read(db, user_id=principal.user_id)
    return {"updated": count}


@router.post("/{notificationId}/read", response_model=NotificationResponse)
def mark_read(
    notificationId: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    row = NotificationService().mark_read(
        db, user_id=principal.user_id, notification_id=parse_uuid(notificationId, "notificationId")
    )
    return notification_to_resp(row)
