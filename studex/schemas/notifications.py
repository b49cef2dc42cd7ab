from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    notificationId: str
    type: str
    contractId: Optional[str] = None
    read: bool
    createdAtIso: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class NotificationList(BaseModel):
    items: List[NotificationResponse]
    total: int
    unreadOnly: bool
