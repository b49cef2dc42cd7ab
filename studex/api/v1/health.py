# studex/api/v1/health.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studex.core.config import get_settings
from studex.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
def health(request: Request, db: Session = Depends(get_db)):
    """Liveness plus a round trip to the ledger database."""
    settings = get_settings()
    body = {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
        "database": "ok",
        "request_id": getattr(request.state, "request_id", None),
    }
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("[health] database check failed")
        body.update(status="degraded", database="unavailable")
        return JSONResponse(status_code=503, content=body)
    return body
