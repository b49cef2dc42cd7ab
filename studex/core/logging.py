import logging
import sys
from contextvars import ContextVar
from typing import Optional

from pythonjsonlogger import jsonlogger

from studex.core.config import Settings

# set per request by RequestIdMiddleware
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


class RequestIdFilter(logging.Filter):
    """Stamps every record with the id of the request being served (or None)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_ctx.get()
        return True


class JsonStdoutHandler(logging.StreamHandler):
    pass


def configure_logging(settings: Settings) -> None:
    """
    JSON lines on stdout; one object per record, request_id included.
    """
    level = getattr(logging, settings.log_level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # replace our handler on reload, leave foreign ones (pytest, uvicorn) alone
    root.handlers = [h for h in root.handlers if not isinstance(h, JsonStdoutHandler)]

    handler = JsonStdoutHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s",
        rename_fields={"levelname": "level", "name": "logger"},
        static_fields={"service": settings.app_name, "env": settings.environment},
    ))
    root.addHandler(handler)

    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(level)
    # SQL echo is controlled by DATABASE_ECHO, not the app log level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
