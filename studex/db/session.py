from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from studex.core.config import get_settings


def build_engine(database_url: str, **kwargs) -> Engine:
    """
    PostgreSQL in every deployed environment; SQLite only for tests.
    """
    connect_args = kwargs.pop("connect_args", {})
    if database_url.startswith("sqlite"):
        # TestClient runs sync handlers in a threadpool
        connect_args.setdefault("check_same_thread", False)
    else:
        kwargs.setdefault("pool_size", get_settings().database_pool_size)
    return create_engine(
        database_url,
        pool_pre_ping=True,
        future=True,
        connect_args=connect_args,
        **kwargs,
    )


settings = get_settings()

engine = build_engine(settings.database_url, echo=settings.database_echo)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
