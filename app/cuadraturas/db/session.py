from __future__ import annotations

import time
from contextvars import ContextVar

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.cuadraturas.core.config import settings

_query_time_ms: ContextVar[float | None] = ContextVar("query_time_ms", default=None)


def start_query_timer() -> object:
    return _query_time_ms.set(0.0)


def stop_query_timer(token: object) -> None:
    _query_time_ms.reset(token)


def get_query_time_ms() -> float | None:
    return _query_time_ms.get()


connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, echo=False, future=True, connect_args=connect_args)


@event.listens_for(engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    if _query_time_ms.get() is None:
        return
    conn.info["query_start_time"] = time.perf_counter()


@event.listens_for(engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    current = _query_time_ms.get()
    start = conn.info.pop("query_start_time", None)
    if current is None or start is None:
        return
    _query_time_ms.set(current + (time.perf_counter() - start) * 1000)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
