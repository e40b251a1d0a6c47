from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, TypeVar

from sqlalchemy import create_engine, select
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_URL, SQL_ECHO

# FastAPI runs sync endpoints on a thread pool; SQLite connections must be shareable
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, echo=SQL_ECHO, future=True, connect_args=_connect_args)

# expire_on_commit=False: services hand rows back after the session is closed
SessionLocal = sessionmaker(bind=engine, autoflush=False, future=True, expire_on_commit=False)


class Base(DeclarativeBase):
    """Every clinic-owned table carries a clinic_id column."""


T = TypeVar("T", bound=Base)


@contextmanager
def db_session() -> Iterator[Session]:
    """One unit of work: commit on success, rollback on error, always close."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def clinic_row(session: Session, model: type[T], clinic_id: str, row_id: Any) -> T | None:
    """
    Row by primary key, only when it belongs to the clinic.
    A row of another clinic reads as missing, so callers answer 404 rather than 403.
    """
    stmt = select(model).where(model.id == row_id, model.clinic_id == clinic_id)
    return session.execute(stmt).scalar_one_or_none()
