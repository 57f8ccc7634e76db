"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL`. Production points it at the hosted Postgres
(Supabase) connection string; development and tests use a local SQLite
file under `backend/`.
"""

from sqlmodel import SQLModel, create_engine, Session, select
from .config import settings
from . import models

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, echo=False, connect_args=_connect_args)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    Intended for local development and tests. The hosted database owns
    its schema through its own migrations; `create_all` is a no-op for
    tables that already exist there.
    """
    SQLModel.metadata.create_all(engine)
    _seed_roles()


def _seed_roles():
    """Insert the role catalogue if it is missing (idempotent)."""
    with Session(engine) as session:
        existing = set(session.exec(select(models.Role.name)).all())
        for name, description in models.DEFAULT_ROLES:
            if name not in existing:
                session.add(models.Role(name=name, description=description))
        session.commit()


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes. Objects stay loaded after commit so handlers
    can return rows that were written earlier in the request.
    """
    with Session(engine, expire_on_commit=False) as session:
        yield session
