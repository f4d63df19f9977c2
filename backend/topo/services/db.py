"""
Database configuration and session management for the contour service.

This module defines a SQLModel engine targeting a SQLite database stored
in the service's storage directory.  The directory defaults to
``backend/storage`` and can be moved with the ``TOPO_STORAGE_DIR``
environment variable, which the test-suite uses to keep its data out of
the working tree.  Stored TIN archives live under the same root.
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlmodel import Session, SQLModel, create_engine

# Root directory for everything the service writes.  Created on import so
# the engine below can open its database file.
STORAGE_DIR = Path(
    os.getenv("TOPO_STORAGE_DIR") or Path(__file__).resolve().parents[2] / "storage"
)
STORAGE_DIR.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    f"sqlite:///{(STORAGE_DIR / 'topo.db').as_posix()}",
    echo=False,
    connect_args={"check_same_thread": False},
)


def create_db_and_tables() -> None:
    """Create all tables in the database.

    This should be called once on application startup.  If the
    database file does not exist it will be created automatically.
    """
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Return a new SQLModel session bound to the engine.

    Sessions should be used as context managers
    (``with get_session() as session: ...``) so connections are closed.
    """
    return Session(engine)
