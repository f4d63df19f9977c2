"""
Metadata records for stored TINs.

A ``TinRecord`` describes one TIN handed to the service: the identifier
returned to the client, the name it was given, the SHA‑256 hash of its
canonical arrays, the ``.npz`` archive holding the arrays and a few
summary figures used by listing endpoints.  Two uploads with identical
points, triangles and gradients share one archive on disk but get their
own records.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Field, SQLModel, select

from .db import create_db_and_tables, get_session


class TinRecord(SQLModel, table=True):
    """Database model representing a stored TIN."""

    tin_id: str = Field(primary_key=True)
    name: str = ""
    content_hash: str = Field(index=True)
    archive_path: str
    point_count: int
    triangle_count: int
    has_gradients: bool = False
    min_z: float
    max_z: float
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def init_db() -> None:
    """Create the tables if they do not exist.  Called on application startup."""
    create_db_and_tables()


def insert_tin_record(record: TinRecord) -> None:
    with get_session() as session:
        session.add(record)
        session.commit()
        # Reload so the record stays readable once the session is closed
        session.refresh(record)


def get_tin_record(tin_id: str) -> Optional[TinRecord]:
    """Retrieve a ``TinRecord`` by identifier, or ``None`` if unknown."""
    with get_session() as session:
        return session.get(TinRecord, tin_id)


def list_tins() -> List[TinRecord]:
    """Return all TIN records, oldest first."""
    with get_session() as session:
        statement = select(TinRecord).order_by(TinRecord.created_at)
        return list(session.exec(statement))


def find_archive_by_hash(content_hash: str) -> Optional[str]:
    """Return the archive path already holding arrays with this hash, if any."""
    with get_session() as session:
        statement = select(TinRecord).where(TinRecord.content_hash == content_hash)
        record = session.exec(statement).first()
        return record.archive_path if record is not None else None


def count_archive_users(archive_path: str) -> int:
    with get_session() as session:
        statement = select(TinRecord).where(TinRecord.archive_path == archive_path)
        return len(session.exec(statement).all())


def delete_tin_record(tin_id: str) -> Optional[str]:
    """Delete a TIN record.

    Returns:
        The archive path of the deleted record, or ``None`` if no record
        had that identifier.  Removing the archive, when no other record
        uses it, is left to the caller.
    """
    with get_session() as session:
        record = session.get(TinRecord, tin_id)
        if record is None:
            return None
        archive_path = record.archive_path
        session.delete(record)
        session.commit()
        return archive_path
