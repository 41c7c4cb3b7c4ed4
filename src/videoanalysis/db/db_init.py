"""Database initialization helpers."""

from __future__ import annotations

from sqlalchemy.engine import Engine

from .db_models import Base


def init_db(engine: Engine) -> None:
    """Create tables and indexes if they do not exist yet."""
    Base.metadata.create_all(engine)
