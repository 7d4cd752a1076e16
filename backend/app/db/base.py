# backend/app/db/base.py
"""
SQLAlchemy declarative base and re-exports of the session components.
"""
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Usage:
        class Account(Base):
            __tablename__ = "accounts"
            id = Column(Integer, primary_key=True)
            ...
    """
    pass


# Existing code imports engine, get_db, AsyncSessionLocal from db.base
from backend.app.db.session import (  # noqa: E402
    engine,
    AsyncSessionLocal,
    get_db,
)

__all__ = [
    "Base",
    "engine",
    "AsyncSessionLocal",
    "get_db",
]
