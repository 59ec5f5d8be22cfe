"""
Declarative base for the recurrence kernel tables.

Every table gets a UUID primary key.  Tables that services mutate derive from
``TrackedBase`` and carry who/when audit columns.

Column type conventions (``Base.type_annotation_map``):
    - ``Decimal`` -> ``Numeric(38, 9)``.  Amounts are never floats.
    - ``date`` -> ``Date``.  Due dates are calendar days with no time or
      zone, so a stored date is its own day key.
    - ``UUID`` -> ``UUIDString`` (36-character text), which behaves the same
      on PostgreSQL and SQLite.

Nothing here imports models, services, selectors or domain code.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import Date, DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """Python ``UUID`` in, canonical hyphenated text in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else PyUUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        date: Date(),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[PyUUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds audit columns to a table.

    ``created_at``/``updated_at`` are filled by the database clock.
    ``created_by_id`` is mandatory on insert; services set ``updated_by_id``
    to the acting user whenever they change a row.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[PyUUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[PyUUID | None] = mapped_column(nullable=True)


UUID = PyUUID
