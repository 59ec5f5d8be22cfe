"""
Base class for read-only query selectors.

Selectors are the read half of storage: lookups by id and filtered queries.
They never add, delete, flush or commit, and they hand out frozen DTOs
rather than ORM instances.  Every lookup is scoped to the owning user, and
a row owned by someone else reads as missing.

May import from db/, models/ and domain/types; never from services/.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from recurrence_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session

    def _owned(self, model_cls: type[ModelType], row_id: UUID, user_id: UUID) -> ModelType | None:
        """Row ``row_id`` of ``model_cls`` if it belongs to ``user_id``."""
        model = self.session.get(model_cls, row_id)
        if model is None or model.user_id != user_id:
            return None
        return model
