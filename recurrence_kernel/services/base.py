"""
BaseService -- abstract base for all recurrence kernel services.

Responsibility:
    Common constructor and session-handling contract for every write-path
    service.  Services use ``session.flush()`` and never
    ``session.commit()``: the caller (``session_scope()``, the CLI, a request
    handler, a test) owns the transaction boundary.

Architecture position:
    Kernel > Services -- imperative shell around the pure domain.

Invariants enforced:
    - Every multi-row mutation runs inside ``atomic_batch()``: a SAVEPOINT
      that is flushed as one unit and rolled back as one unit.
    - Templates are loaded with ``SELECT ... FOR UPDATE`` before mutation,
      and their ``row_version`` counter turns a lost update into
      OptimisticLockError.

Failure modes:
    - BatchCommitError when the flush of a batch fails; nothing from the
      batch is left in the session and bookmarks keep their old values.
    - OptimisticLockError when the template changed under us.
"""

from abc import ABC
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from recurrence_config import EngineSettings, get_engine_settings
from recurrence_kernel.db.base import Base
from recurrence_kernel.domain.clock import Clock, SystemClock
from recurrence_kernel.exceptions import (
    BatchCommitError,
    OptimisticLockError,
    RecurrenceNotFoundError,
)
from recurrence_kernel.logging_config import get_logger
from recurrence_kernel.models.recurrence import RecurrenceModel

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - Never commits or rolls back the caller's transaction.
        - ``clock`` and ``settings`` are injected; production defaults are
          ``SystemClock()`` and the packaged engine settings.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.settings = settings or get_engine_settings()

    def _lock_recurrence(self, recurrence_id: UUID, user_id: UUID) -> RecurrenceModel:
        """Load a template for mutation.

        Raises:
            RecurrenceNotFoundError: Missing, or owned by another user.
        """
        stmt = (
            select(RecurrenceModel)
            .where(
                RecurrenceModel.id == recurrence_id,
                RecurrenceModel.user_id == user_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        model = self.session.scalars(stmt).one_or_none()
        if model is None:
            raise RecurrenceNotFoundError(str(recurrence_id))
        return model

    @contextmanager
    def atomic_batch(self, recurrence_id: UUID, operation: str) -> Iterator[None]:
        """Stage the body's writes in a SAVEPOINT and flush them together."""
        try:
            with self.session.begin_nested():
                yield
                self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "optimistic_lock_conflict",
                extra={"recurrence_id": str(recurrence_id), "operation": operation},
            )
            raise OptimisticLockError(str(recurrence_id), operation) from exc
        except SQLAlchemyError as exc:
            logger.error(
                "batch_commit_failed",
                extra={"recurrence_id": str(recurrence_id), "operation": operation},
                exc_info=True,
            )
            raise BatchCommitError(
                str(recurrence_id), operation, type(exc).__name__
            ) from exc
