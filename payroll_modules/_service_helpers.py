"""
Shared service plumbing (``payroll_modules._service_helpers``).

Every service method is one unit of work: it loads the aggregate with a
row lock, validates, mutates, records the audit event and commits.  Any
exception rolls the session back so a rejected operation leaves no trace,
and a lost race (stale version or duplicate insert) surfaces as the retryable
``ConcurrentModificationError``.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from payroll_kernel.exceptions import ConcurrentModificationError, EntityNotFoundError
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.service_helpers")

ModelT = TypeVar("ModelT")


@contextmanager
def unit_of_work(session: Session, entity_type: str, entity_id: object) -> Iterator[None]:
    """Commit on normal exit; roll back and re-raise on any exception.

    Losing a race, whether to a newer row version or to a rival insert of
    the same unique key (balance, filing period, audit ``seq``), raises
    ``ConcurrentModificationError`` so the caller can retry.
    """
    try:
        yield
        session.commit()
    except (StaleDataError, IntegrityError) as exc:
        session.rollback()
        logger.warning(
            "concurrent_modification_detected",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "conflict": "stale_version" if isinstance(exc, StaleDataError) else "unique_key",
            },
        )
        raise ConcurrentModificationError(entity_type, str(entity_id)) from exc
    except Exception:
        session.rollback()
        raise


def load_for_update(
    session: Session,
    model: type[ModelT],
    entity_id: UUID,
    entity_type: str,
) -> ModelT:
    """Fetch a row with ``SELECT ... FOR UPDATE``, refreshing any cached copy.

    Raises:
        EntityNotFoundError: If no row has ``entity_id``.
    """
    row = session.execute(
        select(model)
        .where(model.id == entity_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if row is None:
        raise EntityNotFoundError(entity_type, str(entity_id))
    return row


def load(session: Session, model: type[ModelT], entity_id: UUID, entity_type: str) -> ModelT:
    """Fetch a row for reading.

    Raises:
        EntityNotFoundError: If no row has ``entity_id``.
    """
    row = session.get(model, entity_id, populate_existing=True)
    if row is None:
        raise EntityNotFoundError(entity_type, str(entity_id))
    return row
