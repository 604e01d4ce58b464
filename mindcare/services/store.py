"""Shared read/commit helpers for the appointment services."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from mindcare.core.errors import ConflictError, NotFoundError
from mindcare.models.appointment import Appointment

logger = logging.getLogger(__name__)


def get_appointment_or_404(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def commit_or_conflict(db: Session, detail: str) -> None:
    """Commit, turning constraint and version clashes into ``ConflictError``."""
    try:
        db.commit()
    except (IntegrityError, StaleDataError) as exc:
        db.rollback()
        logger.warning('Write rejected by concurrency guard: %s', exc.__class__.__name__)
        raise ConflictError(detail) from exc


def next_sequence(entries) -> int:
    return entries[-1].sequence + 1 if entries else 1
