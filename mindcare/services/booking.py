"""Booking new appointments and listing them for each party."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from mindcare.auth.policy import ANY_PARTY, get_counsellor_profile, require_relation
from mindcare.core import config
from mindcare.core.errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError
from mindcare.models.appointment import STATUS_CANCELLED, STATUS_PENDING, Appointment
from mindcare.models.counsellor import Counsellor
from mindcare.models.screening import ScreeningResult
from mindcare.models.user import ROLE_ADMIN, ROLE_COUNSELLOR, ROLE_STUDENT, User
from mindcare.services.screening import list_user_screenings
from mindcare.services.slots import is_slot_offered
from mindcare.services.store import commit_or_conflict, get_appointment_or_404

logger = logging.getLogger(__name__)

SLOT_TAKEN_DETAIL = 'Time slot is already booked.'


def find_active_booking(
    db: Session,
    counsellor_id: int,
    scheduled_date: date,
    time_slot: str,
    exclude_id: int | None = None,
) -> Appointment | None:
    query = db.query(Appointment).filter(
        Appointment.counsellor_id == counsellor_id,
        Appointment.scheduled_date == scheduled_date,
        Appointment.time_slot == time_slot,
        Appointment.status != STATUS_CANCELLED,
    )
    if exclude_id is not None:
        query = query.filter(Appointment.id != exclude_id)
    return query.first()


def create_appointment(
    db: Session,
    actor: User,
    counsellor_id: int,
    scheduled_date: date,
    time_slot: str,
    is_anonymous: bool,
    notes: str | None = None,
) -> Appointment:
    """Book a pending appointment for ``actor`` with a counsellor.

    Users without a role become students on their first booking. The slot
    check here gives a readable error; the partial unique index on the table
    is what actually guarantees a slot is held at most once.
    """
    promote_to_student = actor.role is None
    if not promote_to_student and actor.role != ROLE_STUDENT:
        raise AuthorizationError('Only students can book appointments.')

    counsellor = db.get(Counsellor, counsellor_id)
    if counsellor is None:
        raise NotFoundError('Counsellor not found.')

    if config.ENFORCE_COUNSELLOR_AVAILABILITY and not is_slot_offered(
        counsellor.availability, scheduled_date, time_slot
    ):
        raise InvalidStateError('The counsellor does not offer this time slot.')

    if find_active_booking(db, counsellor_id, scheduled_date, time_slot):
        raise ConflictError(SLOT_TAKEN_DETAIL)

    if promote_to_student:
        actor.role = ROLE_STUDENT
        actor.is_anonymous = False

    appointment = Appointment(
        student_id=actor.id,
        counsellor_id=counsellor.id,
        institution_id=counsellor.institution_id,
        scheduled_date=scheduled_date,
        time_slot=time_slot,
        status=STATUS_PENDING,
        notes=notes,
        is_anonymous=is_anonymous,
    )
    db.add(appointment)
    commit_or_conflict(db, SLOT_TAKEN_DETAIL)
    db.refresh(appointment)

    logger.info(
        'Booked appointment %s: counsellor=%s date=%s slot=%s student=%s',
        appointment.id, counsellor.id, scheduled_date, time_slot, actor.id,
    )
    return appointment


def get_appointment(db: Session, actor: User, appointment_id: int) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, ANY_PARTY)
    return appointment


def list_by_student(db: Session, actor: User) -> list[tuple[Appointment, Counsellor | None, User | None]]:
    appointments = db.query(Appointment).filter(
        Appointment.student_id == actor.id,
    ).order_by(Appointment.scheduled_date.asc(), Appointment.time_slot.asc()).all()

    rows = []
    for appointment in appointments:
        counsellor = db.get(Counsellor, appointment.counsellor_id)
        counsellor_user = db.get(User, counsellor.user_id) if counsellor else None
        rows.append((appointment, counsellor, counsellor_user))
    return rows


def list_by_counsellor(db: Session, actor: User) -> list[dict]:
    """Appointments for the actor's counsellor profile with student context.

    Each row carries the student (``None`` for anonymous bookings), their
    screening history and a few of their other appointments.
    """
    if actor.role != ROLE_COUNSELLOR:
        raise AuthorizationError('Only counsellors can view their appointments.')

    counsellor = get_counsellor_profile(db, actor)
    if counsellor is None:
        raise NotFoundError('Counsellor profile not found.')

    appointments = db.query(Appointment).filter(
        Appointment.counsellor_id == counsellor.id,
    ).order_by(Appointment.scheduled_date.asc(), Appointment.time_slot.asc()).all()

    rows = []
    for appointment in appointments:
        student = db.get(User, appointment.student_id)
        screenings: list[ScreeningResult] = list_user_screenings(db, appointment.student_id) if student else []
        previous_sessions = db.query(Appointment).filter(
            Appointment.student_id == appointment.student_id,
            Appointment.id != appointment.id,
        ).order_by(Appointment.created_at.desc(), Appointment.id.desc()).limit(config.PREVIOUS_SESSIONS_LIMIT).all()

        rows.append({
            'appointment': appointment,
            'student': None if appointment.is_anonymous else student,
            'screenings': screenings,
            'previous_sessions': previous_sessions,
        })
    return rows


def list_for_counsellor_date(
    db: Session,
    actor: User,
    counsellor_id: int,
    scheduled_date: date,
) -> list[Appointment]:
    counsellor = db.get(Counsellor, counsellor_id)
    if counsellor is None:
        raise NotFoundError('Counsellor not found.')

    if actor.role != ROLE_ADMIN and counsellor.institution_id != actor.institution_id:
        raise AuthorizationError('You cannot view this counsellor\'s bookings.')

    return db.query(Appointment).filter(
        Appointment.counsellor_id == counsellor_id,
        Appointment.scheduled_date == scheduled_date,
        Appointment.status != STATUS_CANCELLED,
    ).order_by(Appointment.time_slot.asc()).all()
