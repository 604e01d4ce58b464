"""Session lifecycle: status changes, session results and follow-ups."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from mindcare.auth.policy import ANY_PARTY, COUNSELLOR_OR_ADMIN, STUDENT_ONLY, require_relation
from mindcare.core.errors import ConflictError, InvalidStateError
from mindcare.models.appointment import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Appointment,
    SessionAuditEntry,
)
from mindcare.models.user import User
from mindcare.services.booking import SLOT_TAKEN_DETAIL, find_active_booking
from mindcare.services.follow_up import FollowUpNote, FollowUpProposal, describe_follow_up
from mindcare.services.screening import latest_screening, summarize_screening
from mindcare.services.slots import get_appointment_datetime
from mindcare.services.store import commit_or_conflict, get_appointment_or_404, next_sequence

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_CONFIRMED: {STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED},
    STATUS_COMPLETED: set(),
    STATUS_CANCELLED: set(),
}
PRE_SESSION_STATUSES = {STATUS_PENDING, STATUS_CONFIRMED}

ACTION_COMPLETED_SESSION = 'completed_session'
ACTION_PROPOSED_FOLLOW_UP = 'proposed_follow_up'

CONCURRENT_UPDATE_DETAIL = 'The appointment was changed by someone else. Reload and try again.'


def can_transition(current: str, new: str) -> bool:
    return current == new or new in ALLOWED_TRANSITIONS.get(current, set())


def is_upcoming(appointment: Appointment, now: datetime | None = None) -> bool:
    now = now or datetime.now()
    return get_appointment_datetime(appointment.scheduled_date, appointment.time_slot) >= now


def _timestamp() -> str:
    return datetime.now().isoformat(timespec='seconds')


def _apply_status(appointment: Appointment, new_status: str) -> None:
    if not can_transition(appointment.status, new_status):
        raise InvalidStateError(f'Cannot change an appointment from {appointment.status} to {new_status}.')
    appointment.status = new_status


def update_status(db: Session, actor: User, appointment_id: int, new_status: str) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, ANY_PARTY)

    previous_status = appointment.status
    _apply_status(appointment, new_status)
    commit_or_conflict(db, CONCURRENT_UPDATE_DETAIL)
    db.refresh(appointment)

    logger.info('Appointment %s: %s -> %s by user %s', appointment.id, previous_status, new_status, actor.id)
    return appointment


def cancel(db: Session, actor: User, appointment_id: int) -> Appointment:
    return update_status(db, actor, appointment_id, STATUS_CANCELLED)


def _require_pre_session_window(appointment: Appointment) -> None:
    if appointment.status not in PRE_SESSION_STATUSES or not is_upcoming(appointment):
        raise InvalidStateError('Form is only available for upcoming sessions.')


def submit_pre_session_form(db: Session, actor: User, appointment_id: int, general_queries: str) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, STUDENT_ONLY)
    _require_pre_session_window(appointment)

    appointment.pre_session_form = {'general_queries': general_queries}
    commit_or_conflict(db, CONCURRENT_UPDATE_DETAIL)
    db.refresh(appointment)
    return appointment


def clear_pre_session_form(db: Session, actor: User, appointment_id: int) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, STUDENT_ONLY)
    _require_pre_session_window(appointment)

    appointment.pre_session_form = None
    commit_or_conflict(db, CONCURRENT_UPDATE_DETAIL)
    db.refresh(appointment)
    return appointment


def _append_audit(appointment: Appointment, actor: User, action: str, change_snapshot: dict) -> SessionAuditEntry:
    entry = SessionAuditEntry(
        sequence=next_sequence(appointment.session_audit),
        actor_id=actor.id,
        actor_name=actor.name,
        role=actor.role,
        timestamp=datetime.now(),
        action=action,
        change_snapshot=change_snapshot,
    )
    appointment.session_audit.append(entry)
    return entry


def _build_proposal(actor: User, proposal: FollowUpProposal) -> dict:
    return {
        'proposed_by': actor.id,
        'proposed_by_name': actor.name,
        'proposed_at': _timestamp(),
        'date': proposal.date.isoformat() if proposal.date else None,
        'time_slot': proposal.time_slot,
        'note': proposal.note,
        'accepted': None,
    }


def _replace_proposal(appointment: Appointment, actor: User, proposal: FollowUpProposal, snapshot: dict) -> None:
    # Only one proposal is outstanding at a time; the replaced one is kept in the audit snapshot.
    if appointment.proposed_follow_up is not None:
        snapshot['superseded_proposal'] = dict(appointment.proposed_follow_up)
    appointment.proposed_follow_up = _build_proposal(actor, proposal)


def add_session_result(
    db: Session,
    actor: User,
    appointment_id: int,
    session_notes: str | None = None,
    diagnosis: str | None = None,
    follow_up: FollowUpNote | FollowUpProposal | None = None,
) -> Appointment:
    """Record the outcome of a session and mark the appointment completed.

    Snapshots the student's latest screening onto the appointment and appends
    one audit entry. A follow-up note is stored as text; a follow-up proposal
    becomes the appointment's pending proposal for the student to answer.
    """
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, COUNSELLOR_OR_ADMIN)

    latest = latest_screening(db, appointment.student_id)
    if latest is not None:
        appointment.screening_summary = summarize_screening(latest)

    snapshot = {
        'session_notes': session_notes,
        'diagnosis': diagnosis,
        'follow_up': describe_follow_up(follow_up),
    }

    appointment.session_notes = session_notes
    appointment.diagnosis = diagnosis
    if isinstance(follow_up, FollowUpProposal):
        _replace_proposal(appointment, actor, follow_up, snapshot)
    elif isinstance(follow_up, FollowUpNote):
        appointment.follow_up = follow_up.text

    _append_audit(appointment, actor, ACTION_COMPLETED_SESSION, snapshot)
    appointment.status = STATUS_COMPLETED

    commit_or_conflict(db, CONCURRENT_UPDATE_DETAIL)
    db.refresh(appointment)

    logger.info('Session result recorded for appointment %s by user %s', appointment.id, actor.id)
    return appointment


def propose_follow_up(db: Session, actor: User, appointment_id: int, proposal: FollowUpProposal) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, COUNSELLOR_OR_ADMIN)

    if appointment.status != STATUS_COMPLETED:
        raise InvalidStateError('Follow-ups can only be proposed for completed sessions.')

    snapshot = {'follow_up': describe_follow_up(proposal)}
    _replace_proposal(appointment, actor, proposal, snapshot)
    _append_audit(appointment, actor, ACTION_PROPOSED_FOLLOW_UP, snapshot)

    commit_or_conflict(db, CONCURRENT_UPDATE_DETAIL)
    db.refresh(appointment)

    logger.info('Follow-up proposed for appointment %s by user %s', appointment.id, actor.id)
    return appointment


def _get_proposal(appointment: Appointment) -> dict:
    if not appointment.proposed_follow_up:
        raise InvalidStateError('No follow-up proposed.')
    return dict(appointment.proposed_follow_up)


def accept_follow_up(db: Session, actor: User, appointment_id: int) -> Appointment:
    """Accept the pending proposal, moving this appointment to the proposed slot."""
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, STUDENT_ONLY)

    proposal = _get_proposal(appointment)
    if proposal.get('accepted') is True:
        raise InvalidStateError('Follow-up already accepted.')

    scheduled_date = appointment.scheduled_date
    if proposal.get('date'):
        scheduled_date = datetime.strptime(proposal['date'], '%Y-%m-%d').date()
    time_slot = proposal.get('time_slot') or appointment.time_slot

    if find_active_booking(db, appointment.counsellor_id, scheduled_date, time_slot, exclude_id=appointment.id):
        raise ConflictError(SLOT_TAKEN_DETAIL)

    proposal.update({'accepted': True, 'accepted_at': _timestamp(), 'accepted_by': actor.id})
    appointment.proposed_follow_up = proposal
    appointment.scheduled_date = scheduled_date
    appointment.time_slot = time_slot
    appointment.status = STATUS_PENDING

    commit_or_conflict(db, SLOT_TAKEN_DETAIL)
    db.refresh(appointment)

    logger.info('Follow-up accepted for appointment %s (%s %s)', appointment.id, scheduled_date, time_slot)
    return appointment


def reject_follow_up(db: Session, actor: User, appointment_id: int, reason: str | None = None) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, STUDENT_ONLY)

    proposal = _get_proposal(appointment)
    if proposal.get('accepted') is False:
        raise InvalidStateError('Follow-up already rejected.')

    proposal.update({
        'accepted': False,
        'rejected_at': _timestamp(),
        'rejected_by': actor.id,
        'rejection_reason': reason,
    })
    appointment.proposed_follow_up = proposal

    commit_or_conflict(db, CONCURRENT_UPDATE_DETAIL)
    db.refresh(appointment)

    logger.info('Follow-up rejected for appointment %s', appointment.id)
    return appointment
