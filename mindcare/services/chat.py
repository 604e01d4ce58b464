"""In-session chat between a student and their counsellor."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from mindcare.auth.policy import ANY_PARTY, COUNSELLOR_OR_ADMIN, STUDENT_ONLY, require_relation
from mindcare.core.errors import InvalidStateError
from mindcare.models.appointment import STATUS_COMPLETED, Appointment, ChatMessage
from mindcare.models.user import User
from mindcare.services.store import commit_or_conflict, get_appointment_or_404, next_sequence

logger = logging.getLogger(__name__)

SYSTEM_ROLE = 'system'
CHAT_ENDED_MESSAGE = 'Student ended the chat'
CHAT_CONFLICT_DETAIL = 'Another message was posted at the same time. Please resend.'


def _append_message(appointment: Appointment, actor: User, role: str | None, content: str) -> ChatMessage:
    message = ChatMessage(
        sequence=next_sequence(appointment.chat_messages),
        from_user_id=actor.id,
        from_name=actor.name,
        role=role,
        content=content,
        created_at=datetime.now(),
    )
    appointment.chat_messages.append(message)
    return message


def send_chat_message(db: Session, actor: User, appointment_id: int, content: str) -> ChatMessage:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, ANY_PARTY)

    message = _append_message(appointment, actor, actor.role, content)
    commit_or_conflict(db, CHAT_CONFLICT_DETAIL)
    db.refresh(message)
    return message


def list_chat_messages(
    db: Session,
    actor: User,
    appointment_id: int,
    after_sequence: int = 0,
    limit: int | None = None,
) -> list[ChatMessage]:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, ANY_PARTY)

    query = db.query(ChatMessage).filter(
        ChatMessage.appointment_id == appointment.id,
        ChatMessage.sequence > after_sequence,
    ).order_by(ChatMessage.sequence.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def end_chat_by_student(db: Session, actor: User, appointment_id: int) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, STUDENT_ONLY)

    now = datetime.now()
    _append_message(appointment, actor, SYSTEM_ROLE, CHAT_ENDED_MESSAGE)
    appointment.chat_ended_by_student = True
    appointment.chat_ended_at = now
    appointment.chat_ended_by = actor.id

    commit_or_conflict(db, CHAT_CONFLICT_DETAIL)
    db.refresh(appointment)

    logger.info('Chat for appointment %s ended by student %s', appointment.id, actor.id)
    return appointment


def submit_post_chat_form(
    db: Session,
    actor: User,
    appointment_id: int,
    session_notes: str | None = None,
    diagnosis: str | None = None,
    follow_up: str | None = None,
) -> Appointment:
    appointment = get_appointment_or_404(db, appointment_id)
    require_relation(db, actor, appointment, COUNSELLOR_OR_ADMIN)

    if not appointment.chat_ended_by_student:
        raise InvalidStateError('Student has not ended the chat.')

    appointment.counsellor_post_session_form = {
        'session_notes': session_notes,
        'diagnosis': diagnosis,
        'follow_up': follow_up,
        'submitted_by': actor.id,
        'submitted_at': datetime.now().isoformat(timespec='seconds'),
    }
    appointment.status = STATUS_COMPLETED

    commit_or_conflict(db, 'The appointment was changed by someone else. Reload and try again.')
    db.refresh(appointment)

    logger.info('Post-chat form submitted for appointment %s by user %s', appointment.id, actor.id)
    return appointment
