from datetime import date, datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mindcare.auth.dependencies import get_current_user
from mindcare.core import config
from mindcare.database import get_db
from mindcare.models.appointment import Appointment, ChatMessage
from mindcare.models.user import User
from mindcare.routes.common import database_unavailable, ensure_database_ready
from mindcare.routes.counsellor_routes import CounsellorResponse, to_counsellor_response
from mindcare.routes.screening_routes import ScreeningResultResponse
from mindcare.routes.user_routes import ANONYMOUS_STUDENT, UserSummaryResponse
from mindcare.services import booking, chat, sessions
from mindcare.services.follow_up import FollowUp, FollowUpProposal, decode_follow_up
from mindcare.services.slots import normalize_time_slot

router = APIRouter(tags=['appointments'])

AppointmentStatus = Literal['pending', 'confirmed', 'completed', 'cancelled']

# proposal fields holding the booking student's user id
STUDENT_IDENTITY_KEYS = ('accepted_by', 'rejected_by')


def _normalize_optional_text(value: str | None, max_length: int | None = None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if max_length is not None and len(normalized) > max_length:
        raise ValueError(f'Text must be {max_length} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    counsellor_id: int
    scheduled_date: date
    time_slot: str
    is_anonymous: bool
    notes: str | None = None

    @field_validator('time_slot')
    @classmethod
    def validate_time_slot(cls, value: str) -> str:
        return normalize_time_slot(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, config.MAX_APPOINTMENT_NOTES_LENGTH)


class UpdateStatusRequest(BaseModel):
    status: AppointmentStatus


class PreSessionFormRequest(BaseModel):
    general_queries: str


class SessionResultRequest(BaseModel):
    session_notes: str | None = None
    diagnosis: str | None = None
    follow_up: FollowUp | None = None

    @field_validator('follow_up', mode='before')
    @classmethod
    def decode_legacy_follow_up(cls, value):
        return decode_follow_up(value)


class RejectFollowUpRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value)


class ChatMessageRequest(BaseModel):
    content: str

    @field_validator('content')
    @classmethod
    def validate_content(cls, value: str) -> str:
        normalized = _normalize_optional_text(value, config.MAX_CHAT_MESSAGE_LENGTH)
        if normalized is None:
            raise ValueError('Message cannot be empty.')
        return normalized


class PostChatFormRequest(BaseModel):
    session_notes: str | None = None
    diagnosis: str | None = None
    follow_up: str | None = None


class SessionAuditEntryResponse(BaseModel):
    sequence: int
    actor_id: int
    actor_name: str | None = None
    role: str | None = None
    timestamp: datetime
    action: str
    change_snapshot: dict

    class Config:
        from_attributes = True


class ChatMessageResponse(BaseModel):
    sequence: int
    from_user_id: int | None = None
    from_name: str | None = None
    role: str | None = None
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    created_at: datetime
    student_id: int | None = None
    counsellor_id: int
    institution_id: int | None = None
    scheduled_date: date
    time_slot: str
    status: str
    notes: str | None = None
    is_anonymous: bool
    pre_session_form: dict | None = None
    session_notes: str | None = None
    diagnosis: str | None = None
    follow_up: str | None = None
    screening_summary: dict | None = None
    proposed_follow_up: dict | None = None
    chat_ended_by_student: bool = False
    chat_ended_at: datetime | None = None
    chat_ended_by: int | None = None
    counsellor_post_session_form: dict | None = None
    session_audit: list[SessionAuditEntryResponse] = []

    class Config:
        from_attributes = True


class StudentAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    counsellor: CounsellorResponse | None = None


class CounsellorAppointmentResponse(BaseModel):
    appointment: AppointmentResponse
    student: UserSummaryResponse
    screenings: list[ScreeningResultResponse]
    previous_sessions: list[AppointmentResponse]


def to_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse.model_validate(appointment)


def to_masked_response(appointment: Appointment) -> AppointmentResponse:
    """Response for anyone other than the booking student; hides who booked anonymously."""
    response = to_response(appointment)
    if not appointment.is_anonymous:
        return response

    proposal = response.proposed_follow_up
    if proposal:
        proposal = {key: value for key, value in proposal.items() if key not in STUDENT_IDENTITY_KEYS}
    return response.model_copy(update={'student_id': None, 'chat_ended_by': None, 'proposed_follow_up': proposal})


def to_party_response(appointment: Appointment, viewer: User) -> AppointmentResponse:
    if appointment.student_id == viewer.id:
        return to_response(appointment)
    return to_masked_response(appointment)


def to_chat_response(message: ChatMessage, viewer: User) -> ChatMessageResponse:
    response = ChatMessageResponse.model_validate(message)
    appointment = message.appointment
    if (
        appointment.is_anonymous
        and message.from_user_id == appointment.student_id
        and viewer.id != appointment.student_id
    ):
        response = response.model_copy(update={'from_user_id': None, 'from_name': ANONYMOUS_STUDENT.name})
    return response


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.create_appointment(
            db,
            current_user,
            counsellor_id=data.counsellor_id,
            scheduled_date=data.scheduled_date,
            time_slot=data.time_slot,
            is_anonymous=data.is_anonymous,
            notes=data.notes,
        )
        return to_response(appointment)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[StudentAppointmentResponse])
def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return [
            StudentAppointmentResponse(
                appointment=to_response(appointment),
                counsellor=to_counsellor_response(counsellor, counsellor_user) if counsellor else None,
            )
            for appointment, counsellor, counsellor_user in booking.list_by_student(db, current_user)
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/counsellor', response_model=list[CounsellorAppointmentResponse])
def list_counsellor_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        rows = booking.list_by_counsellor(db, current_user)
        return [
            CounsellorAppointmentResponse(
                appointment=to_masked_response(row['appointment']),
                student=UserSummaryResponse.model_validate(row['student']) if row['student'] else ANONYMOUS_STUDENT,
                screenings=[ScreeningResultResponse.model_validate(s) for s in row['screenings']],
                previous_sessions=[to_masked_response(a) for a in row['previous_sessions']],
            )
            for row in rows
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/booked', response_model=list[AppointmentResponse])
def list_booked_for_counsellor_date(
    counsellor_id: int = Query(...),
    scheduled_date: date = Query(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointments = booking.list_for_counsellor_date(db, current_user, counsellor_id, scheduled_date)
        return [to_party_response(appointment, current_user) for appointment in appointments]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = booking.get_appointment(db, current_user, appointment_id)
        return to_party_response(appointment, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(sessions.update_status(db, current_user, appointment_id, data.status), current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(sessions.cancel(db, current_user, appointment_id), current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{appointment_id}/pre-session-form', response_model=AppointmentResponse)
def submit_pre_session_form(
    appointment_id: int,
    data: PreSessionFormRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(
            sessions.submit_pre_session_form(db, current_user, appointment_id, data.general_queries), current_user
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{appointment_id}/pre-session-form', response_model=AppointmentResponse)
def clear_pre_session_form(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(sessions.clear_pre_session_form(db, current_user, appointment_id), current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/session-result', response_model=AppointmentResponse)
def add_session_result(
    appointment_id: int,
    data: SessionResultRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = sessions.add_session_result(
            db,
            current_user,
            appointment_id,
            session_notes=data.session_notes,
            diagnosis=data.diagnosis,
            follow_up=data.follow_up,
        )
        return to_party_response(appointment, current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/follow-up', response_model=AppointmentResponse)
def propose_follow_up(
    appointment_id: int,
    data: FollowUpProposal,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(sessions.propose_follow_up(db, current_user, appointment_id, data), current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/follow-up/accept', response_model=AppointmentResponse)
def accept_follow_up(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(sessions.accept_follow_up(db, current_user, appointment_id), current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/follow-up/reject', response_model=AppointmentResponse)
def reject_follow_up(
    appointment_id: int,
    data: RejectFollowUpRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(sessions.reject_follow_up(db, current_user, appointment_id, data.reason), current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/chat', response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
def send_chat_message(
    appointment_id: int,
    data: ChatMessageRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        message = chat.send_chat_message(db, current_user, appointment_id, data.content)
        return to_chat_response(message, current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{appointment_id}/chat', response_model=list[ChatMessageResponse])
def list_chat_messages(
    appointment_id: int,
    after: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1, le=500),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        messages = chat.list_chat_messages(db, current_user, appointment_id, after_sequence=after, limit=limit)
        return [to_chat_response(message, current_user) for message in messages]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/chat/end', response_model=AppointmentResponse)
def end_chat(
    appointment_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return to_party_response(chat.end_chat_by_student(db, current_user, appointment_id), current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/post-chat-form', response_model=AppointmentResponse)
def submit_post_chat_form(
    appointment_id: int,
    data: PostChatFormRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        appointment = chat.submit_post_chat_form(
            db,
            current_user,
            appointment_id,
            session_notes=data.session_notes,
            diagnosis=data.diagnosis,
            follow_up=data.follow_up,
        )
        return to_party_response(appointment, current_user)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
