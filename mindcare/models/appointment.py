"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from mindcare.database import ACTIVE_SLOT_INDEX, Base

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
APPOINTMENT_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_COMPLETED, STATUS_CANCELLED)

_ACTIVE_ONLY = text("status != 'cancelled'")


class Appointment(Base):
    """Represents a scheduled counselling session."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    student_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    counsellor_id = Column(Integer, ForeignKey("counsellors.id"), index=True, nullable=False)
    institution_id = Column(Integer, ForeignKey("institutions.id"), index=True)
    scheduled_date = Column(Date, index=True, nullable=False)
    time_slot = Column(String(5), nullable=False)  # "14:00"
    status = Column(String, nullable=False, default=STATUS_PENDING)
    notes = Column(Text)
    is_anonymous = Column(Boolean, default=False, nullable=False)

    pre_session_form = Column(JSON)  # {"general_queries": ...}
    session_notes = Column(Text)
    diagnosis = Column(Text)
    follow_up = Column(Text)
    screening_summary = Column(JSON)
    proposed_follow_up = Column(JSON)

    chat_ended_by_student = Column(Boolean, default=False, nullable=False)
    chat_ended_at = Column(DateTime)
    chat_ended_by = Column(Integer, ForeignKey("users.id"))
    counsellor_post_session_form = Column(JSON)

    version_id = Column(Integer, nullable=False)

    session_audit = relationship(
        "SessionAuditEntry",
        order_by="SessionAuditEntry.sequence",
        cascade="all, delete-orphan",
        back_populates="appointment",
    )
    chat_messages = relationship(
        "ChatMessage",
        order_by="ChatMessage.sequence",
        cascade="all, delete-orphan",
        back_populates="appointment",
    )

    __mapper_args__ = {"version_id_col": version_id}
    __table_args__ = (
        # At most one live booking per counsellor slot; cancelled rows free it.
        Index(
            ACTIVE_SLOT_INDEX,
            "counsellor_id",
            "scheduled_date",
            "time_slot",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )


class SessionAuditEntry(Base):
    """One session-completion event. Rows are only ever appended."""
    __tablename__ = "appointment_session_audit"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    actor_name = Column(String)
    role = Column(String)
    timestamp = Column(DateTime, default=datetime.now, nullable=False)
    action = Column(String, nullable=False)
    change_snapshot = Column(JSON, default=dict)

    appointment = relationship("Appointment", back_populates="session_audit")

    __table_args__ = (
        UniqueConstraint("appointment_id", "sequence", name="uq_session_audit_sequence"),
    )


class ChatMessage(Base):
    """A message exchanged inside an appointment's session chat."""
    __tablename__ = "appointment_chat_messages"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False)
    sequence = Column(Integer, nullable=False)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    from_name = Column(String)
    role = Column(String)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    appointment = relationship("Appointment", back_populates="chat_messages")

    __table_args__ = (
        UniqueConstraint("appointment_id", "sequence", name="uq_chat_message_sequence"),
    )
