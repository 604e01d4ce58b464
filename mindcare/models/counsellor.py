"""Counsellor model definitions."""

from sqlalchemy import JSON, Boolean, Column, ForeignKey, Integer, String
from mindcare.database import Base

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def empty_availability() -> dict[str, list[str]]:
    return {weekday: [] for weekday in WEEKDAYS}


class Counsellor(Base):
    """Counsellor profile. Its id is distinct from the owning user's id."""
    __tablename__ = "counsellors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, index=True, nullable=False)
    institution_id = Column(Integer, ForeignKey("institutions.id"), index=True, nullable=False)
    specialization = Column(JSON, default=list)
    bio = Column(String)
    qualifications = Column(String)
    availability = Column(JSON, default=empty_availability)  # weekday -> ["09:00", "10:00"]
    is_active = Column(Boolean, default=True)
