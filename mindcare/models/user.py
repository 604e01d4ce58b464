"""User model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from mindcare.database import Base

ROLE_ADMIN = "admin"
ROLE_STUDENT = "student"
ROLE_COUNSELLOR = "counsellor"
ROLE_PEER_VOLUNTEER = "peer_volunteer"
ROLES = (ROLE_ADMIN, ROLE_STUDENT, ROLE_COUNSELLOR, ROLE_PEER_VOLUNTEER)


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    name = Column(String)
    role = Column(String, index=True)  # unset until first booking or admin assignment
    institution_id = Column(Integer, ForeignKey("institutions.id"), index=True)
    is_anonymous = Column(Boolean, default=False)
