"""Institution model definitions."""

from sqlalchemy import JSON, Boolean, Column, Integer, String
from mindcare.database import Base


class Institution(Base):
    """A university or college that scopes users, counsellors and bookings."""
    __tablename__ = "institutions"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    domain = Column(String, unique=True, index=True)  # email domain for auto-assignment
    settings = Column(JSON, default=dict)
    is_active = Column(Boolean, default=True)
