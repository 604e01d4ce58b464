"""Screening result model definitions."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String
from mindcare.database import Base

TOOL_PHQ9 = "phq9"
TOOL_GAD7 = "gad7"
TOOL_GHQ = "ghq"
SCREENING_TOOLS = (TOOL_PHQ9, TOOL_GAD7, TOOL_GHQ)


class ScreeningResult(Base):
    """A scored, self-administered screening questionnaire."""
    __tablename__ = "screening_results"

    id = Column(Integer, primary_key=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    institution_id = Column(Integer, ForeignKey("institutions.id"), index=True)
    tool_type = Column(String, index=True, nullable=False)
    score = Column(Integer, nullable=False)
    responses = Column(JSON, default=list)
    risk_level = Column(String, nullable=False)  # low/moderate/high
    recommendations = Column(JSON, default=list)
    is_anonymous = Column(Boolean, default=False)
