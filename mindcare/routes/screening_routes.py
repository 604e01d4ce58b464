from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mindcare.auth.dependencies import get_current_user
from mindcare.database import get_db
from mindcare.models.user import User
from mindcare.routes.common import database_unavailable
from mindcare.services import screening

router = APIRouter(tags=['screening'])


class SubmitScreeningRequest(BaseModel):
    tool_type: Literal['phq9', 'gad7', 'ghq']
    responses: list[int]
    is_anonymous: bool = False

    @field_validator('responses')
    @classmethod
    def validate_responses(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError('At least one response is required.')
        if any(response < 0 for response in value):
            raise ValueError('Responses cannot be negative.')
        return value


class ScreeningResultResponse(BaseModel):
    id: int
    created_at: datetime
    tool_type: str
    score: int
    responses: list[int]
    risk_level: str
    recommendations: list[str]
    is_anonymous: bool

    class Config:
        from_attributes = True


class InstitutionAnalyticsResponse(BaseModel):
    total_screenings: int
    risk_levels: dict[str, int]
    tool_usage: dict[str, int]
    average_scores: dict[str, float]


@router.post('', response_model=ScreeningResultResponse, status_code=status.HTTP_201_CREATED)
def submit_screening(
    data: SubmitScreeningRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        result = screening.submit_screening(db, current_user, data.tool_type, data.responses, data.is_anonymous)
        return ScreeningResultResponse.model_validate(result)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[ScreeningResultResponse])
def list_my_screenings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return [
            ScreeningResultResponse.model_validate(result)
            for result in screening.list_user_screenings(db, current_user.id)
        ]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/analytics/{institution_id}', response_model=InstitutionAnalyticsResponse)
def institution_analytics(
    institution_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return InstitutionAnalyticsResponse(**screening.institution_analytics(db, current_user, institution_id))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
