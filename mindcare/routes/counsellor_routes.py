from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mindcare.auth.dependencies import get_current_user
from mindcare.database import get_db
from mindcare.models.counsellor import Counsellor
from mindcare.models.user import User
from mindcare.routes.common import database_unavailable
from mindcare.routes.user_routes import UserSummaryResponse
from mindcare.services import counsellors
from mindcare.services.slots import normalize_time_slot

router = APIRouter(tags=['counsellors'])


def _validate_availability(value: dict[str, list[str]]) -> dict[str, list[str]]:
    normalized = counsellors.normalize_availability(value)
    return {
        weekday: sorted({normalize_time_slot(slot) for slot in slots})
        for weekday, slots in normalized.items()
    }


class CreateCounsellorRequest(BaseModel):
    user_id: int
    institution_id: int
    specialization: list[str] = []
    bio: str | None = None
    qualifications: str | None = None
    availability: dict[str, list[str]] = {}

    @field_validator('availability')
    @classmethod
    def validate_availability(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return _validate_availability(value)


class UpdateAvailabilityRequest(BaseModel):
    availability: dict[str, list[str]]

    @field_validator('availability')
    @classmethod
    def validate_availability(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        return _validate_availability(value)


class CounsellorResponse(BaseModel):
    id: int
    user_id: int
    institution_id: int
    specialization: list[str]
    bio: str | None = None
    qualifications: str | None = None
    availability: dict[str, list[str]]
    is_active: bool
    user: UserSummaryResponse | None = None


def to_counsellor_response(counsellor: Counsellor, user: User | None) -> CounsellorResponse:
    return CounsellorResponse(
        id=counsellor.id,
        user_id=counsellor.user_id,
        institution_id=counsellor.institution_id,
        specialization=list(counsellor.specialization or []),
        bio=counsellor.bio,
        qualifications=counsellor.qualifications,
        availability=counsellors.normalize_availability(counsellor.availability),
        is_active=bool(counsellor.is_active),
        user=UserSummaryResponse.model_validate(user) if user else None,
    )


@router.post('', response_model=CounsellorResponse, status_code=status.HTTP_201_CREATED)
def create_counsellor(
    data: CreateCounsellorRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        counsellor = counsellors.create_counsellor(
            db,
            current_user,
            user_id=data.user_id,
            institution_id=data.institution_id,
            specialization=data.specialization,
            availability=data.availability,
            bio=data.bio,
            qualifications=data.qualifications,
        )
        return to_counsellor_response(counsellor, db.get(User, counsellor.user_id))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/available', response_model=list[CounsellorResponse])
def list_available_counsellors(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return [to_counsellor_response(c, user) for c, user in counsellors.list_available(db, current_user)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/institution/{institution_id}', response_model=list[CounsellorResponse])
def list_by_institution(institution_id: int, db: Session = Depends(get_db)):
    try:
        return [to_counsellor_response(c, user) for c, user in counsellors.list_by_institution(db, institution_id)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{counsellor_id}', response_model=CounsellorResponse)
def get_counsellor(counsellor_id: int, db: Session = Depends(get_db)):
    try:
        counsellor, user = counsellors.get_with_user(db, counsellor_id)
        return to_counsellor_response(counsellor, user)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{counsellor_id}/availability', response_model=CounsellorResponse)
def update_availability(
    counsellor_id: int,
    data: UpdateAvailabilityRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        counsellor = counsellors.update_availability(db, current_user, counsellor_id, data.availability)
        return to_counsellor_response(counsellor, db.get(User, counsellor.user_id))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
