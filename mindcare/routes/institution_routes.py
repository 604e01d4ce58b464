from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mindcare.auth.dependencies import get_current_user
from mindcare.auth.policy import require_role
from mindcare.core.errors import ConflictError, NotFoundError
from mindcare.database import get_db
from mindcare.models.user import ROLE_ADMIN, User
from mindcare.routes.common import database_unavailable
from mindcare.services import institutions

router = APIRouter(tags=['institutions'])


class CreateInstitutionRequest(BaseModel):
    name: str
    domain: str
    supported_languages: list[str] = ['en']
    primary_color: str | None = None

    @field_validator('domain')
    @classmethod
    def validate_domain(cls, value: str) -> str:
        normalized = value.strip().lower().lstrip('@')
        if not normalized or '.' not in normalized:
            raise ValueError('A valid email domain is required.')
        return normalized


class InstitutionResponse(BaseModel):
    id: int
    name: str
    domain: str | None = None
    settings: dict | None = None
    is_active: bool

    class Config:
        from_attributes = True


@router.post('', response_model=InstitutionResponse, status_code=status.HTTP_201_CREATED)
def create_institution(
    data: CreateInstitutionRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    try:
        if institutions.get_by_domain(db, data.domain):
            raise ConflictError('An institution already uses this domain.')
        institution = institutions.create_institution(
            db,
            name=data.name.strip(),
            domain=data.domain,
            supported_languages=data.supported_languages,
            primary_color=data.primary_color,
        )
        return InstitutionResponse.model_validate(institution)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[InstitutionResponse])
def list_institutions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    require_role(current_user, ROLE_ADMIN)
    try:
        return [InstitutionResponse.model_validate(i) for i in institutions.list_institutions(db)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/by-domain/{domain}', response_model=InstitutionResponse)
def get_by_domain(domain: str, db: Session = Depends(get_db)):
    try:
        institution = institutions.get_by_domain(db, domain)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
    if institution is None:
        raise NotFoundError('Institution not found.')
    return InstitutionResponse.model_validate(institution)
