from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mindcare.auth.dependencies import get_current_user
from mindcare.database import get_db
from mindcare.models.user import User
from mindcare.routes.common import database_unavailable
from mindcare.services import users

router = APIRouter(tags=['users'])


class UserSummaryResponse(BaseModel):
    id: int | None = None
    name: str | None = None
    email: str | None = None

    class Config:
        from_attributes = True


ANONYMOUS_STUDENT = UserSummaryResponse(name='Anonymous Student')


class UserResponse(BaseModel):
    id: int
    email: str | None = None
    name: str | None = None
    role: str | None = None
    institution_id: int | None = None
    is_anonymous: bool = False

    class Config:
        from_attributes = True


class SetRoleRequest(BaseModel):
    role: Literal['admin', 'student', 'counsellor', 'peer_volunteer']


class HasAdminResponse(BaseModel):
    has_admin: bool


@router.get('/me', response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.get('', response_model=list[UserResponse])
def list_users(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return [UserResponse.model_validate(user) for user in users.list_all(db, current_user)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/has-admin', response_model=HasAdminResponse)
def has_admin(db: Session = Depends(get_db)):
    try:
        return HasAdminResponse(has_admin=users.has_admin(db))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{user_id}/role', response_model=UserResponse)
def set_role(
    user_id: int,
    data: SetRoleRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return UserResponse.model_validate(users.set_role(db, current_user, user_id, data.role))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
