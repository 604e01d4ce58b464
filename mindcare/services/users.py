import logging

from sqlalchemy.orm import Session

from mindcare.auth.policy import require_role
from mindcare.core.errors import NotFoundError
from mindcare.models.counsellor import Counsellor, empty_availability
from mindcare.models.user import ROLE_ADMIN, ROLE_COUNSELLOR, User
from mindcare.services.institutions import first_or_default_institution

logger = logging.getLogger(__name__)


def list_all(db: Session, actor: User) -> list[User]:
    require_role(actor, ROLE_ADMIN)
    return db.query(User).order_by(User.id.asc()).all()


def has_admin(db: Session) -> bool:
    return db.query(User.id).filter(User.role == ROLE_ADMIN).first() is not None


def set_role(db: Session, actor: User, user_id: int, role: str) -> User:
    """Assign ``role`` to a user; counsellors also get a profile if they lack one."""
    require_role(actor, ROLE_ADMIN)

    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError('User not found.')

    user.role = role

    if role == ROLE_COUNSELLOR:
        existing = db.query(Counsellor).filter(Counsellor.user_id == user.id).first()
        if existing is None:
            institution_id = user.institution_id or actor.institution_id
            if institution_id is None:
                institution_id = first_or_default_institution(db).id
            db.add(
                Counsellor(
                    user_id=user.id,
                    institution_id=institution_id,
                    specialization=[],
                    bio='',
                    qualifications='',
                    availability=empty_availability(),
                    is_active=True,
                )
            )

    db.commit()
    db.refresh(user)

    logger.info('User %s set role of user %s to %s', actor.id, user.id, role)
    return user
