import logging

from sqlalchemy.orm import Session

from mindcare.auth.policy import require_role
from mindcare.core.errors import AuthorizationError, ConflictError, NotFoundError
from mindcare.models.counsellor import WEEKDAYS, Counsellor, empty_availability
from mindcare.models.user import ROLE_ADMIN, ROLE_COUNSELLOR, User
from mindcare.services.institutions import first_institution
from mindcare.services.store import commit_or_conflict

logger = logging.getLogger(__name__)

PROFILE_EXISTS_DETAIL = 'This user already has a counsellor profile.'


def normalize_availability(availability: dict[str, list[str]] | None) -> dict[str, list[str]]:
    normalized = empty_availability()
    for weekday, slots in (availability or {}).items():
        key = weekday.strip().lower()
        if key not in WEEKDAYS:
            raise ValueError(f'Unknown weekday: {weekday}')
        normalized[key] = list(slots)
    return normalized


def get_counsellor_or_404(db: Session, counsellor_id: int) -> Counsellor:
    counsellor = db.get(Counsellor, counsellor_id)
    if counsellor is None:
        raise NotFoundError('Counsellor not found.')
    return counsellor


def create_counsellor(
    db: Session,
    actor: User,
    user_id: int,
    institution_id: int,
    specialization: list[str],
    availability: dict[str, list[str]],
    bio: str | None = None,
    qualifications: str | None = None,
) -> Counsellor:
    require_role(actor, ROLE_ADMIN, ROLE_COUNSELLOR)

    if db.get(User, user_id) is None:
        raise NotFoundError('User not found.')
    if db.query(Counsellor.id).filter(Counsellor.user_id == user_id).first() is not None:
        raise ConflictError(PROFILE_EXISTS_DETAIL)

    counsellor = Counsellor(
        user_id=user_id,
        institution_id=institution_id,
        specialization=list(specialization),
        bio=bio,
        qualifications=qualifications,
        availability=normalize_availability(availability),
        is_active=True,
    )
    db.add(counsellor)
    commit_or_conflict(db, PROFILE_EXISTS_DETAIL)
    db.refresh(counsellor)

    logger.info('Created counsellor profile %s for user %s', counsellor.id, user_id)
    return counsellor


def list_by_institution(db: Session, institution_id: int) -> list[tuple[Counsellor, User | None]]:
    counsellors = db.query(Counsellor).filter(
        Counsellor.institution_id == institution_id,
        Counsellor.is_active.is_(True),
    ).order_by(Counsellor.id.asc()).all()
    return [(counsellor, db.get(User, counsellor.user_id)) for counsellor in counsellors]


def get_with_user(db: Session, counsellor_id: int) -> tuple[Counsellor, User | None]:
    counsellor = get_counsellor_or_404(db, counsellor_id)
    return counsellor, db.get(User, counsellor.user_id)


def update_availability(
    db: Session,
    actor: User,
    counsellor_id: int,
    availability: dict[str, list[str]],
) -> Counsellor:
    counsellor = get_counsellor_or_404(db, counsellor_id)

    if actor.role != ROLE_ADMIN and counsellor.user_id != actor.id:
        raise AuthorizationError('Only the counsellor or an admin can change availability.')

    counsellor.availability = normalize_availability(availability)
    db.commit()
    db.refresh(counsellor)
    return counsellor


def list_available(db: Session, actor: User) -> list[tuple[Counsellor, User | None]]:
    """Active counsellors in the actor's institution, or the first one if unassigned."""
    institution_id = actor.institution_id
    if institution_id is None:
        institution = first_institution(db)
        if institution is None:
            return []
        institution_id = institution.id

    return list_by_institution(db, institution_id)
