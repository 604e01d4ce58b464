import logging

from sqlalchemy.orm import Session

from mindcare.core import config
from mindcare.models.institution import Institution
from mindcare.models.user import User

logger = logging.getLogger(__name__)


def get_by_domain(db: Session, domain: str) -> Institution | None:
    return db.query(Institution).filter(Institution.domain == domain.strip().lower()).first()


def first_institution(db: Session) -> Institution | None:
    return db.query(Institution).order_by(Institution.id.asc()).first()


def create_default_institution(db: Session) -> Institution:
    institution = Institution(
        name=config.DEFAULT_INSTITUTION_NAME,
        domain=config.DEFAULT_INSTITUTION_DOMAIN,
        settings={'supported_languages': ['en']},
        is_active=True,
    )
    db.add(institution)
    db.flush()
    logger.info('Created default institution %s', institution.id)
    return institution


def first_or_default_institution(db: Session) -> Institution:
    return first_institution(db) or create_default_institution(db)


def resolve_user_institution_id(db: Session, user: User) -> int:
    """Ensure ``user`` belongs to an institution, assigning one if needed.

    Tries the user's email domain, then the first institution, then creates a
    default one. The assignment is flushed, not committed.
    """
    if user.institution_id is not None:
        return user.institution_id

    institution = None
    email = user.email or ''
    if '@' in email:
        institution = get_by_domain(db, email.split('@', 1)[1])

    institution = institution or first_or_default_institution(db)
    user.institution_id = institution.id
    db.flush()
    return institution.id


def create_institution(
    db: Session,
    name: str,
    domain: str,
    supported_languages: list[str],
    primary_color: str | None = None,
) -> Institution:
    institution = Institution(
        name=name,
        domain=domain.strip().lower(),
        settings={'supported_languages': supported_languages, 'primary_color': primary_color},
        is_active=True,
    )
    db.add(institution)
    db.commit()
    db.refresh(institution)
    return institution


def list_institutions(db: Session) -> list[Institution]:
    return db.query(Institution).order_by(Institution.id.asc()).all()
