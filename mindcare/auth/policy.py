"""Who may act on an appointment.

A counsellor's profile id differs from their user id, so deciding whether an
actor owns an appointment as its counsellor takes one extra lookup. The
relation itself is computed by the pure ``resolve_relation``; ``relation_for``
performs the lookup and delegates.
"""

from enum import Enum

from sqlalchemy.orm import Session

from mindcare.core.errors import AuthorizationError
from mindcare.models.appointment import Appointment
from mindcare.models.counsellor import Counsellor
from mindcare.models.user import ROLE_ADMIN, ROLE_COUNSELLOR, User


class AppointmentRelation(str, Enum):
    OWNER_STUDENT = 'owner-student'
    OWNER_COUNSELLOR = 'owner-counsellor'
    ADMIN = 'admin'
    NONE = 'none'


STUDENT_ONLY = (AppointmentRelation.OWNER_STUDENT,)
COUNSELLOR_OR_ADMIN = (AppointmentRelation.OWNER_COUNSELLOR, AppointmentRelation.ADMIN)
ANY_PARTY = (
    AppointmentRelation.OWNER_STUDENT,
    AppointmentRelation.OWNER_COUNSELLOR,
    AppointmentRelation.ADMIN,
)


def resolve_relation(
    actor: User,
    appointment: Appointment,
    counsellor_profile: Counsellor | None = None,
) -> AppointmentRelation:
    if appointment.student_id == actor.id:
        return AppointmentRelation.OWNER_STUDENT

    if (
        actor.role == ROLE_COUNSELLOR
        and counsellor_profile is not None
        and counsellor_profile.user_id == actor.id
        and counsellor_profile.id == appointment.counsellor_id
    ):
        return AppointmentRelation.OWNER_COUNSELLOR

    if actor.role == ROLE_ADMIN:
        return AppointmentRelation.ADMIN

    return AppointmentRelation.NONE


def get_counsellor_profile(db: Session, user: User) -> Counsellor | None:
    return db.query(Counsellor).filter(Counsellor.user_id == user.id).first()


def relation_for(db: Session, actor: User, appointment: Appointment) -> AppointmentRelation:
    counsellor_profile = get_counsellor_profile(db, actor) if actor.role == ROLE_COUNSELLOR else None
    return resolve_relation(actor, appointment, counsellor_profile)


def require_relation(
    db: Session,
    actor: User,
    appointment: Appointment,
    allowed: tuple[AppointmentRelation, ...],
) -> AppointmentRelation:
    relation = relation_for(db, actor, appointment)
    if relation not in allowed and actor.role == ROLE_ADMIN and AppointmentRelation.ADMIN in allowed:
        # an admin who booked as a student keeps admin rights on that booking
        relation = AppointmentRelation.ADMIN
    if relation not in allowed:
        raise AuthorizationError('You are not allowed to act on this appointment.')
    return relation


def require_role(actor: User, *roles: str) -> None:
    if actor.role not in roles:
        raise AuthorizationError('You do not have permission to perform this action.')
