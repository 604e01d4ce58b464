import pytest

from mindcare.core.errors import AuthorizationError, ConflictError, NotFoundError
from mindcare.models.counsellor import Counsellor
from mindcare.models.user import User
from mindcare.services import counsellors, institutions, users


def test_has_admin(db, student, make_user) -> None:
    assert users.has_admin(db) is False

    make_user('boss@sample.edu', role='admin')

    assert users.has_admin(db) is True


def test_list_all_is_admin_only(db, student, admin) -> None:
    assert [u.id for u in users.list_all(db, admin)] == [student.id, admin.id]

    with pytest.raises(AuthorizationError):
        users.list_all(db, student)


def test_set_role_to_counsellor_creates_profile(db, admin, make_user) -> None:
    user = make_user('future.counsellor@sample.edu', role=None)

    updated = users.set_role(db, admin, user.id, 'counsellor')

    profile = db.query(Counsellor).filter(Counsellor.user_id == user.id).one()
    assert updated.role == 'counsellor'
    assert profile.institution_id == user.institution_id
    assert profile.availability['monday'] == []


def test_set_role_keeps_existing_profile(db, admin, counsellor) -> None:
    counsellor_user, profile = counsellor

    users.set_role(db, admin, counsellor_user.id, 'counsellor')

    assert db.query(Counsellor).filter(Counsellor.user_id == counsellor_user.id).count() == 1


def test_set_role_requires_admin(db, student, make_user) -> None:
    other = make_user('other@sample.edu')

    with pytest.raises(AuthorizationError):
        users.set_role(db, student, other.id, 'admin')


def test_set_role_unknown_user(db, admin) -> None:
    with pytest.raises(NotFoundError):
        users.set_role(db, admin, 999, 'student')


def test_normalize_availability_fills_weekdays() -> None:
    normalized = counsellors.normalize_availability({'Monday': ['09:00']})

    assert normalized['monday'] == ['09:00']
    assert normalized['sunday'] == []


def test_normalize_availability_rejects_unknown_weekday() -> None:
    with pytest.raises(ValueError):
        counsellors.normalize_availability({'someday': ['09:00']})


def test_create_counsellor_requires_staff_role(db, student, admin, institution, make_user) -> None:
    user = make_user('new.counsellor@sample.edu', role='counsellor')

    with pytest.raises(AuthorizationError):
        counsellors.create_counsellor(db, student, user.id, institution.id, [], {})

    profile = counsellors.create_counsellor(
        db, admin, user.id, institution.id, ['stress'], {'tuesday': ['14:00']}, bio='Hello',
    )
    assert profile.availability['tuesday'] == ['14:00']
    assert profile.specialization == ['stress']


def test_update_availability_by_owner_or_admin(db, admin, student, counsellor) -> None:
    counsellor_user, profile = counsellor

    counsellors.update_availability(db, counsellor_user, profile.id, {'friday': ['11:00']})
    assert profile.availability['friday'] == ['11:00']

    counsellors.update_availability(db, admin, profile.id, {'friday': []})
    assert profile.availability['friday'] == []

    with pytest.raises(AuthorizationError):
        counsellors.update_availability(db, student, profile.id, {'friday': ['11:00']})


def test_get_counsellor_not_found(db) -> None:
    with pytest.raises(NotFoundError):
        counsellors.get_with_user(db, 404)


def test_list_available_uses_first_institution_for_unassigned_user(db, counsellor, make_user) -> None:
    counsellor_user, profile = counsellor
    user = make_user('walkin@elsewhere.org', with_institution=False)

    available = counsellors.list_available(db, user)

    assert [(c.id, u.id) for c, u in available] == [(profile.id, counsellor_user.id)]


def test_list_by_institution_skips_inactive(db, institution, counsellor, make_counsellor) -> None:
    _, inactive = make_counsellor('away@sample.edu')
    inactive.is_active = False
    db.commit()

    listed = counsellors.list_by_institution(db, institution.id)

    assert [c.id for c, _ in listed] == [counsellor[1].id]


def test_create_and_find_institution(db) -> None:
    created = institutions.create_institution(db, 'North College', ' North.EDU ', ['en', 'hi'], '#123456')

    assert institutions.get_by_domain(db, 'north.edu').id == created.id
    assert created.settings == {'supported_languages': ['en', 'hi'], 'primary_color': '#123456'}
    assert [i.id for i in institutions.list_institutions(db)] == [created.id]


def test_resolve_user_institution_creates_default(db) -> None:
    user = User(email='solo@nowhere.org', name='Solo', role='student', is_anonymous=False)
    db.add(user)
    db.commit()

    institution_id = institutions.resolve_user_institution_id(db, user)

    assert institution_id is not None
    assert user.institution_id == institution_id
    assert len(institutions.list_institutions(db)) == 1


def test_create_counsellor_rejects_second_profile(db, admin, institution, counsellor) -> None:
    counsellor_user, _ = counsellor

    with pytest.raises(ConflictError) as exception_info:
        counsellors.create_counsellor(db, admin, counsellor_user.id, institution.id, [], {})

    assert exception_info.value.status_code == 409
    assert db.query(Counsellor).filter(Counsellor.user_id == counsellor_user.id).count() == 1


def test_create_counsellor_for_unknown_user(db, admin, institution) -> None:
    with pytest.raises(NotFoundError):
        counsellors.create_counsellor(db, admin, 999, institution.id, [], {})
