from datetime import date, timedelta

import pytest

from mindcare.core import config
from mindcare.core.errors import AuthorizationError, ConflictError, InvalidStateError, NotFoundError
from mindcare.models.appointment import Appointment
from mindcare.services import booking, sessions


def _next_weekday(weekday: int) -> date:
    day = date.today() + timedelta(days=1)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day


def test_create_appointment_starts_pending_in_counsellor_institution(db, student, counsellor) -> None:
    _, profile = counsellor
    scheduled = date.today() + timedelta(days=3)

    appointment = booking.create_appointment(
        db, student, counsellor_id=profile.id, scheduled_date=scheduled, time_slot='14:00',
        is_anonymous=True, notes='Exam stress',
    )

    assert appointment.id is not None
    assert appointment.status == 'pending'
    assert appointment.institution_id == profile.institution_id
    assert appointment.student_id == student.id
    assert appointment.is_anonymous is True
    assert appointment.notes == 'Exam stress'


def test_second_booking_for_same_slot_is_rejected(db, student, make_user, counsellor) -> None:
    _, profile = counsellor
    other_student = make_user('other@sample.edu')
    scheduled = date.today() + timedelta(days=3)

    booking.create_appointment(db, student, profile.id, scheduled, '14:00', is_anonymous=False)

    with pytest.raises(ConflictError) as exception_info:
        booking.create_appointment(db, other_student, profile.id, scheduled, '14:00', is_anonymous=False)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Time slot is already booked.'


def test_other_slots_and_counsellors_remain_bookable(db, student, counsellor, make_counsellor) -> None:
    _, profile = counsellor
    _, second_profile = make_counsellor('second@sample.edu')
    scheduled = date.today() + timedelta(days=3)

    booking.create_appointment(db, student, profile.id, scheduled, '14:00', is_anonymous=False)
    booking.create_appointment(db, student, profile.id, scheduled, '15:00', is_anonymous=False)
    booking.create_appointment(db, student, second_profile.id, scheduled, '14:00', is_anonymous=False)

    assert db.query(Appointment).count() == 3


def test_cancellation_frees_the_slot(db, student, make_user, counsellor) -> None:
    _, profile = counsellor
    scheduled = date.today() + timedelta(days=3)
    first = booking.create_appointment(db, student, profile.id, scheduled, '14:00', is_anonymous=False)

    sessions.cancel(db, student, first.id)
    rebooked = booking.create_appointment(
        db, make_user('next@sample.edu'), profile.id, scheduled, '14:00', is_anonymous=False,
    )

    assert rebooked.status == 'pending'
    assert rebooked.id != first.id


def test_storage_constraint_rejects_booking_that_slips_past_the_check(
    db, student, make_user, counsellor, monkeypatch: pytest.MonkeyPatch,
) -> None:
    _, profile = counsellor
    scheduled = date.today() + timedelta(days=3)
    booking.create_appointment(db, student, profile.id, scheduled, '14:00', is_anonymous=False)

    # Simulate a concurrent request whose read ran before the first insert committed.
    monkeypatch.setattr(booking, 'find_active_booking', lambda *args, **kwargs: None)

    with pytest.raises(ConflictError):
        booking.create_appointment(
            db, make_user('racer@sample.edu'), profile.id, scheduled, '14:00', is_anonymous=False,
        )

    assert db.query(Appointment).count() == 1


def test_first_booking_promotes_user_without_role_to_student(db, make_user, counsellor) -> None:
    _, profile = counsellor
    newcomer = make_user('new@sample.edu', role=None)

    booking.create_appointment(db, newcomer, profile.id, date.today() + timedelta(days=2), '09:00', is_anonymous=False)
    db.refresh(newcomer)

    assert newcomer.role == 'student'
    assert newcomer.is_anonymous is False


@pytest.mark.parametrize('role', ['counsellor', 'admin', 'peer_volunteer'])
def test_non_students_cannot_book(db, make_user, counsellor, role: str) -> None:
    _, profile = counsellor
    actor = make_user(f'{role}@other.edu', role=role)

    with pytest.raises(AuthorizationError) as exception_info:
        booking.create_appointment(db, actor, profile.id, date.today() + timedelta(days=2), '09:00', is_anonymous=False)

    assert exception_info.value.detail == 'Only students can book appointments.'


def test_booking_unknown_counsellor_fails(db, student) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        booking.create_appointment(db, student, 999, date.today() + timedelta(days=2), '09:00', is_anonymous=False)

    assert exception_info.value.status_code == 404


def test_failed_booking_leaves_role_unset(db, make_user) -> None:
    newcomer = make_user('late@sample.edu', role=None)

    with pytest.raises(NotFoundError):
        booking.create_appointment(db, newcomer, 999, date.today() + timedelta(days=2), '09:00', is_anonymous=False)

    db.refresh(newcomer)
    assert newcomer.role is None


def test_availability_is_enforced_when_enabled(db, student, make_counsellor, monkeypatch: pytest.MonkeyPatch) -> None:
    monday = _next_weekday(0)
    _, profile = make_counsellor(availability={'monday': ['09:00'], 'tuesday': []})
    monkeypatch.setattr(config, 'ENFORCE_COUNSELLOR_AVAILABILITY', True)

    with pytest.raises(InvalidStateError):
        booking.create_appointment(db, student, profile.id, monday, '11:00', is_anonymous=False)

    appointment = booking.create_appointment(db, student, profile.id, monday, '09:00', is_anonymous=False)
    assert appointment.time_slot == '09:00'


def test_availability_is_not_enforced_by_default(db, student, counsellor) -> None:
    _, profile = counsellor

    appointment = booking.create_appointment(
        db, student, profile.id, date.today() + timedelta(days=2), '23:30', is_anonymous=False,
    )

    assert appointment.status == 'pending'


def test_list_by_student_includes_counsellor_details(db, student, counsellor, make_appointment) -> None:
    counsellor_user, profile = counsellor
    make_appointment(student, profile, time_slot='10:00')
    make_appointment(student, profile, time_slot='11:00')

    rows = booking.list_by_student(db, student)

    assert [row[0].time_slot for row in rows] == ['10:00', '11:00']
    assert all(row[1].id == profile.id for row in rows)
    assert all(row[2].id == counsellor_user.id for row in rows)


def test_list_by_counsellor_hides_anonymous_students(db, student, counsellor, make_appointment) -> None:
    counsellor_user, profile = counsellor
    make_appointment(student, profile, time_slot='10:00', is_anonymous=True)
    make_appointment(student, profile, time_slot='11:00')

    rows = booking.list_by_counsellor(db, counsellor_user)

    assert rows[0]['student'] is None
    assert rows[1]['student'].id == student.id
    assert [a.time_slot for a in rows[0]['previous_sessions']] == ['11:00']


def test_list_by_counsellor_requires_counsellor_role(db, student) -> None:
    with pytest.raises(AuthorizationError):
        booking.list_by_counsellor(db, student)


def test_list_by_counsellor_requires_profile(db, make_user) -> None:
    with pytest.raises(NotFoundError) as exception_info:
        booking.list_by_counsellor(db, make_user('noprofile@sample.edu', role='counsellor'))

    assert exception_info.value.detail == 'Counsellor profile not found.'


def test_list_for_counsellor_date_skips_cancelled(db, student, counsellor, make_appointment) -> None:
    _, profile = counsellor
    scheduled = date.today() + timedelta(days=4)
    make_appointment(student, profile, scheduled_date=scheduled, time_slot='10:00', status='cancelled')
    kept = make_appointment(student, profile, scheduled_date=scheduled, time_slot='10:00')

    appointments = booking.list_for_counsellor_date(db, student, profile.id, scheduled)

    assert [a.id for a in appointments] == [kept.id]


def test_list_for_counsellor_date_rejects_other_institutions(db, make_user, counsellor) -> None:
    _, profile = counsellor
    outsider = make_user('outsider@elsewhere.edu', with_institution=False)

    with pytest.raises(AuthorizationError):
        booking.list_for_counsellor_date(db, outsider, profile.id, date.today())
