import pytest

from mindcare.core.errors import AuthorizationError, InvalidStateError
from mindcare.services import chat


def test_parties_exchange_messages_in_order(db, student, admin, counsellor, make_appointment) -> None:
    counsellor_user, profile = counsellor
    appointment = make_appointment(student, profile)

    chat.send_chat_message(db, student, appointment.id, 'Hello')
    chat.send_chat_message(db, counsellor_user, appointment.id, 'Hi, how are you?')
    chat.send_chat_message(db, admin, appointment.id, 'Joining to help')

    messages = chat.list_chat_messages(db, student, appointment.id)

    assert [m.sequence for m in messages] == [1, 2, 3]
    assert [m.content for m in messages] == ['Hello', 'Hi, how are you?', 'Joining to help']
    assert [m.role for m in messages] == ['student', 'counsellor', 'admin']


def test_list_chat_messages_pages_by_sequence(db, student, counsellor, make_appointment) -> None:
    _, profile = counsellor
    appointment = make_appointment(student, profile)
    for index in range(5):
        chat.send_chat_message(db, student, appointment.id, f'message {index}')

    page = chat.list_chat_messages(db, student, appointment.id, after_sequence=2, limit=2)

    assert [m.sequence for m in page] == [3, 4]


def test_unrelated_user_cannot_chat(db, student, make_user, counsellor, make_appointment) -> None:
    _, profile = counsellor
    appointment = make_appointment(student, profile)
    stranger = make_user('stranger@sample.edu')

    with pytest.raises(AuthorizationError):
        chat.send_chat_message(db, stranger, appointment.id, 'Hi')
    with pytest.raises(AuthorizationError):
        chat.list_chat_messages(db, stranger, appointment.id)


def test_student_ends_chat_with_system_message(db, student, counsellor, make_appointment) -> None:
    _, profile = counsellor
    appointment = make_appointment(student, profile)
    chat.send_chat_message(db, student, appointment.id, 'Thanks')

    ended = chat.end_chat_by_student(db, student, appointment.id)

    assert ended.chat_ended_by_student is True
    assert ended.chat_ended_by == student.id
    assert ended.chat_ended_at is not None
    last = chat.list_chat_messages(db, student, appointment.id)[-1]
    assert last.role == 'system'
    assert last.content == 'Student ended the chat'


def test_only_student_can_end_chat(db, student, counsellor, make_appointment) -> None:
    counsellor_user, profile = counsellor
    appointment = make_appointment(student, profile)

    with pytest.raises(AuthorizationError):
        chat.end_chat_by_student(db, counsellor_user, appointment.id)


def test_post_chat_form_requires_ended_chat(db, student, counsellor, make_appointment) -> None:
    counsellor_user, profile = counsellor
    appointment = make_appointment(student, profile)

    with pytest.raises(InvalidStateError) as exception_info:
        chat.submit_post_chat_form(db, counsellor_user, appointment.id, session_notes='Notes')

    assert exception_info.value.detail == 'Student has not ended the chat.'


def test_post_chat_form_completes_session(db, student, counsellor, make_appointment) -> None:
    counsellor_user, profile = counsellor
    appointment = make_appointment(student, profile, status='confirmed')
    chat.end_chat_by_student(db, student, appointment.id)

    updated = chat.submit_post_chat_form(
        db, counsellor_user, appointment.id, session_notes='Talked it through', diagnosis=None, follow_up='Weekly',
    )

    assert updated.status == 'completed'
    assert updated.counsellor_post_session_form['session_notes'] == 'Talked it through'
    assert updated.counsellor_post_session_form['follow_up'] == 'Weekly'
    assert updated.counsellor_post_session_form['submitted_by'] == counsellor_user.id


def test_student_cannot_submit_post_chat_form(db, student, counsellor, make_appointment) -> None:
    _, profile = counsellor
    appointment = make_appointment(student, profile)
    chat.end_chat_by_student(db, student, appointment.id)

    with pytest.raises(AuthorizationError):
        chat.submit_post_chat_form(db, student, appointment.id)
