import os
from datetime import date, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from mindcare.database import Base  # noqa: E402
from mindcare.models.appointment import Appointment  # noqa: E402
from mindcare.models.counsellor import Counsellor, empty_availability  # noqa: E402
from mindcare.models.institution import Institution  # noqa: E402
from mindcare.models.screening import ScreeningResult  # noqa: E402,F401
from mindcare.models.user import User  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def institution(db):
    record = Institution(name='Sample University', domain='sample.edu', settings={}, is_active=True)
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def make_user(db, institution):
    def _make_user(email: str, role: str | None = 'student', name: str | None = None, with_institution: bool = True):
        user = User(
            email=email,
            name=name or email.split('@')[0].title(),
            role=role,
            institution_id=institution.id if with_institution else None,
            is_anonymous=False,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_counsellor(db, institution, make_user):
    def _make_counsellor(email: str = 'counsellor@sample.edu', availability: dict | None = None):
        user = make_user(email, role='counsellor')
        profile = Counsellor(
            user_id=user.id,
            institution_id=institution.id,
            specialization=['anxiety'],
            bio='',
            qualifications='',
            availability=availability or empty_availability(),
            is_active=True,
        )
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return user, profile

    return _make_counsellor


@pytest.fixture
def make_appointment(db):
    def _make_appointment(student, counsellor_profile, scheduled_date=None, time_slot='10:00', status='pending', **fields):
        appointment = Appointment(
            student_id=student.id,
            counsellor_id=counsellor_profile.id,
            institution_id=counsellor_profile.institution_id,
            scheduled_date=scheduled_date or date.today() + timedelta(days=7),
            time_slot=time_slot,
            status=status,
            is_anonymous=fields.pop('is_anonymous', False),
            **fields,
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make_appointment


@pytest.fixture
def student(make_user):
    return make_user('student@sample.edu')


@pytest.fixture
def admin(make_user):
    return make_user('admin@sample.edu', role='admin')


@pytest.fixture
def counsellor(make_counsellor):
    return make_counsellor()
