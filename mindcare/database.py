from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from mindcare.core import config


engine = create_engine(
    config.DATABASE_URL,
    connect_args={'check_same_thread': False} if config.DATABASE_URL.startswith('sqlite') else {},
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_appointment_schema_checked = False

ACTIVE_SLOT_INDEX = 'uq_appointments_active_slot'


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('screening_summary', 'ALTER TABLE appointments ADD COLUMN screening_summary JSON'),
            ('proposed_follow_up', 'ALTER TABLE appointments ADD COLUMN proposed_follow_up JSON'),
            ('chat_ended_by_student', 'ALTER TABLE appointments ADD COLUMN chat_ended_by_student BOOLEAN DEFAULT FALSE'),
            ('chat_ended_at', 'ALTER TABLE appointments ADD COLUMN chat_ended_at TIMESTAMP'),
            ('chat_ended_by', 'ALTER TABLE appointments ADD COLUMN chat_ended_by INTEGER'),
            ('counsellor_post_session_form', 'ALTER TABLE appointments ADD COLUMN counsellor_post_session_form JSON'),
            ('version_id', 'ALTER TABLE appointments ADD COLUMN version_id INTEGER NOT NULL DEFAULT 1'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    f'CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_SLOT_INDEX} '
                    "ON appointments(counsellor_id, scheduled_date, time_slot) WHERE status != 'cancelled'"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_student ON appointments(student_id)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_date ON appointments(scheduled_date)')
            )

        _appointment_schema_checked = True
