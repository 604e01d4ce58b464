from datetime import date, datetime, time

from mindcare.models.counsellor import WEEKDAYS


def normalize_time_slot(value: str) -> str:
    """Return ``value`` as a zero-padded ``HH:MM`` label or raise ``ValueError``."""
    parsed = parse_time_slot(value)
    if parsed is None:
        raise ValueError('Time slot must use the HH:MM format.')
    return parsed.strftime('%H:%M')


def parse_time_slot(value: str | None) -> time | None:
    parts = (value or '').strip().split(':')
    if len(parts) < 2:
        return None
    try:
        hour, minute = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour < 24 and 0 <= minute < 60):
        return None
    return time(hour, minute)


def get_appointment_datetime(scheduled_date: date, time_slot: str | None) -> datetime:
    # A malformed slot label falls back to the start of the scheduled day.
    slot_time = parse_time_slot(time_slot) or time(0, 0)
    return datetime.combine(scheduled_date, slot_time)


def weekday_name(scheduled_date: date) -> str:
    return WEEKDAYS[scheduled_date.weekday()]


def is_slot_offered(availability: dict | None, scheduled_date: date, time_slot: str) -> bool:
    offered = (availability or {}).get(weekday_name(scheduled_date)) or []
    return time_slot in offered
