"""Follow-up payloads recorded with a session result.

A follow-up is either a free-text note or a proposal to meet again. Older
clients send a single string that may hold a JSON-encoded proposal; that
string is decoded once at the API boundary into one of the two variants.
"""

import datetime
import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from mindcare.services.slots import normalize_time_slot


class FollowUpNote(BaseModel):
    kind: Literal['note'] = 'note'
    text: str


class FollowUpProposal(BaseModel):
    kind: Literal['proposal'] = 'proposal'
    date: datetime.date | None = None
    time_slot: str | None = None
    note: str | None = None

    @field_validator('time_slot')
    @classmethod
    def validate_time_slot(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return normalize_time_slot(value)


FollowUp = Annotated[Union[FollowUpNote, FollowUpProposal], Field(discriminator='kind')]


def decode_follow_up(value):
    """Map a legacy string follow-up onto the tagged representation.

    Non-string values pass through for the model to validate.
    """
    if not isinstance(value, str):
        return value
    if not value.strip():
        return None

    try:
        parsed = json.loads(value)
    except ValueError:
        return {'kind': 'note', 'text': value}

    if isinstance(parsed, dict) and parsed.get('proposed') is True:
        proposal = {
            'kind': 'proposal',
            'date': parsed.get('date') or None,
            'time_slot': parsed.get('timeSlot') or parsed.get('time_slot') or None,
            'note': parsed.get('note'),
        }
        try:
            FollowUpProposal.model_validate(proposal)
        except ValidationError:
            # unusable date or slot: keep what the client sent as a note
            return {'kind': 'note', 'text': value}
        return proposal
    return {'kind': 'note', 'text': value}


def describe_follow_up(follow_up: FollowUpNote | FollowUpProposal | None):
    if follow_up is None:
        return None
    if isinstance(follow_up, FollowUpNote):
        return follow_up.text
    return follow_up.model_dump(mode='json')
