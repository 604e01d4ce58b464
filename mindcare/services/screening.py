"""Screening instruments: scoring, storage and institution analytics."""

import logging

from sqlalchemy.orm import Session

from mindcare.auth.policy import require_role
from mindcare.models.screening import SCREENING_TOOLS, TOOL_GAD7, TOOL_PHQ9, ScreeningResult
from mindcare.models.user import ROLE_ADMIN, User
from mindcare.services.institutions import resolve_user_institution_id

logger = logging.getLogger(__name__)

RISK_LOW = 'low'
RISK_MODERATE = 'moderate'
RISK_HIGH = 'high'
RISK_LEVELS = (RISK_LOW, RISK_MODERATE, RISK_HIGH)

# tool -> [(minimum score, risk level)], highest band first
RISK_THRESHOLDS = {
    TOOL_PHQ9: [(20, RISK_HIGH), (10, RISK_MODERATE)],
    TOOL_GAD7: [(15, RISK_HIGH), (10, RISK_MODERATE)],
}

RECOMMENDATIONS = {
    TOOL_PHQ9: {
        RISK_HIGH: [
            'Consider speaking with a mental health professional immediately',
            "Contact your institution's counseling center",
            'Reach out to a trusted friend or family member',
        ],
        RISK_MODERATE: [
            'Consider scheduling an appointment with a counselor',
            'Practice self-care activities',
            'Monitor your symptoms',
        ],
        RISK_LOW: [
            'Continue maintaining good mental health habits',
            'Stay connected with friends and family',
        ],
    },
    TOOL_GAD7: {
        RISK_HIGH: [
            'Consider speaking with a mental health professional',
            'Practice relaxation techniques',
            'Limit caffeine intake',
        ],
        RISK_MODERATE: [
            'Try stress management techniques',
            'Consider counseling if symptoms persist',
            'Maintain regular sleep schedule',
        ],
        RISK_LOW: [
            'Continue current coping strategies',
            'Practice mindfulness when feeling anxious',
        ],
    },
}


def classify_score(tool_type: str, score: int) -> str:
    for minimum, risk_level in RISK_THRESHOLDS.get(tool_type, []):
        if score >= minimum:
            return risk_level
    return RISK_LOW


def score_responses(tool_type: str, responses: list[int]) -> tuple[int, str, list[str]]:
    score = sum(responses)
    risk_level = classify_score(tool_type, score)
    recommendations = list(RECOMMENDATIONS.get(tool_type, {}).get(risk_level, []))
    return score, risk_level, recommendations


def submit_screening(
    db: Session,
    actor: User,
    tool_type: str,
    responses: list[int],
    is_anonymous: bool,
) -> ScreeningResult:
    institution_id = resolve_user_institution_id(db, actor)
    score, risk_level, recommendations = score_responses(tool_type, responses)

    result = ScreeningResult(
        user_id=actor.id,
        institution_id=institution_id,
        tool_type=tool_type,
        score=score,
        responses=list(responses),
        risk_level=risk_level,
        recommendations=recommendations,
        is_anonymous=is_anonymous,
    )
    db.add(result)
    db.commit()
    db.refresh(result)

    logger.info('Recorded %s screening %s for user %s (risk=%s)', tool_type, result.id, actor.id, risk_level)
    return result


def list_user_screenings(db: Session, user_id: int) -> list[ScreeningResult]:
    return (
        db.query(ScreeningResult)
        .filter(ScreeningResult.user_id == user_id)
        .order_by(ScreeningResult.created_at.desc(), ScreeningResult.id.desc())
        .all()
    )


def latest_screening(db: Session, user_id: int) -> ScreeningResult | None:
    return (
        db.query(ScreeningResult)
        .filter(ScreeningResult.user_id == user_id)
        .order_by(ScreeningResult.created_at.desc(), ScreeningResult.id.desc())
        .first()
    )


def summarize_screening(result: ScreeningResult) -> dict:
    return {
        'id': result.id,
        'tool_type': result.tool_type,
        'score': result.score,
        'risk_level': result.risk_level,
        'recommendations': list(result.recommendations or []),
        'created_at': result.created_at.isoformat() if result.created_at else None,
    }


def institution_analytics(db: Session, actor: User, institution_id: int) -> dict:
    require_role(actor, ROLE_ADMIN)

    screenings = db.query(ScreeningResult).filter(ScreeningResult.institution_id == institution_id).all()

    average_scores = {}
    for tool in SCREENING_TOOLS:
        scores = [s.score for s in screenings if s.tool_type == tool]
        average_scores[tool] = sum(scores) / len(scores) if scores else 0

    return {
        'total_screenings': len(screenings),
        'risk_levels': {level: sum(1 for s in screenings if s.risk_level == level) for level in RISK_LEVELS},
        'tool_usage': {tool: sum(1 for s in screenings if s.tool_type == tool) for tool in SCREENING_TOOLS},
        'average_scores': average_scores,
    }
