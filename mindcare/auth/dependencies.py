import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from mindcare.auth import jwt_handler
from mindcare.database import get_db
from mindcare.models.user import User

security = HTTPBearer()

logger = logging.getLogger(__name__)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    try:
        payload = jwt_handler.decode_access_token(token)
    except Exception as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    email = (payload.get("sub") or "").strip().lower()
    if not email:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.query(User).filter(User.email == email).first()
    if user is None:
        # First sign-in: the role stays unset until booking or admin assignment.
        user = User(email=email, name=payload.get("name"), role=None, is_anonymous=False)
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info("Provisioned user %s on first sign-in", user.id)
    return user
