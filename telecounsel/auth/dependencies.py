import logging

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from telecounsel.auth import jwt_handler
from telecounsel.database import get_db
from telecounsel.models.user import User
from telecounsel.scheduling.access import Actor, Role

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> Actor:
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token subject")

    user = db.get(User, str(user_id))
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")

    try:
        role = Role(user.role)
    except ValueError as exc:
        logger.warning("User %s has unknown role %r", user.id, user.role)
        raise HTTPException(status_code=403, detail="Forbidden") from exc

    claimed_role = payload.get("role")
    if claimed_role is not None and claimed_role != role.value:
        logger.warning("Token for user %s claims role %r but stored role is %r", user.id, claimed_role, role.value)
        raise HTTPException(status_code=401, detail="Token role mismatch")

    return Actor(id=user.id, role=role, email=user.email)


def require_roles(*roles: Role):
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if roles and actor.role not in roles:
            raise HTTPException(status_code=403, detail="Forbidden")
        return actor

    return dependency
