import logging
from typing import Any, Dict, Optional

from anyio import to_thread
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from app.core.database import get_client

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class Session(BaseModel):
    """Identity of the caller, passed explicitly into every service call."""

    user_id: str
    attributes: Dict[str, Any] = {}

    @property
    def role(self) -> str:
        return self.attributes.get("role", "student")

    @property
    def is_teacher(self) -> bool:
        return self.role == "teacher"


async def resolve_session(token: str) -> Optional[Session]:
    """Look up the auth user behind an access token."""
    client = get_client()
    try:
        response = await to_thread.run_sync(client.auth.get_user, token)
    except Exception:
        logger.warning("Rejected access token", exc_info=True)
        return None

    user = getattr(response, "user", None)
    if user is None:
        return None

    attributes = dict(user.user_metadata or {})
    if user.email:
        attributes.setdefault("email", user.email)
    return Session(user_id=str(user.id), attributes=attributes)


async def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Session]:
    """Optional identity: anonymous callers get None."""
    if credentials is None:
        return None
    return await resolve_session(credentials.credentials)


async def require_session(
    session: Optional[Session] = Depends(get_session),
) -> Session:
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in to continue",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return session
