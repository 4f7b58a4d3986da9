from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt

from reputation.config import get_settings

settings = get_settings()

ALGORITHM = "HS256"
BEARER_PREFIX = "Bearer "

ADMIN_ROLE = "admin"
MODERATOR_ROLE = "moderator"


@dataclass(frozen=True)
class Actor:
    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def decode_access_token(token: str) -> Optional[Actor]:
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    return Actor(id=user_id, role=payload.get("role", "user"))


async def get_current_actor(request: Request) -> Actor:
    header = request.headers.get("Authorization", "")
    actor = None
    if header.startswith(BEARER_PREFIX):
        actor = decode_access_token(header[len(BEARER_PREFIX):])

    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return actor


def require_roles(*roles: str):
    """Dependency factory: the actor's role must be one of roles."""

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return actor

    return dependency
