"""
Principal resolution for bearer-authenticated requests.

Tokens are issued by the identity provider that shares ``SECRET_KEY``
with this service; here they are only verified.  The user id travels in
the ``id`` claim.
"""
import logging
from dataclasses import dataclass

import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.errors import UnauthorizedError
from app.models import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Principal:
    """The authenticated actor of a request."""

    id: int
    username: str
    email: str
    role_name: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            role_name=user.role.name if user.role else None,
        )


def decode_access_token(token: str) -> int:
    """Verify *token* and return the user id it was issued for."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise UnauthorizedError("Invalid credentials") from exc

    user_id = payload.get("id")
    if isinstance(user_id, str) and user_id.isdigit():
        user_id = int(user_id)
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise UnauthorizedError("Invalid credentials")
    return user_id


async def load_principal(db: AsyncSession, user_id: int) -> Principal | None:
    """Return the principal for *user_id*, or None for unknown or blocked users."""
    q = select(User).where(User.id == user_id).options(selectinload(User.role))
    user = (await db.execute(q)).scalar_one_or_none()
    if user is None or user.blocked:
        return None
    return Principal.from_user(user)
