import jwt
from typing import Optional
from uuid import UUID
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.shared.core.config import get_settings
from app.shared.core.exceptions import AuthError, ForbiddenError
from app.shared.db.session import get_db
from app.models.user import User

logger = structlog.get_logger()

# auto_error=False: a missing header reaches us as None so we can answer 401
security = HTTPBearer(auto_error=False)

ROLE_HIERARCHY = {"owner": 100, "admin": 50, "member": 10}


class CurrentUser(BaseModel):
    """
    Represents the authenticated user behind the bearer token.
    """
    id: UUID
    email: str
    role: str = "member"  # owner, admin, member


def decode_jwt(token: str) -> dict:
    """
    Decode and verify an HS256 bearer token.

    - Signature is checked against JWT_SECRET
    - Expired tokens are rejected (exp claim)
    - Audience is checked only when JWT_AUDIENCE is configured

    Raises:
        AuthError if the token is invalid
    """
    settings = get_settings()
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}

    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=["HS256"],
            audience=settings.JWT_AUDIENCE,
            options=options,
        )
    except jwt.ExpiredSignatureError:
        logger.warning("jwt_expired")
        raise AuthError("Token has expired", code="token_expired")
    except jwt.InvalidTokenError as e:
        logger.warning("jwt_invalid", error=str(e))
        raise AuthError("Invalid token", code="token_invalid")


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> CurrentUser:
    """
    JWT + DB lookup. For protected routes.
    """
    if credentials is None:
        raise AuthError("Not authenticated")

    payload = decode_jwt(credentials.credentials)
    subject = payload.get("sub")

    try:
        user_id = UUID(subject) if subject else None
    except ValueError:
        user_id = None
    if user_id is None:
        raise AuthError("Invalid token payload", code="token_invalid")

    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise AuthError("User not found", code="user_not_found")

    request.state.user_id = user.id
    structlog.contextvars.bind_contextvars(user_id=str(user.id))

    return CurrentUser(id=user.id, email=user.email, role=user.role)


def requires_role(required_role: str):
    """
    FastAPI dependency for RBAC.

    Usage:
        @router.delete("/{account_id}")
        async def delete(user: CurrentUser = Depends(requires_role("admin"))):
            ...

    Access Levels:
    - owner: full access
    - admin: account management
    - member: viewing and working recommendations
    """
    def role_checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        user_level = ROLE_HIERARCHY.get(user.role, 0)
        required_level = ROLE_HIERARCHY.get(required_role, ROLE_HIERARCHY["member"])

        if user_level < required_level:
            logger.warning(
                "insufficient_permissions",
                user_id=str(user.id),
                user_role=user.role,
                required_role=required_role
            )
            raise ForbiddenError(f"Insufficient permissions. Required role: {required_role}")

        return user

    return role_checker
