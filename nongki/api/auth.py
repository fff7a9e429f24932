"""
Nongki authentication dependencies.

Resolves the bearer session token issued by /auth/apple to a User row.
"""

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from nongki.database.database import get_db
from nongki.database.models import User
from nongki.services.exceptions import AuthenticationError, DomainError
from nongki.services.identity import decode_access_token

security = HTTPBearer(auto_error=False)


def http_error(error: DomainError) -> HTTPException:
    """Convert a domain error into the HTTPException the routers raise."""
    detail = {"error": error.message, **error.details} if error.details else error.message
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(error, AuthenticationError) else None
    return HTTPException(status_code=error.status_code, detail=detail, headers=headers)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get the authenticated user from the bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = decode_access_token(credentials.credentials)
    except AuthenticationError as e:
        raise http_error(e)

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User no longer exists",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
