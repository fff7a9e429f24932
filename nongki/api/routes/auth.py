"""Sign in with Apple"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nongki.api.auth import http_error
from nongki.config import settings
from nongki.database.database import get_db
from nongki.services.exceptions import AuthenticationError
from nongki.services.identity import AppleIdentityVerifier, create_access_token, sign_in_with_apple

router = APIRouter()


class AppleSignInRequest(BaseModel):
    idToken: str = Field(..., min_length=1)
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    email: Optional[str] = None


class AuthResponse(BaseModel):
    success: bool = True
    token: str
    userId: int
    username: str


_verifier: Optional[AppleIdentityVerifier] = None


def get_apple_verifier() -> AppleIdentityVerifier:
    global _verifier
    if _verifier is None:
        _verifier = AppleIdentityVerifier(
            audience=settings.APPLE_BUNDLE_ID,
            verify=settings.APPLE_VERIFY_ID_TOKEN,
        )
    return _verifier


@router.post("/auth/apple", response_model=AuthResponse)
def apple_sign_in(
    body: AppleSignInRequest,
    db: Session = Depends(get_db),
    verifier: AppleIdentityVerifier = Depends(get_apple_verifier),
):
    """Exchange an Apple ID token for a session token, creating the user on first sign-in"""
    try:
        identity = verifier.verify(body.idToken)
    except AuthenticationError as e:
        raise http_error(e)

    user = sign_in_with_apple(
        db,
        identity,
        first_name=body.firstName,
        last_name=body.lastName,
        email=body.email,
    )

    return AuthResponse(token=create_access_token(user.id), userId=user.id, username=user.username)
