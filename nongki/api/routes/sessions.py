"""Nongki session routes"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from nongki.api.auth import get_current_user, http_error
from nongki.database.database import get_db
from nongki.database.models import ResponseType, User
from nongki.services.exceptions import DomainError
from nongki.services.notifier import Notifier, get_notifier
from nongki.services.session_service import SessionService

router = APIRouter()


class SessionResponseBody(BaseModel):
    responseType: ResponseType


@router.post("/sessions/start")
async def start_session(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Start a session and notify friends"""
    try:
        result = await SessionService(db, notifier).start(user)
    except DomainError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.post("/sessions/{session_id}/end")
async def end_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """End the current user's session and notify friends"""
    try:
        result = await SessionService(db, notifier).end(user, session_id)
    except DomainError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.post("/sessions/{session_id}/respond")
async def respond_to_session(
    session_id: int,
    body: SessionResponseBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Respond to a friend's session and notify its owner"""
    try:
        result = await SessionService(db, notifier).respond(user, session_id, body.responseType)
    except DomainError as e:
        raise http_error(e)
    return {"success": True, **result}
