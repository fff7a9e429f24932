"""Friend request routes"""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nongki.api.auth import get_current_user, http_error
from nongki.database.database import get_db
from nongki.database.models import User
from nongki.services.exceptions import DomainError
from nongki.services.friend_service import FriendService
from nongki.services.notifier import Notifier, get_notifier

router = APIRouter()


class FriendRequestBody(BaseModel):
    username: str = Field(..., min_length=1)


def parse_request_id(request_id: str) -> int:
    """Request IDs look like "<requesterId>" or "<requesterId>-<recipientId>"."""
    try:
        return int(request_id.split("-")[0])
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request ID")


@router.post("/friends/request")
async def send_friend_request(
    body: FriendRequestBody,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Send a friend request, or accept the target's pending request to the current user"""
    try:
        result = await FriendService(db, notifier).request(user, body.username)
    except DomainError as e:
        raise http_error(e)
    return {"success": True, **result}


@router.post("/friends/accept/{request_id}")
async def accept_friend_request(
    request_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Accept a pending friend request"""
    requester_id = parse_request_id(request_id)
    try:
        result = await FriendService(db, notifier).accept(user, requester_id)
    except DomainError as e:
        raise http_error(e)
    return {"success": True, **result}
