"""Device registration routes"""

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from nongki.api.auth import get_current_user
from nongki.database.database import get_db
from nongki.database.models import User
from nongki.services.social_graph import SqlEndpointStore

router = APIRouter()


class DeviceRegistration(BaseModel):
    token: str = Field(..., min_length=1)
    platform: Literal["ios", "android"]


@router.post("/users/devices")
async def register_device(
    body: DeviceRegistration,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Register a push token for the current user, taking it over from any previous owner"""
    SqlEndpointStore(db).upsert(user.id, body.token, body.platform)
    return {"success": True}


@router.delete("/users/devices/{token}")
async def delete_device(
    token: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Unregister one of the current user's push tokens"""
    deleted = SqlEndpointStore(db).delete(user.id, token)
    return {"success": True, "deleted": deleted}
