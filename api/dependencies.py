from typing import Optional
from fastapi import Header, HTTPException, Request

from core.database import EngagementStore
from services.engagement_service import EngagementService


def get_engagement_service(request: Request) -> EngagementService:
    return request.app.state.engagement_service


def get_store(request: Request) -> EngagementStore:
    return request.app.state.store


async def get_actor_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> str:
    """Caller identity, stamped on the request by the upstream auth layer"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


async def get_optional_actor_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Optional[str]:
    """Caller identity on public routes, where anonymous reads are allowed"""
    return x_user_id or None
