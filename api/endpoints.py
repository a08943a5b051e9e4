"""
API Endpoints for video engagement.

This module maps HTTP requests onto `EngagementService` calls. Handlers stay
thin: they parse the request, pass the caller's identity along and return the
service's pydantic views. Errors raised by the service propagate to the
application's exception handler.

Routers:
- `videos_router` (`/api/videos`): browse, trending, category and search
  listings, the watch-page detail, view counting, likes/dislikes, metadata
  edits, visibility, deletion and the comment thread.
- `comments_router` (`/api/comments`): a single thread, replies, edits,
  soft deletion and comment reactions.
- `users_router` (`/api/users`): channel records, profile edits, uploads,
  subscriptions.
"""

import logging
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from core.logging_config import log_function_call
from core.models import (
    CommentPage,
    CommentView,
    ReactionCounts,
    SubscriptionState,
    UserView,
    VideoDetail,
    VideoPage,
    VideoSummary,
)
from services.engagement_service import EngagementService
from .dependencies import get_actor_id, get_engagement_service, get_optional_actor_id

logger = logging.getLogger(__name__)


videos_router = APIRouter(prefix="/api/videos", tags=["Videos"])
comments_router = APIRouter(prefix="/api/comments", tags=["Comments"])
users_router = APIRouter(prefix="/api/users", tags=["Users"])


# Request Models
class TextRequest(BaseModel):
    text: str


class VisibilityRequest(BaseModel):
    is_public: bool


class CreateVideoRequest(BaseModel):
    title: str
    description: str = ""
    category: str = "Other"
    tags: List[str] = Field(default_factory=list)
    is_public: bool = True
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: int = 0


class CreateUserRequest(BaseModel):
    username: str
    email: str
    channel_name: Optional[str] = None
    avatar: Optional[str] = None


class UpdateVideoRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None
    is_public: Optional[bool] = None


class UpdateUserRequest(BaseModel):
    username: Optional[str] = None
    channel_name: Optional[str] = None
    channel_description: Optional[str] = None
    avatar: Optional[str] = None


# Videos


@videos_router.get("", response_model=VideoPage)
async def list_videos(
    category: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.list_videos(category, sort_by, sort_order, page, limit)


@videos_router.get("/trending", response_model=List[VideoSummary])
async def list_trending(
    limit: int = Query(20, ge=1, le=100),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.list_trending(limit)


@videos_router.get("/search", response_model=VideoPage)
async def search_videos(
    q: str = Query(..., min_length=1),
    category: Optional[str] = None,
    sort_by: str = "relevance",
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.search(q, category, sort_by, page, limit)


@videos_router.get("/category/{category}", response_model=VideoPage)
async def list_by_category(
    category: str,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.list_by_category(category, page, limit)


@videos_router.post("", response_model=VideoSummary, status_code=status.HTTP_201_CREATED)
async def create_video(
    request: CreateVideoRequest,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.create_video(actor_id, **request.model_dump())


@videos_router.get("/{video_id}", response_model=VideoDetail)
async def get_video(
    video_id: str,
    actor_id: Optional[str] = Depends(get_optional_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.get_video(video_id, actor_id)


@videos_router.put("/{video_id}", response_model=VideoDetail)
async def update_video(
    video_id: str,
    request: UpdateVideoRequest,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.update_video(video_id, actor_id, **request.model_dump())


@videos_router.post("/{video_id}/view")
async def record_view(
    video_id: str, service: EngagementService = Depends(get_engagement_service)
) -> Dict[str, int]:
    return {"views": await service.increment_view(video_id)}


@videos_router.post("/{video_id}/like", response_model=ReactionCounts)
@log_function_call(logger)
async def toggle_video_like(
    video_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.toggle_video_like(video_id, actor_id)


@videos_router.post("/{video_id}/dislike", response_model=ReactionCounts)
@log_function_call(logger)
async def toggle_video_dislike(
    video_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.toggle_video_dislike(video_id, actor_id)


@videos_router.patch("/{video_id}/visibility", response_model=VideoSummary)
async def set_visibility(
    video_id: str,
    request: VisibilityRequest,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.set_video_visibility(video_id, actor_id, request.is_public)


@videos_router.delete("/{video_id}")
async def delete_video(
    video_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    removed = await service.delete_video(video_id, actor_id)
    return {"deleted": True, "comments_removed": removed}


@videos_router.get("/{video_id}/comments", response_model=CommentPage)
async def list_comments(
    video_id: str,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.list_comments(video_id, page, limit)


@videos_router.post(
    "/{video_id}/comments",
    response_model=CommentView,
    status_code=status.HTTP_201_CREATED,
)
async def add_comment(
    video_id: str,
    request: TextRequest,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.add_comment(video_id, actor_id, request.text)


# Comments


@comments_router.get("/{comment_id}", response_model=CommentView)
async def get_comment(
    comment_id: str, service: EngagementService = Depends(get_engagement_service)
):
    return await service.get_comment(comment_id)


@comments_router.post(
    "/{comment_id}/replies",
    response_model=CommentView,
    status_code=status.HTTP_201_CREATED,
)
async def add_reply(
    comment_id: str,
    request: TextRequest,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.add_reply(comment_id, actor_id, request.text)


@comments_router.put("/{comment_id}", response_model=CommentView)
async def edit_comment(
    comment_id: str,
    request: TextRequest,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.edit_comment(comment_id, actor_id, request.text)


@comments_router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    await service.delete_comment(comment_id, actor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@comments_router.post("/{comment_id}/like", response_model=ReactionCounts)
async def toggle_comment_like(
    comment_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.toggle_comment_like(comment_id, actor_id)


@comments_router.post("/{comment_id}/dislike", response_model=ReactionCounts)
async def toggle_comment_dislike(
    comment_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.toggle_comment_dislike(comment_id, actor_id)


# Users


@users_router.post("", response_model=UserView, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.create_user(
        request.username,
        request.email,
        channel_name=request.channel_name,
        avatar=request.avatar,
    )


@users_router.get("/{user_id}", response_model=UserView)
async def get_user(user_id: str, service: EngagementService = Depends(get_engagement_service)):
    return await service.get_user(user_id)


@users_router.put("/{user_id}", response_model=UserView)
async def update_user(
    user_id: str,
    request: UpdateUserRequest,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.update_user(user_id, actor_id, **request.model_dump())


@users_router.get("/{user_id}/videos", response_model=VideoPage)
async def list_channel_videos(
    user_id: str,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.list_channel_videos(user_id, page, limit)


@users_router.get("/{user_id}/subscriptions", response_model=List[UserView])
async def list_subscriptions(
    user_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.list_subscriptions(user_id, actor_id)


@users_router.post("/{user_id}/subscribe", response_model=SubscriptionState)
@log_function_call(logger)
async def toggle_subscription(
    user_id: str,
    actor_id: str = Depends(get_actor_id),
    service: EngagementService = Depends(get_engagement_service),
):
    return await service.toggle_subscription(user_id, actor_id)
