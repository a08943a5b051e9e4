"""
Engagement Service.

This module provides `EngagementService`, the only component that writes to
the `EngagementStore`. Every mutating call follows the same cycle:

    load entity -> apply toggle / thread logic -> conditional save -> counters

Key Components:
- `_mutate`: the read-modify-write loop. The save is conditional on the
  version the entity was loaded at; on `ConflictError` the entity is reloaded
  and the logic re-applied after a jittered exponential backoff, up to
  `max_retries` attempts, after which the conflict is surfaced to the caller.
  Each lost race means another writer committed, so N concurrent writers on
  one entity all land as long as N <= max_retries. Authorization and
  validation failures raised by the logic are terminal and are never retried.
- Counter bumps with no read dependency (`views`, `subscriber_count`) go
  through the store's atomic increment instead.
- `toggle_subscription` touches two entities with no shared transaction. The
  subscriber's channel set is written first; if the target's counter then
  fails to move, the drift is logged with both ids and the delta and a
  `SubscriptionSyncError` is raised for a later reconciliation pass.
- Listing calls take a snapshot from the store and hand it to the ranking
  functions; they never write.

Architectural Design:
- Facade: the HTTP layer only sees this class and the pydantic views it
  returns. The store is injected at construction so the service can be built
  against any opened `EngagementStore`.
"""

import asyncio
import random
import re
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Type

from sqlmodel import SQLModel

from core.database import EngagementStore, entity_name
from core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    StoreUnavailableError,
    SubscriptionSyncError,
    ValidationError,
)
from core.logging_config import get_logger, log_function_call
from core.models import (
    CATEGORIES,
    CHANNEL_DESCRIPTION_MAX_LENGTH,
    CHANNEL_NAME_MAX_LENGTH,
    CommentPage,
    CommentRecord,
    CommentView,
    DESCRIPTION_MAX_LENGTH,
    Pagination,
    ReactionCounts,
    SubscriptionState,
    TAG_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    UserRecord,
    UserRole,
    UserView,
    VideoDetail,
    VideoPage,
    VideoRecord,
    VideoSummary,
)
from services import ranking, thread_manager
from services.toggle_engine import Polarity, as_stored, toggle_reaction, toggle_subscription

logger = get_logger(__name__)

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]{3,30}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[a-zA-Z]{2,}$")
URL_PATTERN = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)

MAX_BACKOFF_MS = 500


class EngagementService:
    """Orchestrates likes, comments, subscriptions, views and listings"""

    def __init__(
        self,
        store: EngagementStore,
        max_retries: int = 10,
        retry_backoff_ms: int = 5,
        default_page_size: int = 20,
        max_page_size: int = 100,
    ):
        self.store = store
        self.max_retries = max(1, max_retries)
        self.retry_backoff_ms = retry_backoff_ms
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    # Core read-modify-write loop

    async def _mutate(
        self,
        model: Type[SQLModel],
        entity_id: str,
        apply: Callable[[SQLModel], Optional[Sequence[SQLModel]]],
    ) -> SQLModel:
        """
        Load, apply and conditionally save one entity.

        `apply` mutates the loaded record in place and may return new records
        to insert in the same transaction.
        """
        for attempt in range(1, self.max_retries + 1):
            record = await self.store.require(model, entity_id)
            also_insert = apply(record) or ()
            try:
                return await self.store.save(record, also_insert=also_insert)
            except ConflictError:
                logger.debug(
                    f"Version conflict on {entity_name(model)} {entity_id}, attempt {attempt}",
                    extra={"entity_id": entity_id, "attempt": attempt},
                )
                if attempt < self.max_retries and self.retry_backoff_ms:
                    await asyncio.sleep(self._backoff(attempt))

        logger.warning(
            f"Giving up on {entity_name(model)} {entity_id} after {self.max_retries} conflicts",
            extra={"entity_id": entity_id, "attempts": self.max_retries},
        )
        raise ConflictError(entity_name(model), entity_id, self.max_retries)

    def _backoff(self, attempt: int) -> float:
        """Full-jitter exponential backoff in seconds"""
        ceiling = min(self.retry_backoff_ms * 2 ** (attempt - 1), MAX_BACKOFF_MS)
        return random.uniform(0, ceiling) / 1000

    async def _toggle_reaction(
        self, model: Type[SQLModel], entity_id: str, actor_id: str, polarity: Polarity
    ) -> ReactionCounts:
        def apply(record):
            likes, dislikes = toggle_reaction(record.likes, record.dislikes, actor_id, polarity)
            record.likes = as_stored(likes)
            record.dislikes = as_stored(dislikes)

        record = await self._mutate(model, entity_id, apply)
        logger.info(
            f"{polarity.value} toggled on {entity_name(model)} {entity_id}",
            extra={"entity_id": entity_id, "actor_id": actor_id},
        )
        return ReactionCounts(like_count=len(record.likes), dislike_count=len(record.dislikes))

    async def _role_of(self, user_id: str) -> str:
        user = await self.store.get(UserRecord, user_id)
        return user.role if user is not None else UserRole.USER.value

    def _page_size(self, page_size: Optional[int]) -> int:
        if page_size is None:
            return self.default_page_size
        if page_size < 1:
            raise ValidationError("page_size", page_size, "must be at least 1")
        return min(page_size, self.max_page_size)

    # Reactions

    async def toggle_video_like(self, video_id: str, actor_id: str) -> ReactionCounts:
        return await self._toggle_reaction(VideoRecord, video_id, actor_id, Polarity.LIKE)

    async def toggle_video_dislike(self, video_id: str, actor_id: str) -> ReactionCounts:
        return await self._toggle_reaction(VideoRecord, video_id, actor_id, Polarity.DISLIKE)

    async def toggle_comment_like(self, comment_id: str, actor_id: str) -> ReactionCounts:
        return await self._toggle_reaction(CommentRecord, comment_id, actor_id, Polarity.LIKE)

    async def toggle_comment_dislike(self, comment_id: str, actor_id: str) -> ReactionCounts:
        return await self._toggle_reaction(
            CommentRecord, comment_id, actor_id, Polarity.DISLIKE
        )

    # Views

    @log_function_call(logger)
    async def increment_view(self, video_id: str) -> int:
        return await self.store.increment(VideoRecord, video_id, "views")

    # Comments

    async def add_comment(self, video_id: str, actor_id: str, text: str) -> CommentView:
        video = await self.store.require(VideoRecord, video_id)
        comment = thread_manager.add_top_level_comment(video, actor_id, text)
        await self.store.insert(comment)
        logger.info(
            f"Comment {comment.id} added to video {video_id}",
            extra={"video_id": video_id, "actor_id": actor_id},
        )
        return CommentView.from_record(comment)

    async def add_reply(self, comment_id: str, actor_id: str, text: str) -> CommentView:
        created: List[CommentRecord] = []

        def apply(parent):
            reply, _ = thread_manager.add_reply(parent, actor_id, text)
            created[:] = [reply]
            return created

        await self._mutate(CommentRecord, comment_id, apply)
        reply = created[0]
        logger.info(
            f"Reply {reply.id} added under comment {comment_id}",
            extra={"comment_id": comment_id, "actor_id": actor_id},
        )
        return CommentView.from_record(reply)

    async def edit_comment(self, comment_id: str, actor_id: str, text: str) -> CommentView:
        def apply(comment):
            thread_manager.edit_comment(comment, text, actor_id)

        record = await self._mutate(CommentRecord, comment_id, apply)
        return CommentView.from_record(record)

    async def delete_comment(self, comment_id: str, actor_id: str) -> None:
        role = await self._role_of(actor_id)

        def apply(comment):
            thread_manager.soft_delete(comment, actor_id, role)

        await self._mutate(CommentRecord, comment_id, apply)
        logger.info(
            f"Comment {comment_id} soft-deleted",
            extra={"comment_id": comment_id, "actor_id": actor_id, "role": role},
        )

    async def list_comments(
        self, video_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> CommentPage:
        """
        One page of a video's thread: top-level comments newest first, each
        with its visible replies oldest first. Each call re-runs the page
        query, so a page can be fetched again at any time.
        """
        page_size = self._page_size(page_size)
        if page < 1:
            raise ValidationError("page", page, "must be at least 1")
        await self.store.require(VideoRecord, video_id)

        top_level = await self.store.list_top_level_comments(
            video_id, (page - 1) * page_size, page_size
        )
        total = await self.store.count_top_level_comments(video_id)
        replies = await self.store.list_replies([c.id for c in top_level])
        return CommentPage(
            comments=thread_manager.assemble_thread(top_level, replies),
            pagination=Pagination.of(page, page_size, total),
        )

    async def get_comment(self, comment_id: str) -> CommentView:
        comment = await self.store.require(CommentRecord, comment_id)
        replies = await self.store.list_replies([comment.id])
        return thread_manager.assemble_thread([comment], replies)[0]

    # Subscriptions

    @log_function_call(logger)
    async def toggle_subscription(self, target_user_id: str, actor_id: str) -> SubscriptionState:
        if target_user_id == actor_id:
            raise InvalidOperationError("Cannot subscribe to yourself", user_id=actor_id)
        await self.store.require(UserRecord, target_user_id)

        deltas: List[int] = []

        def apply(subscriber):
            channels, delta = toggle_subscription(
                subscriber.subscribed_channels, subscriber.id, target_user_id
            )
            subscriber.subscribed_channels = as_stored(channels)
            deltas[:] = [delta]

        await self._mutate(UserRecord, actor_id, apply)
        delta = deltas[0]

        try:
            count = await self.store.increment(
                UserRecord, target_user_id, "subscriber_count", delta
            )
        except (NotFoundError, StoreUnavailableError) as e:
            logger.error(
                "Subscriber count drift: channel set updated but counter was not",
                extra={
                    "subscriber_id": actor_id,
                    "target_id": target_user_id,
                    "delta": delta,
                    "error_code": e.error_code,
                },
            )
            raise SubscriptionSyncError(actor_id, target_user_id, delta, e.message) from e

        return SubscriptionState(subscribed=delta > 0, subscriber_count=count)

    async def list_subscriptions(self, user_id: str, actor_id: str) -> List[UserView]:
        if user_id != actor_id:
            raise ForbiddenError("Not authorized to view these subscriptions", user_id=user_id)
        user = await self.store.require(UserRecord, user_id)
        channels = await self.store.get_many(UserRecord, user.subscribed_channels)
        return [UserView.from_record(c) for c in sorted(channels, key=lambda c: c.username)]

    # Users and videos

    async def create_user(
        self,
        username: str,
        email: str,
        role: str = UserRole.USER.value,
        channel_name: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> UserView:
        username = (username or "").strip()
        email = (email or "").strip().lower()
        if not USERNAME_PATTERN.match(username):
            raise ValidationError(
                "username",
                username,
                "must be 3-30 characters of letters, numbers and underscores",
            )
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("email", email, "must be a valid email address")
        if role not in (UserRole.USER.value, UserRole.ADMIN.value):
            raise ValidationError("role", role, "must be 'user' or 'admin'")
        if await self.store.find_user(username=username, email=email) is not None:
            raise ValidationError("username", username, "username or email already taken")

        user = UserRecord(
            username=username,
            email=email,
            role=role,
            channel_name=channel_name or username,
            avatar=avatar,
        )
        await self.store.insert(user)
        logger.info(f"User {user.id} created", extra={"username": username})
        return UserView.from_record(user)

    async def get_user(self, user_id: str) -> UserView:
        return UserView.from_record(await self.store.require(UserRecord, user_id))

    async def update_user(
        self,
        user_id: str,
        actor_id: str,
        username: Optional[str] = None,
        channel_name: Optional[str] = None,
        channel_description: Optional[str] = None,
        avatar: Optional[str] = None,
    ) -> UserView:
        """Owner-only profile edit. Fields left as `None` keep their value."""
        if user_id != actor_id:
            raise ForbiddenError("Not authorized to update this profile", user_id=user_id)

        fields: Dict[str, Any] = {}
        if username is not None:
            username = username.strip()
            if not USERNAME_PATTERN.match(username):
                raise ValidationError(
                    "username",
                    username,
                    "must be 3-30 characters of letters, numbers and underscores",
                )
            fields["username"] = username
        if channel_name is not None:
            channel_name = channel_name.strip()
            if len(channel_name) > CHANNEL_NAME_MAX_LENGTH:
                raise ValidationError(
                    "channel_name",
                    channel_name,
                    f"must be at most {CHANNEL_NAME_MAX_LENGTH} characters",
                )
            fields["channel_name"] = channel_name
        if channel_description is not None:
            channel_description = channel_description.strip()
            if len(channel_description) > CHANNEL_DESCRIPTION_MAX_LENGTH:
                raise ValidationError(
                    "channel_description",
                    channel_description[:50],
                    f"must be at most {CHANNEL_DESCRIPTION_MAX_LENGTH} characters",
                )
            fields["channel_description"] = channel_description
        if avatar is not None:
            if not URL_PATTERN.match(avatar):
                raise ValidationError("avatar", avatar, "must be a valid URL")
            fields["avatar"] = avatar

        if "username" in fields:
            existing = await self.store.find_user(username=fields["username"])
            if existing is not None and existing.id != user_id:
                raise ValidationError("username", fields["username"], "username already taken")

        def apply(user):
            for name, value in fields.items():
                setattr(user, name, value)

        user = await self._mutate(UserRecord, user_id, apply)
        logger.info(
            f"User {user_id} updated",
            extra={"user_id": user_id, "fields": sorted(fields)},
        )
        return UserView.from_record(user)

    def _clean_video_fields(
        self,
        title: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
    ) -> Dict[str, Any]:
        """Validate the editable metadata fields that were supplied"""
        fields: Dict[str, Any] = {}
        if title is not None:
            fields["title"] = thread_manager.validate_text(title, TITLE_MAX_LENGTH, field="title")
        if description is not None:
            description = description.strip()
            if len(description) > DESCRIPTION_MAX_LENGTH:
                raise ValidationError(
                    "description",
                    description[:50],
                    f"must be at most {DESCRIPTION_MAX_LENGTH} characters",
                )
            fields["description"] = description
        if category is not None:
            if category not in CATEGORIES:
                raise ValidationError(
                    "category", category, f"must be one of {', '.join(CATEGORIES)}"
                )
            fields["category"] = category
        if tags is not None:
            cleaned_tags = [t.strip() for t in tags if t and t.strip()]
            for tag in cleaned_tags:
                if len(tag) > TAG_MAX_LENGTH:
                    raise ValidationError(
                        "tags", tag, f"tags must be at most {TAG_MAX_LENGTH} characters"
                    )
            fields["tags"] = cleaned_tags
        return fields

    async def create_video(
        self,
        uploader_id: str,
        title: str,
        description: str = "",
        category: str = "Other",
        tags: Iterable[str] = (),
        is_public: bool = True,
        video_url: Optional[str] = None,
        thumbnail_url: Optional[str] = None,
        duration: int = 0,
    ) -> VideoSummary:
        """Record an upload's metadata. Storage and transcoding happen elsewhere."""
        await self.store.require(UserRecord, uploader_id)
        fields = self._clean_video_fields(title, description or "", category, tags)

        video = VideoRecord(
            uploader_id=uploader_id,
            is_public=is_public,
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            duration=max(0, duration),
            **fields,
        )
        await self.store.insert(video)
        logger.info(f"Video {video.id} created", extra={"uploader_id": uploader_id})
        return VideoSummary.from_record(video)

    async def get_video(self, video_id: str, actor_id: Optional[str] = None) -> VideoDetail:
        """
        Watch-page detail. Opening a video counts as a view, so the returned
        counters already include this one. Private videos are only visible to
        their uploader; everyone else gets `NotFoundError`.
        """
        video = await self.store.require(VideoRecord, video_id)
        if not video.is_public and video.uploader_id != actor_id:
            raise NotFoundError("Video", video_id)
        video.views = await self.store.increment(VideoRecord, video_id, "views")
        return VideoDetail.from_record(video)

    async def update_video(
        self,
        video_id: str,
        actor_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        is_public: Optional[bool] = None,
    ) -> VideoDetail:
        """Owner-only metadata edit. Fields left as `None` keep their value."""
        fields = self._clean_video_fields(title, description, category, tags)
        if is_public is not None:
            fields["is_public"] = is_public

        def apply(video):
            if video.uploader_id != actor_id:
                raise ForbiddenError("Not authorized to update this video", video_id=video_id)
            for name, value in fields.items():
                setattr(video, name, value)

        video = await self._mutate(VideoRecord, video_id, apply)
        logger.info(
            f"Video {video_id} updated",
            extra={"video_id": video_id, "actor_id": actor_id, "fields": sorted(fields)},
        )
        return VideoDetail.from_record(video)

    async def set_video_visibility(
        self, video_id: str, actor_id: str, is_public: bool
    ) -> VideoSummary:
        return await self.update_video(video_id, actor_id, is_public=is_public)

    @log_function_call(logger)
    async def delete_video(self, video_id: str, actor_id: str) -> int:
        video = await self.store.require(VideoRecord, video_id)
        if video.uploader_id != actor_id and await self._role_of(actor_id) != UserRole.ADMIN.value:
            raise ForbiddenError("Not authorized to delete this video", video_id=video_id)
        removed = await self.store.delete_video(video_id)
        logger.info(
            f"Video {video_id} deleted with {removed} comments",
            extra={"video_id": video_id, "actor_id": actor_id},
        )
        return removed

    # Listings

    async def list_trending(self, limit: int = 20) -> List[VideoSummary]:
        snapshot = await self.store.list_videos(public_only=True)
        return [VideoSummary.from_record(v) for v in ranking.trending(snapshot, limit)]

    async def list_videos(
        self,
        category: Optional[str] = None,
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> VideoPage:
        page_size = self._page_size(page_size)
        snapshot = await self.store.list_videos(
            public_only=True, category=ranking.validate_category(category)
        )
        listed = ranking.browse(snapshot, category, sort_by, sort_order)
        videos, total = ranking.paginate(listed, page, page_size)
        return VideoPage(
            videos=[VideoSummary.from_record(v) for v in videos],
            pagination=Pagination.of(page, page_size, total),
        )

    async def list_by_category(
        self, category: str, page: int = 1, page_size: Optional[int] = None
    ) -> VideoPage:
        page_size = self._page_size(page_size)
        snapshot = await self.store.list_videos(
            public_only=True, category=ranking.validate_category(category)
        )
        videos, total = ranking.by_category(snapshot, category, page, page_size)
        return VideoPage(
            videos=[VideoSummary.from_record(v) for v in videos],
            pagination=Pagination.of(page, page_size, total),
        )

    async def search(
        self,
        query: str,
        category: Optional[str] = None,
        sort_by: str = "relevance",
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> VideoPage:
        page_size = self._page_size(page_size)
        snapshot = await self.store.list_videos(
            public_only=True, category=ranking.validate_category(category)
        )
        matches = ranking.search(snapshot, query, category, sort_by)
        videos, total = ranking.paginate(matches, page, page_size)
        return VideoPage(
            videos=[VideoSummary.from_record(v) for v in videos],
            pagination=Pagination.of(page, page_size, total),
        )

    async def list_channel_videos(
        self, user_id: str, page: int = 1, page_size: Optional[int] = None
    ) -> VideoPage:
        page_size = self._page_size(page_size)
        await self.store.require(UserRecord, user_id)
        snapshot = await self.store.list_videos(public_only=True, uploader_id=user_id)
        videos, total = ranking.channel_videos(snapshot, user_id, page, page_size)
        return VideoPage(
            videos=[VideoSummary.from_record(v) for v in videos],
            pagination=Pagination.of(page, page_size, total),
        )
