"""
Core data models for the Engagement API

Defines the persisted records (users, videos, comments) and the pydantic
views the service returns to the HTTP layer.

Reaction and subscription sets are stored as sorted JSON lists of user ids.
Every record carries a `version` used for conditional writes.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, JSON
from sqlalchemy.types import TypeDecorator
from pydantic import BaseModel

DELETED_PLACEHOLDER = "[This comment has been deleted]"

COMMENT_MAX_LENGTH = 1000
REPLY_MAX_LENGTH = 500
TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 5000
TAG_MAX_LENGTH = 20
CHANNEL_NAME_MAX_LENGTH = 50
CHANNEL_DESCRIPTION_MAX_LENGTH = 500

CATEGORIES = (
    "Music",
    "Gaming",
    "Education",
    "Entertainment",
    "News",
    "Sports",
    "Technology",
    "Travel",
    "Cooking",
    "Fitness",
    "Other",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCTimestamp(TypeDecorator):
    """
    Timezone-aware timestamp column.

    SQLite stores datetimes without an offset, so values read back are naive;
    they are tagged as UTC here so every record compares like with like.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


def timestamp_column(index: bool = False) -> Column:
    return Column(UTCTimestamp(), nullable=False, index=index)


def new_id() -> str:
    return uuid.uuid4().hex


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class UserRecord(SQLModel, table=True):
    """
    Channel owner / viewer account. Credentials live with the auth layer.
    """

    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    username: str = Field(index=True, unique=True, max_length=30)
    email: str = Field(index=True, unique=True, max_length=255)
    role: str = Field(default=UserRole.USER.value, max_length=16)
    avatar: Optional[str] = Field(default=None, max_length=1024)
    channel_name: Optional[str] = Field(default=None, max_length=CHANNEL_NAME_MAX_LENGTH)
    channel_description: Optional[str] = Field(
        default=None, max_length=CHANNEL_DESCRIPTION_MAX_LENGTH
    )
    subscriber_count: int = Field(default=0)
    subscribed_channels: List[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())


class VideoRecord(SQLModel, table=True):
    """
    Uploaded video metadata and engagement counters.
    """

    __tablename__ = "videos"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    uploader_id: str = Field(index=True, foreign_key="users.id", max_length=32)
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)
    category: str = Field(default="Other", index=True, max_length=32)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    video_url: Optional[str] = Field(default=None, max_length=1024)
    thumbnail_url: Optional[str] = Field(default=None, max_length=1024)
    duration: int = Field(default=0)  # seconds
    views: int = Field(default=0, index=True)
    likes: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    dislikes: List[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    is_public: bool = Field(default=True, index=True)
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column(index=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())


class CommentRecord(SQLModel, table=True):
    """
    A top-level comment or a reply. Replies point at their parent through
    `parent_comment_id`; the parent keeps the display order in `replies`.
    """

    __tablename__ = "comments"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=32)
    video_id: str = Field(index=True, foreign_key="videos.id", max_length=32)
    author_id: str = Field(index=True, max_length=32)
    text: str = Field(max_length=COMMENT_MAX_LENGTH)
    likes: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    dislikes: List[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    parent_comment_id: Optional[str] = Field(default=None, index=True, max_length=32)
    replies: List[str] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    is_edited: bool = Field(default=False)
    edit_history: List[Dict[str, str]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )
    is_deleted: bool = Field(default=False, index=True)
    version: int = Field(default=1)
    created_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column(index=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())


# Response views


class ReactionCounts(BaseModel):
    like_count: int
    dislike_count: int


class SubscriptionState(BaseModel):
    subscribed: bool
    subscriber_count: int


class CommentView(BaseModel):
    id: str
    video_id: str
    author_id: str
    text: str
    like_count: int
    dislike_count: int
    parent_comment_id: Optional[str] = None
    reply_count: int = 0
    is_edited: bool = False
    is_deleted: bool = False
    created_at: datetime
    replies: List["CommentView"] = []

    @classmethod
    def from_record(
        cls, record: CommentRecord, replies: Optional[List["CommentView"]] = None
    ) -> "CommentView":
        return cls(
            id=record.id,
            video_id=record.video_id,
            author_id=record.author_id,
            text=record.text,
            like_count=len(record.likes),
            dislike_count=len(record.dislikes),
            parent_comment_id=record.parent_comment_id,
            reply_count=len(record.replies),
            is_edited=record.is_edited,
            is_deleted=record.is_deleted,
            created_at=record.created_at,
            replies=replies or [],
        )


class VideoSummary(BaseModel):
    id: str
    uploader_id: str
    title: str
    category: str
    thumbnail_url: Optional[str] = None
    duration: int = 0
    views: int
    like_count: int
    dislike_count: int
    created_at: datetime

    @classmethod
    def from_record(cls, record: VideoRecord) -> "VideoSummary":
        return cls(
            id=record.id,
            uploader_id=record.uploader_id,
            title=record.title,
            category=record.category,
            thumbnail_url=record.thumbnail_url,
            duration=record.duration,
            views=record.views,
            like_count=len(record.likes),
            dislike_count=len(record.dislikes),
            created_at=record.created_at,
        )


class VideoDetail(VideoSummary):
    """Everything the watch page shows, counters included"""

    description: str = ""
    tags: List[str] = []
    video_url: Optional[str] = None
    is_public: bool = True
    updated_at: datetime

    @classmethod
    def from_record(cls, record: VideoRecord) -> "VideoDetail":
        summary = VideoSummary.from_record(record).model_dump()
        return cls(
            **summary,
            description=record.description,
            tags=list(record.tags),
            video_url=record.video_url,
            is_public=record.is_public,
            updated_at=record.updated_at,
        )


class UserView(BaseModel):
    id: str
    username: str
    role: str
    avatar: Optional[str] = None
    channel_name: Optional[str] = None
    channel_description: Optional[str] = None
    subscriber_count: int
    subscribed_count: int

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserView":
        return cls(
            id=record.id,
            username=record.username,
            role=record.role,
            avatar=record.avatar,
            channel_name=record.channel_name,
            channel_description=record.channel_description,
            subscriber_count=record.subscriber_count,
            subscribed_count=len(record.subscribed_channels),
        )


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def of(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=-(-total // limit))


class VideoPage(BaseModel):
    videos: List[VideoSummary]
    pagination: Pagination


class CommentPage(BaseModel):
    comments: List[CommentView]
    pagination: Pagination
