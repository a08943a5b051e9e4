"""
Engagement Store.

This module owns durability for the engagement core. It wraps an asynchronous
SQLAlchemy engine and hands out short-lived sessions for every read and write.

Key Components:
- `EngagementStore`: the store object. It is constructed explicitly, opened
  once at startup (`open`) and closed on shutdown (`close`). No engine or
  session factory lives at module level.
- Conditional writes (`save`): every record carries a `version`. A write is an
  `UPDATE ... WHERE id = :id AND version = :expected` that bumps the version.
  When no row matches and the record still exists, the write lost a race and
  `ConflictError` is raised so the caller can reload and retry.
- Atomic counters (`increment`): pure counter bumps (`views`,
  `subscriber_count`) are a single `SET col = col + :delta` statement, so
  concurrent increments never overwrite each other. They leave `version`
  untouched and `save` never writes them back.
- Error wrapping: any `SQLAlchemyError` surfaces as `StoreUnavailableError`.

Architectural Design:
- SQLite is driven through `aiosqlite` and PostgreSQL through `asyncpg`, chosen
  by the URL scheme. Sessions never hold a read transaction open across the
  load-mutate-save cycle; the version check alone decides the winner.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence, Type

from sqlmodel import SQLModel
from sqlalchemy import delete, exists, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import aliased
from sqlalchemy.pool import AsyncAdaptedQueuePool

from core.exceptions import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from core.models import CommentRecord, UserRecord, VideoRecord, utcnow

logger = logging.getLogger(__name__)

# Columns owned by `increment`; conditional saves skip them
COUNTER_COLUMNS = frozenset({"views", "subscriber_count"})


def entity_name(model: Type[SQLModel]) -> str:
    return model.__name__.replace("Record", "")


class EngagementStore:
    """Async document store for users, videos and comments"""

    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.echo = echo
        self.engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def database_type(self) -> str:
        return "postgresql" if "postgresql" in self.database_url else "sqlite"

    @property
    def is_open(self) -> bool:
        return self.engine is not None

    async def open(self) -> None:
        """
        Create the engine and all tables.
        Called during application startup.
        """
        if self.engine is not None:
            return

        if self.database_url.startswith("sqlite"):
            # SQLite configuration with aiosqlite
            self.engine = create_async_engine(
                self.database_url,
                connect_args={"check_same_thread": False, "timeout": 15},
                echo=self.echo,
                poolclass=AsyncAdaptedQueuePool,
            )
        else:
            # PostgreSQL configuration with asyncpg
            self.engine = create_async_engine(
                self.database_url,
                poolclass=AsyncAdaptedQueuePool,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=self.echo,
            )

        self._session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            logger.info("Engagement store tables created successfully")
        except SQLAlchemyError as e:
            logger.error(f"Failed to create engagement store tables: {e}")
            await self.close()
            raise StoreUnavailableError("open", str(e)) from e

    async def close(self) -> None:
        if self.engine is None:
            return
        await self.engine.dispose()
        self.engine = None
        self._session_factory = None
        logger.info("Engagement store closed")

    @asynccontextmanager
    async def session(self, operation: str) -> AsyncIterator[AsyncSession]:
        """Session scope that translates driver failures into StoreUnavailableError"""
        if self._session_factory is None:
            raise StoreUnavailableError(operation, "store is not open")
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError as e:
            logger.warning(f"Integrity violation during {operation}: {e.orig}")
            raise ValidationError(operation, "", "record violates a uniqueness constraint") from e
        except SQLAlchemyError as e:
            logger.error(
                f"Store operation {operation} failed: {e}",
                extra={"operation": operation, "error_type": type(e).__name__},
            )
            raise StoreUnavailableError(operation, str(e)) from e

    # Reads

    async def get(self, model: Type[SQLModel], entity_id: str) -> Optional[Any]:
        async with self.session(f"get_{entity_name(model).lower()}") as session:
            return await session.get(model, entity_id)

    async def require(self, model: Type[SQLModel], entity_id: str) -> Any:
        record = await self.get(model, entity_id)
        if record is None:
            raise NotFoundError(entity_name(model), entity_id)
        return record

    async def get_many(self, model: Type[SQLModel], ids: Iterable[str]) -> List[Any]:
        ids = list(ids)
        if not ids:
            return []
        async with self.session(f"get_many_{entity_name(model).lower()}") as session:
            result = await session.execute(select(model).where(model.id.in_(ids)))
            return list(result.scalars().all())

    async def find_user(
        self, username: Optional[str] = None, email: Optional[str] = None
    ) -> Optional[UserRecord]:
        clauses = []
        if username:
            clauses.append(UserRecord.username == username)
        if email:
            clauses.append(UserRecord.email == email.lower())
        if not clauses:
            return None
        async with self.session("find_user") as session:
            result = await session.execute(select(UserRecord).where(or_(*clauses)))
            return result.scalars().first()

    async def list_videos(
        self,
        public_only: bool = True,
        category: Optional[str] = None,
        uploader_id: Optional[str] = None,
    ) -> List[VideoRecord]:
        """Snapshot of videos for the ranking functions"""
        statement = select(VideoRecord)
        if public_only:
            statement = statement.where(VideoRecord.is_public == True)  # noqa: E712
        if category:
            statement = statement.where(VideoRecord.category == category)
        if uploader_id:
            statement = statement.where(VideoRecord.uploader_id == uploader_id)
        async with self.session("list_videos") as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    def _visible_top_level(self, video_id: str):
        # Deleted top-level comments stay listed while a visible reply hangs off them
        reply = aliased(CommentRecord)
        has_visible_reply = exists().where(
            reply.parent_comment_id == CommentRecord.id,
            reply.is_deleted == False,  # noqa: E712
        )
        return (
            CommentRecord.video_id == video_id,
            CommentRecord.parent_comment_id.is_(None),
            or_(CommentRecord.is_deleted == False, has_visible_reply),  # noqa: E712
        )

    async def list_top_level_comments(
        self, video_id: str, offset: int, limit: int
    ) -> List[CommentRecord]:
        statement = (
            select(CommentRecord)
            .where(*self._visible_top_level(video_id))
            .order_by(CommentRecord.created_at.desc(), CommentRecord.id.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self.session("list_comments") as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    async def count_top_level_comments(self, video_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(CommentRecord)
            .where(*self._visible_top_level(video_id))
        )
        async with self.session("count_comments") as session:
            result = await session.execute(statement)
            return int(result.scalar_one())

    async def list_replies(self, parent_ids: Sequence[str]) -> List[CommentRecord]:
        """Visible replies of the given parents, oldest first"""
        if not parent_ids:
            return []
        statement = (
            select(CommentRecord)
            .where(
                CommentRecord.parent_comment_id.in_(list(parent_ids)),
                CommentRecord.is_deleted == False,  # noqa: E712
            )
            .order_by(CommentRecord.created_at.asc(), CommentRecord.id.asc())
        )
        async with self.session("list_replies") as session:
            result = await session.execute(statement)
            return list(result.scalars().all())

    # Writes

    async def insert(self, *records: SQLModel) -> None:
        async with self.session("insert") as session:
            session.add_all(records)
            await session.commit()

    async def save(self, record: Any, also_insert: Sequence[SQLModel] = ()) -> Any:
        """
        Conditionally write `record` back, keyed on the version it was loaded at.

        `also_insert` records are written in the same transaction, so a new
        reply and its parent's updated reply list commit or fail together.

        Raises:
            ConflictError: another writer bumped the version first
            NotFoundError: the record no longer exists
        """
        model = type(record)
        now = utcnow()
        values: Dict[str, Any] = record.model_dump(
            exclude={"id", "version", "created_at", *COUNTER_COLUMNS}
        )
        values["updated_at"] = now
        values["version"] = record.version + 1
        statement = (
            update(model)
            .where(model.id == record.id, model.version == record.version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        async with self.session(f"save_{entity_name(model).lower()}") as session:
            session.add_all(also_insert)
            result = await session.execute(statement)
            if result.rowcount == 0:
                await session.rollback()
                if await session.get(model, record.id) is None:
                    raise NotFoundError(entity_name(model), record.id)
                raise ConflictError(entity_name(model), record.id)
            await session.commit()

        record.version += 1
        record.updated_at = now
        return record

    async def increment(
        self, model: Type[SQLModel], entity_id: str, column: str, delta: int = 1
    ) -> int:
        """
        Atomically add `delta` to a counter column and return the new value.

        The version is left alone: counters are never part of a conditional
        `save`, so a view or subscriber bump does not invalidate a pending
        reaction or comment write.
        """
        counter = getattr(model, column)
        statement = (
            update(model)
            .where(model.id == entity_id)
            .values({column: counter + delta, "updated_at": utcnow()})
            .execution_options(synchronize_session=False)
        )
        async with self.session(f"increment_{column}") as session:
            result = await session.execute(statement)
            if result.rowcount == 0:
                await session.rollback()
                raise NotFoundError(entity_name(model), entity_id)
            value = await session.execute(select(counter).where(model.id == entity_id))
            new_value = int(value.scalar_one())
            await session.commit()
        return new_value

    async def delete_video(self, video_id: str) -> int:
        """Hard-delete a video and every comment on it. Returns the comment count removed."""
        async with self.session("delete_video") as session:
            removed = await session.execute(
                delete(CommentRecord)
                .where(CommentRecord.video_id == video_id)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(
                delete(VideoRecord)
                .where(VideoRecord.id == video_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                raise NotFoundError("Video", video_id)
            await session.commit()
        return removed.rowcount

    # Health

    async def health_check(self) -> Dict[str, Any]:
        """
        Perform a health check on the store.
        """
        try:
            async with self.session("health_check") as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
                result = await session.execute(select(func.count()).select_from(VideoRecord))
                result.scalar()

            return {
                "status": "healthy",
                "database_type": self.database_type,
                "tables_accessible": True,
            }
        except StoreUnavailableError as e:
            return {
                "status": "unhealthy",
                "error": e.message,
                "database_type": self.database_type,
            }

    def info(self) -> Dict[str, Any]:
        pool = self.engine.pool if self.engine is not None else None
        return {
            "database_url": self.database_url.split("@")[1]
            if "@" in self.database_url
            else "masked",  # Hide credentials
            "database_type": self.database_type,
            "open": self.is_open,
            "engine_info": {
                "pool_size": getattr(pool, "size", lambda: "unknown")(),
                "checked_out": getattr(pool, "checkedout", lambda: "unknown")(),
            },
        }
