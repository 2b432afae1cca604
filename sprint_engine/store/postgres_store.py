"""PostgreSQL-backed sprint store.

Uses SQLAlchemy async with asyncpg. The schema carries the scheduling
invariants itself: a partial unique index allows one ACTIVE sprint per
project and a gist exclusion constraint rejects overlapping open sprints.
The engine's own checks are an optimistic pre-check; the losing writer of a
race hits the constraint and surfaces as ConflictError.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Iterable

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Enum as SAEnum,
    delete,
    func,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import ExcludeConstraint
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from sprint_engine.config import settings
from sprint_engine.exceptions import ConflictError, NotFoundError, SprintEngineError, ValidationError
from sprint_engine.models.schemas import (
    CommentType,
    Sprint,
    SprintComment,
    SprintStatus,
    Story,
    StoryStatus,
)
from sprint_engine.retry import retry_on_database_error

logger = logging.getLogger(__name__)

SERIALIZATION_FAILURE = "40001"


def _new_id() -> str:
    return str(uuid.uuid4())


# ── ORM Base ──


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all tables."""
    pass


# ── Tables ──


class SprintRow(Base):
    """A sprint of a project."""

    __tablename__ = "sprints"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    goal = Column(Text, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(
        SAEnum(SprintStatus, name="sprint_status"),
        nullable=False,
        default=SprintStatus.PLANNING,
        server_default=SprintStatus.PLANNING.value,
    )
    capacity = Column(Integer, nullable=True)
    velocity = Column(Integer, nullable=True)
    # Owned by the project service; stored verbatim
    project_id = Column(Text, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=func.now(), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=func.now(), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_sprints_date_order"),
        CheckConstraint(
            "(velocity IS NULL) = (status <> 'COMPLETED')",
            name="ck_sprints_velocity_iff_completed",
        ),
        Index(
            "uq_sprints_one_active_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
        ),
        ExcludeConstraint(
            (project_id, "="),
            (func.daterange(start_date, end_date, "[]"), "&&"),
            name="ex_sprints_no_overlap",
            using="gist",
            where=text("status IN ('PLANNING', 'ACTIVE')"),
        ),
    )


class StoryRow(Base):
    """The columns of a backlog story the engine relies on."""

    __tablename__ = "stories"

    # Story and project ids come from the backlog service
    id = Column(Text, primary_key=True, default=_new_id)
    title = Column(String(500), nullable=False, default="", server_default="")
    project_id = Column(Text, nullable=False, index=True)
    sprint_id = Column(String(36), ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(
        SAEnum(StoryStatus, name="story_status"),
        nullable=False,
        default=StoryStatus.TODO,
        server_default=StoryStatus.TODO.value,
    )
    story_points = Column(Integer, nullable=True)


class SprintCommentRow(Base):
    """Append-only notes attached to a sprint."""

    __tablename__ = "sprint_comments"

    id = Column(String(36), primary_key=True, default=_new_id)
    content = Column(Text, nullable=False)
    type = Column(
        SAEnum(CommentType, name="comment_type"),
        nullable=False,
        default=CommentType.GENERAL,
        server_default=CommentType.GENERAL.value,
    )
    sprint_id = Column(String(36), ForeignKey("sprints.id", ondelete="CASCADE"), nullable=False)
    # Caller identity from the gateway, e.g. "auth0|5f7c..."
    author_id = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=func.now(), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_sprint_comments_sprint_created", "sprint_id", "created_at"),
    )


# ── Error Translation ──

_CONSTRAINT_ERRORS: dict[str, SprintEngineError] = {
    "uq_sprints_one_active_per_project": ConflictError(
        "Cannot start sprint: Another sprint is already active in this project"
    ),
    "ex_sprints_no_overlap": ConflictError("Sprint dates overlap with existing active or planning sprint"),
    "ck_sprints_date_order": ValidationError("End date must be after start date"),
    "ck_sprints_velocity_iff_completed": ValidationError(
        "Velocity is recorded exactly when a sprint is completed"
    ),
}


def translate_integrity_error(exc: IntegrityError) -> SprintEngineError:
    """Map a violated constraint onto the engine's error taxonomy."""
    detail = str(exc.orig)
    for constraint, error in _CONSTRAINT_ERRORS.items():
        if constraint in detail:
            return type(error)(error.message)
    return ConflictError("Sprint change conflicts with existing data")


def is_serialization_failure(exc: DBAPIError) -> bool:
    code = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    return code == SERIALIZATION_FAILURE


# ── Repositories ──


class PostgresSprintRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, values: dict[str, Any]) -> Sprint:
        row = SprintRow(**values)
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return Sprint.model_validate(row)

    async def find_by_id(self, sprint_id: str) -> Sprint | None:
        row = await self._session.get(SprintRow, sprint_id)
        return Sprint.model_validate(row) if row is not None else None

    async def find_many(
        self,
        *,
        project_id: str | None = None,
        statuses: Iterable[SprintStatus] | None = None,
        exclude_id: str | None = None,
    ) -> list[Sprint]:
        stmt = select(SprintRow)
        if project_id is not None:
            stmt = stmt.where(SprintRow.project_id == project_id)
        if statuses is not None:
            stmt = stmt.where(SprintRow.status.in_(list(statuses)))
        if exclude_id is not None:
            stmt = stmt.where(SprintRow.id != exclude_id)
        result = await self._session.scalars(stmt)
        return [Sprint.model_validate(row) for row in result]

    async def update(self, sprint_id: str, values: dict[str, Any]) -> Sprint:
        row = await self._session.get(SprintRow, sprint_id)
        if row is None:
            raise NotFoundError(f"Sprint with ID {sprint_id} not found")
        for field, value in values.items():
            setattr(row, field, value)
        await self._session.flush()
        await self._session.refresh(row)
        return Sprint.model_validate(row)

    async def delete(self, sprint_id: str) -> Sprint:
        row = await self._session.get(SprintRow, sprint_id)
        if row is None:
            raise NotFoundError(f"Sprint with ID {sprint_id} not found")
        sprint = Sprint.model_validate(row)
        await self._session.delete(row)
        await self._session.flush()
        return sprint


class PostgresStoryRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, story_id: str) -> Story | None:
        row = await self._session.get(StoryRow, story_id)
        return Story.model_validate(row) if row is not None else None

    async def find_by_ids(self, story_ids: Iterable[str]) -> list[Story]:
        ids = list(dict.fromkeys(story_ids))
        if not ids:
            return []
        result = await self._session.scalars(select(StoryRow).where(StoryRow.id.in_(ids)))
        return [Story.model_validate(row) for row in result]

    async def find_many(
        self,
        *,
        sprint_id: str | None = None,
        sprint_ids: Iterable[str] | None = None,
        project_id: str | None = None,
    ) -> list[Story]:
        stmt = select(StoryRow)
        if sprint_id is not None:
            stmt = stmt.where(StoryRow.sprint_id == sprint_id)
        if sprint_ids is not None:
            stmt = stmt.where(StoryRow.sprint_id.in_(list(sprint_ids)))
        if project_id is not None:
            stmt = stmt.where(StoryRow.project_id == project_id)
        result = await self._session.scalars(stmt.order_by(StoryRow.id))
        return [Story.model_validate(row) for row in result]

    async def update(self, story_id: str, values: dict[str, Any]) -> Story:
        row = await self._session.get(StoryRow, story_id)
        if row is None:
            raise NotFoundError(f"Story with ID {story_id} not found")
        for field, value in values.items():
            setattr(row, field, value)
        await self._session.flush()
        return Story.model_validate(row)

    async def update_many(
        self,
        values: dict[str, Any],
        *,
        ids: Iterable[str] | None = None,
        sprint_id: str | None = None,
        exclude_status: StoryStatus | None = None,
    ) -> int:
        stmt = update(StoryRow)
        if ids is not None:
            stmt = stmt.where(StoryRow.id.in_(list(ids)))
        if sprint_id is not None:
            stmt = stmt.where(StoryRow.sprint_id == sprint_id)
        if exclude_status is not None:
            stmt = stmt.where(StoryRow.status != exclude_status)
        result = await self._session.execute(
            stmt.values(**values).execution_options(synchronize_session="fetch")
        )
        return result.rowcount


class PostgresCommentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, values: dict[str, Any]) -> SprintComment:
        row = SprintCommentRow(**values)
        self._session.add(row)
        await self._session.flush()
        await self._session.refresh(row)
        return SprintComment.model_validate(row)

    async def find_many(self, sprint_id: str) -> list[SprintComment]:
        return await self.find_for_sprints([sprint_id])

    async def find_for_sprints(self, sprint_ids: Iterable[str]) -> list[SprintComment]:
        result = await self._session.scalars(
            select(SprintCommentRow)
            .where(SprintCommentRow.sprint_id.in_(list(sprint_ids)))
            .order_by(SprintCommentRow.created_at.desc())
        )
        return [SprintComment.model_validate(row) for row in result]

    async def delete_many(self, sprint_id: str) -> int:
        result = await self._session.execute(
            delete(SprintCommentRow).where(SprintCommentRow.sprint_id == sprint_id)
        )
        return result.rowcount


class PostgresUnitOfWork:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.sprints = PostgresSprintRepository(session)
        self.stories = PostgresStoryRepository(session)
        self.comments = PostgresCommentRepository(session)


# ── Store Class ──


class PostgresStore:
    """Async PostgreSQL sprint store."""

    def __init__(self, url: str | None = None, serializable: bool | None = None) -> None:
        self._url = url or settings.postgres_url
        self._serializable = settings.serializable_transactions if serializable is None else serializable
        self._engine = create_async_engine(
            self._url,
            echo=False,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)

    @retry_on_database_error(max_attempts=5)
    async def init_db(self) -> None:
        """Create the extension and tables if they don't exist."""
        async with self._engine.begin() as conn:
            await conn.execute(text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
            await conn.run_sync(Base.metadata.create_all)
        logger.info("PostgreSQL sprint store initialized")

    async def disconnect(self) -> None:
        """Dispose of the engine connection pool."""
        await self._engine.dispose()
        logger.info("PostgreSQL connection closed")

    def session(self) -> AsyncSession:
        """Get a new async session."""
        return self._session_factory()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgresUnitOfWork]:
        """One database transaction; committed on success, rolled back on any error."""
        async with self.session() as session:
            try:
                async with session.begin():
                    if self._serializable:
                        await session.connection(execution_options={"isolation_level": "SERIALIZABLE"})
                    yield PostgresUnitOfWork(session)
            except IntegrityError as exc:
                error = translate_integrity_error(exc)
                logger.warning("Constraint rejected sprint write: %s", exc.orig)
                raise error from exc
            except DBAPIError as exc:
                if is_serialization_failure(exc):
                    logger.warning("Serialization failure on sprint write: %s", exc.orig)
                    raise ConflictError("Sprint was modified concurrently; retry the request") from exc
                raise

    # ── Health ──

    async def health_check(self) -> bool:
        """Return True if PostgreSQL is reachable."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (DBAPIError, OSError) as exc:
            logger.warning("PostgreSQL health check failed: %s", exc)
            return False
