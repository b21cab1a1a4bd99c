"""
Persistent task store backed by SQLAlchemy.

One row per task name holding the operator-controlled state: whether the
task is enabled, its cron expression and its configuration blob. SQLite is
the default backend; any SQLAlchemy URL works.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from sqlalchemy import JSON, Boolean, DateTime, String, create_engine, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from taskscheduler.errors import TaskNotFound
from taskscheduler.models import Task

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('is_enabled', 'cron', 'config')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TaskRow(Base):
    __tablename__ = 'tasks'

    name: Mapped[str] = mapped_column(String(32), primary_key=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    cron: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    config: Mapped[Optional[Any]] = mapped_column(JSON(none_as_null=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def to_task(self) -> Task:
        return Task(
            name=self.name,
            is_enabled=bool(self.is_enabled),
            cron=self.cron,
            config=self.config,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class TaskStore:
    """
    SQLAlchemy task store.

    Each method runs in its own session and returns detached Task
    dataclasses, never ORM rows.
    """

    def __init__(self, database_url: str):
        """
        Args:
            database_url: SQLAlchemy URL, e.g. ``sqlite:////var/lib/app/tasks.db``
        """
        url = make_url(database_url)
        engine_kwargs = {}
        if url.get_backend_name() == 'sqlite':
            if url.database and url.database != ':memory:':
                Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)
            else:
                # One in-memory database shared by every worker thread
                engine_kwargs = {
                    'poolclass': StaticPool,
                    'connect_args': {'check_same_thread': False},
                }

        self.database_url = database_url
        self.engine = create_engine(database_url, **engine_kwargs)
        Base.metadata.create_all(self.engine)
        self._session = sessionmaker(self.engine, expire_on_commit=False)

        logger.info(f"Task store ready: {url.render_as_string(hide_password=True)}")

    def close(self):
        self.engine.dispose()

    def find_by_name(self, name: str) -> Optional[Task]:
        with self._session() as session:
            row = session.get(TaskRow, name)
            return row.to_task() if row else None

    def create(
        self,
        name: str,
        is_enabled: bool = False,
        cron: Optional[str] = None,
        config: Optional[Any] = None
    ) -> Task:
        with self._session.begin() as session:
            row = TaskRow(name=name, is_enabled=is_enabled, cron=cron, config=config)
            session.add(row)
            session.flush()
            task = row.to_task()
        logger.debug(f"Created task row '{name}' (enabled={is_enabled})")
        return task

    def update(self, name: str, /, **fields) -> Task:
        """
        Update a task row.

        Args:
            name: Task name
            **fields: Any of is_enabled, cron, config

        Raises:
            TaskNotFound: If no row exists for ``name``
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update task field(s): {', '.join(sorted(unknown))}")

        with self._session.begin() as session:
            row = session.get(TaskRow, name)
            if row is None:
                raise TaskNotFound(name)
            for key, value in fields.items():
                setattr(row, key, value)
            session.flush()
            task = row.to_task()
        logger.debug(f"Updated task row '{name}': {', '.join(sorted(fields))}")
        return task

    @staticmethod
    def _filtered(statement, name: Optional[str], is_enabled: Optional[bool]):
        if name is not None:
            statement = statement.where(TaskRow.name == name)
        if is_enabled is not None:
            statement = statement.where(TaskRow.is_enabled == is_enabled)
        return statement

    def find_many(self, name: Optional[str] = None, is_enabled: Optional[bool] = None) -> List[Task]:
        """Return rows matching the filter, ordered by name ascending."""
        statement = self._filtered(select(TaskRow), name, is_enabled).order_by(TaskRow.name.asc())
        with self._session() as session:
            return [row.to_task() for row in session.scalars(statement)]

    def count(self, name: Optional[str] = None, is_enabled: Optional[bool] = None) -> int:
        statement = self._filtered(select(func.count()).select_from(TaskRow), name, is_enabled)
        with self._session() as session:
            return int(session.scalar(statement) or 0)
