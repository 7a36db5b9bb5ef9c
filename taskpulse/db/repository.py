"""Database repository - all SQL queries."""

import logging
from pathlib import Path
from typing import Iterable, List
from zoneinfo import ZoneInfo

import aiosqlite

from taskpulse.db import codec
from taskpulse.db.models import InstanceStatus, TaskInstance, TaskTemplate

logger = logging.getLogger(__name__)


def _sort_key(instance: TaskInstance) -> str:
    # UTC so that text ordering matches time ordering
    return instance.scheduled_time.astimezone(ZoneInfo("UTC")).isoformat()


class Repository:
    """Database access layer for templates and instances."""

    def __init__(self, db_path: Path | str):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys = ON")
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    # Template operations

    async def save_template(self, template: TaskTemplate) -> None:
        """Insert a template, replacing any stored version."""
        await self.db.execute(
            """
            INSERT INTO task_templates (id, title, status, data)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                status = excluded.status,
                data = excluded.data,
                updated_at = datetime('now')
            """,
            (
                template.id,
                template.title,
                template.status,
                codec.dumps(codec.template_to_dict(template)),
            ),
        )
        await self.db.commit()

    async def update_template(self, template: TaskTemplate) -> None:
        """Update a template."""
        await self.db.execute(
            """
            UPDATE task_templates SET
                title = ?,
                status = ?,
                data = ?,
                updated_at = datetime('now')
            WHERE id = ?
            """,
            (
                template.title,
                template.status,
                codec.dumps(codec.template_to_dict(template)),
                template.id,
            ),
        )
        await self.db.commit()

    async def delete_template(self, template_id: str) -> None:
        """Delete a template; its instances go with it (ON DELETE CASCADE)."""
        await self.db.execute("DELETE FROM task_templates WHERE id = ?", (template_id,))
        await self.db.commit()

    async def get_template(self, template_id: str) -> TaskTemplate | None:
        """Get a template by ID."""
        async with self.db.execute(
            "SELECT data FROM task_templates WHERE id = ?", (template_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return codec.template_from_dict(codec.loads(row["data"]))
            return None

    async def list_templates(self, status: str | None = None) -> List[TaskTemplate]:
        """Get all templates, optionally filtered by status."""
        if status:
            query = "SELECT data FROM task_templates WHERE status = ? ORDER BY created_at"
            params: tuple = (status,)
        else:
            query = "SELECT data FROM task_templates ORDER BY created_at"
            params = ()

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [codec.template_from_dict(codec.loads(row["data"])) for row in rows]

    # Instance operations

    async def _upsert_instance(self, instance: TaskInstance) -> None:
        await self.db.execute(
            """
            INSERT INTO task_instances (id, template_id, status, scheduled_time, data)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                scheduled_time = excluded.scheduled_time,
                data = excluded.data,
                updated_at = datetime('now')
            """,
            (
                instance.id,
                instance.template_id,
                instance.status,
                _sort_key(instance),
                codec.dumps(codec.instance_to_dict(instance)),
            ),
        )

    async def save_instance(self, instance: TaskInstance) -> None:
        await self._upsert_instance(instance)
        await self.db.commit()

    async def save_instances(self, instances: Iterable[TaskInstance]) -> None:
        """Save several instances in one transaction."""
        for instance in instances:
            await self._upsert_instance(instance)
        await self.db.commit()

    async def update_instance(self, instance: TaskInstance) -> None:
        """Update an instance."""
        await self.db.execute(
            """
            UPDATE task_instances SET
                status = ?,
                scheduled_time = ?,
                data = ?,
                updated_at = datetime('now')
            WHERE id = ?
            """,
            (
                instance.status,
                _sort_key(instance),
                codec.dumps(codec.instance_to_dict(instance)),
                instance.id,
            ),
        )
        await self.db.commit()

    async def delete_instance(self, instance_id: str) -> None:
        await self.db.execute("DELETE FROM task_instances WHERE id = ?", (instance_id,))
        await self.db.commit()

    async def get_instance(self, instance_id: str) -> TaskInstance | None:
        """Get an instance by ID."""
        async with self.db.execute(
            "SELECT data FROM task_instances WHERE id = ?", (instance_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return codec.instance_from_dict(codec.loads(row["data"]))
            return None

    async def find_instances_by_template_id(self, template_id: str) -> List[TaskInstance]:
        async with self.db.execute(
            "SELECT data FROM task_instances WHERE template_id = ? ORDER BY scheduled_time",
            (template_id,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [codec.instance_from_dict(codec.loads(row["data"])) for row in rows]

    async def list_instances(
        self, statuses: Iterable[InstanceStatus] | None = None
    ) -> List[TaskInstance]:
        """Get instances ordered by scheduled time, optionally filtered by status."""
        if statuses is not None:
            statuses = tuple(statuses)
            if not statuses:
                return []
            placeholders = ", ".join("?" for _ in statuses)
            query = (
                f"SELECT data FROM task_instances WHERE status IN ({placeholders}) "
                "ORDER BY scheduled_time"
            )
            params: tuple = statuses
        else:
            query = "SELECT data FROM task_instances ORDER BY scheduled_time"
            params = ()

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [codec.instance_from_dict(codec.loads(row["data"])) for row in rows]
