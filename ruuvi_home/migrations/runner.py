"""Versioned schema migrations with a schema_migrations tracking table.

Migrations live as modules in ``ruuvi_home.migrations.versions``. Each one
declares ``revision`` and ``description`` and implements ``upgrade()`` (and
optionally ``downgrade()``) against alembic's ``op`` proxy. Pending
migrations are applied in ascending id order, one transaction each; the
tracking row is written in the same transaction so a migration is either
fully applied or not at all.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy import Connection, delete, inspect, insert, select
from sqlalchemy.ext.asyncio import AsyncEngine

from ruuvi_home.models import SchemaMigration
from ruuvi_home.utils.timestamps import Clock, epoch_now

logger = logging.getLogger(__name__)

VERSIONS_PACKAGE = "ruuvi_home.migrations.versions"


class MigrationError(Exception):
    """Raised when a migration or rollback cannot be completed."""


@dataclass(frozen=True)
class Migration:
    id: str
    description: str
    upgrade: Callable[[], None]
    downgrade: Callable[[], None] | None = None


@dataclass(frozen=True)
class MigrationStatus:
    applied: list[str]
    pending: list[str]

    @property
    def is_up_to_date(self) -> bool:
        return not self.pending

    @property
    def last_migration(self) -> str | None:
        return self.applied[-1] if self.applied else None


def load_migrations(package: str = VERSIONS_PACKAGE) -> list[Migration]:
    """Import every migration module in ``package``, ordered by id."""
    pkg = importlib.import_module(package)
    migrations = []
    for info in pkgutil.iter_modules(pkg.__path__):
        if info.name.startswith("_"):
            continue
        module = importlib.import_module(f"{package}.{info.name}")
        migrations.append(
            Migration(
                id=module.revision,
                description=module.description,
                upgrade=module.upgrade,
                downgrade=getattr(module, "downgrade", None),
            )
        )
    return sorted(migrations, key=lambda m: m.id)


def _run_operations(connection: Connection, func: Callable[[], None]) -> None:
    context = MigrationContext.configure(connection=connection)
    with Operations.context(context):
        func()


class SchemaMigrator:
    """Applies and reverts schema migrations against a SQLite engine."""

    def __init__(
        self,
        engine: AsyncEngine,
        migrations: Sequence[Migration] | None = None,
        clock: Clock = time.time,
    ):
        self.engine = engine
        self.migrations = sorted(
            migrations if migrations is not None else load_migrations(),
            key=lambda m: m.id,
        )
        self._by_id = {m.id: m for m in self.migrations}
        self._clock = clock

    async def _ensure_tracking_table(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(
                lambda sync_conn: SchemaMigration.__table__.create(sync_conn, checkfirst=True)
            )

    async def _applied_ids(self) -> list[str]:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(SchemaMigration.id).order_by(
                    SchemaMigration.applied_at, SchemaMigration.id
                )
            )
            return [row.id for row in result]

    async def status(self) -> MigrationStatus:
        await self._ensure_tracking_table()
        applied = await self._applied_ids()
        applied_set = set(applied)
        pending = [m.id for m in self.migrations if m.id not in applied_set]
        return MigrationStatus(applied=applied, pending=pending)

    def _apply(self, connection: Connection, migration: Migration) -> None:
        _run_operations(connection, migration.upgrade)
        connection.execute(
            insert(SchemaMigration).values(
                id=migration.id,
                description=migration.description,
                applied_at=epoch_now(self._clock),
            )
        )

    def _revert(self, connection: Connection, migration: Migration) -> None:
        _run_operations(connection, migration.downgrade)
        connection.execute(
            delete(SchemaMigration).where(SchemaMigration.id == migration.id)
        )

    async def migrate(self) -> list[str]:
        """Apply all pending migrations in order. Returns the applied ids.

        Stops at the first failure: that migration's transaction is rolled
        back and MigrationError is raised.
        """
        status = await self.status()
        if status.is_up_to_date:
            logger.info("Database schema is up to date")
            return []

        logger.info("Running %d pending migration(s)", len(status.pending))
        applied = []
        for migration_id in status.pending:
            migration = self._by_id[migration_id]
            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(self._apply, migration)
            except Exception as exc:
                logger.exception("Failed to apply migration %s", migration.id)
                raise MigrationError(f"Migration failed: {migration.id}") from exc
            logger.info("Applied migration %s - %s", migration.id, migration.description)
            applied.append(migration.id)
        return applied

    async def rollback(self, migration_id: str | None = None) -> str:
        """Revert ``migration_id`` (default: the most recently applied one)."""
        status = await self.status()
        target = migration_id or status.last_migration
        if target is None:
            raise MigrationError("No migrations to rollback")

        migration = self._by_id.get(target)
        if migration is None:
            raise MigrationError(f"Migration not found: {target}")
        if target not in status.applied:
            raise MigrationError(f"Migration not applied: {target}")
        if migration.downgrade is None:
            raise MigrationError(f"Migration {target} has no rollback")

        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(self._revert, migration)
        except Exception as exc:
            logger.exception("Failed to roll back migration %s", target)
            raise MigrationError(f"Rollback failed: {target}") from exc
        logger.info("Rolled back migration %s", target)
        return target

    async def check_health(self) -> bool:
        """True when the tracking table exists."""
        async with self.engine.connect() as conn:
            return await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).has_table(SchemaMigration.__tablename__)
            )
