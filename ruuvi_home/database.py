"""Database engine creation with SQLite WAL mode, PRAGMA configuration and
transactional DDL."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool


def _set_pragmas(dbapi_conn, connection_record):
    # Hand transaction control to SQLAlchemy so DDL inside a migration
    # participates in the surrounding BEGIN/ROLLBACK.
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute("PRAGMA synchronous = NORMAL")
    cursor.execute("PRAGMA busy_timeout = 30000")
    cursor.execute("PRAGMA temp_store = MEMORY")
    cursor.execute("PRAGMA auto_vacuum = INCREMENTAL")
    cursor.close()


def _begin(conn):
    conn.exec_driver_sql("BEGIN")


def create_engine_from_url(url: str, *, single_connection: bool = False) -> AsyncEngine:
    kwargs = {}
    if single_connection:
        kwargs["poolclass"] = StaticPool
    engine = create_async_engine(url, **kwargs)
    event.listen(engine.sync_engine, "connect", _set_pragmas)
    event.listen(engine.sync_engine, "begin", _begin)
    return engine


async def init_db(engine: AsyncEngine) -> list[str]:
    """Bring the schema up to date. Raises MigrationError on failure."""
    from ruuvi_home.migrations.runner import SchemaMigrator

    return await SchemaMigrator(engine).migrate()
