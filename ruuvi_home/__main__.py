"""Entry point: python -m ruuvi_home [api|migrate|cleanup|optimize]"""

import asyncio
import sys

import uvicorn

from ruuvi_home.config import Settings
from ruuvi_home.logging_config import configure_logging

USAGE = (
    "Usage: python -m ruuvi_home [api | migrate [status|up|rollback [id]|health]"
    " | cleanup [days] | optimize]"
)


def run_api():
    settings = Settings()
    configure_logging("api", settings.LOG_LEVEL)
    from ruuvi_home.main import create_app

    app = create_app(settings)
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_config=None)


async def _with_engine(settings, func):
    from ruuvi_home.database import create_engine_from_url

    engine = create_engine_from_url(settings.DB_URL)
    try:
        return await func(engine)
    finally:
        await engine.dispose()


def run_migrate(args):
    settings = Settings()
    configure_logging("migrate", settings.LOG_LEVEL)
    from ruuvi_home.migrations.runner import MigrationError, SchemaMigrator

    action = args[0] if args else "up"

    async def _status(engine):
        status = await SchemaMigrator(engine).status()
        print(f"Applied: {len(status.applied)}  Pending: {len(status.pending)}")
        for migration_id in status.applied:
            print(f"  [x] {migration_id}")
        for migration_id in status.pending:
            print(f"  [ ] {migration_id}")
        return 0 if status.is_up_to_date else 1

    async def _up(engine):
        applied = await SchemaMigrator(engine).migrate()
        print(f"Applied {len(applied)} migration(s).")
        return 0

    async def _rollback(engine):
        target = await SchemaMigrator(engine).rollback(args[1] if len(args) > 1 else None)
        print(f"Rolled back {target}.")
        return 0

    async def _health(engine):
        healthy = await SchemaMigrator(engine).check_health()
        print("healthy" if healthy else "unhealthy: schema_migrations table missing")
        return 0 if healthy else 1

    actions = {"status": _status, "up": _up, "rollback": _rollback, "health": _health}
    if action not in actions:
        print(f"Unknown migrate action: {action}")
        print(USAGE)
        sys.exit(1)

    try:
        code = asyncio.run(_with_engine(settings, actions[action]))
    except MigrationError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    sys.exit(code)


def run_cleanup(args):
    settings = Settings()
    configure_logging("cleanup", settings.LOG_LEVEL)
    from ruuvi_home.services.store import TimeSeriesStore

    try:
        days = int(args[0]) if args else settings.RETENTION_DAYS
    except ValueError:
        print(f"Invalid number of days: {args[0]}")
        sys.exit(1)
    if days <= 0:
        print("Days to keep must be positive")
        sys.exit(1)

    async def _cleanup(engine):
        return await TimeSeriesStore(engine).retention_cleanup(days)

    removed = asyncio.run(_with_engine(settings, _cleanup))
    print(f"Removed {removed} reading(s) older than {days} days.")


def run_optimize():
    settings = Settings()
    configure_logging("optimize", settings.LOG_LEVEL)
    from ruuvi_home.services.store import TimeSeriesStore

    async def _optimize(engine):
        await TimeSeriesStore(engine).optimize()

    asyncio.run(_with_engine(settings, _optimize))
    print("Database optimized.")


def main():
    command = sys.argv[1] if len(sys.argv) > 1 else "api"
    args = sys.argv[2:]

    if command == "api":
        run_api()
    elif command == "migrate":
        run_migrate(args)
    elif command == "cleanup":
        run_cleanup(args)
    elif command == "optimize":
        run_optimize()
    else:
        print(f"Unknown command: {command}")
        print(USAGE)
        sys.exit(1)


if __name__ == "__main__":
    main()
