"""Status endpoint: schema, connection and ingestion health."""

from fastapi import APIRouter, Request

from ruuvi_home.migrations.runner import SchemaMigrator
from ruuvi_home.schemas import MigrationStatusOut, StatusOut


def create_router():
    router = APIRouter(tags=["status"])

    @router.get("/status", response_model=StatusOut)
    async def hub_status(request: Request):
        state = request.app.state
        migration_status = await SchemaMigrator(state.engine).status()
        subscriber = state.subscriber

        return StatusOut(
            status="ok" if migration_status.is_up_to_date else "degraded",
            connected_clients=state.hub.connection_count,
            active_admin_sessions=state.sessions.active_count,
            mqtt_connected=bool(subscriber and subscriber.connected),
            migrations=MigrationStatusOut(
                is_up_to_date=migration_status.is_up_to_date,
                applied=migration_status.applied,
                pending=migration_status.pending,
                last_migration=migration_status.last_migration,
            ),
        )

    return router
