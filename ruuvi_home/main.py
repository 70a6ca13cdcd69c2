"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from ruuvi_home.auth import AdminSessionStore
from ruuvi_home.config import Settings
from ruuvi_home.database import create_engine_from_url, init_db
from ruuvi_home.services.broadcast import BroadcastHub
from ruuvi_home.services.ingestion import IngestionGateway
from ruuvi_home.services.mqtt import MqttSubscriber
from ruuvi_home.services.pipeline import ReadingPipeline
from ruuvi_home.services.store import TimeSeriesStore

logger = logging.getLogger(__name__)


def _error_response(status_code: int, code: str, message: str):
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


def create_app(
    settings: Settings | None = None,
    *,
    db_url: str = "",
    start_mqtt: bool = True,
) -> FastAPI:
    settings = settings or Settings()
    if not db_url and settings.DB_PATH != ":memory:":
        Path(settings.DB_PATH).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine_from_url(db_url or settings.DB_URL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # MigrationError is fatal: the app must not serve on a half-built schema
        await init_db(engine)

        store = TimeSeriesStore(engine)
        sessions = AdminSessionStore(
            settings.ADMIN_PASSWORD,
            settings.ADMIN_PASSWORD_HASH,
            ttl_sec=settings.SESSION_TTL_SEC,
        )
        hub = BroadcastHub(store, sessions, sweep_interval_sec=settings.SESSION_SWEEP_SEC)
        pipeline = ReadingPipeline(store, hub)
        hub.start()

        subscriber = None
        if start_mqtt and settings.MQTT_ENABLED:
            gateway = IngestionGateway(max_skew_sec=settings.MAX_TIMESTAMP_SKEW_SEC)
            subscriber = MqttSubscriber(settings, gateway, pipeline.handle)
            subscriber.start()
        else:
            logger.info("MQTT ingestion disabled")

        app.state.store = store
        app.state.sessions = sessions
        app.state.hub = hub
        app.state.pipeline = pipeline
        app.state.subscriber = subscriber
        try:
            yield
        finally:
            if subscriber is not None:
                subscriber.stop()
            await hub.stop()
            await pipeline.drain()
            await engine.dispose()

    app = FastAPI(lifespan=lifespan, docs_url="/api/docs", openapi_url="/api/openapi.json")
    app.state.engine = engine
    app.state.settings = settings

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code_map = {
            400: "VALIDATION_ERROR",
            404: "NOT_FOUND",
            405: "METHOD_NOT_ALLOWED",
        }
        code = code_map.get(exc.status_code, "INTERNAL")
        detail_msg = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return _error_response(exc.status_code, code, detail_msg)

    # Register routers (imported here to avoid circular imports)
    from ruuvi_home.routers import live, status

    app.include_router(live.create_router())
    app.include_router(status.create_router(), prefix="/api")
    app.mount("/metrics", make_asgi_app())

    return app
