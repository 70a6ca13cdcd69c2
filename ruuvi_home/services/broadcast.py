"""WebSocket fan-out hub: live pushes, query requests and admin alias edits.

Each connection gets an explicit ConnectionState record owned by the hub,
with a bounded outbox drained by a single writer task so pushes to one
connection are delivered in the order they were queued.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from pydantic import BaseModel, ValidationError

from ruuvi_home.auth import UNAUTHORIZED_MESSAGE, AdminSessionStore
from ruuvi_home.health import broadcasts_sent, ws_connections, ws_requests_dropped
from ruuvi_home.schemas import (
    AdminAuthRequest,
    AdminAuthResultMessage,
    DeleteSensorNameRequest,
    ErrorMessage,
    GetDataRequest,
    GetLatestReadingsRequest,
    GetSensorNamesRequest,
    HistoricalDataMessage,
    LatestReadingsMessage,
    LiveReading,
    SensorDataMessage,
    SensorNameDeletedMessage,
    SensorNamesMessage,
    SensorNameSetMessage,
    SensorReading,
    SetSensorNameRequest,
)
from ruuvi_home.services.store import TIME_RANGES, TimeSeriesStore, sanitize_mac
from ruuvi_home.utils.timestamps import Clock, epoch_now

logger = logging.getLogger(__name__)

MAX_REQUEST_BYTES = 1024
MAX_HISTORY_BUCKETS = 1000
OUTBOX_SIZE = 256
DEFAULT_TIME_RANGE = "day"
SESSION_SWEEP_SEC = 60 * 60

# minimum seconds between two requests of the same kind on one connection
RATE_LIMITS = {
    "getData": 1.0,
    "getLatestReadings": 0.5,
}

_ALIAS_MAC_PATTERNS = (
    re.compile(r"^[a-f0-9]{12}$"),
    re.compile(r"^[a-f0-9]{2}(:[a-f0-9]{2}){5}$"),
    re.compile(r"^[a-f0-9]{2}(-[a-f0-9]{2}){5}$"),
)
_UNSAFE_NAME_CHARS = re.compile(r"[<>\"'&\x00-\x1f\x7f-\x9f]")
MAX_NAME_LENGTH = 50


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...


@dataclass(eq=False)
class ConnectionState:
    id: str
    connection: Connection
    time_range: str = DEFAULT_TIME_RANGE
    last_request_at: dict[str, float] = field(default_factory=dict)
    admin_token: str | None = None
    outbox: asyncio.Queue = field(default_factory=lambda: asyncio.Queue(maxsize=OUTBOX_SIZE))
    writer: asyncio.Task | None = None
    closed: bool = False


def sanitize_alias_mac(mac: str | None) -> str | None:
    if not mac or not isinstance(mac, str):
        return None
    sanitized = sanitize_mac(mac)
    if any(p.match(sanitized) for p in _ALIAS_MAC_PATTERNS):
        return sanitized
    return None


def sanitize_custom_name(name: str | None) -> str | None:
    if not name or not isinstance(name, str):
        return None
    trimmed = name.strip()
    if not trimmed or len(trimmed) > MAX_NAME_LENGTH:
        return None
    cleaned = _UNSAFE_NAME_CHARS.sub("", trimmed)
    return cleaned or None


class BroadcastHub:
    def __init__(
        self,
        store: TimeSeriesStore,
        sessions: AdminSessionStore,
        *,
        sweep_interval_sec: float = SESSION_SWEEP_SEC,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time,
    ):
        self.store = store
        self.sessions = sessions
        self.sweep_interval_sec = sweep_interval_sec
        self._clock = clock
        self._wall_clock = wall_clock
        self._connections: dict[str, ConnectionState] = {}
        self._sweeper: asyncio.Task | None = None
        self._handlers: dict[
            str, tuple[type[BaseModel], Callable[[ConnectionState, BaseModel], Awaitable[None]]]
        ] = {
            "getData": (GetDataRequest, self._handle_get_data),
            "getLatestReadings": (GetLatestReadingsRequest, self._handle_get_latest),
            "adminAuth": (AdminAuthRequest, self._handle_admin_auth),
            "getSensorNames": (GetSensorNamesRequest, self._handle_get_sensor_names),
            "setSensorName": (SetSensorNameRequest, self._handle_set_sensor_name),
            "deleteSensorName": (DeleteSensorNameRequest, self._handle_delete_sensor_name),
        }

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the periodic admin-session expiry sweep."""
        self.sessions.sweep()
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        for state in list(self._connections.values()):
            await self.disconnect(state)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_sec)
            removed = self.sessions.sweep()
            if removed:
                logger.info("Expired %d admin session(s)", removed)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def connect(self, connection: Connection) -> ConnectionState:
        """Register a connection. Must be called from the event loop."""
        state = ConnectionState(id=uuid.uuid4().hex, connection=connection)
        state.writer = asyncio.create_task(self._writer(state))
        self._connections[state.id] = state
        ws_connections.inc()
        logger.info("WebSocket client connected: %s", state.id)
        return state

    async def disconnect(self, state: ConnectionState) -> None:
        """Forget a connection. Anything still queued for it is discarded."""
        if self._connections.pop(state.id, None) is None:
            return
        state.closed = True
        ws_connections.dec()
        if state.writer is not None:
            state.writer.cancel()
            try:
                await state.writer
            except asyncio.CancelledError:
                pass
        logger.info("WebSocket client disconnected: %s", state.id)

    async def drain(self, state: ConnectionState) -> None:
        """Wait until everything queued for ``state`` has been written."""
        await state.outbox.join()

    # --- Outbound ---

    async def _writer(self, state: ConnectionState) -> None:
        while True:
            text = await state.outbox.get()
            try:
                if not state.closed:
                    await state.connection.send_text(text)
            except Exception as exc:
                logger.debug("Send to %s failed: %s", state.id, exc)
                state.closed = True
            finally:
                state.outbox.task_done()

    def _enqueue(self, state: ConnectionState, text: str) -> None:
        if state.closed or state.id not in self._connections:
            return
        try:
            state.outbox.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning("Outbox full for %s, dropping message", state.id)

    def _send(self, state: ConnectionState, message: BaseModel, *, exclude_none: bool = False) -> None:
        self._enqueue(state, message.model_dump_json(by_alias=True, exclude_none=exclude_none))

    def _send_error(self, state: ConnectionState, message: str) -> None:
        self._send(state, ErrorMessage(message=message))

    def broadcast(self, reading: SensorReading) -> int:
        """Push the reduced live reading to every connection. Returns recipients."""
        live = LiveReading(
            sensor_mac=sanitize_mac(reading.sensor_mac),
            temperature=round(reading.temperature, 2),
            humidity=None if reading.humidity is None else round(reading.humidity, 2),
            timestamp=reading.timestamp,
        )
        text = SensorDataMessage(data=live).model_dump_json(by_alias=True)
        recipients = list(self._connections.values())
        for state in recipients:
            self._enqueue(state, text)
        broadcasts_sent.inc()
        return len(recipients)

    async def _broadcast_sensor_names(self) -> None:
        try:
            names = await self.store.list_aliases()
        except Exception:
            logger.exception("Failed to broadcast sensor names")
            return
        text = SensorNamesMessage(data=names).model_dump_json(by_alias=True)
        for state in list(self._connections.values()):
            self._enqueue(state, text)

    # --- Inbound ---

    def _drop(self, state: ConnectionState, reason: str) -> None:
        ws_requests_dropped.labels(reason=reason).inc()
        logger.warning("Dropped request from %s: %s", state.id, reason)

    def _allow(self, state: ConnectionState, kind: str) -> bool:
        now = self._clock()
        last = state.last_request_at.get(kind)
        if last is not None and now - last < RATE_LIMITS[kind]:
            return False
        state.last_request_at[kind] = now
        return True

    async def handle_message(self, state: ConnectionState, raw: str | bytes) -> None:
        """Dispatch one client request. Never raises, never closes the connection."""
        size = len(raw.encode("utf-8")) if isinstance(raw, str) else len(raw)
        if size > MAX_REQUEST_BYTES:
            self._drop(state, "too_large")
            return
        try:
            request = json.loads(raw)
        except ValueError:
            self._drop(state, "bad_json")
            return
        if not isinstance(request, dict):
            self._drop(state, "bad_json")
            return

        kind = request.get("type")
        entry = self._handlers.get(kind) if isinstance(kind, str) else None
        if entry is None:
            logger.warning("Unknown WebSocket request type: %r", kind)
            ws_requests_dropped.labels(reason="unknown_type").inc()
            return

        model, handler = entry
        try:
            parsed = model.model_validate(request)
        except ValidationError:
            self._drop(state, "invalid")
            return

        try:
            await handler(state, parsed)
        except Exception:
            logger.exception("WebSocket %s handler failed", kind)

    async def _handle_get_data(self, state: ConnectionState, request: GetDataRequest) -> None:
        time_range = request.time_range or DEFAULT_TIME_RANGE
        if time_range not in TIME_RANGES:
            self._drop(state, "bad_range")
            return
        state.time_range = time_range
        if not self._allow(state, "getData"):
            self._drop(state, "rate_limited")
            return

        try:
            buckets = await self.store.query_aggregated(time_range)
        except Exception:
            logger.exception("Error getting historical data")
            self._send_error(state, "Failed to retrieve data")
            return

        self._send(
            state,
            HistoricalDataMessage(
                data=buckets[:MAX_HISTORY_BUCKETS],
                truncated=len(buckets) > MAX_HISTORY_BUCKETS,
                time_range=time_range,
                bucket_size=TIME_RANGES[time_range].bucket_seconds,
            ),
        )

    async def _handle_get_latest(self, state: ConnectionState, request: GetLatestReadingsRequest) -> None:
        if not self._allow(state, "getLatestReadings"):
            self._drop(state, "rate_limited")
            return
        try:
            readings = await self.store.latest_per_sensor()
        except Exception:
            logger.exception("Error getting latest readings")
            self._send_error(state, "Failed to retrieve latest readings")
            return
        self._send(
            state,
            LatestReadingsMessage(data=readings, timestamp=epoch_now(self._wall_clock)),
        )

    async def _handle_admin_auth(self, state: ConnectionState, request: AdminAuthRequest) -> None:
        result = self.sessions.authenticate(request.password)
        if result.success:
            state.admin_token = result.token
        self._send(
            state,
            AdminAuthResultMessage(
                success=result.success, token=result.token, message=result.message
            ),
            exclude_none=True,
        )

    async def _handle_get_sensor_names(self, state: ConnectionState, request: GetSensorNamesRequest) -> None:
        try:
            names = await self.store.list_aliases()
        except Exception:
            logger.exception("Error getting sensor names")
            self._send_error(state, "Failed to retrieve sensor names")
            return
        self._send(state, SensorNamesMessage(data=names))

    def _authorized(self, state: ConnectionState, token: str | None) -> bool:
        return self.sessions.is_valid(token or state.admin_token)

    async def _handle_set_sensor_name(self, state: ConnectionState, request: SetSensorNameRequest) -> None:
        if not self._authorized(state, request.admin_token):
            self._send_error(state, UNAUTHORIZED_MESSAGE)
            return
        mac = sanitize_alias_mac(request.sensor_mac)
        if mac is None:
            self._send_error(state, "Invalid MAC address format")
            return
        name = sanitize_custom_name(request.custom_name)
        if name is None:
            self._send_error(state, "Invalid name format")
            return

        try:
            await self.store.set_alias(mac, name)
        except Exception:
            logger.exception("Error setting sensor name")
            self._send_error(state, "Failed to set sensor name")
            return

        self._send(state, SensorNameSetMessage(sensor_mac=mac, custom_name=name))
        await self._broadcast_sensor_names()

    async def _handle_delete_sensor_name(self, state: ConnectionState, request: DeleteSensorNameRequest) -> None:
        if not self._authorized(state, request.admin_token):
            self._send_error(state, UNAUTHORIZED_MESSAGE)
            return
        mac = sanitize_alias_mac(request.sensor_mac)
        if mac is None:
            self._send_error(state, "Invalid MAC address format")
            return

        try:
            await self.store.delete_alias(mac)
        except Exception:
            logger.exception("Error deleting sensor name")
            self._send_error(state, "Failed to delete sensor name")
            return

        self._send(state, SensorNameDeletedMessage(sensor_mac=mac))
        await self._broadcast_sensor_names()
