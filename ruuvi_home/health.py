"""Prometheus metrics definitions.

Metrics are module-level singletons so that any module can import and
increment them. They are served by the API process at /metrics.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

# --- Ingestion ---
mqtt_messages_received = Counter(
    "ruuvi_mqtt_messages_received_total",
    "Total MQTT messages received from gateways",
)
mqtt_connected = Gauge(
    "ruuvi_mqtt_connected",
    "1 while the MQTT subscriber is connected to the broker",
)
readings_ingested = Counter(
    "ruuvi_readings_ingested_total",
    "Total sensor readings decoded and accepted",
)
readings_dropped = Counter(
    "ruuvi_readings_dropped_total",
    "Total gateway messages dropped before producing a reading",
    labelnames=["reason"],
)

# --- Store ---
store_write_failures = Counter(
    "ruuvi_store_write_failures_total",
    "Total readings lost to validation or insert failures",
)

# --- WebSocket fan-out ---
ws_connections = Gauge(
    "ruuvi_ws_connections",
    "Currently open WebSocket connections",
)
ws_requests_dropped = Counter(
    "ruuvi_ws_requests_dropped_total",
    "Total WebSocket requests dropped without a response",
    labelnames=["reason"],
)
broadcasts_sent = Counter(
    "ruuvi_broadcasts_total",
    "Total live readings fanned out to connected clients",
)
