"""MQTT subscriber bridging gateway messages into the asyncio loop."""

from __future__ import annotations

import asyncio
import logging
import ssl
import uuid
from collections.abc import Callable

import paho.mqtt.client as mqtt

from ruuvi_home.config import Settings
from ruuvi_home.health import mqtt_connected, mqtt_messages_received
from ruuvi_home.schemas import SensorReading
from ruuvi_home.services.ingestion import SUBSCRIPTIONS, IngestionGateway

logger = logging.getLogger(__name__)

SUBSCRIBE_QOS = 1


class MqttSubscriber:
    """Runs the paho network loop in its own thread.

    Decoding happens synchronously in paho's callback thread; accepted
    readings are handed to ``on_reading`` on the event loop thread.
    Reconnects use a fixed delay with no attempt cap.
    """

    def __init__(
        self,
        settings: Settings,
        gateway: IngestionGateway,
        on_reading: Callable[[SensorReading], None],
        *,
        client: mqtt.Client | None = None,
    ):
        self.settings = settings
        self.gateway = gateway
        self.on_reading = on_reading
        self.client = client or mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"ruuvi-home-{uuid.uuid4().hex[:8]}",
            clean_session=True,
        )
        self.connected = False
        self._loop: asyncio.AbstractEventLoop | None = None

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    def _configure(self) -> None:
        if self.settings.MQTT_USER:
            self.client.username_pw_set(self.settings.MQTT_USER, self.settings.MQTT_PASS)
        if self.settings.mqtt_use_tls:
            insecure = self.settings.MQTT_TLS_INSECURE
            self.client.tls_set(cert_reqs=ssl.CERT_NONE if insecure else ssl.CERT_REQUIRED)
            self.client.tls_insecure_set(insecure)
        delay = self.settings.MQTT_RECONNECT_SEC
        self.client.reconnect_delay_set(min_delay=delay, max_delay=delay)

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._configure()
        logger.info(
            "Connecting to MQTT broker %s:%d (%s)",
            self.settings.MQTT_HOST,
            self.settings.MQTT_PORT,
            "tls" if self.settings.mqtt_use_tls else "plain",
        )
        self.client.connect_async(
            self.settings.MQTT_HOST,
            self.settings.MQTT_PORT,
            keepalive=self.settings.MQTT_KEEPALIVE_SEC,
        )
        self.client.loop_start()

    def stop(self) -> None:
        self.client.disconnect()
        self.client.loop_stop()
        self._set_connected(False)

    def _set_connected(self, value: bool) -> None:
        self.connected = value
        mqtt_connected.set(1 if value else 0)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            logger.error("MQTT connection refused: %s", reason_code)
            if "authorized" in str(reason_code).lower():
                logger.error("Check MQTT credentials and broker ACL configuration")
            return
        logger.info("MQTT connected")
        self._set_connected(True)
        client.subscribe([(topic, SUBSCRIBE_QOS) for topic in SUBSCRIPTIONS])

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._set_connected(False)
        logger.warning("MQTT disconnected (%s), reconnecting", reason_code)

    def _on_message(self, client, userdata, message: mqtt.MQTTMessage) -> None:
        mqtt_messages_received.inc()
        reading = self.gateway.process_message(message.topic, message.payload)
        if reading is None or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(self.on_reading, reading)
        except RuntimeError:
            logger.warning("Event loop closed, dropping reading from %s", reading.sensor_mac)
