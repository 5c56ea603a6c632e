"""MQTT mesh transport: a gateway's ServiceEnvelope feed as a stream of MeshEvents."""
from __future__ import annotations

import logging
import queue
import random
import threading
from collections.abc import Iterator
from typing import Any

from . import packet_codec
from . import topics
from .broker_client import BrokerClient, PahoBrokerClient
from .events import (
    MeshEvent,
    MeshSendError,
    OtherMeshEvent,
    OutboundMeshSend,
    TextMessage,
    TransportConnectError,
)
from .mesh_transport import CLOSED, MeshTransport, drain_inbox

logger = logging.getLogger(__name__)

IRC_ECHO_PREFIX = "[IRC-"


class MqttMeshTransport(MeshTransport):
    """Subscribes to a Meshtastic MQTT topic and publishes envelopes back to it."""

    def __init__(self, config: dict[str, Any], broker_client: BrokerClient | None = None) -> None:
        mqtt_cfg = config.get('mqtt', {})
        self.server: str = mqtt_cfg.get('broker', '')
        self.port: int = mqtt_cfg.get('port', 1883)
        self.topic: str = mqtt_cfg.get('topic', 'meshtastic/2/e/#')
        self.keepalive: int = mqtt_cfg.get('keepalive', 30)
        self.qos: int = mqtt_cfg.get('qos', 1)
        self.connect_timeout: float = mqtt_cfg.get('connect_timeout', 10)
        self.channel_id: str = mqtt_cfg.get('channel_id', 'LongFast')
        self.gateway_id: str = mqtt_cfg.get('gateway_id', '!ircbridge')
        self.publish_topic: str = mqtt_cfg.get('publish_topic') or topics.derive_publish_topic(
            self.topic, self.channel_id, self.gateway_id
        )
        if broker_client is None:
            broker_client = PahoBrokerClient.from_config(
                mqtt_cfg,
                on_connect=self.on_mqtt_connect,
                on_disconnect=self.on_mqtt_disconnect,
                on_message=self.on_mqtt_message,
            )
        self._client = broker_client

        self._inbox: queue.Queue[Any] = queue.Queue()
        self._connected_event = threading.Event()
        self.connected = False
        self._closed = False
        self.decode_failures = 0
        self._warned_encrypted = False

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        if not self.server:
            raise TransportConnectError("No MQTT broker configured")
        if '+' in self.publish_topic or '#' in self.publish_topic:
            raise TransportConnectError(
                f"Publish topic {self.publish_topic} contains wildcards; set mqtt.publish_topic"
            )

        logger.info(f"[MQTT] Connecting to {self.server}:{self.port} (keepalive={self.keepalive}s)")
        try:
            self._client.connect(self.server, self.port, keepalive=self.keepalive)
        except OSError as e:
            raise TransportConnectError(f"Failed to connect to {self.server}:{self.port}: {e}") from e
        self._client.loop_start()

        if not self._connected_event.wait(timeout=self.connect_timeout) or not self.connected:
            self._client.loop_stop()
            raise TransportConnectError(
                f"No successful CONNACK from {self.server}:{self.port} within {self.connect_timeout}s"
            )

    # ------------------------------------------------------------------
    # MQTT callbacks (paho network thread)
    # ------------------------------------------------------------------

    def on_mqtt_connect(self, client: Any, userdata: Any, flags: Any, rc: Any, properties: Any = None) -> None:
        if rc == 0:
            logger.info(f"[MQTT] Connected to broker {self.server}:{self.port}")
            try:
                self._client.subscribe(self.topic, qos=self.qos)
                logger.info(f"[MQTT] Subscribed to {self.topic}")
                self.connected = True
            except ConnectionError as e:
                logger.error(f"[MQTT] {e}")
        else:
            logger.error(f"[MQTT] Connection failed with code: {rc}")
        self._connected_event.set()

    def on_mqtt_disconnect(self, client: Any, userdata: Any, disconnect_flags: Any, reason_code: Any, properties: Any = None) -> None:
        was_connected = self.connected
        self.connected = False
        if self._closed:
            logger.debug("[MQTT] Disconnected (shutdown)")
            return
        if was_connected:
            logger.error(f"[MQTT] Disconnected from broker (code: {reason_code})")
            self._inbox.put(CLOSED)

    def on_mqtt_message(self, client: Any, userdata: Any, msg: Any) -> None:
        if not topics.matches(self.topic, msg.topic):
            return
        logger.debug(f"[MQTT] Received message on {msg.topic}")

        try:
            envelope = packet_codec.decode_envelope(msg.payload)
            if envelope.gateway_id == self.gateway_id:
                logger.debug("[MQTT] Ignoring envelope published by this bridge")
                return
            event = packet_codec.decode_mesh_packet(envelope.packet)
        except packet_codec.PacketDecodeError as e:
            self.decode_failures += 1
            logger.debug(f"[MQTT] Dropping message on {msg.topic}: {e}")
            return

        if isinstance(event, OtherMeshEvent) and event.reason == "encrypted" and not self._warned_encrypted:
            self._warned_encrypted = True
            logger.warning(
                "[MQTT] Received encrypted packets; they are not decrypted and will not be relayed. "
                "Publish the channel to MQTT unencrypted to bridge this feed"
            )

        if isinstance(event, TextMessage) and event.text.startswith(IRC_ECHO_PREFIX):
            logger.debug("[MQTT] Ignoring relayed IRC message")
            return
        self._inbox.put(event)

    # ------------------------------------------------------------------
    # MeshTransport
    # ------------------------------------------------------------------

    def receive_events(self) -> Iterator[MeshEvent]:
        yield from drain_inbox(self._inbox, lambda: self._closed)
        logger.debug("[MQTT] Event stream ended")

    def send(self, request: OutboundMeshSend) -> None:
        if not self.is_open:
            raise MeshSendError("Not connected to MQTT broker")

        packet = packet_codec.build_mesh_packet(request)
        packet.id = random.randint(1, 0xFFFFFFFF)
        payload = packet_codec.build_envelope(packet, self.channel_id, self.gateway_id)

        try:
            published = self._client.publish(self.publish_topic, payload, qos=self.qos)
        except ValueError as e:
            raise MeshSendError(f"Publish to {self.publish_topic} rejected: {e}") from e
        if not published:
            raise MeshSendError(f"Publish to {self.publish_topic} failed")

        if request.is_ack:
            logger.debug(f"[MQTT] Published ACK for packet {request.ack_for}")
        else:
            logger.info(f"[MQTT] Sent to {self.publish_topic}: {request.text}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put(CLOSED)
        try:
            self._client.disconnect()
            self._client.loop_stop()
        except Exception as e:
            logger.debug(f"[MQTT] Error stopping client: {e}")

    @property
    def is_open(self) -> bool:
        return self.connected and not self._closed
