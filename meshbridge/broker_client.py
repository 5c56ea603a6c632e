"""MQTT broker client abstraction."""
from __future__ import annotations

import logging
import ssl
from abc import ABC, abstractmethod
from typing import Any, Callable

import paho.mqtt.client as mqtt

from . import topics

logger = logging.getLogger(__name__)


class BrokerClient(ABC):
    """The handful of broker operations MqttMeshTransport relies on."""

    @abstractmethod
    def connect(self, server: str, port: int, keepalive: int = 60) -> None: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> bool:
        """Queue one message. False when paho refused it (e.g. not connected)."""
        ...

    @abstractmethod
    def subscribe(self, topic: str, qos: int = 0) -> None:
        """Raises ConnectionError if the SUBSCRIBE could not be sent."""
        ...

    @abstractmethod
    def loop_start(self) -> None: ...

    @abstractmethod
    def loop_stop(self) -> None: ...


class PahoBrokerClient(BrokerClient):
    """paho-mqtt client with automatic reconnection turned off.

    A dropped broker connection is reported through on_disconnect and the
    owner decides what to do; paho's network thread must not quietly retry.
    """

    def __init__(self, client: mqtt.Client) -> None:
        self._client = client

    @classmethod
    def from_config(
        cls,
        mqtt_cfg: dict[str, Any],
        on_connect: Callable[..., Any],
        on_disconnect: Callable[..., Any],
        on_message: Callable[..., Any],
    ) -> PahoBrokerClient:
        """Build a client from the ``[mqtt]`` table: identity, credentials and TLS."""
        client_id = mqtt_cfg.get('client_id') or topics.default_client_id()
        client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=client_id,
            clean_session=True,
            reconnect_on_failure=False,
        )
        client.on_connect = on_connect
        client.on_disconnect = on_disconnect
        client.on_message = on_message

        username = mqtt_cfg.get('username')
        if username:
            client.username_pw_set(username, mqtt_cfg.get('password') or None)

        tls_cfg = mqtt_cfg.get('tls', {})
        if tls_cfg.get('enabled', False):
            _enable_tls(client, verify=tls_cfg.get('verify', True))

        logger.debug(f"[MQTT] Client id {client_id} (auth={'yes' if username else 'no'})")
        return cls(client)

    def connect(self, server: str, port: int, keepalive: int = 60) -> None:
        self._client.connect(server, port, keepalive=keepalive)

    def disconnect(self) -> None:
        self._client.disconnect()

    def publish(self, topic: str, payload: bytes, qos: int = 0, retain: bool = False) -> bool:
        info = self._client.publish(topic, payload, qos=qos, retain=retain)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            logger.debug(f"[MQTT] Publish to {topic} refused: {mqtt.error_string(info.rc)}")
            return False
        return True

    def subscribe(self, topic: str, qos: int = 0) -> None:
        rc, _mid = self._client.subscribe(topic, qos=qos)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise ConnectionError(f"Subscribe to {topic} failed: {mqtt.error_string(rc)}")

    def loop_start(self) -> None:
        self._client.loop_start()

    def loop_stop(self) -> None:
        self._client.loop_stop()


def _enable_tls(client: mqtt.Client, verify: bool) -> None:
    if verify:
        client.tls_set(cert_reqs=ssl.CERT_REQUIRED)
        return
    logger.warning("[MQTT] TLS certificate verification disabled")
    client.tls_set(cert_reqs=ssl.CERT_NONE)
    client.tls_insecure_set(True)
