"""Serial mesh transport backed by meshtastic's SerialInterface."""
from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator
from typing import Any, Callable

import serial
from meshtastic.mesh_interface import MeshInterface
from meshtastic.serial_interface import SerialInterface
from pubsub import pub

from . import packet_codec
from . import serial_detect
from .events import MeshEvent, MeshSendError, OutboundMeshSend, TransportConnectError
from .mesh_transport import CLOSED, MeshTransport, drain_inbox
from .node_directory import format_node_id

logger = logging.getLogger(__name__)

RECEIVE_TOPIC = "meshtastic.receive"
CONNECTION_LOST_TOPIC = "meshtastic.connection.lost"

_CONNECT_ERRORS = (serial.SerialException, OSError, MeshInterface.MeshInterfaceError)


def open_interface(port: str) -> MeshInterface:
    """Open the radio and block until it has reported its configuration."""
    return SerialInterface(devPath=port)


class SerialMeshTransport(MeshTransport):
    """Locally attached radio.

    meshtastic reads the port on its own thread and publishes decoded packets
    over pypubsub; the callbacks below translate them onto an inbox that
    receive_events() drains on the caller's thread.
    """

    def __init__(
        self,
        config: dict[str, Any],
        interface_factory: Callable[[str], Any] | None = None,
    ) -> None:
        serial_cfg = config.get('serial', {})
        self.port: str | None = serial_cfg.get('port') or None
        self._interface_factory = interface_factory or open_interface
        self._interface: Any = None
        self._inbox: queue.Queue[Any] = queue.Queue()
        self._write_lock = threading.Lock()
        self._closed = False
        self.decode_failures = 0

    def connect(self) -> None:
        if self.port:
            ports = [self.port]
        else:
            logger.info("[SERIAL] No serial port configured, auto-detecting...")
            ports = serial_detect.candidate_ports()
            if not ports:
                raise TransportConnectError(
                    "No Meshtastic serial devices found. Set serial.port or configure MQTT"
                )

        for port in ports:
            logger.info(f"[SERIAL] Connecting to Meshtastic device at {port}")
            try:
                interface = self._interface_factory(port)
            except _CONNECT_ERRORS as e:
                if "busy" in str(e).lower():
                    logger.warning(
                        f"[SERIAL] {port} is busy. Make sure no other Meshtastic apps "
                        f"(CLI, web client, serial terminal) are using it"
                    )
                else:
                    logger.warning(f"[SERIAL] Failed to connect to {port}: {e}")
                continue
            self._attach(interface, port)
            return

        raise TransportConnectError(f"Failed to connect to any serial port: {ports}")

    def _attach(self, interface: Any, port: str) -> None:
        self._interface = interface
        self.port = port
        pub.subscribe(self._on_receive, RECEIVE_TOPIC)
        pub.subscribe(self._on_connection_lost, CONNECTION_LOST_TOPIC)

        my_info = getattr(interface, 'myInfo', None)
        if my_info is not None:
            logger.info(f"[SERIAL] Connected to Meshtastic node: ID {format_node_id(my_info.my_node_num)}")

        # The radio's node database arrives during the config handshake,
        # before we subscribed, so replay it
        known = 0
        for node in (getattr(interface, 'nodesByNum', None) or {}).values():
            info = packet_codec.node_info_from_dict(node)
            if info:
                self._inbox.put(info)
                known += 1
        logger.info(f"[SERIAL] Connected on {port} ({known} known node(s))")

    # ------------------------------------------------------------------
    # pypubsub callbacks (meshtastic reader thread)
    # ------------------------------------------------------------------

    def _on_receive(self, packet: dict[str, Any], interface: Any) -> None:
        if interface is not self._interface or self._closed:
            return
        try:
            event = packet_codec.decode_interface_packet(packet)
        except packet_codec.PacketDecodeError as e:
            self.decode_failures += 1
            logger.warning(f"[SERIAL] Dropping undecodable packet: {e}")
            return
        self._inbox.put(event)

    def _on_connection_lost(self, interface: Any) -> None:
        if interface is not self._interface or self._closed:
            return
        logger.error(f"[SERIAL] Connection to {self.port} lost")
        self._inbox.put(CLOSED)

    # ------------------------------------------------------------------
    # MeshTransport
    # ------------------------------------------------------------------

    def receive_events(self) -> Iterator[MeshEvent]:
        yield from drain_inbox(self._inbox, lambda: self._closed)
        logger.debug("[SERIAL] Event stream ended")

    def send(self, request: OutboundMeshSend) -> None:
        if not self.is_open:
            raise MeshSendError("Serial interface is not connected")

        try:
            with self._write_lock:
                if request.is_ack:
                    packet = packet_codec.build_mesh_packet(request)
                    self._interface._sendPacket(packet, destinationId=request.destination)
                    logger.debug(f"[SERIAL] Sent ACK for packet {request.ack_for} to {format_node_id(request.destination)}")
                else:
                    self._interface.sendText(
                        request.text,
                        destinationId=request.destination,
                        wantAck=False,
                        channelIndex=request.channel,
                    )
                    logger.info(f"[SERIAL] Sent to Meshtastic channel {request.channel}: {request.text}")
        except _CONNECT_ERRORS as e:
            raise MeshSendError(f"Serial write failed: {e}") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put(CLOSED)
        if self._interface is None:
            return

        pub.unsubscribe(self._on_receive, RECEIVE_TOPIC)
        pub.unsubscribe(self._on_connection_lost, CONNECTION_LOST_TOPIC)
        try:
            logger.debug("[SERIAL] Closing Meshtastic interface")
            self._interface.close()
        except Exception as e:
            logger.debug(f"[SERIAL] Error closing interface: {e}")

    @property
    def is_open(self) -> bool:
        return self._interface is not None and not self._closed
