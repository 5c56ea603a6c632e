"""Bridge router: the single place events are translated and relayed."""
from __future__ import annotations

import logging
import threading
from typing import Any, TYPE_CHECKING

from .events import (
    ChannelMessage,
    IrcSendError,
    MeshEvent,
    MeshSendError,
    NodeInfo,
    OutboundMeshSend,
    TextMessage,
)
from .node_directory import NodeDirectory, format_node_id

if TYPE_CHECKING:
    from .irc_session import IrcSession
    from .mesh_transport import MeshTransport
    from .state import BridgeConfig

logger = logging.getLogger(__name__)


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut ``text`` to at most ``max_bytes`` of UTF-8 without splitting a character."""
    encoded = text.encode('utf-8')
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode('utf-8', errors='ignore')


def format_for_irc(config: BridgeConfig, name: str, text: str) -> str:
    return truncate_utf8(config.mesh_prefix_format.format(name=name, text=text), config.irc_max_bytes)


def format_for_mesh(config: BridgeConfig, nick: str, text: str) -> str:
    return truncate_utf8(config.irc_prefix_format.format(nick=nick, text=text), config.mesh_max_bytes)


class BridgeRouter:
    """Consumes events from both adapters and drives their outbound paths.

    Both reader threads call into this object; one lock covers the node
    directory and every outbound send so events are handled one at a time.
    Send failures are logged and counted, never raised.
    """

    def __init__(
        self,
        config: BridgeConfig,
        mesh: MeshTransport,
        irc: IrcSession,
        directory: NodeDirectory | None = None,
        stats: dict[str, Any] | None = None,
    ) -> None:
        self.config = config
        self.mesh = mesh
        self.irc = irc
        self.directory = directory if directory is not None else NodeDirectory()
        self.stats = stats if stats is not None else {}
        self._lock = threading.Lock()

    def _count(self, key: str) -> None:
        self.stats[key] = self.stats.get(key, 0) + 1

    def handle_mesh_event(self, event: MeshEvent) -> None:
        with self._lock:
            self._count('mesh_rx')

            if isinstance(event, NodeInfo):
                self.directory.observe_name(event.node_id, event.short_name)
                return

            if not isinstance(event, TextMessage):
                logger.debug(f"[MESH] Ignoring {event}")
                return

            if event.channel != self.config.mesh_channel:
                logger.debug(f"[MESH] Ignoring packet from channel {event.channel}")
                self._count('dropped')
                return

            self.directory.observe(event.sender)
            name = self.directory.resolve(event.sender)
            message = format_for_irc(self.config, name, event.text)
            logger.info(f"[MESH] Received Meshtastic message: {message}")

            try:
                self.irc.send(message)
                self._count('relayed_to_irc')
            except IrcSendError as e:
                self._count('send_failures')
                logger.error(f"[IRC] Failed to relay mesh message: {e}")

            if event.wants_ack and event.packet_id:
                self._send_ack(event)

    def _send_ack(self, event: TextMessage) -> None:
        request = OutboundMeshSend(
            channel=event.channel,
            ack_for=event.packet_id,
            destination=event.sender,
        )
        logger.debug(f"[MESH] Sending ACK for packet {event.packet_id} to node {format_node_id(event.sender)}")
        try:
            self.mesh.send(request)
            self._count('acks_sent')
        except MeshSendError as e:
            self._count('send_failures')
            logger.error(f"[MESH] Failed to send ACK for packet {event.packet_id}: {e}")

    def handle_irc_event(self, event: ChannelMessage) -> None:
        with self._lock:
            self._count('irc_rx')
            request = OutboundMeshSend(
                channel=self.config.mesh_channel,
                text=format_for_mesh(self.config, event.nickname, event.text),
            )
            try:
                self.mesh.send(request)
                self._count('relayed_to_mesh')
            except MeshSendError as e:
                self._count('send_failures')
                logger.error(f"[MESH] Failed to relay IRC message from {event.nickname}: {e}")
