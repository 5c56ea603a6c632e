"""Shared mutable state container and the immutable relay settings."""
from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from .packet_codec import MAX_TEXT_BYTES

if TYPE_CHECKING:
    from .irc_session import IrcSession
    from .mesh_transport import MeshTransport
    from .router import BridgeRouter

logger = logging.getLogger(__name__)

# A PRIVMSG line is capped at 512 bytes including command, target and CRLF
DEFAULT_IRC_MAX_BYTES = 400


class RouterState(enum.Enum):
    RUNNING = "running"
    FAULTED = "faulted"
    STOPPED = "stopped"


@dataclass(frozen=True)
class BridgeConfig:
    """The part of the configuration the router needs, fixed for the process lifetime."""
    mesh_channel: int = 0
    irc_channel: str = "#meshtastic"
    irc_nickname: str = "meshtastic-bridge"
    mesh_prefix_format: str = "[mesh-{name}]: {text}"
    irc_prefix_format: str = "[IRC-{nick}] {text}"
    mesh_max_bytes: int = MAX_TEXT_BYTES
    irc_max_bytes: int = DEFAULT_IRC_MAX_BYTES

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> BridgeConfig:
        irc_cfg = config.get('irc', {})
        mesh_cfg = config.get('meshtastic', {})
        return cls(
            mesh_channel=int(mesh_cfg.get('channel', 0)),
            irc_channel=irc_cfg.get('channel', cls.irc_channel),
            irc_nickname=irc_cfg.get('nickname', cls.irc_nickname),
            mesh_max_bytes=int(mesh_cfg.get('max_message_bytes', MAX_TEXT_BYTES)),
            irc_max_bytes=int(irc_cfg.get('max_message_bytes', DEFAULT_IRC_MAX_BYTES)),
        )


class BridgeState:
    """All shared mutable state for the bridge."""

    def __init__(self, config: dict[str, Any], debug: bool = False) -> None:
        self.config = config
        self.debug = debug
        self.bridge_config = BridgeConfig.from_config(config)
        self.client_version: str = ""

        # Adapters and router (set during startup)
        self.mesh: MeshTransport | None = None
        self.irc: IrcSession | None = None
        self.router: BridgeRouter | None = None

        # Lifecycle
        self.should_exit: bool = False
        self.router_state: RouterState = RouterState.RUNNING
        self.faulted_side: str | None = None

        self.stats_interval: int = config.get('general', {}).get('stats_interval', 300)

        # Statistics tracking
        self.stats: dict[str, Any] = {
            'start_time': time.time(),
            'mesh_rx': 0,
            'irc_rx': 0,
            'relayed_to_irc': 0,
            'relayed_to_mesh': 0,
            'acks_sent': 0,
            'dropped': 0,
            'send_failures': 0,
            'mesh_rx_prev': 0,
            'irc_rx_prev': 0,
            'last_stats_log': time.time(),
        }

    def mark_faulted(self, side: str) -> None:
        if self.router_state is RouterState.RUNNING:
            self.router_state = RouterState.FAULTED
            self.faulted_side = side
            logger.error(f"{side} side terminated, bridge faulted")
