"""Event and outbound-request types shared by the transports and the router."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

BROADCAST_NUM = 0xFFFFFFFF


class MeshSendError(Exception):
    """An outbound mesh write failed; the transport may be unusable."""


class IrcSendError(Exception):
    """An outbound IRC message could not be written."""


class TransportConnectError(Exception):
    """An adapter could not establish its connection."""


@dataclass(frozen=True)
class TextMessage:
    sender: int
    channel: int
    text: str
    wants_ack: bool = False
    packet_id: int = 0


@dataclass(frozen=True)
class NodeInfo:
    node_id: int
    short_name: str


@dataclass(frozen=True)
class OtherMeshEvent:
    """Anything the router does not relay (position, telemetry, encrypted...)."""
    reason: str = ""


MeshEvent = Union[TextMessage, NodeInfo, OtherMeshEvent]


@dataclass(frozen=True)
class ChannelMessage:
    nickname: str
    text: str


@dataclass(frozen=True)
class OutboundMeshSend:
    """A text broadcast, or an ack for ``ack_for`` when that is set."""
    channel: int
    text: str = ""
    ack_for: int | None = None
    destination: int = BROADCAST_NUM

    @property
    def is_ack(self) -> bool:
        return self.ack_for is not None
