"""Meshtastic protobuf decoding into bridge events, and encoding of outbound packets."""
from __future__ import annotations

import logging
from typing import Any

from google.protobuf.message import DecodeError
from meshtastic.protobuf import mesh_pb2, mqtt_pb2, portnums_pb2

from .events import MeshEvent, NodeInfo, OtherMeshEvent, OutboundMeshSend, TextMessage

logger = logging.getLogger(__name__)

# Largest Data.payload the firmware accepts
MAX_TEXT_BYTES: int = mesh_pb2.Constants.DATA_PAYLOAD_LEN


class PacketDecodeError(ValueError):
    """A frame or envelope could not be turned into an event."""


def _portnum_name(portnum: int) -> str:
    try:
        return portnums_pb2.PortNum.Name(portnum)
    except ValueError:
        return f"PORTNUM_{portnum}"


def decode_mesh_packet(packet: mesh_pb2.MeshPacket) -> MeshEvent:
    """Translate one MeshPacket into a TextMessage, NodeInfo or OtherMeshEvent."""
    sender = getattr(packet, 'from')

    if packet.WhichOneof('payload_variant') != 'decoded':
        return OtherMeshEvent("encrypted")

    data = packet.decoded
    if data.portnum == portnums_pb2.TEXT_MESSAGE_APP:
        try:
            text = data.payload.decode('utf-8')
        except UnicodeDecodeError as e:
            raise PacketDecodeError(f"Text payload from {sender:08x} is not valid UTF-8") from e
        return TextMessage(
            sender=sender,
            channel=packet.channel,
            text=text,
            wants_ack=packet.want_ack,
            packet_id=packet.id,
        )

    if data.portnum == portnums_pb2.NODEINFO_APP:
        user = mesh_pb2.User()
        try:
            user.ParseFromString(data.payload)
        except DecodeError as e:
            raise PacketDecodeError(f"Malformed User payload from {sender:08x}: {e}") from e
        if not user.short_name:
            return OtherMeshEvent("NODEINFO_APP without short name")
        return NodeInfo(node_id=sender, short_name=user.short_name)

    return OtherMeshEvent(_portnum_name(data.portnum))


def decode_interface_packet(packet: dict[str, Any]) -> MeshEvent:
    """Decode a packet dict as published by meshtastic's ``meshtastic.receive`` topic."""
    raw = packet.get('raw')
    if isinstance(raw, mesh_pb2.MeshPacket):
        return decode_mesh_packet(raw)
    return OtherMeshEvent("packet without raw MeshPacket")


def node_info_from_dict(node: dict[str, Any]) -> NodeInfo | None:
    """Build a NodeInfo from an entry of ``SerialInterface.nodesByNum``."""
    num = node.get('num')
    short_name = node.get('user', {}).get('shortName')
    if num is None or not short_name:
        return None
    return NodeInfo(node_id=int(num), short_name=short_name)


def decode_envelope(payload: bytes) -> mqtt_pb2.ServiceEnvelope:
    """Parse an MQTT payload published by a Meshtastic gateway."""
    envelope = mqtt_pb2.ServiceEnvelope()
    try:
        envelope.ParseFromString(payload)
    except DecodeError as e:
        raise PacketDecodeError(f"Failed to decode ServiceEnvelope: {e}") from e
    if not envelope.HasField('packet'):
        raise PacketDecodeError("ServiceEnvelope carries no packet")
    return envelope


def build_mesh_packet(request: OutboundMeshSend) -> mesh_pb2.MeshPacket:
    """Encode a text broadcast or a routing ack as a MeshPacket."""
    packet = mesh_pb2.MeshPacket()
    packet.to = request.destination
    packet.channel = request.channel

    if request.is_ack:
        routing = mesh_pb2.Routing(error_reason=mesh_pb2.Routing.NONE)
        packet.priority = mesh_pb2.MeshPacket.ACK
        packet.decoded.portnum = portnums_pb2.ROUTING_APP
        packet.decoded.request_id = request.ack_for
        packet.decoded.payload = routing.SerializeToString()
    else:
        packet.decoded.portnum = portnums_pb2.TEXT_MESSAGE_APP
        packet.decoded.payload = request.text.encode('utf-8')

    return packet


def build_envelope(packet: mesh_pb2.MeshPacket, channel_id: str, gateway_id: str) -> bytes:
    envelope = mqtt_pb2.ServiceEnvelope(channel_id=channel_id, gateway_id=gateway_id)
    envelope.packet.CopyFrom(packet)
    return envelope.SerializeToString()
