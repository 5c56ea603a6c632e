"""Tests for SerialMeshTransport using a fake meshtastic interface."""
from __future__ import annotations

from unittest.mock import patch

import pytest
import serial
from meshtastic.protobuf import portnums_pb2

from meshbridge.events import (
    MeshSendError,
    NodeInfo,
    OutboundMeshSend,
    TextMessage,
    TransportConnectError,
)
from meshbridge.serial_transport import SerialMeshTransport
from tests.fakes import FakeMeshInterface, make_config
from tests.test_packet_codec import text_packet


def connected_transport(interface: FakeMeshInterface | None = None, port: str = '/dev/ttyUSB0') -> SerialMeshTransport:
    interface = interface or FakeMeshInterface()
    transport = SerialMeshTransport(make_config(serial={'port': port}), interface_factory=lambda p: interface)
    transport.connect()
    return transport


class TestConnect:
    def test_configured_port(self):
        opened = []
        interface = FakeMeshInterface()

        def factory(port):
            opened.append(port)
            return interface

        transport = SerialMeshTransport(make_config(serial={'port': '/dev/ttyACM3'}), interface_factory=factory)
        try:
            transport.connect()
            assert opened == ['/dev/ttyACM3']
            assert transport.is_open
        finally:
            transport.close()

    def test_failure_raises_connect_error(self):
        def factory(port):
            raise serial.SerialException("could not open port: [Errno 16] Device or resource busy")

        transport = SerialMeshTransport(make_config(), interface_factory=factory)
        with pytest.raises(TransportConnectError):
            transport.connect()
        assert not transport.is_open

    def test_autodetect_tries_candidates_in_order(self):
        opened = []
        interface = FakeMeshInterface()

        def factory(port):
            opened.append(port)
            if port == '/dev/ttyUSB0':
                raise OSError("no device")
            return interface

        transport = SerialMeshTransport(make_config(serial={'port': ''}), interface_factory=factory)
        with patch('meshbridge.serial_detect.candidate_ports', return_value=['/dev/ttyUSB0', '/dev/ttyACM0']):
            transport.connect()
        try:
            assert opened == ['/dev/ttyUSB0', '/dev/ttyACM0']
            assert transport.port == '/dev/ttyACM0'
        finally:
            transport.close()

    def test_autodetect_no_candidates(self):
        transport = SerialMeshTransport(make_config(serial={'port': ''}), interface_factory=lambda p: FakeMeshInterface())
        with patch('meshbridge.serial_detect.candidate_ports', return_value=[]):
            with pytest.raises(TransportConnectError):
                transport.connect()

    def test_known_nodes_replayed_as_events(self):
        interface = FakeMeshInterface(nodes_by_num={
            0x10: {'num': 0x10, 'user': {'shortName': 'AAA'}},
            0x20: {'num': 0x20, 'user': {}},
        })
        transport = connected_transport(interface)
        try:
            assert transport._inbox.get_nowait() == NodeInfo(0x10, "AAA")
            assert transport._inbox.empty()
        finally:
            transport.close()


class TestReceive:
    def test_packets_become_events(self):
        interface = FakeMeshInterface()
        transport = connected_transport(interface)
        transport._on_receive({'raw': text_packet(b"hello", packet_id=7)}, interface)
        transport._on_connection_lost(interface)

        events = list(transport.receive_events())
        assert events == [TextMessage(sender=0x1234, channel=0, text="hello", packet_id=7)]
        transport.close()

    def test_other_interface_ignored(self):
        interface = FakeMeshInterface()
        transport = connected_transport(interface)
        transport._on_receive({'raw': text_packet(b"hello")}, FakeMeshInterface())
        transport.close()
        assert list(transport.receive_events()) == []

    def test_decode_failure_is_skipped(self):
        interface = FakeMeshInterface()
        transport = connected_transport(interface)
        transport._on_receive({'raw': text_packet(b"\xff")}, interface)
        transport._on_receive({'raw': text_packet(b"ok")}, interface)
        transport._on_connection_lost(interface)

        events = list(transport.receive_events())
        assert [e.text for e in events] == ["ok"]
        assert transport.decode_failures == 1
        transport.close()

    def test_close_ends_stream(self):
        transport = connected_transport()
        transport.close()
        assert list(transport.receive_events()) == []


class TestSend:
    def test_text_uses_send_text(self):
        interface = FakeMeshInterface()
        transport = connected_transport(interface)
        transport.send(OutboundMeshSend(channel=2, text="[IRC-bob] hi"))
        text, kwargs = interface.texts_sent[0]
        assert text == "[IRC-bob] hi"
        assert kwargs['channelIndex'] == 2
        assert kwargs['wantAck'] is False
        transport.close()

    def test_ack_sends_routing_packet(self):
        interface = FakeMeshInterface()
        transport = connected_transport(interface)
        transport.send(OutboundMeshSend(channel=0, ack_for=321, destination=0x1234))
        packet, kwargs = interface.packets_sent[0]
        assert packet.decoded.portnum == portnums_pb2.ROUTING_APP
        assert packet.decoded.request_id == 321
        assert kwargs['destinationId'] == 0x1234
        assert interface.texts_sent == []
        transport.close()

    def test_write_error_raises_send_error(self):
        interface = FakeMeshInterface(send_error=serial.SerialException("write failed"))
        transport = connected_transport(interface)
        with pytest.raises(MeshSendError):
            transport.send(OutboundMeshSend(channel=0, text="x"))
        transport.close()

    def test_send_before_connect(self):
        transport = SerialMeshTransport(make_config(), interface_factory=lambda p: FakeMeshInterface())
        with pytest.raises(MeshSendError):
            transport.send(OutboundMeshSend(channel=0, text="x"))

    def test_close_closes_interface(self):
        interface = FakeMeshInterface()
        transport = connected_transport(interface)
        transport.close()
        assert interface.closed
        assert not transport.is_open
