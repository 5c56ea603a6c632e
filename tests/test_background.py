"""Tests for the periodic statistics log."""
from __future__ import annotations

import logging
import time

from meshbridge.background import format_uptime, log_stats, stats_logging_loop
from meshbridge.router import BridgeRouter
from tests.fakes import FakeIrcSession, FakeMeshTransport, make_config, make_test_state


class TestFormatUptime:
    def test_minutes_only(self):
        assert format_uptime(125) == "2m"

    def test_hours_and_minutes(self):
        assert format_uptime(3 * 3600 + 5 * 60) == "3h 5m"


class TestLogStats:
    def test_service_line(self, caplog):
        mesh = FakeMeshTransport()
        mesh.connected = True
        irc = FakeIrcSession()
        state = make_test_state(mesh=mesh, irc=irc)
        state.router = BridgeRouter(state.bridge_config, mesh, irc, stats=state.stats)
        state.router.directory.observe_name(1, "Alice")
        state.stats['mesh_rx'] = 4
        state.stats['irc_rx'] = 2
        state.stats['relayed_to_irc'] = 3
        state.stats['last_stats_log'] = time.time() - 60

        with caplog.at_level(logging.INFO, logger='meshbridge.background'):
            log_stats(state)

        line = caplog.records[-1].getMessage()
        assert line.startswith("[SERVICE]")
        assert "Mesh/IRC RX: 4/2" in line
        assert "Relayed to IRC/mesh: 3/0" in line
        assert "Nodes: 1" in line
        assert "Mesh: up IRC: down" in line
        assert state.stats['mesh_rx_prev'] == 4
        assert state.stats['irc_rx_prev'] == 2

    def test_before_router_exists(self, caplog):
        state = make_test_state()
        with caplog.at_level(logging.INFO, logger='meshbridge.background'):
            log_stats(state)
        assert "Nodes: 0" in caplog.records[-1].getMessage()


def test_loop_disabled_returns_immediately():
    state = make_test_state(config=make_config(general={'stats_interval': 0}))
    stats_logging_loop(state)
    assert state.should_exit is False
