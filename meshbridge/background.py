"""Background thread loop for periodic relay statistics."""
from __future__ import annotations

import logging
import time
from time import sleep
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .state import BridgeState

logger = logging.getLogger(__name__)


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def log_stats(state: BridgeState) -> None:
    """Emit one [SERVICE] summary line and roll the per-interval counters."""
    stats = state.stats
    now = time.time()

    time_elapsed = now - stats['last_stats_log']
    rx_delta = (stats['mesh_rx'] - stats['mesh_rx_prev']) + (stats['irc_rx'] - stats['irc_rx_prev'])
    events_per_min = (rx_delta / time_elapsed) * 60 if time_elapsed > 0 else 0
    stats['mesh_rx_prev'] = stats['mesh_rx']
    stats['irc_rx_prev'] = stats['irc_rx']

    decode_failures = getattr(state.mesh, 'decode_failures', 0)
    known_nodes = len(state.router.directory) if state.router else 0
    irc_up = "up" if state.irc and state.irc.is_connected else "down"
    mesh_up = "up" if state.mesh and state.mesh.is_open else "down"

    logger.info(
        f"[SERVICE] Uptime: {format_uptime(now - stats['start_time'])} | "
        f"Mesh/IRC RX: {stats['mesh_rx']}/{stats['irc_rx']} ({events_per_min:.1f}/min) | "
        f"Relayed to IRC/mesh: {stats['relayed_to_irc']}/{stats['relayed_to_mesh']} | "
        f"ACKs: {stats['acks_sent']} | Dropped: {stats['dropped']} | "
        f"Failures: send={stats['send_failures']} decode={decode_failures} | "
        f"Nodes: {known_nodes} | Mesh: {mesh_up} IRC: {irc_up}"
    )
    stats['last_stats_log'] = now


def stats_logging_loop(state: BridgeState) -> None:
    """Log statistics every ``general.stats_interval`` seconds (default 5 minutes)."""
    if state.stats_interval <= 0:
        return

    next_log = time.time() + state.stats_interval
    while not state.should_exit:
        sleep(1)
        if time.time() >= next_log and not state.should_exit:
            log_stats(state)
            next_log = time.time() + state.stats_interval
