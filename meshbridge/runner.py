"""Startup orchestration, reader threads and shutdown."""
from __future__ import annotations

import logging
import threading
from time import sleep
from typing import Any, Callable, TYPE_CHECKING

from config_loader import log_config_sources

from . import background
from .events import TransportConnectError
from .irc_session import IrcClientSession, IrcSession
from .mesh_transport import MeshTransport
from .router import BridgeRouter
from .state import RouterState

if TYPE_CHECKING:
    from .state import BridgeState

logger = logging.getLogger(__name__)

MESH_SIDE = "Meshtastic"
IRC_SIDE = "IRC"


def load_client_version(version: str) -> str:
    return f"mesh2irc/{version}"


def handle_signal(state: BridgeState, signum: int, frame: Any) -> None:
    """Signal handler to trigger graceful shutdown."""
    logger.info(f"Received signal {signum}, shutting down...")
    state.should_exit = True


def create_mesh_transport(config: dict[str, Any]) -> MeshTransport:
    """MQTT when a broker is configured, otherwise the serial radio."""
    if config.get('mqtt', {}).get('broker'):
        if config.get('serial', {}).get('port'):
            logger.warning("Both serial.port and mqtt.broker are set; using MQTT")
        from .mqtt_transport import MqttMeshTransport
        return MqttMeshTransport(config)

    from .serial_transport import SerialMeshTransport
    return SerialMeshTransport(config)


def drain(state: BridgeState, side: str, adapter: MeshTransport | IrcSession, handle: Callable[[Any], None]) -> None:
    """Connect one adapter, then feed its events to the router until it ends.

    Runs on its own thread so neither side's connect or read can hold up the other.
    """
    try:
        logger.info(f"Initializing {side} connection...")
        adapter.connect()
        logger.info(f"{side} handler initialized, starting message loop")

        for event in adapter.receive_events():
            if state.should_exit:
                break
            handle(event)
    except TransportConnectError as e:
        logger.error(f"Failed to initialize {side} handler: {e}")
    except Exception as e:
        logger.exception(f"Unhandled error in {side} handler: {e}")
    finally:
        if not state.should_exit:
            state.mark_faulted(side)


def run(state: BridgeState) -> int:
    """Start both sides and block until shutdown or a fault. Returns an exit status."""
    log_config_sources(state.config)
    logger.info(f"Client version: {state.client_version}")

    if state.mesh is None:
        state.mesh = create_mesh_transport(state.config)
    if state.irc is None:
        state.irc = IrcClientSession(state.config)
    state.router = BridgeRouter(state.bridge_config, state.mesh, state.irc, stats=state.stats)

    readers = [
        threading.Thread(
            target=drain,
            args=(state, MESH_SIDE, state.mesh, state.router.handle_mesh_event),
            daemon=True,
            name="Mesh-Reader",
        ),
        threading.Thread(
            target=drain,
            args=(state, IRC_SIDE, state.irc, state.router.handle_irc_event),
            daemon=True,
            name="IRC-Reader",
        ),
    ]
    for thread in readers:
        thread.start()

    stats_thread = threading.Thread(
        target=background.stats_logging_loop,
        args=(state,),
        daemon=True,
        name="Stats-Logger"
    )
    stats_thread.start()
    logger.info("Bridge is running! Waiting for both connections to establish...")

    try:
        while not state.should_exit and state.router_state is RouterState.RUNNING:
            sleep(0.1)
    except KeyboardInterrupt:
        logger.info("Exiting...")
    finally:
        faulted = state.router_state is RouterState.FAULTED
        _cleanup(state, readers + [stats_thread])

    if faulted:
        logger.error(f"Bridge terminated unexpectedly ({state.faulted_side} side ended)")
        return 1
    return 0


def _cleanup(state: BridgeState, threads: list[threading.Thread]) -> None:
    """Stop draining, close both adapters and wait briefly for the threads."""
    logger.info("Cleaning up...")
    state.should_exit = True

    for adapter in (state.mesh, state.irc):
        if adapter is None:
            continue
        try:
            adapter.close()
        except Exception as e:
            logger.debug(f"Error closing {type(adapter).__name__}: {e}")

    for thread in threads:
        if thread.is_alive():
            thread.join(timeout=5)

    state.router_state = RouterState.STOPPED
