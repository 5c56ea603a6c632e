"""Meshtastic to IRC bridge package."""
from __future__ import annotations

from typing import Any

from .state import BridgeState
from . import runner


class MeshIrcBridge:
    """Facade: creates BridgeState, exposes run() and handle_signal()."""

    def __init__(self, config: dict[str, Any], debug: bool = False, version: str = "0.0.0") -> None:
        self.state = BridgeState(config, debug)
        self.state.client_version = runner.load_client_version(version)

    def run(self) -> int:
        return runner.run(self.state)

    def handle_signal(self, signum: int, frame: Any) -> None:
        runner.handle_signal(self.state, signum, frame)
