"""In-memory directory of mesh node numbers and their advertised short names."""
from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


def format_node_id(node_id: int) -> str:
    """Render a node number the way the radio firmware prints it."""
    return f"{node_id & 0xFFFFFFFF:08x}"


@dataclass
class NodeRecord:
    node_id: int
    short_name: str | None = None


class NodeDirectory:
    """Maps node numbers to display names. Grows only; never raises.

    Not thread-safe on its own: the router serializes access.
    """

    def __init__(self) -> None:
        self._records: dict[int, NodeRecord] = {}

    def resolve(self, node_id: int) -> str:
        record = self._records.get(node_id)
        if record and record.short_name:
            return record.short_name
        return format_node_id(node_id)

    def observe(self, node_id: int) -> NodeRecord:
        record = self._records.get(node_id)
        if record is None:
            record = NodeRecord(node_id)
            self._records[node_id] = record
            logger.debug(f"[MESH] First sighting of node {format_node_id(node_id)}")
        return record

    def observe_name(self, node_id: int, name: str) -> None:
        record = self.observe(node_id)
        if record.short_name != name:
            logger.info(f"[MESH] Discovered node: {name} (ID: {format_node_id(node_id)})")
        record.short_name = name

    def get(self, node_id: int) -> NodeRecord | None:
        return self._records.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._records

    def __len__(self) -> int:
        return len(self._records)
