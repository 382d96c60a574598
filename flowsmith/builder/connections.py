# flowsmith/builder/connections.py
"""
Connection adjacency for workflow documents.

n8n stores connections as

    connections[<source name>][<port type>] = [ port0, port1, ... ]
    port_i = [ {"node": <target name>, "type": "main", "index": <target input>}, ... ]

i.e. a list of ports, each a list of target descriptors. `Connections` is the
only place edges are created, so this double-nested shape holds by
construction; `normalize_connections` is the boundary adapter for adjacency
coming from outside (AI drafts, user files).
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, record

logger = get_logger("connections")

MAIN = "main"


@dataclass(frozen=True)
class Edge:
    node: str
    type: str = MAIN
    index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"node": self.node, "type": self.type, "index": self.index}


class Connections:
    """source name -> port type -> list of ports (each a list of Edge)."""

    def __init__(self) -> None:
        self._adj: Dict[str, Dict[str, List[List[Edge]]]] = {}

    # --- construction ---

    @classmethod
    def from_dict(cls, raw: Any, trace: Optional[DecisionTrace] = None) -> "Connections":
        conns = cls()
        for src, by_type in normalize_connections(raw, trace=trace).items():
            for port_type, ports in by_type.items():
                conns.ensure_ports(src, len(ports), port_type)
                for i, port in enumerate(ports):
                    for d in port:
                        conns.add(src, d["node"], source_port=i, target_index=d["index"],
                                  port_type=port_type, edge_type=d["type"])
        return conns

    def ensure_ports(self, source: str, count: int, port_type: str = MAIN) -> List[List[Edge]]:
        """Make sure `source` has at least `count` (possibly empty) ports."""
        ports = self._adj.setdefault(source, {}).setdefault(port_type, [])
        while len(ports) < count:
            ports.append([])
        return ports

    def add(self, source: str, target: str, source_port: int = 0, target_index: int = 0,
            port_type: str = MAIN, edge_type: Optional[str] = None) -> bool:
        """Add an edge; returns False if the identical edge already exists."""
        ports = self.ensure_ports(source, source_port + 1, port_type)
        edge = Edge(node=str(target), type=edge_type or port_type, index=max(0, int(target_index)))
        if edge in ports[source_port]:
            return False
        ports[source_port].append(edge)
        return True

    def remove_edges_to(self, target: str) -> int:
        removed = 0
        for by_type in self._adj.values():
            for ports in by_type.values():
                for i, port in enumerate(ports):
                    kept = [e for e in port if e.node != target]
                    removed += len(port) - len(kept)
                    ports[i] = kept
        return removed

    def rename(self, old: str, new: str) -> None:
        """Re-key a source and retarget edges from `old` to `new`."""
        if old == new:
            return
        if old in self._adj:
            moved = self._adj.pop(old)
            for port_type, ports in moved.items():
                existing = self.ensure_ports(new, len(ports), port_type)
                for i, port in enumerate(ports):
                    for e in port:
                        if e not in existing[i]:
                            existing[i].append(e)
        for by_type in self._adj.values():
            for ports in by_type.values():
                for i, port in enumerate(ports):
                    ports[i] = [Edge(new, e.type, e.index) if e.node == old else e for e in port]

    # --- queries ---

    def sources(self) -> List[str]:
        return list(self._adj.keys())

    def ports(self, source: str, port_type: str = MAIN) -> List[List[Edge]]:
        return [list(p) for p in self._adj.get(source, {}).get(port_type, [])]

    def iter_edges(self) -> Iterator[Tuple[str, int, Edge]]:
        """Yield (source, source port index, edge) over every port type."""
        for src, by_type in self._adj.items():
            for ports in by_type.values():
                for i, port in enumerate(ports):
                    for e in port:
                        yield src, i, e

    def targets(self) -> Set[str]:
        return {e.node for _, _, e in self.iter_edges()}

    def has_outgoing(self, source: str) -> bool:
        return any(port for ports in self._adj.get(source, {}).values() for port in ports)

    def first_target(self, source: str) -> Optional[str]:
        """Target of main[0][0], the edge followed when walking a branch."""
        ports = self._adj.get(source, {}).get(MAIN, [])
        if ports and ports[0]:
            return ports[0][0].node
        return None

    def to_dict(self) -> Dict[str, Dict[str, List[List[Dict[str, Any]]]]]:
        out: Dict[str, Dict[str, List[List[Dict[str, Any]]]]] = {}
        for src, by_type in self._adj.items():
            out[src] = {pt: [[e.to_dict() for e in port] for port in ports]
                        for pt, ports in by_type.items()}
        return out

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_edges())


# ---------------------------------------------------------------------------
# Boundary normalizer
# ---------------------------------------------------------------------------

def _as_int(v: Any) -> int:
    try:
        i = int(v)
    except (TypeError, ValueError):
        return 0
    return i if i >= 0 else 0


def _descriptor(item: Any, port_type: str) -> Optional[Dict[str, Any]]:
    """Canonical {"node", "type", "index"} or None when no target can be read."""
    if isinstance(item, str):
        name = item.strip()
        return {"node": name, "type": port_type, "index": 0} if name else None
    if isinstance(item, dict):
        name = item.get("node", item.get("targetName", item.get("name")))
        if not isinstance(name, str) or not name.strip():
            return None
        etype = item.get("type", item.get("portType", port_type))
        return {
            "node": name,
            "type": etype if isinstance(etype, str) and etype else port_type,
            "index": _as_int(item.get("index", item.get("targetInputIndex", 0))),
        }
    return None


def _ports(value: Any, port_type: str, src: str, trace: Optional[DecisionTrace]) -> List[List[Dict[str, Any]]]:
    # single descriptor / bare name
    if isinstance(value, (str, dict)):
        d = _descriptor(value, port_type)
        record(trace, "connections", "single-descriptor", source=src)
        return [[d]] if d else []
    if not isinstance(value, list):
        record(trace, "connections", "dropped-port-value", source=src, value_type=type(value).__name__)
        return []

    # flat list of descriptors: missing port wrapper
    if value and all(not isinstance(x, list) for x in value if x is not None):
        port = [d for d in (_descriptor(x, port_type) for x in value) if d]
        record(trace, "connections", "wrapped-flat-port", source=src, targets=len(port))
        return [port]

    ports: List[List[Dict[str, Any]]] = []
    for entry in value:
        if entry is None:
            ports.append([])
        elif isinstance(entry, list):
            ports.append([d for d in (_descriptor(x, port_type) for x in entry) if d])
        else:
            d = _descriptor(entry, port_type)
            ports.append([d] if d else [])
    return ports


def normalize_connections(raw: Any, trace: Optional[DecisionTrace] = None) -> Dict[str, Dict[str, List[List[Dict[str, Any]]]]]:
    """
    Rewrite an adjacency map to canonical double-nested form.

    Fixes: a flat descriptor list (wrapped as one port), bare target names
    (expanded to main/index 0 descriptors), a single descriptor, and a port
    list given without its port-type key. Canonical input is returned as an
    equal value, so normalize(normalize(x)) == normalize(x).
    """
    out: Dict[str, Dict[str, List[List[Dict[str, Any]]]]] = {}
    if not isinstance(raw, dict):
        if raw not in (None, {}):
            logger.warning("connections is not an object (%s); ignoring", type(raw).__name__)
            record(trace, "connections", "dropped-non-object", value_type=type(raw).__name__)
        return out

    for src, by_type in raw.items():
        src = str(src)
        if isinstance(by_type, list):
            record(trace, "connections", "missing-port-type", source=src)
            by_type = {MAIN: by_type}
        if not isinstance(by_type, dict):
            record(trace, "connections", "dropped-source", source=src)
            continue
        norm: Dict[str, List[List[Dict[str, Any]]]] = {}
        for port_type, value in by_type.items():
            norm[str(port_type)] = _ports(value, str(port_type), src, trace)
        out[src] = norm
    return out
