# flowsmith/utils/graph.py
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Tuple
import numbers

import networkx as nx

from flowsmith.builder.connections import Connections
from flowsmith.nodes.catalog import is_loop_node

ROW_TOLERANCE = 150
ROW_MIN_DX = 50


def build_graph(document: Dict[str, Any]) -> nx.DiGraph:
    """
    Build a DiGraph keyed by node *name* from a workflow document.

    Connections are read through the normalizer, so single-nested or
    otherwise malformed adjacency still produces edges. Edges whose source
    or target is not a known node are skipped (the validator reports them
    as dangling).
    """
    G = nx.DiGraph()
    for n in document.get("nodes", []) or []:
        if not isinstance(n, dict):
            continue
        name = n.get("name")
        if not isinstance(name, str):
            continue
        G.add_node(name, **n)

    conns = Connections.from_dict(document.get("connections"))
    for src, port, edge in conns.iter_edges():
        if src in G and edge.node in G:
            G.add_edge(src, edge.node, port=port, index=edge.index)
    return G


def nodes_by_name(document: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """First node wins when names clash."""
    out: Dict[str, Dict[str, Any]] = {}
    for n in document.get("nodes", []) or []:
        if isinstance(n, dict) and isinstance(n.get("name"), str):
            out.setdefault(n["name"], n)
    return out


def xy(node: Dict[str, Any]) -> Tuple[float, float]:
    pos = node.get("position")
    if isinstance(pos, (list, tuple)) and len(pos) == 2 and all(
        isinstance(v, numbers.Real) and not isinstance(v, bool) for v in pos
    ):
        return float(pos[0]), float(pos[1])
    return 0.0, 0.0


def same_row(a: Dict[str, Any], b: Dict[str, Any], tolerance: float = ROW_TOLERANCE) -> bool:
    return abs(xy(a)[1] - xy(b)[1]) <= tolerance


def row_successor(
    node: Dict[str, Any],
    candidates: Iterable[Dict[str, Any]],
    tolerance: float = ROW_TOLERANCE,
    min_dx: float = ROW_MIN_DX,
) -> Optional[Dict[str, Any]]:
    """Nearest node to the right on the same row (x > node.x + min_dx)."""
    x0, _ = xy(node)
    best: Optional[Dict[str, Any]] = None
    best_dx = None
    for c in candidates:
        if c is node or c.get("name") == node.get("name"):
            continue
        x, _ = xy(c)
        if x <= x0 + min_dx or not same_row(node, c, tolerance):
            continue
        dx = x - x0
        if best_dx is None or dx < best_dx:
            best, best_dx = c, dx
    return best


def row_predecessor(
    node: Dict[str, Any],
    candidates: Iterable[Dict[str, Any]],
    tolerance: float = ROW_TOLERANCE,
) -> Optional[Dict[str, Any]]:
    """Nearest node to the left on the same row, by euclidean distance."""
    x0, y0 = xy(node)
    best: Optional[Dict[str, Any]] = None
    best_d = None
    for c in candidates:
        if c is node or c.get("name") == node.get("name"):
            continue
        x, y = xy(c)
        if x >= x0 or not same_row(node, c, tolerance):
            continue
        d = ((x - x0) ** 2 + (y - y0) ** 2) ** 0.5
        if best_d is None or d < best_d:
            best, best_d = c, d
    return best


def branch_end(conns: Connections, start: str, by_name: Dict[str, Dict[str, Any]]) -> Optional[str]:
    """
    Follow main[0][0] from `start` until a node with no outgoing edge.

    Stops early at loop nodes (split-in-batches etc. point back upstream) and
    on cycles; returns the last node reached, or None if `start` is unknown.
    """
    if start not in by_name:
        return None
    seen: List[str] = []
    current = start
    while True:
        seen.append(current)
        node = by_name.get(current)
        if node is not None and is_loop_node(node):
            return current
        nxt = conns.first_target(current)
        if nxt is None or nxt not in by_name or nxt in seen:
            return current
        current = nxt
