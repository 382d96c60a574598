# flowsmith/structural/repair.py
"""
Structural auto-repair.

Runs on a deep copy and returns (document, fix_count). Fix order:

  1. canonical connections, no edges into triggers
  2. reconverge open switch branches into a merge node
  3. connect disconnected nodes from their left row neighbour
  4. chain dangling outputs to their right row neighbour

Empty switch ports are never filled.
"""

from __future__ import annotations
from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple

from flowsmith.builder.common import NameRegistry
from flowsmith.builder.connections import Connections, normalize_connections
from flowsmith.config import BuildConfig, DEFAULT_CONFIG
from flowsmith.nodes.catalog import NODE_PREFIX, is_concluding, is_trigger_node, merge_input, short_type
from flowsmith.utils.graph import branch_end, nodes_by_name, row_predecessor, row_successor, xy
from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, record

logger = get_logger("repair")

MERGE_TYPE_VERSION = 2


def _next_id(nodes: List[Dict[str, Any]]) -> str:
    used = {str(n.get("id")) for n in nodes}
    i = len(nodes) + 1
    while str(i) in used:
        i += 1
    return str(i)


def _canonicalize(doc: Dict[str, Any], trace: Optional[DecisionTrace]) -> Tuple[Connections, int]:
    raw = doc.get("connections")
    fixes = 0
    if normalize_connections(raw) != raw:
        fixes += 1
        record(trace, "repair", "connections-normalized")
    conns = Connections.from_dict(raw, trace=trace)

    for n in doc["nodes"]:
        if is_trigger_node(n):
            dropped = conns.remove_edges_to(n.get("name"))
            if dropped:
                fixes += dropped
                record(trace, "repair", "trigger-incoming-dropped", node=n.get("name"), edges=dropped)
    return conns, fixes


def _reconverge_switches(doc: Dict[str, Any], conns: Connections, cfg: BuildConfig,
                         trace: Optional[DecisionTrace]) -> int:
    fixes = 0
    registry = NameRegistry(n.get("name") for n in doc["nodes"])
    for sw in [n for n in doc["nodes"] if short_type(n.get("type", "")) == "switch"]:
        by_name = nodes_by_name(doc)
        name = sw.get("name")
        ends: List[str] = []
        for port in conns.ports(name):
            if not port:
                continue
            end = branch_end(conns, port[0].node, by_name)
            if end is not None and end not in ends:
                ends.append(end)

        open_ends = [e for e in ends if not is_concluding(by_name[e])]
        if len(open_ends) < 2:
            record(trace, "repair", "switch-left-alone", node=name, ends=ends)
            continue

        merge_name = registry.claim(f"Merge {name} Results")
        max_x = max(xy(by_name[e])[0] for e in open_ends)
        merge = {
            "id": _next_id(doc["nodes"]),
            "name": merge_name,
            "type": NODE_PREFIX + "merge",
            "typeVersion": MERGE_TYPE_VERSION,
            "position": [max_x + cfg.spacing_x, xy(sw)[1]],
            "parameters": {"mode": "chooseBranch", "options": {}},
        }
        doc["nodes"].append(merge)
        for i, end in enumerate(open_ends):
            conns.add(end, merge_name, target_index=merge_input(i))
        fixes += 1 + len(open_ends)
        record(trace, "repair", "switch-merged", node=name, merge=merge_name, ends=open_ends)
        logger.info("reconverged %d branches of %s into %s", len(open_ends), name, merge_name)
    return fixes


def _connect_disconnected(doc: Dict[str, Any], conns: Connections, cfg: BuildConfig,
                          trace: Optional[DecisionTrace]) -> int:
    fixes = 0
    nodes = doc["nodes"]
    for n in sorted(nodes, key=lambda n: xy(n)[0]):
        name = n.get("name")
        if is_trigger_node(n) or name in conns.targets():
            continue
        pred = row_predecessor(n, nodes, cfg.row_tolerance)
        if pred is None:
            record(trace, "repair", "disconnected-unresolved", node=name)
            continue
        conns.add(pred.get("name"), name)
        fixes += 1
        record(trace, "repair", "disconnected-connected", node=name, source=pred.get("name"))
    return fixes


def _chain_dangling(doc: Dict[str, Any], conns: Connections, cfg: BuildConfig,
                    trace: Optional[DecisionTrace]) -> int:
    fixes = 0
    nodes = doc["nodes"]
    candidates = [n for n in nodes if not is_trigger_node(n)]
    for n in nodes:
        name = n.get("name")
        if is_concluding(n) or conns.has_outgoing(name):
            continue
        follower = row_successor(n, candidates, cfg.row_tolerance, cfg.row_min_dx)
        if follower is None:
            continue
        conns.add(name, follower.get("name"))
        fixes += 1
        record(trace, "repair", "output-chained", node=name, target=follower.get("name"))
    return fixes


def repair_workflow(
    document: Any,
    config: Optional[BuildConfig] = None,
    trace: Optional[DecisionTrace] = None,
) -> Tuple[Any, int]:
    """Apply the structural fixes to a copy of `document`. Never raises."""
    cfg = config or DEFAULT_CONFIG
    doc = deepcopy(document)
    if not isinstance(doc, dict) or not isinstance(doc.get("nodes"), list):
        record(trace, "repair", "skipped-not-a-workflow")
        return doc, 0
    doc["nodes"] = [n for n in doc["nodes"] if isinstance(n, dict)]

    try:
        conns, fixes = _canonicalize(doc, trace)
        fixes += _reconverge_switches(doc, conns, cfg, trace)
        fixes += _connect_disconnected(doc, conns, cfg, trace)
        fixes += _chain_dangling(doc, conns, cfg, trace)
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        # a document too broken to repair is handed back as-is; validation reports it
        logger.warning("repair aborted: %s", e)
        record(trace, "repair", "aborted", error=str(e))
        return deepcopy(document), 0

    doc["connections"] = conns.to_dict()
    logger.info("repair applied %d fix(es)", fixes)
    return doc, fixes
