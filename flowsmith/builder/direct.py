# flowsmith/builder/direct.py
# Direct Preservation Builder: keep an AI-authored node/connection draft,
# repairing only what is needed for it to be a well-formed document.

from __future__ import annotations
from typing import Any, Callable, Dict, List, Optional, Set
import numbers

from flowsmith.builder.common import NameRegistry, generate_webhook_id, new_document
from flowsmith.builder.connections import Connections
from flowsmith.errors import StructuralError
from flowsmith.nodes.catalog import is_trigger_node, lookup, short_type
from flowsmith.nodes.parameters import CODE_FIELDS, canonical_type, fill_parameters, fix_parameter_shapes
from flowsmith.nodes.resolver import MatchResult, resolve_node_type
from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, record

logger = get_logger("builder.direct")

DEFAULT_X0 = 256
DEFAULT_Y = 304
DEFAULT_DX = 200

Resolver = Callable[..., MatchResult]


def check_minimal_shape(draft: Any) -> None:
    """Raise StructuralError unless `draft` is an object with nodes or connections."""
    if not isinstance(draft, dict):
        raise StructuralError(f"Workflow draft must be a JSON object, got {type(draft).__name__}")
    if "nodes" not in draft and "connections" not in draft:
        raise StructuralError("Workflow draft has neither 'nodes' nor 'connections'")


def _is_number(v: Any) -> bool:
    return isinstance(v, numbers.Real) and not isinstance(v, bool)


def _position(raw: Any) -> Optional[List[float]]:
    if isinstance(raw, (list, tuple)) and len(raw) == 2 and all(_is_number(v) for v in raw):
        return [raw[0], raw[1]]
    if isinstance(raw, dict) and _is_number(raw.get("x")) and _is_number(raw.get("y")):
        return [raw["x"], raw["y"]]
    return None


def default_position(index: int) -> List[int]:
    return [DEFAULT_X0 + index * DEFAULT_DX, DEFAULT_Y]


def _resolve_missing_type(node: Dict[str, Any], resolver: Resolver,
                          trace: Optional[DecisionTrace]) -> MatchResult:
    text = " ".join(str(node.get(k) or "") for k in ("name", "description", "notes")).strip()
    return resolver(text, trace=trace)


def _preserve_node(raw: Dict[str, Any], index: int, names: NameRegistry, used_ids: Set[str],
                   resolver: Resolver, trace: Optional[DecisionTrace]) -> Dict[str, Any]:
    node = dict(raw)

    # type
    raw_type = raw.get("type")
    if isinstance(raw_type, str) and raw_type.strip():
        ntype = canonical_type(raw_type)
        if ntype != raw_type:
            record(trace, "direct", "type-alias", index=index, old=raw_type, new=ntype)
    else:
        match = _resolve_missing_type(raw, resolver, trace)
        ntype = match.node_type
        record(trace, "direct", "type-inferred", index=index, **match.to_dict())
        if match.is_ambiguous:
            record(trace, "direct", "low-confidence", node=str(raw.get("name") or ""), **match.to_dict())
    node["type"] = ntype

    # name
    entry = lookup(ntype)
    wanted = raw.get("name") if isinstance(raw.get("name"), str) and raw.get("name").strip() else None
    if wanted is None:
        wanted = entry.display if entry else (short_type(ntype) or "Node")
    name = names.claim(wanted.strip())
    if raw.get("name") != name:
        record(trace, "direct", "renamed", index=index, old=raw.get("name"), new=name)
    node["name"] = name

    # id
    rid = raw.get("id")
    nid = str(rid) if isinstance(rid, (str, int)) and not isinstance(rid, bool) and str(rid) else None
    if nid is None or nid in used_ids:
        nid = str(index + 1)
        n = index + 1
        while nid in used_ids:
            n += 1
            nid = f"node-{n}"
        record(trace, "direct", "id-assigned", index=index, id=nid)
    used_ids.add(nid)
    node["id"] = nid

    # position
    pos = _position(raw.get("position"))
    if pos is None:
        pos = default_position(index)
        record(trace, "direct", "position-defaulted", node=name, position=pos)
    node["position"] = pos

    # typeVersion
    if not _is_number(raw.get("typeVersion")):
        node["typeVersion"] = 1

    # parameters: malformed shapes corrected first, then defaults fill gaps (AI value wins)
    params = dict(raw["parameters"]) if isinstance(raw.get("parameters"), dict) else {}
    fixed = fix_parameter_shapes(ntype, params)
    if fixed:
        record(trace, "direct", "parameters-fixed", node=name, fixes=fixed)
        logger.debug("fixed parameters on %s: %s", name, fixed)
    # code emitted at the node root counts as given; template defaults must not shadow it
    for key in CODE_FIELDS:
        if key in raw and key not in params:
            params[key] = raw[key]
    node["parameters"] = fill_parameters(ntype, params)

    if short_type(ntype) == "webhook" and not node.get("webhookId"):
        node["webhookId"] = generate_webhook_id()

    return node


def _rekey_refs_to_names(conns: Connections, ref_to_name: Dict[str, str], names: Set[str],
                        trace: Optional[DecisionTrace]) -> None:
    """Some generators key connections by node id or an untrimmed name; n8n keys them by name."""
    stale = set(conns.sources()) | conns.targets()
    for ref in sorted(stale):
        if ref not in names and ref in ref_to_name:
            conns.rename(ref, ref_to_name[ref])
            record(trace, "direct", "id-rekeyed", old=ref, new=ref_to_name[ref])


def build_from_draft(
    draft: Dict[str, Any],
    resolver: Resolver = resolve_node_type,
    trace: Optional[DecisionTrace] = None,
) -> Dict[str, Any]:
    """
    Build a workflow document from an already node/connection-shaped draft.

    Raises StructuralError only for the minimal-shape check; anything else
    malformed is repaired best-effort.
    """
    check_minimal_shape(draft)

    doc = new_document(draft.get("name") if isinstance(draft.get("name"), str) else "Workflow")
    for key, typ in (("tags", list), ("pinData", dict), ("settings", dict)):
        if isinstance(draft.get(key), typ):
            doc[key] = draft[key]

    raw_nodes = draft.get("nodes")
    if not isinstance(raw_nodes, list):
        if raw_nodes is not None:
            logger.warning("draft 'nodes' is %s, not a list; ignoring", type(raw_nodes).__name__)
        record(trace, "direct", "nodes-missing")
        raw_nodes = []

    names = NameRegistry()
    used_ids: Set[str] = set()
    ref_to_name: Dict[str, str] = {}
    for i, raw in enumerate(raw_nodes):
        if not isinstance(raw, dict):
            record(trace, "direct", "dropped-node", index=i, value_type=type(raw).__name__)
            continue
        node = _preserve_node(raw, i, names, used_ids, resolver, trace)
        if raw.get("id") is not None:
            ref_to_name.setdefault(str(raw.get("id")), node["name"])
        ref_to_name.setdefault(node["id"], node["name"])
        # a trimmed or de-duplicated name still answers to the draft's spelling
        if isinstance(raw.get("name"), str) and raw["name"] != node["name"]:
            ref_to_name.setdefault(raw["name"], node["name"])
        doc["nodes"].append(node)

    conns = Connections.from_dict(draft.get("connections"), trace=trace)
    _rekey_refs_to_names(conns, ref_to_name, {n["name"] for n in doc["nodes"]}, trace)

    # a trigger starts a run; an edge into one is never meaningful
    for node in doc["nodes"]:
        if is_trigger_node(node):
            dropped = conns.remove_edges_to(node["name"])
            if dropped:
                record(trace, "direct", "dropped-trigger-incoming", node=node["name"], edges=dropped)
                logger.info("dropped %d edge(s) into trigger %s", dropped, node["name"])
    doc["connections"] = conns.to_dict()

    logger.info("direct build: %d nodes, %d edges", len(doc["nodes"]), len(conns))
    return doc
