# flowsmith/builder/synthesis.py
"""
Synthesis builder: RequirementTree -> workflow document.

Each branch is laid out left to right from its trigger. While walking the
requirements, MOTIF_RULES are tried in order; a handler either consumes one
or more requirements and returns (current source, next x, next index), or
returns None to let the next rule try. The sequential rule always applies.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import re

from flowsmith.builder.common import NameRegistry, generate_webhook_id, new_document
from flowsmith.builder.connections import Connections
from flowsmith.config import BuildConfig, DEFAULT_CONFIG
from flowsmith.nodes.catalog import NODE_PREFIX, is_trigger_type, merge_input, short_type
from flowsmith.nodes.parameters import code_template, fill_parameters
from flowsmith.nodes.resolver import match_time_pattern
from flowsmith.parsing.extractor import ERROR_HANDLING, Branch, Requirement, RequirementTree
from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, record

logger = get_logger("builder.synthesis")

CHANNEL_RE = re.compile(r"\b(stripe|paypal|crypto|email|sms|slack|telegram|dhl|ups|fedex)\b", re.IGNORECASE)

# (description keywords, route labels); first hit wins
SWITCH_LABELS: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...]], ...] = (
    (("payment",), ("stripe", "paypal", "crypto")),
    (("shipping",), ("dhl", "ups", "fedex")),
    (("risk", "score"), ("low", "medium", "high")),
)
DEFAULT_SWITCH_LABELS = ("option1", "option2", "option3")

MERGE_TYPE = NODE_PREFIX + "merge"
SWITCH_TYPE = NODE_PREFIX + "switch"
RESPONSE_TYPE = NODE_PREFIX + "respondToWebhook"


@dataclass
class _Context:
    cfg: BuildConfig
    doc: Dict[str, Any]
    conns: Connections = field(default_factory=Connections)
    names: NameRegistry = field(default_factory=NameRegistry)
    trace: Optional[DecisionTrace] = None
    next_id: int = 1
    # per-branch
    lowest_y: int = 0
    pending_response: bool = False

    def add_node(self, node_type: str, wanted: str, position: List[int],
                 parameters: Optional[Dict[str, Any]] = None, type_version: int = 1) -> str:
        name = self.names.claim(wanted)
        params = fill_parameters(node_type, parameters)
        short = short_type(node_type)
        if short == "function":
            params["functionCode"] = code_template(name)
        elif short == "code":
            params["jsCode"] = code_template(name)
        node: Dict[str, Any] = {
            "id": str(self.next_id),
            "name": name,
            "type": node_type,
            "typeVersion": type_version,
            "position": [position[0], position[1]],
            "parameters": params,
        }
        if short == "webhook":
            node["webhookId"] = generate_webhook_id()
        self.next_id += 1
        self.doc["nodes"].append(node)
        self.lowest_y = max(self.lowest_y, position[1])
        return name

    def connect(self, source: str, target: str, source_port: int = 0, target_index: int = 0) -> None:
        self.conns.add(source, target, source_port=source_port, target_index=target_index)


Handler = Callable[[_Context, List[Requirement], int, str, int, int], Optional[Tuple[str, int, int]]]


def _requirement_type(ctx: _Context, req: Requirement) -> str:
    # triggers are synthesized per branch; a step resolved to one becomes processing
    if is_trigger_type(req.type):
        record(ctx.trace, "synthesis", "trigger-step-demoted", node=req.name, type=req.type)
        return ctx.cfg.default_node_type
    return req.type


def _place(ctx: _Context, req: Requirement, x: int, y: int) -> str:
    return ctx.add_node(_requirement_type(ctx, req), req.name, [x, y])


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------

def add_trigger(ctx: _Context, trigger_text: str, position: List[int]) -> str:
    t = (trigger_text or "").lower()
    if "webhook" in t:
        name = ctx.add_node(NODE_PREFIX + "webhook", "Webhook Trigger", position,
                            {"path": "/webhook", "httpMethod": "POST"})
    elif any(k in t for k in ("schedule", "cron", "every", "daily", "hourly", "weekly", "monthly")):
        pattern, cron = match_time_pattern(t)
        name = ctx.add_node(NODE_PREFIX + "scheduleTrigger", "Schedule Trigger", position,
                            {"rule": {"interval": [{"field": "cronExpression", "expression": cron}]}})
        record(ctx.trace, "synthesis", "schedule", pattern=pattern, cron=cron)
    elif "error" in t:
        name = ctx.add_node(NODE_PREFIX + "errorTrigger", "Error Trigger", position)
    else:
        name = ctx.add_node(NODE_PREFIX + "manualTrigger", "Manual Trigger", position)
    record(ctx.trace, "synthesis", "trigger", branch_trigger=t, node=name)
    return name


# ---------------------------------------------------------------------------
# Motif handlers
# ---------------------------------------------------------------------------

def channel_of(req: Requirement) -> Optional[str]:
    m = CHANNEL_RE.search(f"{req.name} {req.description}")
    return m.group(1).lower() if m else None


def _merge_node(ctx: _Context, merge_req: Optional[Requirement], wanted: str, position: List[int],
                mode: str, type_version: int = 1) -> str:
    name = merge_req.name if merge_req is not None else wanted
    return ctx.add_node(MERGE_TYPE, name, position, {"mode": mode}, type_version)


def _parallel(ctx: _Context, reqs: List[Requirement], i: int, current: str,
              x: int, y: int) -> Optional[Tuple[str, int, int]]:
    head = reqs[i]
    if not head.is_parallel or i + 1 >= len(reqs):
        return None

    rows: List[List[Requirement]] = []
    seen: List[str] = []
    merge_req: Optional[Requirement] = None
    j = i
    while j < len(reqs):
        r = reqs[j]
        if j > i and (r.is_merge or r.is_switch):
            if r.is_merge:
                merge_req = r
            break
        ch = channel_of(r)
        if ch is not None and ch not in seen:
            seen.append(ch)
            rows.append([r])
        elif rows:
            rows[-1].append(r)
        elif j > i:
            break
        j += 1

    if len(rows) < 2:
        record(ctx.trace, "synthesis", "parallel-fallthrough", node=head.name, rows=len(rows))
        return None

    # a head naming no channel becomes the fan-out source
    if rows[0][0] is not head:
        src = _place(ctx, head, x, y)
        ctx.connect(current, src)
        current, x = src, x + ctx.cfg.spacing_x

    ends: List[str] = []
    max_x = x
    for k, row in enumerate(rows):
        row_y = y + k * ctx.cfg.sibling_spacing
        row_x = x
        last = current
        for r in row:
            name = _place(ctx, r, row_x, row_y)
            ctx.connect(last, name)
            last = name
            row_x += ctx.cfg.spacing_x
        ends.append(last)
        max_x = max(max_x, row_x)

    merge = _merge_node(ctx, merge_req, "Merge Results", [max_x, y], "append")
    for k, end in enumerate(ends):
        ctx.connect(end, merge, target_index=merge_input(k))

    record(ctx.trace, "synthesis", "parallel", node=head.name, channels=seen, merge=merge)
    next_index = j + 1 if merge_req is not None else j
    return merge, max_x + ctx.cfg.spacing_x, next_index


def switch_labels(description: str) -> Tuple[str, ...]:
    lower = (description or "").lower()
    for keywords, labels in SWITCH_LABELS:
        if any(k in lower for k in keywords):
            return labels
    return DEFAULT_SWITCH_LABELS


def _switch_rules(labels: Tuple[str, ...]) -> Dict[str, Any]:
    return {
        "dataType": "string",
        "value1": "={{ $json.route }}",
        "rules": {"rules": [{"operation": "equal", "value2": label, "output": k}
                            for k, label in enumerate(labels)]},
        "fallbackOutput": -1,
    }


def _switch(ctx: _Context, reqs: List[Requirement], i: int, current: str,
            x: int, y: int) -> Optional[Tuple[str, int, int]]:
    req = reqs[i]
    if not req.is_switch:
        return None

    labels = switch_labels(f"{req.name} {req.description}")
    routes: List[Requirement] = []
    j = i + 1
    while j < len(reqs) and len(routes) < len(labels) and not reqs[j].is_motif:
        routes.append(reqs[j])
        j += 1
    if routes:
        labels = labels[:len(routes)]

    router = ctx.add_node(SWITCH_TYPE, req.name, [x, y], _switch_rules(labels))
    ctx.connect(current, router)
    ctx.conns.ensure_ports(router, len(labels))
    record(ctx.trace, "synthesis", "switch", node=router, labels=list(labels), routes=len(routes))

    route_x = x + ctx.cfg.spacing_x
    ends: List[str] = []
    for k, r in enumerate(routes):
        name = _place(ctx, r, route_x, y + k * ctx.cfg.sibling_spacing)
        ctx.connect(router, name, source_port=k)
        ends.append(name)

    if not routes:
        return router, route_x, j
    if len(routes) == 1:
        return ends[0], route_x + ctx.cfg.spacing_x, j

    merge_x = route_x + ctx.cfg.spacing_x
    if j < len(reqs) and reqs[j].is_merge:
        merge = _merge_node(ctx, reqs[j], "", [merge_x, y], "chooseBranch", 2)
        j += 1
    elif j < len(reqs) or ctx.pending_response:
        merge = _merge_node(ctx, None, f"Merge {router} Results", [merge_x, y], "chooseBranch", 2)
    else:
        # routes end the branch
        return router, merge_x, j

    for k, end in enumerate(ends):
        ctx.connect(end, merge, target_index=merge_input(k))
    record(ctx.trace, "synthesis", "switch-merged", node=router, merge=merge)
    return merge, merge_x + ctx.cfg.spacing_x, j


def _sequential(ctx: _Context, reqs: List[Requirement], i: int, current: str,
                x: int, y: int) -> Optional[Tuple[str, int, int]]:
    name = _place(ctx, reqs[i], x, y)
    ctx.connect(current, name)
    return name, x + ctx.cfg.spacing_x, i + 1


MOTIF_RULES: Tuple[Tuple[str, Handler], ...] = (
    ("parallel", _parallel),
    ("switch", _switch),
    ("sequential", _sequential),
)


# ---------------------------------------------------------------------------
# Branches and global requirements
# ---------------------------------------------------------------------------

def _is_response(ctx: _Context, name: str) -> bool:
    for n in ctx.doc["nodes"]:
        if n["name"] == name:
            return n["type"] == RESPONSE_TYPE or "respon" in name.lower()
    return False


def _build_branch(ctx: _Context, branch: Branch, y: int) -> None:
    ctx.lowest_y = y
    ctx.pending_response = "webhook" in branch.trigger_type
    x = ctx.cfg.start_x
    current = add_trigger(ctx, branch.trigger_type, [x, y])
    x += ctx.cfg.spacing_x

    reqs = branch.requirements
    i = 0
    while i < len(reqs):
        for rule, handler in MOTIF_RULES:
            result = handler(ctx, reqs, i, current, x, y)
            if result is not None:
                current, x, i = result
                logger.debug("branch %d: %s -> %s", branch.branch_id, rule, current)
                break

    if ctx.pending_response and not _is_response(ctx, current):
        resp = ctx.add_node(RESPONSE_TYPE, "Respond to Webhook", [x, y])
        ctx.connect(current, resp)


def _add_error_handling(ctx: _Context) -> None:
    x, y = ctx.cfg.start_x, ctx.cfg.start_y - 200
    handler = ctx.add_node(NODE_PREFIX + "errorTrigger", "Error Handler", [x, y])
    notify = ctx.add_node(NODE_PREFIX + "emailSend", "Error Notification", [x + ctx.cfg.spacing_x, y], {
        "subject": '=Workflow Error: {{ $node["Error Handler"].json.workflow.name }}',
        "text": '=Error: {{ $node["Error Handler"].json.error.message }}',
    })
    ctx.connect(handler, notify)
    record(ctx.trace, "synthesis", "error-handling", nodes=[handler, notify])


def build_from_requirements(
    tree: RequirementTree,
    config: Optional[BuildConfig] = None,
    trace: Optional[DecisionTrace] = None,
) -> Dict[str, Any]:
    """Lay out every branch of `tree` and return the workflow document."""
    cfg = config or DEFAULT_CONFIG
    ctx = _Context(cfg=cfg, doc=new_document(tree.workflow_name), trace=trace)

    y = cfg.start_y
    for branch in tree.branches:
        _build_branch(ctx, branch, y)
        y = ctx.lowest_y + cfg.branch_gap

    if ERROR_HANDLING in tree.global_requirements:
        _add_error_handling(ctx)

    ctx.doc["connections"] = ctx.conns.to_dict()
    logger.info("synthesized %r: %d nodes, %d edges", tree.workflow_name,
                len(ctx.doc["nodes"]), len(ctx.conns))
    return ctx.doc
