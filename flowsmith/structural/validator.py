# flowsmith/structural/validator.py

from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from jsonschema import validate, ValidationError

from .schema import WORKFLOW_SCHEMA
from flowsmith.builder.connections import Connections
from flowsmith.config import BuildConfig, DEFAULT_CONFIG
from flowsmith.nodes.catalog import is_concluding, is_trigger_node, short_type
from flowsmith.nodes.parameters import missing_parameters
from flowsmith.utils.graph import build_graph, row_successor
from flowsmith.utils.logger import get_logger

logger = get_logger("validator")

ERROR = "error"
WARNING = "warning"

ERROR_PENALTY = 20
WARNING_PENALTY = 5


@dataclass
class ValidationIssue:
    severity: str
    category: str
    message: str
    autofixable: bool = False
    node: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.category}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity,
            "category": self.category,
            "message": self.message,
            "autofixable": self.autofixable,
            "node": self.node,
        }


def score_issues(n_errors: int, n_warnings: int) -> int:
    return max(0, 100 - ERROR_PENALTY * n_errors - WARNING_PENALTY * n_warnings)


@dataclass
class ValidationReport:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ERROR]

    @property
    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == WARNING]

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def score(self) -> int:
        return score_issues(len(self.errors), len(self.warnings))

    def categories(self) -> List[str]:
        return [i.category for i in self.issues]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "score": self.score,
            "issues": [i.to_dict() for i in self.issues],
        }


def _declared_branches(node: Dict[str, Any]) -> int:
    rules = (node.get("parameters") or {}).get("rules")
    if isinstance(rules, dict) and isinstance(rules.get("rules"), list):
        return len(rules["rules"])
    return 0


def validate_workflow(document: Any, config: Optional[BuildConfig] = None) -> ValidationReport:
    """
    Read-only structural validation. Every problem becomes a ValidationIssue;
    nothing here raises on malformed input.
    """
    cfg = config or DEFAULT_CONFIG
    report = ValidationReport()
    add = report.issues.append

    if not isinstance(document, dict):
        add(ValidationIssue(ERROR, "SCHEMA", f"Workflow must be an object, got {type(document).__name__}"))
        return report

    # 1) Schema (first violation only, like the rest of the checks it is one line)
    try:
        validate(instance=document, schema=WORKFLOW_SCHEMA)
    except ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        add(ValidationIssue(ERROR, "SCHEMA", f"Schema validation error at {where}: {e.message}"))

    raw_nodes = document.get("nodes")
    nodes = [n for n in raw_nodes if isinstance(n, dict)] if isinstance(raw_nodes, list) else []
    if not nodes:
        add(ValidationIssue(ERROR, "EMPTY", "Workflow has no nodes"))
        return report

    # 2) Trigger presence
    triggers = {n.get("name") for n in nodes if is_trigger_node(n)}
    if not triggers:
        add(ValidationIssue(ERROR, "TRIGGER", "Missing trigger node (workflow has no entry point)"))

    # 3) Unique names
    counts = Counter(n.get("name") for n in nodes)
    for name, c in counts.items():
        if c > 1:
            add(ValidationIssue(ERROR, "NAMES", f"Duplicate node name '{name}' ({c} nodes)", node=name))

    # 4) Edges
    G = build_graph(document)
    conns = Connections.from_dict(document.get("connections"))
    names = set(counts)
    seen_dangling = set()
    for src, _port, edge in conns.iter_edges():
        for ref in (src, edge.node):
            if ref not in names and ref not in seen_dangling:
                seen_dangling.add(ref)
                add(ValidationIssue(ERROR, "DANGLING",
                                    f"Connection {src} -> {edge.node} references unknown node '{ref}'",
                                    node=ref))

    for name in sorted(t for t in triggers if G.has_node(t) and G.in_degree(t) > 0):
        add(ValidationIssue(ERROR, "TRIGGER_INCOMING",
                            f"Trigger '{name}' has incoming connections", autofixable=True, node=name))

    disconnected = set()
    for n in nodes:
        name = n.get("name")
        if name in triggers or (G.has_node(name) and G.in_degree(name) > 0):
            continue
        disconnected.add(name)
        add(ValidationIssue(ERROR, "DISCONNECTED", f"Node '{name}' has no incoming connection",
                            autofixable=True, node=name))

    # 5) Switch ports
    for n in nodes:
        if short_type(n.get("type", "")) != "switch":
            continue
        name = n.get("name")
        declared = _declared_branches(n)
        ports = conns.ports(name)
        if declared and len(ports) != declared:
            add(ValidationIssue(ERROR, "SWITCH",
                                f"Switch '{name}' declares {declared} branches but has {len(ports)} output ports",
                                node=name))
        for i, port in enumerate(ports):
            if not port:
                add(ValidationIssue(ERROR, "SWITCH", f"Switch '{name}' output {i} is empty", node=name))

    # 6) Dangling outputs
    candidates = [n for n in nodes if not is_trigger_node(n)]
    for n in nodes:
        name = n.get("name")
        if is_concluding(n) or conns.has_outgoing(name):
            continue
        follower = row_successor(n, candidates, cfg.row_tolerance, cfg.row_min_dx)
        if follower is None or follower.get("name") in disconnected:
            continue
        add(ValidationIssue(WARNING, "NO_OUTGOING",
                            f"Node '{name}' has no outgoing connection but '{follower.get('name')}' follows it",
                            autofixable=True, node=name))

    # 7) Parameters
    for n in nodes:
        missing = missing_parameters(n)
        if missing:
            add(ValidationIssue(WARNING, "PARAMETERS",
                                f"Node '{n.get('name')}' is missing parameters: {', '.join(missing)}",
                                node=n.get("name")))

    logger.debug("validation: %d errors, %d warnings, score %d",
                 len(report.errors), len(report.warnings), report.score)
    return report
