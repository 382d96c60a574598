# flowsmith/parsing/extractor.py
# Requirement extractor: normalized planner text -> RequirementTree.
#
# Two grammars, first one yielding a branch wins:
#
#   A) ### BRANCH 1: Order Intake
#      **Trigger:** webhook
#      **Processing Flow:**
#      1. Validate Order (check required fields)
#      2. Save Order (postgres)
#
#   B) 1. **Validate Order**
#         - **Node Type:** function
#         - **Node:** check required fields

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple
import re

from flowsmith.nodes.catalog import short_type
from flowsmith.nodes.parameters import canonical_type
from flowsmith.nodes.resolver import MatchResult, resolve_node_type
from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, record

logger = get_logger("extractor")

Resolver = Callable[..., MatchResult]

DEFAULT_TRIGGER = "webhook"
MAIN_BRANCH_NAME = "Main Workflow"
ERROR_HANDLING = "error-handling"

# --- motif vocabulary (lower-case substrings of name + description) ---
PARALLEL_MARKERS = ("parallel execution", "parallel processing", "(parallel)",
                    "simultaneously", "at the same time")
SWITCH_MARKERS = ("switch", "route", "router", "routing", "decision", "evaluation",
                  "condition", "branches:")
MERGE_MARKERS = ("merge",)
MERGE_WORD_SETS = (("collect", "results"),)

TRIGGER_STEP_MARKERS = ("trigger", "order received")


@dataclass
class Requirement:
    name: str
    description: str
    type: str
    branch_id: int = 1
    confidence: float = 1.0
    is_parallel: bool = False
    is_switch: bool = False
    is_merge: bool = False
    match: Optional[MatchResult] = None

    @property
    def is_motif(self) -> bool:
        return self.is_parallel or self.is_switch or self.is_merge

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "branchId": self.branch_id,
            "confidence": self.confidence,
            "isParallel": self.is_parallel,
            "isSwitch": self.is_switch,
            "isMerge": self.is_merge,
        }


@dataclass
class Branch:
    branch_id: int
    name: str
    trigger_type: str = DEFAULT_TRIGGER
    requirements: List[Requirement] = field(default_factory=list)


@dataclass
class RequirementTree:
    workflow_name: str = "Workflow"
    branches: List[Branch] = field(default_factory=list)
    expected_complexity: Optional[Tuple[int, int]] = None
    global_requirements: List[str] = field(default_factory=list)

    @property
    def requirement_count(self) -> int:
        return sum(len(b.requirements) for b in self.branches)

    def complexity_dict(self) -> Optional[Dict[str, int]]:
        if self.expected_complexity is None:
            return None
        lo, hi = self.expected_complexity
        return {"min": lo, "max": hi}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflowName": self.workflow_name,
            "expectedComplexity": self.complexity_dict(),
            "globalRequirements": list(self.global_requirements),
            "branches": [
                {
                    "branchId": b.branch_id,
                    "name": b.name,
                    "triggerType": b.trigger_type,
                    "requirements": [r.to_dict() for r in b.requirements],
                }
                for b in self.branches
            ],
        }


# ---------------------------------------------------------------------------
# Motifs
# ---------------------------------------------------------------------------

def _has_any(text: str, markers: Tuple[str, ...]) -> bool:
    return any(m in text for m in markers)


def mark_motifs(req: Requirement) -> Requirement:
    """Set is_parallel / is_switch / is_merge from the requirement's own text and type."""
    text = f"{req.name} {req.description}".lower()
    short = short_type(req.type)
    req.is_parallel = _has_any(text, PARALLEL_MARKERS)
    req.is_switch = short == "switch" or _has_any(text, SWITCH_MARKERS)
    req.is_merge = (short == "merge" or _has_any(text, MERGE_MARKERS)
                    or any(all(w in text for w in ws) for ws in MERGE_WORD_SETS))
    return req


def _is_trigger_step(name: str) -> bool:
    lower = name.lower()
    return _has_any(lower, TRIGGER_STEP_MARKERS)


def _make_requirement(name: str, description: str, branch_id: int, resolver: Resolver,
                      trace: Optional[DecisionTrace], explicit_type: Optional[str] = None) -> Requirement:
    if explicit_type:
        node_type = canonical_type(explicit_type)
        match = MatchResult(node_type, 1.0, "Explicit node type in prompt", [], "explicit")
    else:
        match = resolver(description, trace=trace)
    req = Requirement(name=name, description=description, type=match.node_type, branch_id=branch_id,
                      confidence=match.confidence, match=match)
    if match.is_ambiguous:
        record(trace, "extractor", "low-confidence", node=name, **match.to_dict())
    return mark_motifs(req)


def _elide_leading_triggers(steps: List[Tuple[str, Any]], trace: Optional[DecisionTrace]) -> List[Tuple[str, Any]]:
    i = 0
    while i < len(steps) and _is_trigger_step(steps[i][0]):
        record(trace, "extractor", "trigger-step-elided", step=steps[i][0])
        i += 1
    return steps[i:]


# ---------------------------------------------------------------------------
# Grammar A: ### BRANCH n:
# ---------------------------------------------------------------------------

BRANCH_HEADER_RE = re.compile(r"^### BRANCH (\d+):[ \t]*([^\n]*)$", re.MULTILINE)
SECTION_STOP = "## Additional"
TRIGGER_FIELD_RE = re.compile(r"\*\*Trigger:\*\*[ \t]*([^\n]+)")
FLOW_FIELD = "**Processing Flow:**"
FLOW_LINE_RE = re.compile(r"^[ \t]*\d+\.[ \t]+([^\n]+)", re.MULTILINE)


def _branch_sections(text: str) -> List[Tuple[int, str, str]]:
    """[(branch number, title, section body)] in document order."""
    headers = list(BRANCH_HEADER_RE.finditer(text))
    out: List[Tuple[int, str, str]] = []
    for k, h in enumerate(headers):
        end = headers[k + 1].start() if k + 1 < len(headers) else len(text)
        body = text[h.end():end]
        stop = body.find(SECTION_STOP)
        if stop >= 0:
            body = body[:stop]
        out.append((int(h.group(1)), h.group(2).strip(), body))
    return out


def _flow_lines(body: str) -> List[str]:
    start = body.find(FLOW_FIELD)
    if start < 0:
        return []
    flow = body[start + len(FLOW_FIELD):]
    stop = flow.find("**")
    if stop >= 0:
        flow = flow[:stop]
    # trailing blanks are trimmed here, not in the pattern
    lines = (m.group(1).rstrip() for m in FLOW_LINE_RE.finditer(flow))
    return [line for line in lines if line]


def parse_branch_sections(text: str, resolver: Resolver = resolve_node_type,
                          trace: Optional[DecisionTrace] = None) -> List[Branch]:
    branches: List[Branch] = []
    for idx, (number, title, body) in enumerate(_branch_sections(text), start=1):
        m = TRIGGER_FIELD_RE.search(body)
        trigger = m.group(1).strip().lower() if m else DEFAULT_TRIGGER
        branch = Branch(branch_id=idx, name=title or f"Branch {number}", trigger_type=trigger)

        steps = [(line.split("(", 1)[0].strip() or line.strip(), line) for line in _flow_lines(body)]
        for name, line in _elide_leading_triggers(steps, trace):
            branch.requirements.append(_make_requirement(name, line, idx, resolver, trace))

        logger.debug("branch %d %r: trigger=%s, %d requirements",
                     idx, branch.name, trigger, len(branch.requirements))
        branches.append(branch)
    return branches


# ---------------------------------------------------------------------------
# Grammar B: numbered bold steps
# ---------------------------------------------------------------------------

STEP_RE = re.compile(r"^(\d+)\.\s+\*\*([^*\n]+?)\*\*")
NUMBERED_RE = re.compile(r"^\d+\.")
NODE_TYPE_RE = re.compile(r"\*\*Node Type:\*\*[ \t]*([^\n]+)")
NODE_DESC_RE = re.compile(r"\*\*Node:\*\*[ \t]*([^\n]+)")
LOOKAHEAD_LINES = 4


def parse_numbered_steps(text: str, resolver: Resolver = resolve_node_type,
                         trace: Optional[DecisionTrace] = None) -> List[Branch]:
    lines = text.split("\n")
    steps: List[Tuple[str, Tuple[Optional[str], str]]] = []
    for i, raw in enumerate(lines):
        m = STEP_RE.match(raw.strip())
        if not m:
            continue
        name = m.group(2).strip()
        node_type: Optional[str] = None
        desc = ""
        for detail in lines[i + 1:i + 1 + LOOKAHEAD_LINES]:
            detail = detail.strip()
            if NUMBERED_RE.match(detail):
                break
            t = NODE_TYPE_RE.search(detail)
            if t:
                node_type = t.group(1).strip().strip("`")
            d = NODE_DESC_RE.search(detail)
            if d:
                desc = d.group(1).strip()
        steps.append((name, (node_type, desc)))

    requirements: List[Requirement] = []
    for name, (node_type, desc) in _elide_leading_triggers(steps, trace):
        description = desc or name
        resolve_text = f"{name} {desc}".strip()
        req = _make_requirement(name, resolve_text, 1, resolver, trace, explicit_type=node_type)
        req.description = description
        requirements.append(req)

    if not requirements:
        return []
    return [Branch(branch_id=1, name=MAIN_BRANCH_NAME, trigger_type=DEFAULT_TRIGGER,
                   requirements=requirements)]


# ---------------------------------------------------------------------------
# Document-level fields
# ---------------------------------------------------------------------------

TITLE_RE = re.compile(r"^#{1,2}[ \t]+([^\n]+)$", re.MULTILINE)
NAME_RE = re.compile(r"Name:[ \t]*([^\n]+)")
COMPLEXITY_RE = re.compile(r"Expected Complexity:\s*(\d+)\s*-\s*(\d+)\s*nodes", re.IGNORECASE)
ERROR_HANDLING_RE = re.compile(r"error[ -]handling|error trigger|catch(?:ing)? errors", re.IGNORECASE)


def workflow_name(text: str) -> str:
    for pattern in (TITLE_RE, NAME_RE):
        m = pattern.search(text)
        if m and m.group(1).strip():
            return m.group(1).strip()
    return "Workflow"


def expected_complexity(text: str) -> Optional[Tuple[int, int]]:
    m = COMPLEXITY_RE.search(text)
    return (int(m.group(1)), int(m.group(2))) if m else None


GRAMMARS: Tuple[Tuple[str, Callable[..., List[Branch]]], ...] = (
    ("branch-sections", parse_branch_sections),
    ("numbered-steps", parse_numbered_steps),
)


def extract_requirements(text: Any, resolver: Resolver = resolve_node_type,
                         trace: Optional[DecisionTrace] = None) -> RequirementTree:
    """
    Parse normalized planner text into a RequirementTree.

    An unparseable text gives a tree with no branches; callers decide whether
    that is fatal.
    """
    s = text if isinstance(text, str) else ("" if text is None else str(text))
    tree = RequirementTree(workflow_name=workflow_name(s), expected_complexity=expected_complexity(s))

    for grammar, parse in GRAMMARS:
        branches = parse(s, resolver=resolver, trace=trace)
        if branches:
            tree.branches = branches
            record(trace, "extractor", grammar, branches=len(branches),
                   requirements=tree.requirement_count)
            break
    else:
        record(trace, "extractor", "no-grammar-matched")
        logger.info("no branch or numbered-step structure found in %d chars", len(s))

    if ERROR_HANDLING_RE.search(s):
        tree.global_requirements.append(ERROR_HANDLING)
        record(trace, "extractor", "global-requirement", requirement=ERROR_HANDLING)

    logger.debug("extracted %r: %d branches, %d requirements",
                 tree.workflow_name, len(tree.branches), tree.requirement_count)
    return tree
