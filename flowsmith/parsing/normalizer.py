# flowsmith/parsing/normalizer.py
"""
Prompt normalizer.

LLM planners sometimes emit a second, unrelated task description after the
first one (a pasted system warning, a second "Required Integrations" block, a
second `### BRANCH 1:`). normalize_prompt() cuts the text back to the first
description. Every pattern here is linear in the input: literal anchors,
single-class repetitions, and lazy scans bounded to one line.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, List, Optional, Pattern, Tuple
import re

from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, record

logger = get_logger("normalizer")

DEFAULT_MAX_CHARS = 100_000

SYSTEM_WARNING = "### ⚠️ Otomatik Sistem Uyarısı:"

# cut modes
CUT_AT_MATCH = "start"
CUT_AT_FOLLOWER = "follower"
CUT_BEFORE_FOLLOWER_PARAGRAPH = "paragraph"


@dataclass(frozen=True)
class PromptRule:
    name: str
    pattern: Pattern[str]
    followed_by: Optional[Pattern[str]] = None
    cut: str = CUT_AT_MATCH

    def cut_point(self, text: str) -> Optional[int]:
        """Offset to truncate at, or None when the rule does not fire."""
        m = self.pattern.search(text)
        if m is None:
            return None
        point = m.start()
        if self.followed_by is not None:
            f = self.followed_by.search(text, m.end())
            if f is None:
                return None
            if self.cut == CUT_AT_FOLLOWER:
                point = f.start()
            elif self.cut == CUT_BEFORE_FOLLOWER_PARAGRAPH:
                blank = text.rfind("\n\n", 0, f.start())
                point = blank if blank > 0 else f.start()
        # a cut at 0 would leave nothing to build from
        return point if point > 0 else None


_REQUIRED_INTEGRATIONS = re.compile(r"\n\n\*\*Required Integrations:")

SECONDARY_WORKFLOW_RULES: Tuple[PromptRule, ...] = (
    PromptRule("system-warning", re.compile(re.escape(SYSTEM_WARNING)), _REQUIRED_INTEGRATIONS),
    # lookbehind pins the match to the start of a newline run
    PromptRule("required-integrations-gap", re.compile(r"(?<!\n)\n{3,}\*\*Required Integrations:\*\*")),
    PromptRule("closing-summary", re.compile(r"This comprehensive plan ensures"),
               _REQUIRED_INTEGRATIONS, CUT_AT_FOLLOWER),
    PromptRule("repeated-branch-one", re.compile(r"### BRANCH 1:"),
               re.compile(r"### BRANCH 1:"), CUT_BEFORE_FOLLOWER_PARAGRAPH),
    PromptRule("additional-requirements", re.compile(r"## Additional Requirements:"),
               re.compile(r"(?<!\n)\n{2,}(?:### BRANCH|## [A-Z])"), CUT_AT_FOLLOWER),
)

# (name, pattern) closing a first description cleanly
END_MARKERS: Tuple[Tuple[str, Pattern[str]], ...] = (
    ("closing-sentence", re.compile(r"This comprehensive plan ensures[^\n]*?workflow\.")),
    ("additional-requirements", re.compile(r"## Additional Requirements:[^.]*\.")),
    ("validation-checklist", re.compile(r"### Validation Checklist[^☑]*☑[^\n]*\.")),
)


def _coerce(text: Any) -> str:
    if text is None:
        return ""
    return text if isinstance(text, str) else str(text)


def bound_input(text: Any, max_chars: int = DEFAULT_MAX_CHARS,
                trace: Optional[DecisionTrace] = None) -> str:
    s = _coerce(text)
    if max_chars and len(s) > max_chars:
        logger.warning("input truncated from %d to %d chars", len(s), max_chars)
        record(trace, "normalizer", "truncated", original=len(s), kept=max_chars)
        s = s[:max_chars]
    return s


def _end_marker_cut(before: str) -> Optional[Tuple[str, int]]:
    best: Optional[Tuple[str, int]] = None
    for name, pattern in END_MARKERS:
        m = pattern.search(before)
        if m and (best is None or m.end() < best[1]):
            best = (name, m.end())
    return best


def normalize_prompt(text: Any, max_chars: int = DEFAULT_MAX_CHARS,
                     trace: Optional[DecisionTrace] = None) -> str:
    """
    Strip an accidentally appended second task description.

    Returns the (length-bounded) input unchanged when no rule fires. Never
    raises.
    """
    s = bound_input(text, max_chars, trace)

    for rule in SECONDARY_WORKFLOW_RULES:
        point = rule.cut_point(s)
        if point is None:
            continue
        marker = _end_marker_cut(s[:point])
        if marker is not None:
            marker_name, point = marker
        else:
            marker_name = None
        cleaned = s[:point].strip()
        record(trace, "normalizer", rule.name, cut=point, end_marker=marker_name,
               removed=len(s) - len(cleaned))
        logger.info("secondary workflow detected (%s); removed %d chars", rule.name, len(s) - len(cleaned))
        return cleaned

    record(trace, "normalizer", "unchanged")
    return s


# ---------------------------------------------------------------------------
# Single-workflow report
# ---------------------------------------------------------------------------

_BRANCH_ONE = re.compile(r"### BRANCH 1:")
_WORKFLOW_TITLE = re.compile(r"^## [A-Z][^#\n]*Workflow", re.MULTILINE)
_REQUIRED_HEADER = re.compile(r"\*\*Required Integrations:\*\*")


@dataclass
class SingleWorkflowReport:
    is_valid: bool
    workflow_count: int
    issues: List[str] = field(default_factory=list)

    def to_dict(self):
        return {"isValid": self.is_valid, "workflowCount": self.workflow_count, "issues": list(self.issues)}


def validate_single_workflow(text: Any, max_chars: int = DEFAULT_MAX_CHARS) -> SingleWorkflowReport:
    """Estimate how many task descriptions a prompt holds."""
    s = bound_input(text, max_chars)
    issues: List[str] = []

    branch_ones = len(_BRANCH_ONE.findall(s))
    titles = len(_WORKFLOW_TITLE.findall(s))
    integrations = len(_REQUIRED_HEADER.findall(s))
    estimated = max(branch_ones, titles, integrations // 2)

    if branch_ones > 1:
        issues.append(f'Multiple "BRANCH 1" sections found ({branch_ones})')
    if titles > 1:
        issues.append(f"Multiple workflow titles found ({titles})")
    if integrations > 2:
        issues.append(f'Too many "Required Integrations" sections ({integrations})')
    if SYSTEM_WARNING in s:
        issues.append("Contains system warning that often precedes duplicate workflows")

    return SingleWorkflowReport(is_valid=estimated <= 1, workflow_count=estimated, issues=issues)
