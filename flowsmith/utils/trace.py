# flowsmith/utils/trace.py
# Structured decision trace shared by the pipeline stages.

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from flowsmith.utils.logger import get_logger

logger = get_logger("trace")


@dataclass
class TraceEvent:
    """One heuristic decision: which stage, which rule, and its inputs/outputs."""
    stage: str
    rule: str
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage, "rule": self.rule, **self.detail}


class DecisionTrace:
    """
    Collects TraceEvents for one pipeline run.

    Stages take an optional `trace` argument; passing the same instance through
    the pipeline gives callers (and tests) the decisions as data.
    """

    def __init__(self) -> None:
        self.events: List[TraceEvent] = []

    def record(self, stage: str, rule: str, **detail: Any) -> TraceEvent:
        ev = TraceEvent(stage=stage, rule=rule, detail=detail)
        self.events.append(ev)
        logger.debug("%s/%s %s", stage, rule, detail)
        return ev

    def by_stage(self, stage: str) -> List[TraceEvent]:
        return [e for e in self.events if e.stage == stage]

    def rules(self, stage: Optional[str] = None) -> List[str]:
        return [e.rule for e in self.events if stage is None or e.stage == stage]

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.events]

    def __len__(self) -> int:
        return len(self.events)


def record(trace: Optional[DecisionTrace], stage: str, rule: str, **detail: Any) -> None:
    """Record on `trace` when one was passed; stages call this unconditionally."""
    if trace is not None:
        trace.record(stage, rule, **detail)
