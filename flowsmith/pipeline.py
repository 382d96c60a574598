# flowsmith/pipeline.py
"""
End-to-end construction: raw model output -> validated workflow document.

    draft (dict / JSON) -> direct builder ----------------\
                                                           > validate -> repair -> re-validate -> post-process
    text -> normalize -> extract -> synthesis builder ----/
"""

from __future__ import annotations
from functools import partial
from typing import Any, Dict, List, Optional, Union
import json

from flowsmith.builder.direct import build_from_draft
from flowsmith.builder.synthesis import build_from_requirements
from flowsmith.config import BuildConfig, DEFAULT_CONFIG
from flowsmith.errors import StructuralError
from flowsmith.nodes.parameters import collect_user_required_values
from flowsmith.nodes.resolver import resolve_node_type
from flowsmith.parsing.extractor import extract_requirements
from flowsmith.parsing.normalizer import normalize_prompt
from flowsmith.providers.postprocess import PostProcessor, apply_post_processor, get_post_processor
from flowsmith.structural.repair import repair_workflow
from flowsmith.structural.validator import validate_workflow
from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, TraceEvent

logger = get_logger("pipeline")

FENCE = "```"


def _strip_fences(text: str) -> str:
    s = text.strip()
    if s.startswith(FENCE):
        first_nl = s.find("\n")
        s = s[first_nl + 1:] if first_nl >= 0 else ""
        if s.rstrip().endswith(FENCE):
            s = s.rstrip()[: -len(FENCE)]
    return s.strip()


def parse_raw_input(raw: Any) -> Union[Dict[str, Any], str]:
    """
    A dict is a draft; a string holding a JSON object (code fences allowed)
    is parsed into one; anything else is natural-language text.
    """
    if isinstance(raw, dict):
        return raw
    if raw is None:
        return ""
    text = raw if isinstance(raw, str) else str(raw)
    body = _strip_fences(text)
    if body.startswith("{"):
        try:
            data = json.loads(body)
        except json.JSONDecodeError as e:
            logger.info("input looks like JSON but does not parse (%s); treating as text", e)
        else:
            if isinstance(data, dict):
                return data
    return text


def _ambiguities(events: List[TraceEvent]) -> List[Dict[str, Any]]:
    out = []
    for ev in events:
        if ev.rule != "low-confidence":
            continue
        d = ev.detail
        out.append({
            "node": d.get("node", ""),
            "nodeType": d.get("nodeType"),
            "confidence": d.get("confidence"),
            "reasoning": d.get("reasoning", ""),
            "alternatives": list(d.get("alternatives") or []),
        })
    return out


def _resolve_hook(post_processor: Union[str, PostProcessor, None], cfg: BuildConfig) -> PostProcessor:
    if callable(post_processor):
        return post_processor
    return get_post_processor(post_processor or cfg.post_processor)


def build_workflow(
    raw_input: Any,
    post_processor: Union[str, PostProcessor, None] = None,
    repair: bool = True,
    config: Optional[BuildConfig] = None,
    trace: Optional[DecisionTrace] = None,
) -> Dict[str, Any]:
    """
    Build a workflow document from a draft or planner text.

    Returns {"document": ..., "validation": ...}. Raises StructuralError when
    a JSON draft has neither nodes nor connections, or when text yields no
    workflow steps; every other problem is reported in `validation`.
    """
    cfg = config or DEFAULT_CONFIG
    trace = trace if trace is not None else DecisionTrace()
    start = len(trace)
    hook = _resolve_hook(post_processor, cfg)
    resolver = partial(resolve_node_type, min_confidence=cfg.min_confidence,
                       default_type=cfg.default_node_type)

    parsed = parse_raw_input(raw_input)
    expected = None
    if isinstance(parsed, dict):
        document = build_from_draft(parsed, resolver=resolver, trace=trace)
    else:
        text = normalize_prompt(parsed, max_chars=cfg.max_input_chars, trace=trace)
        tree = extract_requirements(text, resolver=resolver, trace=trace)
        if tree.requirement_count == 0:
            raise StructuralError("No workflow steps could be extracted from the input text")
        expected = tree.complexity_dict()
        document = build_from_requirements(tree, config=cfg, trace=trace)

    report = validate_workflow(document, cfg)
    repairs = 0
    if repair:
        document, repairs = repair_workflow(document, cfg, trace)
        if repairs:
            report = validate_workflow(document, cfg)

    validation = report.to_dict()
    validation.update({
        "ambiguities": _ambiguities(trace.events[start:]),
        "userRequiredValues": collect_user_required_values(document),
        "repairs": repairs,
        "expectedComplexity": expected,
    })
    logger.info("built %r: %d nodes, score %d, %d repair(s)",
                document.get("name"), len(document.get("nodes", [])), report.score, repairs)

    # the hook's return value is handed back as-is, whatever its shape
    return {"document": apply_post_processor(document, hook), "validation": validation}
