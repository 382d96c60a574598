# flowsmith/nodes/resolver.py
# Node-type resolver: free-text requirement -> catalog node type + confidence.
#
# Tiers, first hit wins:
#   1. semantic match over CONCEPT_MAPPINGS (keywords / concepts / use cases)
#   2. simple catalog lookup (common names, use cases, category word)
#   3. hand-coded overrides ("central router", "collect ... results")
#   4. generic processing node at low confidence

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import re

from flowsmith.nodes.catalog import NODE_PREFIX, find_best_entry
from flowsmith.utils.logger import get_logger
from flowsmith.utils.trace import DecisionTrace, record

logger = get_logger("resolver")

DEFAULT_NODE_TYPE = NODE_PREFIX + "function"
DEFAULT_CONFIDENCE = 0.3
CATALOG_CONFIDENCE = 0.45
OVERRIDE_CONFIDENCE = 0.4
MIN_CONFIDENCE = 0.5


@dataclass
class MatchResult:
    node_type: str
    confidence: float
    reasoning: str
    alternatives: List[str] = field(default_factory=list)
    source: str = "semantic"  # "semantic" | "catalog" | "override" | "default" | "explicit"

    @property
    def is_ambiguous(self) -> bool:
        return self.confidence < MIN_CONFIDENCE

    def to_dict(self) -> Dict[str, object]:
        return {
            "nodeType": self.node_type,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "alternatives": list(self.alternatives),
            "source": self.source,
        }


# --- Concept inventory (semantic tier) ---
# concepts/use cases are "_"-joined word phrases
CONCEPT_MAPPINGS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    NODE_PREFIX + "mqtt": {
        "keywords": ("mqtt", "broker", "iot", "sensor", "device", "telemetry", "publish", "subscribe", "topic"),
        "concepts": ("real_time_monitoring", "device_communication", "sensor_data_collection"),
        "use_cases": ("iot_integration", "sensor_monitoring", "device_control"),
    },
    NODE_PREFIX + "emailSend": {
        "keywords": ("email", "mail", "send", "notify", "alert", "report", "message"),
        "concepts": ("notification", "alerting", "reporting", "communication"),
        "use_cases": ("send_alerts", "send_reports", "notify_users"),
    },
    NODE_PREFIX + "twilio": {
        "keywords": ("sms", "text", "message", "phone", "twilio", "mobile", "urgent"),
        "concepts": ("urgent_notification", "mobile_alert", "sms_messaging"),
        "use_cases": ("critical_alerts", "mobile_notifications", "two_factor_auth"),
    },
    NODE_PREFIX + "whatsApp": {
        "keywords": ("whatsapp", "chat", "instant", "message", "business", "customer"),
        "concepts": ("instant_messaging", "customer_communication", "chat_integration"),
        "use_cases": ("customer_support", "instant_notifications", "order_updates"),
    },
    NODE_PREFIX + "httpRequest": {
        "keywords": ("http", "api", "rest", "webhook", "request", "fetch", "get", "post", "web",
                     "gpio", "relay", "hardware", "control"),
        "concepts": ("api_integration", "web_service", "data_fetching", "hardware_control_api"),
        "use_cases": ("api_calls", "webhook_integration", "external_service", "gpio_control",
                      "relay_switching", "hardware_interface"),
    },
    NODE_PREFIX + "function": {
        "keywords": ("function", "code", "process", "calculate", "transform", "logic", "custom"),
        "concepts": ("data_processing", "custom_logic", "calculation"),
        "use_cases": ("data_transformation", "complex_calculations", "business_logic"),
    },
    NODE_PREFIX + "code": {
        "keywords": ("code", "javascript", "python", "script", "program", "algorithm", "model"),
        "concepts": ("scripting", "advanced_processing", "ml_models"),
        "use_cases": ("machine_learning", "complex_algorithms", "data_analysis"),
    },
    NODE_PREFIX + "executeCommand": {
        "keywords": ("execute", "command", "shell", "bash", "script", "gpio", "pin", "hardware",
                     "system", "control"),
        "concepts": ("system_control", "shell_execution", "hardware_control_script"),
        "use_cases": ("system_commands", "script_execution", "gpio_control", "hardware_manipulation",
                      "sensor_reading"),
    },
}

# (phrase tuple, node type): every phrase word must be present
OVERRIDES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("central router",), NODE_PREFIX + "switch"),
    (("route based on",), NODE_PREFIX + "switch"),
    (("collect", "results"), NODE_PREFIX + "merge"),
)


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------

def _partial_match(text: str, keyword: str, threshold: float = 0.7) -> bool:
    """True if some window of the text overlaps >= threshold of the keyword."""
    min_len = int(len(keyword) * threshold)
    if min_len <= 0:
        return False
    head = keyword[:min_len]
    for i in range(0, len(text) - min_len + 1):
        window = text[i:i + min_len]
        if window in keyword or head in window:
            return True
    return False


def _stem_match(text: str, keyword: str) -> bool:
    stem = keyword[:max(3, len(keyword) - 2)]
    return stem in text


def keyword_similarity(text: str, keywords: Tuple[str, ...]) -> float:
    """Exact 10, partial 5, stem 3 per keyword; normalized to 0..100."""
    if not keywords:
        return 0.0
    score = 0
    for kw in keywords:
        if kw in text:
            score += 10
        elif _partial_match(text, kw):
            score += 5
        elif _stem_match(text, kw):
            score += 3
    return score / (len(keywords) * 10) * 100


def concept_score(text: str, concepts: Tuple[str, ...]) -> float:
    if not concepts:
        return 0.0
    hit = sum(1 for c in concepts if all(w in text for w in c.split("_")))
    return hit * 100 / len(concepts)


def use_case_score(text: str, use_cases: Tuple[str, ...]) -> float:
    if not use_cases:
        return 0.0
    hit = 0
    for uc in use_cases:
        words = uc.split("_")
        present = sum(1 for w in words if w in text)
        if present >= len(words) * 0.6:
            hit += 1
    return hit * 100 / len(use_cases)


def semantic_candidates(description: str) -> List[Tuple[str, float, str]]:
    """
    Score every concept mapping; returns [(node_type, score 0..100, reasoning)]
    sorted by score desc, ties kept in mapping order.
    """
    text = description.lower()
    out: List[Tuple[str, float, str]] = []
    for node_type, m in CONCEPT_MAPPINGS.items():
        k = keyword_similarity(text, m["keywords"])
        c = concept_score(text, m["concepts"])
        u = use_case_score(text, m["use_cases"])
        total = 0.5 * k + 0.3 * c + 0.2 * u
        if total <= 0:
            continue
        matched = [kw for kw in m["keywords"] if kw in text]
        if matched:
            why = f"Matched keywords: {', '.join(matched)} (score {total:.1f})"
        else:
            why = f"Conceptual match based on use case similarity (score {total:.1f})"
        out.append((node_type, total, why))
    # sorted() is stable, so equal scores keep mapping order
    return sorted(out, key=lambda x: -x[1])


def _clamp(x: float) -> float:
    return round(max(0.0, min(1.0, x)), 4)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve_node_type(
    description: str,
    trace: Optional[DecisionTrace] = None,
    min_confidence: float = MIN_CONFIDENCE,
    default_type: str = DEFAULT_NODE_TYPE,
) -> MatchResult:
    """
    Map a free-text requirement to a node type. Never raises; the same input
    always gives the same MatchResult.
    """
    text = description if isinstance(description, str) else ""
    if not text.strip():
        res = MatchResult(default_type, DEFAULT_CONFIDENCE,
                          "Empty description, using generic processing node", [], "default")
        record(trace, "resolver", "default", text=text, node_type=res.node_type, confidence=res.confidence)
        return res

    candidates = semantic_candidates(text)
    alternatives = [c[0] for c in candidates[1:4]]

    # 1) semantic
    if candidates:
        best_type, best_score, why = candidates[0]
        conf = _clamp(best_score / 100)
        if conf >= min_confidence:
            res = MatchResult(best_type, conf, why, alternatives, "semantic")
            record(trace, "resolver", "semantic", text=text, node_type=best_type, confidence=conf)
            logger.debug("semantic match %r -> %s (%.2f)", text, best_type, conf)
            return res

    # 2) catalog
    entry, score = find_best_entry(text)
    if entry is not None:
        res = MatchResult(
            entry.type, CATALOG_CONFIDENCE,
            f"Catalog match on '{entry.display}' ({entry.category.value}, score {score})",
            [c[0] for c in candidates[:3]], "catalog",
        )
        record(trace, "resolver", "catalog", text=text, node_type=entry.type, score=score)
        logger.debug("catalog match %r -> %s", text, entry.type)
        return res

    # 3) overrides
    lower = text.lower()
    for phrases, node_type in OVERRIDES:
        if all(p in lower for p in phrases):
            res = MatchResult(node_type, OVERRIDE_CONFIDENCE,
                              f"Override on phrase {' + '.join(phrases)!r}",
                              [c[0] for c in candidates[:3]], "override")
            record(trace, "resolver", "override", text=text, node_type=node_type)
            return res

    # 4) default
    res = MatchResult(default_type, DEFAULT_CONFIDENCE,
                      "No confident match, using generic processing node",
                      [c[0] for c in candidates[:3]], "default")
    record(trace, "resolver", "default", text=text, node_type=default_type, confidence=DEFAULT_CONFIDENCE)
    logger.debug("no confident match for %r, defaulting to %s", text, default_type)
    return res


# --- schedule helper ---

TIME_PATTERNS: Tuple[Tuple[str, str], ...] = (
    ("every minute", "* * * * *"),
    ("every hour", "0 * * * *"),
    ("hourly", "0 * * * *"),
    ("every day", "0 0 * * *"),
    ("daily", "0 0 * * *"),
    ("every monday", "0 0 * * 1"),
    ("every week", "0 0 * * 0"),
    ("weekly", "0 0 * * 0"),
    ("every month", "0 0 1 * *"),
    ("monthly", "0 0 1 * *"),
)

AT_TIME_RE = re.compile(r"\bat (\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b", re.IGNORECASE)


def match_time_pattern(description: str) -> Tuple[str, str]:
    """Return (matched pattern, cron expression); defaults to hourly."""
    lower = str(description or "").lower()
    for pattern, expr in TIME_PATTERNS:
        if pattern in lower:
            return pattern, expr

    m = AT_TIME_RE.search(lower)
    if m:
        hour = int(m.group(1))
        minute = int(m.group(2)) if m.group(2) else 0
        meridiem = (m.group(3) or "").lower()
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
        if hour <= 23 and minute <= 59:
            return m.group(0), f"{minute} {hour} * * *"

    return "every hour", "0 * * * *"
