# flowsmith/nodes/parameters.py
# Per-type parameter whitelist, defaults, shape fixes and type aliases.

from __future__ import annotations
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional, Tuple

from flowsmith.nodes.catalog import NODE_PREFIX, short_type

# Placeholders are recognisable on purpose: collect_user_required_values()
# reports any parameter still holding one.
PLACEHOLDER_URL = "https://api.example.com/endpoint"
PLACEHOLDER_EMAIL = "={{ $json.email }}"
PLACEHOLDER_PHONE = "={{ $json.phone }}"
PLACEHOLDER_BROKER = "mqtt://broker.example.com:1883"

# node-root keys some providers emit that n8n expects under `parameters`
CODE_FIELDS = ("functionCode", "jsCode", "pythonCode", "expression")

# Whitelisted required keys per type, with their placeholder defaults.
REQUIRED_PARAMETERS: Dict[str, Dict[str, Any]] = {
    "webhook": {"path": "/webhook", "httpMethod": "POST", "options": {}},
    "scheduleTrigger": {"rule": {"interval": [{"field": "hours", "hoursInterval": 1}]}},
    "cron": {"triggerTimes": {"item": [{"mode": "everyHour"}]}},
    "manualTrigger": {},
    "errorTrigger": {},
    "httpRequest": {"url": PLACEHOLDER_URL, "method": "GET", "options": {}},
    "function": {"functionCode": "return items;"},
    "code": {"jsCode": "return items;"},
    "set": {"values": {}, "options": {}},
    "if": {"conditions": {"boolean": []}},
    "switch": {"dataType": "string", "value1": "={{ $json.value }}", "rules": {"rules": []},
               "fallbackOutput": -1},
    "merge": {"mode": "append", "options": {}},
    "splitInBatches": {"batchSize": 10},
    "respondToWebhook": {"options": {}},
    "emailSend": {"toRecipients": [PLACEHOLDER_EMAIL], "subject": "Notification",
                  "text": "={{ $json.message }}", "options": {}},
    "twilio": {"operation": "sms", "from": "={{ $credentials.fromNumber }}",
               "to": PLACEHOLDER_PHONE, "message": "={{ $json.message }}"},
    "whatsApp": {"operation": "send", "recipientPhoneNumber": PLACEHOLDER_PHONE,
                 "textBody": "={{ $json.message }}"},
    "mqtt": {"broker": PLACEHOLDER_BROKER, "topic": "flowsmith/events", "options": {}},
    "slack": {"channel": "#general", "text": "={{ $json.message }}"},
    "telegram": {"chatId": "={{ $json.chatId }}", "text": "={{ $json.message }}"},
    "postgres": {"operation": "executeQuery", "query": "SELECT 1"},
    "executeCommand": {"command": "echo ok"},
    "wait": {"amount": 1, "unit": "seconds"},
}

# Keys the validator insists on (presence, non-empty). Containers such as
# `options` are filled by the builders but not required here.
VALIDATED_KEYS: Dict[str, Tuple[str, ...]] = {
    "webhook": ("path",),
    "httpRequest": ("url",),
    "function": ("functionCode",),
    "code": ("jsCode",),
    "emailSend": ("toRecipients", "subject"),
    "switch": ("rules",),
    "twilio": ("to", "message"),
    "mqtt": ("broker", "topic"),
    "postgres": ("operation",),
    "executeCommand": ("command",),
}

# Legacy / hallucinated type tags -> catalog type
TYPE_ALIASES: Dict[str, str] = {
    "functionItem": "function",
    "router": "switch",
    "sendEmail": "emailSend",
    "emailSendSmtp": "emailSend",
    "email": "emailSend",
    "errorWorkflow": "errorTrigger",
    "error": "errorTrigger",
    "raspberryPi": "httpRequest",
    "gpio": "httpRequest",
    "iot": "httpRequest",
    "exec": "executeCommand",
    "join": "merge",
    "whatsappBusiness": "whatsApp",
    "discordTrigger": "webhook",
    "discordWebhook": "webhook",
    "slackTrigger": "webhook",
    "schedule": "scheduleTrigger",
    "http": "httpRequest",
}


def canonical_type(type_tag: str) -> str:
    """
    Normalize a type tag: add the n8n-nodes-base prefix to bare names and
    map legacy aliases. Unknown tags are returned as given (prefixed).
    """
    tag = str(type_tag or "").strip()
    if not tag:
        return tag
    if "." not in tag:
        tag = NODE_PREFIX + tag
    prefix, short = tag.rsplit(".", 1)
    if prefix.startswith("n8n-nodes-") and short in TYPE_ALIASES:
        return NODE_PREFIX + TYPE_ALIASES[short]
    return tag


def defaults_for(type_tag: str) -> Dict[str, Any]:
    return deepcopy(REQUIRED_PARAMETERS.get(short_type(type_tag), {}))


def has_defaults(type_tag: str) -> bool:
    return short_type(type_tag) in REQUIRED_PARAMETERS


def fill_parameters(type_tag: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge type defaults under the given parameters; given values always win."""
    merged = defaults_for(type_tag)
    for k, v in (params or {}).items():
        merged[k] = v
    return merged


def _has_value(v: Any) -> bool:
    if v is None:
        return False
    if isinstance(v, str):
        return v.strip() != ""
    return True


def missing_parameters(node: Dict[str, Any]) -> List[str]:
    params = node.get("parameters") or {}
    if not isinstance(params, dict):
        params = {}
    keys = VALIDATED_KEYS.get(short_type(node.get("type", "")), ())
    return [k for k in keys if not _has_value(params.get(k))]


# ---------------------------------------------------------------------------
# Shape fixes (known malformed AI output)
# ---------------------------------------------------------------------------

def _rename(params: Dict[str, Any], old: str, new: str) -> bool:
    if old in params and not _has_value(params.get(new)):
        params[new] = params.pop(old)
        return True
    return False


def _fix_switch(p: Dict[str, Any]) -> List[str]:
    fixed = []
    if _rename(p, "value", "value1"):
        fixed.append("value->value1")
    if isinstance(p.get("rules"), list):
        p["rules"] = {"rules": p["rules"]}
        fixed.append("rules list wrapped")
    return fixed


def _fix_email(p: Dict[str, Any]) -> List[str]:
    fixed = []
    for old in ("sendTo", "toEmail", "to"):
        if _rename(p, old, "toRecipients"):
            fixed.append(f"{old}->toRecipients")
    rcpt = p.get("toRecipients")
    if isinstance(rcpt, str):
        parts = [r.strip() for r in rcpt.split(",")] if not rcpt.startswith("=") else [rcpt]
        p["toRecipients"] = [r for r in parts if r]
        fixed.append("scalar recipient -> list")
    elif rcpt is not None and not isinstance(rcpt, list):
        p["toRecipients"] = [str(rcpt)]
        fixed.append("scalar recipient -> list")
    return fixed


def _fix_http(p: Dict[str, Any]) -> List[str]:
    fixed = []
    if _rename(p, "endpoint", "url"):
        fixed.append("endpoint->url")
    if isinstance(p.get("method"), str) and p["method"] != p["method"].upper():
        p["method"] = p["method"].upper()
        fixed.append("method upper-cased")
    return fixed


def _fix_cron(p: Dict[str, Any]) -> List[str]:
    if "rule" in p and not _has_value(p.get("triggerTimes")):
        expr = p.pop("rule")
        p["triggerTimes"] = {"item": [{"mode": "custom", "cronExpression": expr}]}
        return ["rule->triggerTimes"]
    return []


def _fix_set(p: Dict[str, Any]) -> List[str]:
    vals = p.get("values")
    if isinstance(vals, dict) and vals and not set(vals) <= {"string", "number", "boolean"}:
        p["values"] = {"string": [{"name": k, "value": v} for k, v in vals.items()]}
        return ["plain values -> string list"]
    return []


def _fix_if(p: Dict[str, Any]) -> List[str]:
    if isinstance(p.get("conditions"), list):
        p["conditions"] = {"boolean": p["conditions"]}
        return ["conditions list wrapped"]
    return []


SHAPE_FIXES: Dict[str, Callable[[Dict[str, Any]], List[str]]] = {
    "switch": _fix_switch,
    "emailSend": _fix_email,
    "httpRequest": _fix_http,
    "cron": _fix_cron,
    "set": _fix_set,
    "if": _fix_if,
}


def fix_parameter_shapes(type_tag: str, params: Dict[str, Any]) -> List[str]:
    """Correct known malformed shapes in place; returns what was changed."""
    short = short_type(type_tag)
    fixed: List[str] = []
    fn = SHAPE_FIXES.get(short)
    if fn is not None:
        fixed.extend(fn(params))
    if "options" in params and "options" in REQUIRED_PARAMETERS.get(short, {}) \
            and not isinstance(params["options"], dict):
        params["options"] = {}
        fixed.append("options -> {}")
    return fixed


# ---------------------------------------------------------------------------
# Code templates for synthesized code nodes
# ---------------------------------------------------------------------------

_CODE_TEMPLATES: Tuple[Tuple[str, str], ...] = (
    ("validate",
     "// Validation logic for {name}\n"
     "const requiredFields = ['field1', 'field2'];\n"
     "for (const field of requiredFields) {{\n"
     "  if (!items[0].json[field]) throw new Error(`Missing required field: ${{field}}`);\n"
     "}}\n"
     "return items;"),
    ("transform",
     "// Transform data for {name}\n"
     "return items.map(item => ({{ json: {{ ...item.json, processed: true }} }}));"),
    ("process",
     "// Transform data for {name}\n"
     "return items.map(item => ({{ json: {{ ...item.json, processed: true }} }}));"),
    ("filter",
     "// Filter logic for {name}\n"
     "return items.filter(item => item.json.status === 'active');"),
    ("analyze",
     "// Analysis logic for {name}\n"
     "return [{{ json: {{ total: items.length, timestamp: new Date().toISOString() }} }}];"),
)


def code_template(name: str) -> str:
    lower = str(name or "").lower()
    for key, tpl in _CODE_TEMPLATES:
        if key in lower:
            return tpl.format(name=name)
    return f"// {name} logic\nreturn items;"


# ---------------------------------------------------------------------------
# Values the user must supply before the workflow can run
# ---------------------------------------------------------------------------

USER_REQUIRED_VALUES: Dict[str, Tuple[Tuple[str, str, str], ...]] = {
    # type -> (parameter, kind, description)
    "httpRequest": (("url", "endpoint", "API endpoint URL"),),
    "mqtt": (("broker", "endpoint", "MQTT broker URL"),),
    "emailSend": (("toRecipients", "identifier", "Recipient email address"),),
    "twilio": (("to", "identifier", "Recipient phone number"),),
    "whatsApp": (("recipientPhoneNumber", "identifier", "Recipient phone number"),),
    "telegram": (("chatId", "identifier", "Telegram chat id"),),
}

_PLACEHOLDERS = (PLACEHOLDER_URL, PLACEHOLDER_EMAIL, PLACEHOLDER_PHONE, PLACEHOLDER_BROKER,
                 "={{ $json.chatId }}")


def _is_placeholder(v: Any) -> bool:
    if isinstance(v, list):
        return not v or all(_is_placeholder(x) for x in v)
    return not _has_value(v) or v in _PLACEHOLDERS


def collect_user_required_values(document: Dict[str, Any]) -> List[Dict[str, str]]:
    """List parameters still holding a placeholder the user has to replace."""
    out: List[Dict[str, str]] = []
    for node in document.get("nodes", []) or []:
        params = node.get("parameters") or {}
        for param, kind, desc in USER_REQUIRED_VALUES.get(short_type(node.get("type", "")), ()):
            if _is_placeholder(params.get(param)):
                out.append({"node": node.get("name", ""), "parameter": param,
                            "kind": kind, "description": desc})
    return out
