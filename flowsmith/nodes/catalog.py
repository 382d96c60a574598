# flowsmith/nodes/catalog.py
# Closed catalog of n8n node types known to flowsmith.

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

NODE_PREFIX = "n8n-nodes-base."


class NodeCategory(Enum):
    TRIGGER = "trigger"
    COMMUNICATION = "communication"
    IOT = "iot"
    DATA = "data"
    FLOW = "flow"
    HTTP = "http"
    DATABASE = "database"
    FILES = "files"
    CLOUD = "cloud"
    UTILITY = "utility"
    INTEGRATION = "integration"
    # any type string the catalog does not know
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class CatalogEntry:
    type: str
    category: NodeCategory
    display: str
    description: str
    common_names: Tuple[str, ...] = ()
    use_cases: Tuple[str, ...] = ()
    outputs: int = 1


def _entry(short: str, category: NodeCategory, display: str, description: str,
           common_names: Tuple[str, ...], use_cases: Tuple[str, ...], outputs: int = 1) -> CatalogEntry:
    return CatalogEntry(NODE_PREFIX + short, category, display, description,
                        common_names, use_cases, outputs)


_T, _COM, _IOT, _D, _F, _H, _DB, _FI, _CL, _U, _I = (
    NodeCategory.TRIGGER, NodeCategory.COMMUNICATION, NodeCategory.IOT, NodeCategory.DATA,
    NodeCategory.FLOW, NodeCategory.HTTP, NodeCategory.DATABASE, NodeCategory.FILES,
    NodeCategory.CLOUD, NodeCategory.UTILITY, NodeCategory.INTEGRATION,
)

# Order matters: catalog lookups keep the first best-scoring entry.
_ENTRIES: List[CatalogEntry] = [
    # Triggers
    _entry("webhook", _T, "Webhook", "Triggers workflow via HTTP webhook",
           ("webhook", "http trigger", "api trigger", "rest trigger"),
           ("receive http requests", "api endpoint", "external triggers", "form submissions")),
    _entry("scheduleTrigger", _T, "Schedule Trigger", "Triggers workflow on schedule",
           ("schedule", "timer", "periodic", "daily", "hourly"),
           ("scheduled tasks", "recurring jobs", "periodic checks", "maintenance tasks")),
    _entry("cron", _T, "Cron", "Legacy cron trigger",
           ("cron", "cron job"), ("cron expressions",)),
    _entry("errorTrigger", _T, "Error Trigger", "Catches errors from other workflows",
           ("error trigger", "error handler", "exception handler"),
           ("error handling", "failure notifications", "recovery workflows")),
    _entry("manualTrigger", _T, "Manual Trigger", "Manual workflow trigger",
           ("manual", "test trigger", "debug trigger"),
           ("testing", "manual execution", "debugging")),

    # Communication
    _entry("emailSend", _COM, "Send Email", "Send emails",
           ("email", "send email", "mail", "notification email", "alert email"),
           ("email notifications", "alerts", "reports", "confirmations")),
    _entry("slack", _COM, "Slack", "Slack integration",
           ("slack", "slack message", "slack notification", "slack alert"),
           ("team notifications", "alerts", "status updates", "channel messages")),
    _entry("telegram", _COM, "Telegram", "Telegram messaging",
           ("telegram", "telegram message", "telegram bot"),
           ("instant messaging", "bot notifications", "personal alerts")),
    _entry("twilio", _COM, "Twilio", "SMS and voice calls",
           ("sms", "text message", "twilio", "phone", "call"),
           ("sms notifications", "phone calls", "two-factor auth", "urgent alerts")),
    _entry("discord", _COM, "Discord", "Discord messaging",
           ("discord", "discord message", "discord notification"),
           ("community notifications", "gaming alerts", "server updates")),
    _entry("whatsApp", _COM, "WhatsApp", "WhatsApp Business messaging",
           ("whatsapp", "whatsapp message"),
           ("customer support", "instant notifications", "order updates")),

    # IoT
    _entry("mqtt", _IOT, "MQTT", "Publish to an MQTT broker",
           ("mqtt", "broker", "iot", "sensor"),
           ("iot integration", "sensor monitoring", "device control")),

    # Data processing
    _entry("function", _D, "Function", "Custom JavaScript code",
           ("function", "code", "javascript", "custom logic", "process", "transform"),
           ("data transformation", "custom logic", "calculations", "data validation")),
    _entry("code", _D, "Code", "Execute code (JS/Python)",
           ("code", "script", "execute", "python", "javascript"),
           ("complex transformations", "api calls", "data processing", "custom operations")),
    _entry("set", _D, "Set", "Set or modify data",
           ("set", "set data", "modify", "update", "prepare data"),
           ("data preparation", "field mapping", "data structuring", "format data")),
    _entry("merge", _D, "Merge", "Merge multiple data streams",
           ("merge", "combine", "join", "union", "collect results"),
           ("combine branches", "aggregate data", "collect results", "join parallel flows")),
    _entry("splitInBatches", _D, "Split In Batches", "Process data in batches",
           ("split", "batch", "chunk", "paginate"),
           ("batch processing", "large datasets", "api rate limits", "memory management")),

    # Flow control
    _entry("if", _F, "IF", "Conditional branching",
           ("if", "condition", "check", "validate", "decision", "branch"),
           ("conditional logic", "validation", "routing", "decision making"), outputs=2),
    _entry("switch", _F, "Switch", "Multiple condition routing",
           ("switch", "router", "route", "multiple conditions", "case"),
           ("multiple branches", "complex routing", "type-based routing", "multi-path workflows"),
           outputs=4),
    _entry("wait", _F, "Wait", "Pause workflow execution",
           ("wait", "delay", "pause", "sleep", "timeout"),
           ("rate limiting", "scheduled delays", "webhook waiting", "async operations")),
    _entry("noOp", _F, "No Operation", "Does nothing; marks an intentional end",
           ("no op", "noop", "do nothing"), ("placeholders",)),
    _entry("executeWorkflow", _F, "Execute Workflow", "Run another workflow",
           ("execute workflow", "sub workflow", "subworkflow"),
           ("workflow composition", "reusable flows")),

    # HTTP & APIs
    _entry("httpRequest", _H, "HTTP Request", "Make HTTP requests",
           ("http", "api", "rest", "request", "fetch", "call api", "web request"),
           ("api calls", "webhooks", "rest apis", "data fetching", "external services")),
    _entry("respondToWebhook", _H, "Respond to Webhook", "Send webhook response",
           ("respond", "response", "webhook response", "return", "reply"),
           ("api responses", "webhook replies", "http responses", "acknowledgments")),
    _entry("graphql", _H, "GraphQL", "GraphQL queries",
           ("graphql", "gql", "mutation"),
           ("graphql apis", "complex queries", "api integration")),

    # Databases
    _entry("postgres", _DB, "Postgres", "PostgreSQL operations",
           ("postgres", "postgresql", "sql", "database", "db", "query"),
           ("database queries", "data storage", "sql operations", "data retrieval")),
    _entry("mysql", _DB, "MySQL", "MySQL operations",
           ("mysql", "mariadb", "sql", "database"),
           ("database queries", "data storage", "sql operations")),
    _entry("mongoDb", _DB, "MongoDB", "MongoDB operations",
           ("mongodb", "mongo", "nosql", "document db"),
           ("nosql operations", "document storage", "json data", "flexible schemas")),
    _entry("redis", _DB, "Redis", "Redis cache operations",
           ("redis", "cache", "key-value", "memory db"),
           ("caching", "session storage", "pub/sub", "rate limiting")),

    # Files
    _entry("readBinaryFile", _FI, "Read Binary File", "Read files from disk",
           ("read file", "load file", "import file", "file input"),
           ("file reading", "data import", "file processing", "csv reading")),
    _entry("writeBinaryFile", _FI, "Write Binary File", "Write files to disk",
           ("write file", "save file", "export file", "file output"),
           ("file writing", "data export", "report generation", "backup creation")),
    _entry("spreadsheetFile", _FI, "Spreadsheet File", "Work with spreadsheet files",
           ("excel", "spreadsheet", "xlsx", "csv"),
           ("excel processing", "data import/export", "report generation")),

    # Cloud
    _entry("googleSheets", _CL, "Google Sheets", "Google Sheets operations",
           ("google sheets", "sheets", "spreadsheet", "google"),
           ("spreadsheet operations", "data storage", "collaborative data", "reporting")),
    _entry("googleDrive", _CL, "Google Drive", "Google Drive operations",
           ("google drive", "drive", "cloud storage", "file storage"),
           ("file management", "cloud storage", "document sharing", "backup")),
    _entry("airtable", _CL, "Airtable", "Airtable bases",
           ("airtable", "base", "table record"),
           ("record storage", "lightweight database")),
    _entry("aws", _CL, "AWS", "AWS services",
           ("aws", "amazon", "s3", "lambda", "cloud"),
           ("cloud operations", "s3 storage", "lambda functions", "aws services")),

    # Utility
    _entry("html", _U, "HTML", "Generate HTML content",
           ("html", "template", "render", "generate html", "format"),
           ("html generation", "email templates", "report formatting", "web content")),
    _entry("crypto", _U, "Crypto", "Cryptographic operations",
           ("encrypt", "decrypt", "hash", "sign"),
           ("encryption", "hashing", "digital signatures", "security operations")),
    _entry("dateTime", _U, "Date & Time", "Date and time operations",
           ("date", "time", "datetime", "timestamp", "format date"),
           ("date formatting", "time calculations", "scheduling", "timestamps")),
    _entry("executeCommand", _U, "Execute Command", "Run a shell command",
           ("execute command", "shell", "bash", "command line"),
           ("system commands", "script execution")),

    # Integrations
    _entry("github", _I, "GitHub", "GitHub operations",
           ("github", "git", "repository", "pull request", "issue"),
           ("repository management", "issue tracking", "ci/cd", "code operations")),
    _entry("gitlab", _I, "GitLab", "GitLab operations",
           ("gitlab", "git", "repository", "merge request"),
           ("repository management", "ci/cd", "issue tracking", "code operations")),
    _entry("jira", _I, "Jira", "Jira issue tracking",
           ("jira", "issue", "ticket", "project management"),
           ("issue tracking", "project management", "ticket creation", "workflow automation")),
    _entry("notion", _I, "Notion", "Notion workspace",
           ("notion", "notes", "wiki", "knowledge base"),
           ("documentation", "knowledge management", "note taking", "database operations")),
]

CATALOG: Dict[str, CatalogEntry] = {e.type: e for e in _ENTRIES}

# --- classification vocab used by validation/repair ---
TERMINAL_TYPES = ("respondtowebhook", "errortrigger", "noop")
TERMINAL_NAMES = ("response", "error handler")

# Types whose node usually concludes a branch (persistence, notification, file write).
COMPLETION_TYPES = (
    "postgres", "mysql", "mongodb", "redis",
    "emailsend", "slack", "telegram", "twilio",
    "writebinaryfile", "spreadsheetfile",
    "googlesheets", "airtable", "notion",
)
COMPLETION_KEYWORDS = (
    "save", "store", "update", "send", "notify",
    "complete", "finish", "done", "final", "end",
    "log", "record", "report", "alert",
)
LOOP_TYPES = ("splitinbatches", "loop", "executeworkflow")

# n8n Merge nodes (append, chooseBranch) expose inputs 0 and 1 only
MERGE_INPUTS = 2


def merge_input(k: int) -> int:
    """Input index on a Merge node for the k-th incoming branch."""
    return min(k, MERGE_INPUTS - 1)


def short_type(type_tag: str) -> str:
    """'n8n-nodes-base.emailSend' -> 'emailSend'."""
    return str(type_tag or "").rsplit(".", 1)[-1]


def lookup(type_tag: str) -> Optional[CatalogEntry]:
    return CATALOG.get(str(type_tag or ""))


def category_of(type_tag: str) -> NodeCategory:
    entry = lookup(type_tag)
    return entry.category if entry else NodeCategory.UNRECOGNIZED


def is_trigger_type(type_tag: str) -> bool:
    """
    Catalog triggers, plus unrecognized community types that are clearly
    triggers by name (e.g. `n8n-nodes-base.stripeTrigger`).
    """
    cat = category_of(type_tag)
    if cat is NodeCategory.TRIGGER:
        return True
    if cat is NodeCategory.UNRECOGNIZED:
        t = str(type_tag or "").lower()
        return "trigger" in t or t.endswith("webhook")
    return False


def is_trigger_node(node: Dict[str, Any]) -> bool:
    return is_trigger_type(node.get("type", ""))


def is_terminal_node(node: Dict[str, Any]) -> bool:
    t = str(node.get("type", "")).lower()
    name = str(node.get("name", "")).lower()
    return any(k in t for k in TERMINAL_TYPES) or any(k in name for k in TERMINAL_NAMES)


def is_branch_complete(node: Dict[str, Any]) -> bool:
    """Fuzzy: does this node look like the logical conclusion of a branch?"""
    t = str(node.get("type", "")).lower()
    if any(k in t for k in COMPLETION_TYPES):
        return True
    name = str(node.get("name", "")).lower()
    return any(k in name for k in COMPLETION_KEYWORDS)


def is_loop_node(node: Dict[str, Any]) -> bool:
    t = str(node.get("type", "")).lower()
    return any(k in t for k in LOOP_TYPES)


def is_concluding(node: Dict[str, Any]) -> bool:
    """Terminal or branch-complete: such nodes need no outgoing edge."""
    return is_terminal_node(node) or is_branch_complete(node)


def find_best_entry(description: str) -> Tuple[Optional[CatalogEntry], int]:
    """
    Simple catalog lookup: common names +10, use cases +5, category word +3.
    Returns (entry, score); entry is None when nothing scored.
    """
    lower = str(description or "").lower()
    best: Optional[CatalogEntry] = None
    best_score = 0
    for entry in _ENTRIES:
        score = 0
        for name in entry.common_names:
            if name in lower:
                score += 10
        for use in entry.use_cases:
            if use in lower:
                score += 5
        if entry.category.value in lower:
            score += 3
        if score > best_score:
            best, best_score = entry, score
    return best, best_score


def entries_by_category(category: NodeCategory) -> List[CatalogEntry]:
    return [e for e in _ENTRIES if e.category is category]
