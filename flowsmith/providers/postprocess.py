# flowsmith/providers/postprocess.py
# Provider post-processors: last-mile fixes for quirks of a specific model
# provider's output. A hook takes the finished document and returns the one
# handed to the caller, which is passed through unmodified.

from __future__ import annotations
from typing import Any, Callable, Dict, Optional

from flowsmith.errors import ConfigError
from flowsmith.nodes.parameters import CODE_FIELDS
from flowsmith.utils.logger import get_logger

logger = get_logger("providers")

PostProcessor = Callable[[Dict[str, Any]], Dict[str, Any]]


def identity(document: Dict[str, Any]) -> Dict[str, Any]:
    return document


def relocate_code_fields(document: Dict[str, Any]) -> Dict[str, Any]:
    """Move code fields from the node root into `parameters`; values already there win."""
    for node in document.get("nodes", []) or []:
        if not isinstance(node, dict):
            continue
        params = node.get("parameters")
        if not isinstance(params, dict):
            params = {}
            node["parameters"] = params
        for key in CODE_FIELDS:
            if key not in node:
                continue
            value = node.pop(key)
            if key not in params:
                params[key] = value
                logger.debug("moved %s into parameters on %s", key, node.get("name"))
    return document


POST_PROCESSORS: Dict[str, PostProcessor] = {
    "identity": identity,
    "relocate_code_fields": relocate_code_fields,
}


def get_post_processor(name: str) -> PostProcessor:
    try:
        return POST_PROCESSORS[name]
    except KeyError:
        raise ConfigError(
            f"Unknown post-processor '{name}'. Choose one of: {', '.join(POST_PROCESSORS)}"
        ) from None


def apply_post_processor(document: Dict[str, Any], hook: Optional[PostProcessor]) -> Dict[str, Any]:
    if hook is None:
        return document
    return hook(document)
