# flowsmith/builder/common.py
# Pieces shared by both graph builders: document envelope, ids, unique names.

from __future__ import annotations
from typing import Any, Dict, Iterable, Set
import secrets
import string
import time
import uuid

_ALNUM = string.ascii_letters + string.digits


def generate_workflow_id() -> str:
    return "".join(secrets.choice(_ALNUM) for _ in range(16))


def generate_version_id() -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


def generate_instance_id() -> str:
    return secrets.token_hex(32)


def generate_webhook_id() -> str:
    return str(uuid.uuid4())


def new_document(name: str) -> Dict[str, Any]:
    """Empty workflow document with generated identifiers."""
    return {
        "name": name or "Workflow",
        "id": generate_workflow_id(),
        "versionId": generate_version_id(),
        "meta": {"instanceId": generate_instance_id()},
        "tags": [],
        "pinData": {},
        "active": False,
        "settings": {},
        "nodes": [],
        "connections": {},
    }


class NameRegistry:
    """Hands out unique node names: 'Send Email', 'Send Email 2', ..."""

    def __init__(self, taken: Iterable[str] = ()) -> None:
        self._taken: Set[str] = set(taken)

    def claim(self, wanted: str) -> str:
        base = (wanted or "Node").strip() or "Node"
        name = base
        n = 2
        while name in self._taken:
            name = f"{base} {n}"
            n += 1
        self._taken.add(name)
        return name

    def __contains__(self, name: str) -> bool:
        return name in self._taken
