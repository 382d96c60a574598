#flowsmith/structural/schema.py
# Shape of a canonical workflow document. Connection ports are always
# double-nested (list of ports, each a list of target descriptors); ports
# may be empty, the validator flags those separately.

_DESCRIPTOR = {
    "type": "object",
    "required": ["node", "type", "index"],
    "properties": {
        "node": {"type": "string", "minLength": 1},
        "type": {"type": "string"},
        # target input index: non-negative integer
        "index": {"type": "integer", "minimum": 0},
    },
    "additionalProperties": True,
}

WORKFLOW_SCHEMA = {
    "type": "object",
    "required": ["nodes", "connections"],
    "properties": {
        "name": {"type": "string"},
        "active": {"type": "boolean"},
        "settings": {"type": "object"},
        "tags": {"type": "array"},
        "pinData": {"type": "object"},

        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name", "type", "position", "parameters"],
                "properties": {
                    "id": {
                        "type": ["string", "number"]
                    },
                    "name": {
                        "type": "string",
                        "minLength": 1
                    },
                    "type": {
                        "type": "string",
                        # n8n-like pattern: package prefix + node name
                        "pattern": "^[A-Za-z0-9@/_-]+\\.[A-Za-z0-9_.-]+$"
                    },
                    "parameters": {
                        "type": "object"
                    },
                    "typeVersion": {
                        "type": ["integer", "number"]
                    },
                    # [x, y] as exported by the n8n editor
                    "position": {
                        "type": "array",
                        "items": {"type": "number"},
                        "minItems": 2,
                        "maxItems": 2
                    },
                    "webhookId": {"type": "string"}
                },
                "additionalProperties": True
            }
        },

        "connections": {
            "type": "object",

            # Top-level keys: source node names
            "patternProperties": {
                "^.+$": {
                    "type": "object",

                    # Inner keys: port types (e.g. "main")
                    "patternProperties": {
                        "^.+$": {
                            "type": "array",
                            "items": {
                                "type": "array",
                                "items": _DESCRIPTOR
                            }
                        }
                    },

                    "additionalProperties": False
                }
            },

            "additionalProperties": False
        }
    }
}
