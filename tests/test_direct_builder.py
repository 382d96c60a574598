import pytest

from flowsmith.builder.direct import build_from_draft
from flowsmith.errors import StructuralError
from flowsmith.nodes.resolver import MatchResult
from flowsmith.structural.validator import validate_workflow
from flowsmith.utils.trace import DecisionTrace


def _edge(target, index=0):
    return {"node": target, "type": "main", "index": index}


@pytest.mark.parametrize("draft", [{"name": "only a name"}, [], "text", None])
def test_minimal_shape_is_enforced(draft):
    with pytest.raises(StructuralError):
        build_from_draft(draft)


def test_connections_without_nodes_builds_empty_document():
    doc = build_from_draft({"connections": {}})
    assert doc["nodes"] == []
    assert validate_workflow(doc).categories() == ["EMPTY"]


def test_missing_fields_are_defaulted():
    doc = build_from_draft({"nodes": [
        {"type": "manualTrigger"},
        {"name": "Call API", "type": "httpRequest"},
    ]})
    trigger, call = doc["nodes"]
    assert trigger["name"] == "Manual Trigger"
    assert trigger["type"] == "n8n-nodes-base.manualTrigger"
    assert trigger["id"] == "1"
    assert trigger["position"] == [256, 304]
    assert trigger["typeVersion"] == 1
    assert call["type"] == "n8n-nodes-base.httpRequest"
    assert call["position"] == [456, 304]
    assert call["parameters"]["url"] == "https://api.example.com/endpoint"
    assert call["parameters"]["method"] == "GET"
    for key in ("id", "versionId", "meta", "tags", "pinData", "active", "settings"):
        assert key in doc


def test_given_values_win_over_defaults():
    doc = build_from_draft({"nodes": [{
        "id": "n-7",
        "name": "Call API",
        "type": "n8n-nodes-base.httpRequest",
        "typeVersion": 4,
        "position": {"x": 10, "y": 20},
        "parameters": {"url": "https://svc.test/v1", "method": "post"},
    }]})
    node = doc["nodes"][0]
    assert node["id"] == "n-7"
    assert node["typeVersion"] == 4
    assert node["position"] == [10, 20]
    assert node["parameters"]["url"] == "https://svc.test/v1"
    assert node["parameters"]["method"] == "POST"


def test_names_and_ids_are_unique():
    doc = build_from_draft({"nodes": [
        {"id": "1", "name": "Send", "type": "noOp"},
        {"id": "1", "name": "Send", "type": "noOp"},
        {"name": "Send", "type": "noOp"},
    ]})
    assert [n["name"] for n in doc["nodes"]] == ["Send", "Send 2", "Send 3"]
    ids = [n["id"] for n in doc["nodes"]]
    assert len(set(ids)) == 3


def test_type_aliases_and_email_recipients():
    trace = DecisionTrace()
    doc = build_from_draft({"nodes": [
        {"name": "Mail", "type": "n8n-nodes-base.sendEmail",
         "parameters": {"sendTo": "a@x.io, b@x.io"}},
        {"name": "Code Step", "type": "n8n-nodes-base.functionItem"},
    ]}, trace=trace)
    mail, code = doc["nodes"]
    assert mail["type"] == "n8n-nodes-base.emailSend"
    assert mail["parameters"]["toRecipients"] == ["a@x.io", "b@x.io"]
    assert "sendTo" not in mail["parameters"]
    assert mail["parameters"]["subject"] == "Notification"
    assert code["type"] == "n8n-nodes-base.function"
    assert trace.rules("direct").count("type-alias") == 2


def test_switch_rules_list_is_wrapped():
    doc = build_from_draft({"nodes": [{
        "name": "Route", "type": "switch",
        "parameters": {"value": "={{ $json.kind }}", "rules": [{"value2": "a"}]},
    }]})
    params = doc["nodes"][0]["parameters"]
    assert params["rules"] == {"rules": [{"value2": "a"}]}
    assert params["value1"] == "={{ $json.kind }}"


def test_connections_keyed_by_id_are_rekeyed():
    doc = build_from_draft({
        "nodes": [
            {"id": "a", "name": "Start", "type": "manualTrigger"},
            {"id": "b", "name": "Next", "type": "noOp"},
        ],
        "connections": {"a": {"main": [[_edge("b")]]}},
    })
    assert doc["connections"] == {"Start": {"main": [[_edge("Next")]]}}


def test_connections_keyed_by_untrimmed_name_follow_the_node():
    doc = build_from_draft({
        "nodes": [
            {"name": "Start", "type": "manualTrigger", "position": [0, 0]},
            {"name": "Fetch ", "type": "httpRequest", "position": [200, 0],
             "parameters": {"url": "https://api.test/items"}},
            {"name": "Store", "type": "noOp", "position": [400, 0]},
        ],
        "connections": {
            "Start": {"main": [[_edge("Fetch ")]]},
            "Fetch ": {"main": [[_edge("Store")]]},
        },
    })
    assert doc["nodes"][1]["name"] == "Fetch"
    assert doc["connections"] == {
        "Start": {"main": [[_edge("Fetch")]]},
        "Fetch": {"main": [[_edge("Store")]]},
    }
    assert validate_workflow(doc).is_valid


def test_root_code_is_kept_over_template_default():
    doc = build_from_draft({"nodes": [
        {"name": "Js", "type": "code", "jsCode": "return [{json: {ai: 1}}];"},
        {"name": "Fn", "type": "function", "functionCode": "root", "parameters": {"functionCode": "given"}},
    ]})
    js, fn = doc["nodes"]
    assert js["parameters"]["jsCode"] == "return [{json: {ai: 1}}];"
    assert fn["parameters"]["functionCode"] == "given"


def test_malformed_connections_become_canonical():
    doc = build_from_draft({
        "nodes": [
            {"name": "Start", "type": "manualTrigger"},
            {"name": "Next", "type": "noOp"},
        ],
        "connections": {"Start": {"main": [{"node": "Next"}]}},
    })
    assert doc["connections"] == {"Start": {"main": [[_edge("Next")]]}}


def test_edges_into_triggers_are_dropped():
    trace = DecisionTrace()
    doc = build_from_draft({
        "nodes": [
            {"name": "Hook", "type": "webhook"},
            {"name": "Work", "type": "noOp"},
        ],
        "connections": {
            "Hook": {"main": [[_edge("Work")]]},
            "Work": {"main": [[_edge("Hook")]]},
        },
    }, trace=trace)
    assert doc["connections"]["Work"] == {"main": [[]]}
    assert "dropped-trigger-incoming" in trace.rules("direct")
    assert doc["nodes"][0]["webhookId"]
    assert "TRIGGER_INCOMING" not in validate_workflow(doc).categories()


def test_missing_type_is_resolved_from_text():
    calls = []

    def resolver(text, trace=None):
        calls.append(text)
        return MatchResult("n8n-nodes-base.slack", 0.45, "stub", source="catalog")

    trace = DecisionTrace()
    doc = build_from_draft({"nodes": [{"name": "Tell Team", "description": "post to slack"}]},
                           resolver=resolver, trace=trace)
    assert doc["nodes"][0]["type"] == "n8n-nodes-base.slack"
    assert calls == ["Tell Team post to slack"]
    rules = trace.rules("direct")
    assert "type-inferred" in rules
    assert "low-confidence" in rules


def test_non_object_nodes_are_skipped():
    doc = build_from_draft({"nodes": [{"name": "Start", "type": "manualTrigger"}, "junk", 3]})
    assert [n["name"] for n in doc["nodes"]] == ["Start"]
