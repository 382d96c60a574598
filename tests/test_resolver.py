import pytest

from flowsmith.nodes.catalog import CATALOG, NodeCategory, category_of, is_trigger_type
from flowsmith.nodes.resolver import (
    DEFAULT_NODE_TYPE,
    match_time_pattern,
    resolve_node_type,
)
from flowsmith.utils.trace import DecisionTrace

SAMPLES = [
    "Send an alert email to the on-call engineer",
    "Fetch order data from the REST API",
    "Publish sensor telemetry to the MQTT broker",
    "Calculate totals and transform the records",
    "Something nobody has a node for",
    "",
]


@pytest.mark.parametrize("text", SAMPLES)
def test_resolver_is_total_and_deterministic(text):
    first = resolve_node_type(text)
    second = resolve_node_type(text)
    assert first.to_dict() == second.to_dict()
    assert 0.0 <= first.confidence <= 1.0
    assert first.node_type.startswith("n8n-nodes-base.")


@pytest.mark.parametrize("text", ["", "   ", None])
def test_empty_description_uses_default(text):
    res = resolve_node_type(text)
    assert res.node_type == DEFAULT_NODE_TYPE
    assert res.source == "default"
    assert res.is_ambiguous


def test_semantic_match_email():
    trace = DecisionTrace()
    res = resolve_node_type("send email alert to notify users with a report message", trace=trace)
    assert res.node_type == "n8n-nodes-base.emailSend"
    assert res.source == "semantic"
    assert not res.is_ambiguous
    assert "email" in res.reasoning
    assert trace.rules("resolver") == ["semantic"]


def test_semantic_match_mqtt():
    res = resolve_node_type("iot sensor monitoring: publish device telemetry to the mqtt broker topic for sensor data collection")
    assert res.node_type == "n8n-nodes-base.mqtt"
    assert res.confidence >= 0.5
    assert res.node_type not in res.alternatives


def test_catalog_tier():
    res = resolve_node_type("post a slack message to the team channel")
    assert res.node_type == "n8n-nodes-base.slack"
    assert res.source == "catalog"
    assert res.confidence == 0.45


def test_override_tier():
    res = resolve_node_type("collect all results")
    assert res.node_type == "n8n-nodes-base.merge"
    assert res.source == "override"
    assert res.confidence == 0.4


def test_default_tier_respects_configured_type():
    res = resolve_node_type("zzz qqq", default_type="n8n-nodes-base.noOp")
    assert res.node_type == "n8n-nodes-base.noOp"
    assert res.source == "default"
    assert res.confidence == 0.3


def test_lower_min_confidence_accepts_weak_semantic_match():
    text = "post a slack message to the team channel"
    strict = resolve_node_type(text)
    loose = resolve_node_type(text, min_confidence=0.0)
    assert strict.source == "catalog"
    assert loose.source == "semantic"


@pytest.mark.parametrize("text,cron", [
    ("run every minute", "* * * * *"),
    ("hourly sync", "0 * * * *"),
    ("daily digest", "0 0 * * *"),
    ("every monday morning", "0 0 * * 1"),
    ("weekly cleanup", "0 0 * * 0"),
    ("monthly invoice run", "0 0 1 * *"),
    ("send it at 9am", "0 9 * * *"),
    ("at 6:30 pm", "30 18 * * *"),
    ("at 12 am", "0 0 * * *"),
    ("whenever", "0 * * * *"),
])
def test_time_patterns(text, cron):
    assert match_time_pattern(text)[1] == cron


def test_catalog_types_are_prefixed_and_categorised():
    for node_type, entry in CATALOG.items():
        assert node_type.startswith("n8n-nodes-base.")
        assert entry.category is not NodeCategory.UNRECOGNIZED


@pytest.mark.parametrize("node_type,expected", [
    ("n8n-nodes-base.webhook", True),
    ("n8n-nodes-base.scheduleTrigger", True),
    ("n8n-nodes-base.stripeTrigger", True),
    ("n8n-nodes-community.someWebhook", True),
    ("n8n-nodes-base.httpRequest", False),
    ("n8n-nodes-base.respondToWebhook", False),
    ("", False),
])
def test_trigger_classification(node_type, expected):
    assert is_trigger_type(node_type) is expected


def test_unknown_type_is_unrecognized():
    assert category_of("n8n-nodes-base.doesNotExist") is NodeCategory.UNRECOGNIZED
