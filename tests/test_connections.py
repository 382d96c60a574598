import pytest

from flowsmith.builder.connections import Connections, Edge, normalize_connections
from flowsmith.utils.trace import DecisionTrace

CANONICAL = {"A": {"main": [[{"node": "B", "type": "main", "index": 0}]]}}


@pytest.mark.parametrize("raw", [
    # flat descriptor list, missing port wrapper
    {"A": {"main": [{"node": "B", "type": "main", "index": 0}]}},
    # bare target name
    {"A": {"main": [["B"]]}},
    # single descriptor
    {"A": {"main": {"node": "B"}}},
    # port list without the port-type key
    {"A": [[{"node": "B", "type": "main", "index": 0}]]},
    # alternate descriptor keys
    {"A": {"main": [[{"targetName": "B", "portType": "main", "targetInputIndex": 0}]]}},
    # already canonical
    CANONICAL,
])
def test_normalize_connections_shapes(raw):
    assert normalize_connections(raw) == CANONICAL


def test_normalize_is_idempotent():
    raw = {
        "A": {"main": [{"node": "B"}, "C"]},
        "B": [[{"name": "D", "index": 1}], []],
        "C": {"main": "D"},
    }
    once = normalize_connections(raw)
    assert normalize_connections(once) == once
    assert once["B"]["main"] == [[{"node": "D", "type": "main", "index": 1}], []]


def test_normalize_drops_unresolvable_targets():
    trace = DecisionTrace()
    out = normalize_connections({"A": {"main": [[{"index": 0}, 42, {"node": "B"}]]}, "X": 7}, trace=trace)
    assert out == {"A": {"main": [[{"node": "B", "type": "main", "index": 0}]]}}
    assert "dropped-source" in trace.rules("connections")


@pytest.mark.parametrize("raw", [None, [], "A->B", 3])
def test_normalize_non_object(raw):
    assert normalize_connections(raw) == {}


def test_connections_add_dedupes_and_pads_ports():
    conns = Connections()
    assert conns.add("Switch", "B", source_port=2)
    assert not conns.add("Switch", "B", source_port=2)
    ports = conns.ports("Switch")
    assert len(ports) == 3
    assert ports[0] == [] and ports[1] == []
    assert ports[2] == [Edge("B")]
    assert len(conns) == 1


def test_connections_remove_and_rename():
    conns = Connections.from_dict({
        "1": {"main": [[{"node": "2", "type": "main", "index": 0}]]},
        "2": {"main": [[{"node": "1", "type": "main", "index": 0}]]},
    })
    conns.rename("1", "Trigger")
    conns.rename("2", "Fetch")
    assert conns.first_target("Trigger") == "Fetch"
    assert conns.first_target("Fetch") == "Trigger"
    assert conns.remove_edges_to("Trigger") == 1
    assert conns.targets() == {"Fetch"}
    assert conns.has_outgoing("Trigger")
    assert not conns.has_outgoing("Fetch")


def test_to_dict_round_trip_is_canonical():
    conns = Connections()
    conns.add("A", "B")
    conns.add("A", "C", source_port=1, target_index=1)
    out = conns.to_dict()
    assert out == {"A": {"main": [
        [{"node": "B", "type": "main", "index": 0}],
        [{"node": "C", "type": "main", "index": 1}],
    ]}}
    assert normalize_connections(out) == out
