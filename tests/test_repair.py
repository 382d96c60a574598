import copy

import pytest

from flowsmith.structural.repair import repair_workflow
from flowsmith.structural.validator import validate_workflow
from flowsmith.utils.trace import DecisionTrace


def _node(name, short, x, y, **params):
    return {
        "id": name.lower().replace(" ", "-"),
        "name": name,
        "type": f"n8n-nodes-base.{short}",
        "typeVersion": 1,
        "position": [x, y],
        "parameters": params,
    }


def _edge(target, index=0):
    return {"node": target, "type": "main", "index": index}


def _disconnected():
    return {
        "nodes": [
            _node("Manual Trigger", "manualTrigger", 0, 0),
            _node("Fetch", "httpRequest", 200, 0, url="https://api.test/items", method="GET"),
            _node("Process", "function", 400, 0, functionCode="return items;"),
        ],
        "connections": {"Manual Trigger": {"main": [[_edge("Fetch")]]}},
    }


def _open_switch():
    return {
        "nodes": [
            _node("Manual Trigger", "manualTrigger", 0, 0),
            _node("Route", "switch", 200, 0, rules={"rules": [{"value2": "a"}, {"value2": "b"}]}),
            _node("Process A", "function", 400, 0, functionCode="return items;"),
            _node("Process B", "function", 400, 200, functionCode="return items;"),
        ],
        "connections": {
            "Manual Trigger": {"main": [[_edge("Route")]]},
            "Route": {"main": [[_edge("Process A")], [_edge("Process B")]]},
        },
    }


def test_repair_does_not_mutate_input():
    doc = _disconnected()
    snapshot = copy.deepcopy(doc)
    repaired, fixes = repair_workflow(doc)
    assert fixes == 1
    assert doc == snapshot
    assert repaired is not doc


def test_repair_is_idempotent():
    once, fixes = repair_workflow(_disconnected())
    assert fixes == 1
    twice, more = repair_workflow(once)
    assert more == 0
    assert twice == once


def test_disconnected_node_gets_left_neighbour():
    trace = DecisionTrace()
    repaired, _ = repair_workflow(_disconnected(), trace=trace)
    assert repaired["connections"]["Fetch"] == {"main": [[_edge("Process")]]}
    assert "disconnected-connected" in trace.rules("repair")
    assert validate_workflow(repaired).score == 100


def test_disconnected_node_without_row_neighbour_is_left():
    doc = _disconnected()
    doc["connections"]["Fetch"] = {"main": [[_edge("Process")]]}
    doc["nodes"].append(_node("Far Away", "function", 200, 1000, functionCode="return items;"))
    trace = DecisionTrace()
    repaired, fixes = repair_workflow(doc, trace=trace)
    assert fixes == 0
    assert "Far Away" not in {e["node"] for src in repaired["connections"].values()
                              for port in src["main"] for e in port}
    assert "disconnected-unresolved" in trace.rules("repair")


def test_edges_into_trigger_are_dropped():
    doc = _disconnected()
    doc["connections"]["Fetch"] = {"main": [[_edge("Process")]]}
    doc["connections"]["Process"] = {"main": [[_edge("Manual Trigger")]]}
    repaired, fixes = repair_workflow(doc)
    assert fixes == 1
    assert repaired["connections"]["Process"] == {"main": [[]]}
    assert "TRIGGER_INCOMING" not in validate_workflow(repaired).categories()


def test_malformed_adjacency_counts_as_one_fix():
    doc = _disconnected()
    doc["connections"] = {
        "Manual Trigger": {"main": [_edge("Fetch")]},
        "Fetch": {"main": "Process"},
    }
    repaired, fixes = repair_workflow(doc)
    assert fixes == 1
    assert repaired["connections"]["Fetch"] == {"main": [[_edge("Process")]]}


def test_dangling_output_chained_to_row_successor():
    doc = _disconnected()
    doc["connections"]["Manual Trigger"]["main"][0].append(_edge("Process"))
    trace = DecisionTrace()
    repaired, fixes = repair_workflow(doc, trace=trace)
    assert fixes == 1
    assert repaired["connections"]["Fetch"] == {"main": [[_edge("Process")]]}
    assert trace.rules("repair") == ["output-chained"]


def test_concluding_node_is_not_chained():
    doc = _disconnected()
    doc["nodes"][1] = _node("Store Rows", "postgres", 200, 0, operation="insert")
    doc["connections"] = {"Manual Trigger": {"main": [[_edge("Store Rows"), _edge("Process")]]}}
    repaired, fixes = repair_workflow(doc)
    assert fixes == 0
    assert "Store Rows" not in repaired["connections"]


def test_open_switch_branches_reconverge():
    repaired, fixes = repair_workflow(_open_switch())
    assert fixes == 3
    merge = repaired["nodes"][-1]
    assert merge["name"] == "Merge Route Results"
    assert merge["type"] == "n8n-nodes-base.merge"
    assert merge["typeVersion"] == 2
    assert merge["position"] == [600.0, 0.0]
    assert merge["parameters"] == {"mode": "chooseBranch", "options": {}}
    assert merge["id"] == "5"
    assert repaired["connections"]["Process A"] == {"main": [[_edge("Merge Route Results", 0)]]}
    assert repaired["connections"]["Process B"] == {"main": [[_edge("Merge Route Results", 1)]]}
    assert validate_workflow(repaired).score == 100


def test_third_branch_shares_the_second_merge_input():
    doc = _open_switch()
    doc["nodes"][1]["parameters"]["rules"]["rules"].append({"value2": "c"})
    doc["nodes"].append(_node("Process C", "function", 400, 400, functionCode="return items;"))
    doc["connections"]["Route"]["main"].append([_edge("Process C")])
    repaired, fixes = repair_workflow(doc)
    assert fixes == 4
    # Merge exposes inputs 0 and 1 only
    indices = [repaired["connections"][name]["main"][0][0]["index"]
               for name in ("Process A", "Process B", "Process C")]
    assert indices == [0, 1, 1]


def test_merge_name_does_not_collide():
    doc = _open_switch()
    doc["nodes"].append(_node("Merge Route Results", "noOp", 0, 2000))
    repaired, _ = repair_workflow(doc)
    names = [n["name"] for n in repaired["nodes"]]
    assert "Merge Route Results 2" in names
    assert len(names) == len(set(names))


def test_switch_with_concluding_branch_left_alone():
    doc = _open_switch()
    doc["nodes"][3] = _node("Save Record B", "postgres", 400, 200, operation="insert")
    doc["connections"]["Route"]["main"][1] = [_edge("Save Record B")]
    trace = DecisionTrace()
    repaired, fixes = repair_workflow(doc, trace=trace)
    assert fixes == 0
    assert len(repaired["nodes"]) == 4
    assert "switch-left-alone" in trace.rules("repair")


def test_empty_switch_port_is_not_filled():
    doc = _open_switch()
    doc["connections"]["Route"]["main"][1] = []
    repaired, _ = repair_workflow(doc)
    assert repaired["connections"]["Route"]["main"][1] == []


@pytest.mark.parametrize("doc", ["text", None, {"name": "no nodes"}, {"nodes": "x", "connections": {}}])
def test_non_workflow_input_returned_unchanged(doc):
    repaired, fixes = repair_workflow(doc)
    assert fixes == 0
    assert repaired == doc
