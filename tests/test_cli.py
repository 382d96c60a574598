import json
from pathlib import Path

from typer.testing import CliRunner

from flowsmith.cli import app

runner = CliRunner()

S2_INPUT = Path(__file__).resolve().parents[1] / "bench" / "scenarios" / "S2_disconnected_node" / "input.json"

PLAN = """## Support Workflow

### BRANCH 1: Tickets
**Trigger:** webhook
**Processing Flow:**
1. Validate Ticket (check required fields)
2. Store Ticket (save to postgres)
"""


def test_build_writes_workflow_and_report(tmp_path):
    out = tmp_path / "wf.json"
    report = tmp_path / "report.json"
    res = runner.invoke(app, ["build", "-i", str(S2_INPUT), "-o", str(out), "--report", str(report)])
    assert res.exit_code == 0, res.output
    assert "Score:   100" in res.output
    assert "Repairs: 1" in res.output

    doc = json.loads(out.read_text(encoding="utf-8"))
    assert [n["name"] for n in doc["nodes"]] == ["Trigger", "Fetch", "Process"]
    payload = json.loads(report.read_text(encoding="utf-8"))
    assert payload["validation"]["repairs"] == 1
    assert any(ev["stage"] == "repair" for ev in payload["trace"])


def test_build_from_planner_text(tmp_path):
    plan = tmp_path / "plan.md"
    plan.write_text(PLAN, encoding="utf-8")
    out = tmp_path / "wf.json"
    res = runner.invoke(app, ["build", "-i", str(plan), "-o", str(out), "--no-repair"])
    assert res.exit_code == 0, res.output
    doc = json.loads(out.read_text(encoding="utf-8"))
    assert doc["name"] == "Support Workflow"
    assert doc["nodes"][0]["name"] == "Webhook Trigger"


def test_build_rejects_unbuildable_input(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"name": "nothing"}', encoding="utf-8")
    res = runner.invoke(app, ["build", "-i", str(bad)])
    assert res.exit_code == 1
    assert "[error]" in res.output


def test_bad_config_exits_with_2(tmp_path):
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text("nope: 1\n", encoding="utf-8")
    res = runner.invoke(app, ["validate", "-i", str(S2_INPUT), "--config", str(cfg)])
    assert res.exit_code == 2
    assert "Unknown config key" in res.output


def test_validate_reports_issues():
    res = runner.invoke(app, ["validate", "-i", str(S2_INPUT)])
    assert res.exit_code == 0, res.output
    assert "Score: 80" in res.output
    assert "- [DISCONNECTED] Node 'Process' has no incoming connection" in res.output


def test_repair_command(tmp_path):
    out = tmp_path / "fixed.json"
    res = runner.invoke(app, ["repair", "-i", str(S2_INPUT), "-o", str(out)])
    assert res.exit_code == 0, res.output
    assert "Score:   80 -> 100" in res.output
    fixed = json.loads(out.read_text(encoding="utf-8"))
    assert fixed["connections"]["Fetch"]["main"][0][0]["node"] == "Process"


def test_check_prompt(tmp_path):
    plan = tmp_path / "plan.txt"
    plan.write_text(PLAN + "\n\n### BRANCH 1: Again\n1. Step\n", encoding="utf-8")
    res = runner.invoke(app, ["check-prompt", "-i", str(plan)])
    assert res.exit_code == 0, res.output
    assert "Single workflow: False" in res.output
    assert "Estimated count: 2" in res.output


def test_bench_writes_csv(tmp_path):
    for name, payload in (("ok", S2_INPUT.read_text(encoding="utf-8")), ("broken", '{"name": "x"}')):
        case = tmp_path / name
        case.mkdir()
        (case / "input.json").write_text(payload, encoding="utf-8")
    out = tmp_path / "report.csv"
    res = runner.invoke(app, ["bench", "--glob", str(tmp_path / "*" / "input.json"), "--out", str(out)])
    assert res.exit_code == 0, res.output
    lines = out.read_text(encoding="utf-8").splitlines()
    assert lines[0].startswith("id,")
    assert len(lines) == 3
    assert "[skip]" in res.output
