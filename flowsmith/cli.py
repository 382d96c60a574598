#!/usr/bin/env python3
# flowsmith/cli.py

import logging
from pathlib import Path
import typer
from typing import Optional

from flowsmith.config import load_config
from flowsmith.errors import FlowsmithError
from flowsmith.parsing.normalizer import validate_single_workflow
from flowsmith.pipeline import build_workflow
from flowsmith.structural.repair import repair_workflow
from flowsmith.structural.validator import validate_workflow
from flowsmith.utils.io import load_build_input, read_json, read_text, write_json
from flowsmith.utils.logger import init_logger
from flowsmith.utils.trace import DecisionTrace

app = typer.Typer(help="flowsmith CLI - Build and repair n8n workflows from AI output")


def _setup(verbose: bool, config: Optional[Path]):
    if verbose:
        init_logger(level=logging.DEBUG)
    try:
        return load_config(config)
    except FlowsmithError as e:
        print(f"[error] {e}")
        raise typer.Exit(code=2)


def _print_issues(issues):
    if issues:
        print("Detected issues:")
        for it in issues:
            print(f"- [{it['category']}] {it['message']}")


@app.command()
def build(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Planner text (.txt/.md) or workflow draft (.json)"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Write the workflow JSON to this path"),
    no_repair: bool = typer.Option(False, "--no-repair", help="Validate only, skip auto-repair"),
    provider: Optional[str] = typer.Option(None, "--provider", help="Post-processor name: identity | relocate_code_fields"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML/JSON config file"),
    report: Optional[Path] = typer.Option(None, "--report", help="Write a JSON report (validation + decision trace)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug info"),
):
    """
    Build a workflow document from AI output, validate it and (by default) repair it.
    """
    cfg = _setup(verbose, config)
    raw = load_build_input(input)
    trace = DecisionTrace()
    try:
        result = build_workflow(raw, post_processor=provider, repair=not no_repair, config=cfg, trace=trace)
    except FlowsmithError as e:
        print(f"[error] {e}")
        raise typer.Exit(code=1)

    validation = result["validation"]
    print(f"Nodes:   {len(result['document']['nodes'])}")
    print(f"Score:   {validation['score']}")
    print(f"Valid:   {validation['isValid']}")
    print(f"Repairs: {validation['repairs']}")

    if out is not None:
        write_json(out, result["document"])
        print(f"[ok] wrote workflow to {out}")

    if report is not None:
        payload = {
            "input": str(input),
            "validation": validation,
            "trace": trace.to_list(),
        }
        write_json(report, payload)
        print(f"[ok] wrote report to {report}")

    _print_issues(validation["issues"])

    if verbose:
        for amb in validation["ambiguities"]:
            print(f"[debug] ambiguous: {amb['node']} -> {amb['nodeType']} ({amb['confidence']})")
        for item in validation["userRequiredValues"]:
            print(f"[debug] needs value: {item['node']}.{item['parameter']} ({item['description']})")


@app.command()
def validate(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML/JSON config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug info"),
):
    """
    Validate an existing workflow JSON without changing it.
    """
    cfg = _setup(verbose, config)
    report = validate_workflow(read_json(input), cfg)
    print(f"Score: {report.score}")
    print(f"Valid: {report.is_valid}")
    _print_issues(report.to_dict()["issues"])


@app.command()
def repair(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Path to n8n workflow JSON"),
    out: Path = typer.Option(..., "--out", "-o", help="Write the repaired workflow JSON here"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML/JSON config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug info"),
):
    """
    Apply the structural auto-repairs and re-validate.
    """
    cfg = _setup(verbose, config)
    workflow = read_json(input)
    before = validate_workflow(workflow, cfg)
    fixed, fixes = repair_workflow(workflow, cfg)
    after = validate_workflow(fixed, cfg)
    write_json(out, fixed)
    print(f"Score:   {before.score} -> {after.score}")
    print(f"Repairs: {fixes}")
    print(f"[ok] wrote {out}")
    _print_issues(after.to_dict()["issues"])


@app.command("check-prompt")
def check_prompt(
    input: Path = typer.Option(..., "--input", "-i", exists=True, readable=True, help="Planner text file"),
):
    """
    Report whether a planner text holds more than one task description.
    """
    res = validate_single_workflow(read_text(input))
    print(f"Single workflow: {res.is_valid}")
    print(f"Estimated count: {res.workflow_count}")
    for it in res.issues:
        print(f"- {it}")


@app.command()
def bench(
    glob: str = typer.Option("bench/scenarios/*/input.json", "--glob", help="Glob for build inputs"),
    out: Path = typer.Option(Path("experiments/results/build_report.csv"), "--out", help="CSV path to write results"),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML/JSON config file"),
    no_repair: bool = typer.Option(False, "--no-repair", help="Validate only, skip auto-repair"),
    dump_details: bool = typer.Option(False, "--dump-details", help="Dump per-case built workflow alongside CSV"),
):
    """
    Batch build inputs and export a CSV report.
    """
    import glob as _glob
    import pandas as pd

    cfg = _setup(False, config)
    rows = []
    for fp_str in sorted(_glob.glob(glob)):
        fp = Path(fp_str)
        try:
            result = build_workflow(load_build_input(fp), repair=not no_repair, config=cfg)
        except FlowsmithError as e:
            print(f"[skip] {fp}: {e}")
            rows.append({"id": fp.parent.name, "error": str(e)})
            continue

        v = result["validation"]
        rows.append({
            "id": fp.parent.name,
            "nodes": len(result["document"]["nodes"]),
            "score": v["score"],
            "valid": v["isValid"],
            "repairs": v["repairs"],
            "errors": sum(1 for i in v["issues"] if i["severity"] == "error"),
            "warnings": sum(1 for i in v["issues"] if i["severity"] == "warning"),
            "ambiguities": len(v["ambiguities"]),
            "error": "",
        })

        if dump_details:
            write_json(fp.parent / "flowsmith_detail.json", result)

    out.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows).to_csv(out, index=False)
    print(f"[ok] wrote {out}")


if __name__ == "__main__":
    app()
