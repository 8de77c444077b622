from __future__ import annotations

import argparse
import json
from typing import Any

from .engine import TaskSelectionEngine
from .utils import load_config, parse_assignments, setup_logging


def _build(args: argparse.Namespace) -> TaskSelectionEngine:
    cfg = load_config(args.config)
    if args.solver:
        cfg = dict(cfg)
        cfg["engine"] = {**(cfg.get("engine") or {}), "solver": args.solver}
    return TaskSelectionEngine.from_config(cfg)


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, default=str))


def main(argv: list[str] | None = None) -> None:
    p = argparse.ArgumentParser(prog="mdp-task-selector")
    sub = p.add_subparsers(dest="cmd", required=True)

    for name in ("solve", "select"):
        cmd = sub.add_parser(name)
        cmd.add_argument("--config", default="data/project_phases.yaml")
        cmd.add_argument(
            "--solver", choices=("value_iteration", "policy_iteration", "monte_carlo")
        )
        cmd.add_argument("--metrics-out", default=None)
        if name == "select":
            cmd.add_argument("--state", required=True, help="attribute=value,...")
        else:
            cmd.add_argument("--top", type=int, default=5)

    args = p.parse_args(argv)
    setup_logging()
    engine = _build(args)
    if args.cmd == "solve":
        _emit({"status": engine.get_status(), "summary": engine.get_policy_summary(args.top)})
    else:
        rec = engine.select_task(parse_assignments(args.state))
        _emit(rec.model_dump(mode="json"))
    if args.metrics_out:
        engine.metrics.export_json(args.metrics_out)
