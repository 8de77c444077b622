from __future__ import annotations

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src" / "mdp_task_selector"

# Calls that configure logging, build or solve an engine, or touch the
# filesystem. None of them may run while a module is being imported.
FORBIDDEN_CALLS = {
    "basicConfig": "configures the root logger",
    "setup_logging": "configures the root logger",
    "TaskSelectionEngine": "builds an engine",
    "from_config": "builds an engine",
    "initialize": "solves an MDP",
    "compute_optimal_policy": "solves an MDP",
    "load_config": "reads a config file",
    "export_json": "writes a metrics file",
    "mkdir": "creates a directory",
    "write_text": "writes a file",
    "open": "opens a file",
}


def fail(msg: str) -> None:
    print(f"::error::{msg}")
    raise SystemExit(1)


def _call_name(call: ast.Call) -> str | None:
    func = call.func
    if isinstance(func, ast.Name):
        return func.id
    if isinstance(func, ast.Attribute):
        return func.attr
    return None


def top_level_calls(tree: ast.Module):
    """Calls executed at import: module statements, skipping def and class bodies."""
    for stmt in tree.body:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            continue
        if isinstance(stmt, ast.If) and _is_main_guard(stmt.test):
            continue
        for node in ast.walk(stmt):
            if isinstance(node, ast.Call):
                yield node


def _is_main_guard(test: ast.expr) -> bool:
    return (
        isinstance(test, ast.Compare)
        and isinstance(test.left, ast.Name)
        and test.left.id == "__name__"
    )


def find_offenders(src: Path = SRC) -> list[str]:
    offenders: list[str] = []
    for path in sorted(src.rglob("*.py")):
        tree = ast.parse(path.read_text(encoding="utf-8"))
        for call in top_level_calls(tree):
            name = _call_name(call)
            if name in FORBIDDEN_CALLS:
                offenders.append(
                    f"{path.relative_to(src.parent)}:{call.lineno} {name}() {FORBIDDEN_CALLS[name]}"
                )
    return offenders


def main(src: Path = SRC) -> int:
    if not (src / "engine.py").exists():
        fail(f"NOT FOUND: {src / 'engine.py'}")

    offenders = find_offenders(src)
    if offenders:
        fail("Import-time side effect at module top-level: " + "; ".join(offenders))

    print("OK: importing mdp_task_selector configures no logging, builds no engine, touches no files")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
