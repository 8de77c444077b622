from __future__ import annotations

import importlib.util
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

# Runs in a fresh interpreter so every package module is imported for real.
_IMPORT_CHECK = """
import gc, json, logging, os, sys

writes = []

def audit(event, args):
    if event == "open" and isinstance(args[0], (str, bytes, os.PathLike)):
        mode, flags = args[1], args[2]
        wants_write = (isinstance(mode, str) and any(c in mode for c in "wax+")) or (
            mode is None and isinstance(flags, int) and flags & (os.O_WRONLY | os.O_RDWR)
        )
        if wants_write:
            writes.append(os.fsdecode(args[0]))

root = logging.getLogger()
before = (list(root.handlers), root.level)
sys.addaudithook(audit)

import mdp_task_selector
import mdp_task_selector.cli
import mdp_task_selector.project_phases
from mdp_task_selector.engine import TaskSelectionEngine

engines = sum(isinstance(o, TaskSelectionEngine) for o in gc.get_objects())
print(json.dumps({
    "logging_unchanged": (list(root.handlers), root.level) == before,
    "writes": writes,
    "engines": engines,
}))
"""


def _load_gate():
    module_path = ROOT / "scripts" / "ci" / "check_import_side_effects.py"
    spec = importlib.util.spec_from_file_location("check_import_side_effects", module_path)
    assert spec and spec.loader
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_package_import_is_inert(tmp_path: Path) -> None:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join([str(ROOT / "src"), env.get("PYTHONPATH", "")])
    env["PYTHONDONTWRITEBYTECODE"] = "1"
    proc = subprocess.run(
        [sys.executable, "-c", _IMPORT_CHECK],
        cwd=tmp_path,
        env=env,
        capture_output=True,
        text=True,
        check=True,
    )
    result = json.loads(proc.stdout.strip().splitlines()[-1])

    assert result["logging_unchanged"], "Import must not change root logging"
    assert result["engines"] == 0, "Import must not build an engine"
    assert result["writes"] == [], "Import must not open files for writing"
    assert list(tmp_path.iterdir()) == [], "Import must not create artifacts/ or other files"


def test_gate_script_passes_on_package() -> None:
    gate = _load_gate()
    assert gate.find_offenders() == []
    assert gate.main() == 0


@pytest.mark.parametrize(
    "source",
    [
        "from mdp_task_selector import project_phases\n"
        "from mdp_task_selector.engine import TaskSelectionEngine\n"
        "ENGINE = TaskSelectionEngine()\n"
        "ENGINE.initialize(**project_phases.scenario_inputs())\n",
        "from mdp_task_selector.metrics import EngineMetrics\n"
        "EngineMetrics().export_json()\n",
        "import logging\nlogging.basicConfig(level=logging.DEBUG)\n",
    ],
)
def test_gate_script_flags_import_time_work(tmp_path: Path, source: str) -> None:
    pkg = tmp_path / "mdp_task_selector"
    pkg.mkdir()
    (pkg / "engine.py").write_text("", encoding="utf-8")
    (pkg / "warmup.py").write_text(source, encoding="utf-8")
    gate = _load_gate()

    assert any("warmup.py" in o for o in gate.find_offenders(pkg))
    with pytest.raises(SystemExit):
        gate.main(pkg)


def test_gate_script_ignores_function_bodies_and_main_guard(tmp_path: Path) -> None:
    pkg = tmp_path / "mdp_task_selector"
    pkg.mkdir()
    (pkg / "engine.py").write_text(
        "def build():\n"
        "    return TaskSelectionEngine()\n"
        "\n"
        "if __name__ == '__main__':\n"
        "    setup_logging()\n",
        encoding="utf-8",
    )
    assert _load_gate().find_offenders(pkg) == []
