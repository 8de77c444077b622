from __future__ import annotations

import pathlib
import sys

import pytest

# Make src-layout importable for local `pytest` runs without `pip install -e .`
_ROOT = pathlib.Path(__file__).resolve().parents[1]
_SRC = _ROOT / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from mdp_task_selector import project_phases  # noqa: E402
from mdp_task_selector.engine import TaskSelectionEngine  # noqa: E402

# Three states, two actions, gamma=0.8. Optimal values are
# V(a) = 128/21, V(b) = 160/21, V(c) = 10.
TINY_GAMMA = 0.8
TINY_DOMAINS = {"node": ["a", "b", "c"]}
TINY_ACTIONS = [
    {"id": "stay", "category": "progress", "cost": "low"},
    {"id": "move", "category": "schedule", "cost": "low"},
]
TINY_TRANSITIONS = {
    ("node=a", "stay"): [("node=a", 1.0)],
    ("node=a", "move"): [("node=b", 1.0)],
    ("node=b", "stay"): [("node=b", 1.0)],
    ("node=b", "move"): [("node=c", 0.8), ("node=b", 0.2)],
    ("node=c", "stay"): [("node=c", 1.0)],
    ("node=c", "move"): [("node=a", 1.0)],
}
TINY_REWARDS = {("node=b", "stay"): 1.0, ("node=c", "stay"): 2.0}
TINY_OPTIMAL = {"a": 128.0 / 21.0, "b": 160.0 / 21.0, "c": 10.0}


def build_tiny(solver: str = "value_iteration", **params: object) -> TaskSelectionEngine:
    engine = TaskSelectionEngine({"gamma": TINY_GAMMA, "theta": 1e-4, **params})
    engine.initialize(
        TINY_DOMAINS,
        TINY_ACTIONS,
        seed_transitions=TINY_TRANSITIONS,
        seed_rewards=TINY_REWARDS,
        solver=solver,  # type: ignore[arg-type]
    )
    return engine


@pytest.fixture()
def tiny_engine() -> TaskSelectionEngine:
    return build_tiny()


@pytest.fixture()
def phase_engine() -> TaskSelectionEngine:
    engine = TaskSelectionEngine({"gamma": 0.95, "theta": 0.01})
    engine.initialize(**project_phases.scenario_inputs())
    return engine


@pytest.fixture()
def config_path() -> str:
    return str(_ROOT / "data" / "project_phases.yaml")
