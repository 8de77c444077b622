from __future__ import annotations

import numpy as np
import pytest

from mdp_task_selector import project_phases
from mdp_task_selector.engine import TaskSelectionEngine
from mdp_task_selector.mdp import Episode, EpisodeSimulator, Step


class ScriptedRng:
    """Stands in for np.random.Generator with fixed uniform draws."""

    def __init__(self, draws: list[float]) -> None:
        self.draws = list(draws)

    def random(self) -> float:
        return self.draws.pop(0)

    def integers(self, low: int, high: int) -> int:
        return low


def test_returns_are_discounted_backwards() -> None:
    ep = Episode([Step(0, 0, 1.0), Step(0, 0, 2.0), Step(0, 0, 3.0)])
    assert ep.returns(0.5) == pytest.approx([2.75, 3.5, 3.0])
    assert Episode().returns(0.9) == []


def test_inverse_cdf_sampling(tiny_engine: TaskSelectionEngine) -> None:
    assert tiny_engine.model is not None
    # node=b, move -> [(node=c, 0.8), (node=b, 0.2)]
    sim = EpisodeSimulator(tiny_engine.model, ScriptedRng([0.79, 0.81, 0.9999999]))
    assert sim.sample_successor(1, 1).next_state["node"] == "c"
    assert sim.sample_successor(1, 1).next_state["node"] == "b"
    assert sim.sample_successor(1, 1).next_state["node"] == "b"


def test_greedy_choice_without_exploration(tiny_engine: TaskSelectionEngine) -> None:
    assert tiny_engine.model is not None
    q = np.array([[0.0, 1.0], [2.0, 2.0], [5.0, 1.0]])
    sim = EpisodeSimulator(tiny_engine.model, np.random.default_rng(0), epsilon=0.0)
    assert [sim.choose_action(s, q) for s in range(3)] == [1, 0, 0]


def test_episode_stops_at_step_cap(tiny_engine: TaskSelectionEngine) -> None:
    assert tiny_engine.model is not None
    sim = EpisodeSimulator(tiny_engine.model, np.random.default_rng(3), max_steps=7)
    ep = sim.generate(np.zeros((3, 2)), start=0)
    assert len(ep) == 7
    assert not ep.terminated
    assert ep.steps[0].state_id == 0


def test_project_episodes_terminate_on_completion() -> None:
    engine = TaskSelectionEngine({"gamma": 0.95})
    engine.initialize(**project_phases.scenario_inputs())
    assert engine.model is not None and engine.store is not None
    sim = EpisodeSimulator(engine.model, np.random.default_rng(1), epsilon=0.0, max_steps=500)
    start = engine.model.states.require_id(project_phases.KEY_STATES[-1])
    ep = sim.generate(engine.store.q_table, start=start)
    assert ep.terminated
    assert all(step.action_id == engine.model.actions.require_id("continue_normal") for step in ep)


def test_monte_carlo_report_counts(phase_engine: TaskSelectionEngine) -> None:
    report = phase_engine.compute_optimal_policy(
        "monte_carlo", {"episodes": 40, "max_steps_per_episode": 50}
    )
    assert report.converged
    assert report.iterations == 40
    assert 0 < report.details["steps"] <= 40 * 50
    assert report.details["visited_pairs"] > 0
