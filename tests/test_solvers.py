from __future__ import annotations

import numpy as np
import pytest

from conftest import TINY_GAMMA, TINY_OPTIMAL, build_tiny
from mdp_task_selector import project_phases
from mdp_task_selector.contracts import validate_policy
from mdp_task_selector.engine import TaskSelectionEngine

SOLVERS = ("value_iteration", "policy_iteration", "monte_carlo")


def _values_by_node(engine: TaskSelectionEngine) -> dict[str, float]:
    assert engine.model is not None and engine.store is not None
    return {s["node"]: float(engine.store.values[i]) for i, s in enumerate(engine.model.states)}


def test_value_iteration_reaches_bellman_fixed_point() -> None:
    engine = build_tiny("value_iteration")
    report = engine.last_report
    assert report is not None and report.converged
    values = _values_by_node(engine)
    for node, expected in TINY_OPTIMAL.items():
        assert values[node] == pytest.approx(expected, abs=1e-3)
    policy = engine.export_tables()["policy"]
    assert policy == {"node=a": "move", "node=b": "move", "node=c": "stay"}


def test_policy_iteration_matches_value_iteration() -> None:
    engine = build_tiny("policy_iteration")
    report = engine.last_report
    assert report is not None and report.converged
    assert report.iterations <= 100
    values = _values_by_node(engine)
    for node, expected in TINY_OPTIMAL.items():
        assert values[node] == pytest.approx(expected, abs=1e-2)
    assert engine.export_tables()["policy"]["node=c"] == "stay"


def test_value_iteration_cap_is_reported_not_raised() -> None:
    engine = build_tiny("value_iteration", max_iterations=2)
    report = engine.last_report
    assert report is not None
    assert not report.converged
    assert report.iterations == 2
    assert engine.get_status()["converged"] is False


def test_policy_iteration_initial_policy_is_seeded() -> None:
    a = build_tiny("policy_iteration", seed=5)
    b = build_tiny("policy_iteration", seed=5)
    assert a.store is not None and b.store is not None
    assert np.array_equal(a.store.policy, b.store.policy)
    assert np.allclose(a.store.q_table, b.store.q_table)


def test_monte_carlo_is_deterministic_for_a_seed() -> None:
    a = build_tiny("monte_carlo", episodes=30, max_steps_per_episode=40, seed=11)
    b = build_tiny("monte_carlo", episodes=30, max_steps_per_episode=40, seed=11)
    assert a.store is not None and b.store is not None
    assert np.allclose(a.store.q_table, b.store.q_table)
    assert a.last_report is not None
    assert a.last_report.details["steps"] == 30 * 40


@pytest.mark.parametrize("solver", SOLVERS)
def test_q_values_respect_reward_bounds(solver: str) -> None:
    engine = build_tiny(solver, episodes=50, max_steps_per_episode=60)
    assert engine.model is not None and engine.store is not None
    r_min, r_max = engine.model.rewards.bounds()
    lo, hi = r_min / (1.0 - TINY_GAMMA), r_max / (1.0 - TINY_GAMMA)
    q = engine.store.q_table
    assert np.all(q >= lo - 1e-9)
    assert np.all(q <= hi + 1e-9)


@pytest.mark.parametrize("solver", SOLVERS)
def test_q_values_respect_reward_bounds_on_project_phases(solver: str) -> None:
    engine = TaskSelectionEngine({"solver": solver, "gamma": 0.95, "theta": 0.01})
    engine.initialize(**project_phases.scenario_inputs())
    assert engine.model is not None and engine.store is not None
    r_min, r_max = engine.model.rewards.bounds()
    assert r_min < 0.0 < r_max
    q = engine.store.q_table
    assert np.all(q >= r_min / 0.05 - 1e-9)
    assert np.all(q <= r_max / 0.05 + 1e-9)


@pytest.mark.parametrize("solver", SOLVERS)
def test_every_state_gets_one_catalog_action(solver: str) -> None:
    engine = build_tiny(solver, episodes=20)
    assert engine.model is not None and engine.store is not None
    validate_policy(engine.store.policy, engine.model.n_states, engine.model.n_actions)
    policy = engine.export_tables()["policy"]
    assert set(policy) == {s.key for s in engine.model.states}
    assert set(policy.values()) <= set(engine.model.actions.ids)


def test_value_iteration_ties_pick_first_catalog_action() -> None:
    engine = TaskSelectionEngine()
    engine.initialize(
        {"node": ["only"]},
        [
            {"id": "first", "category": "risk"},
            {"id": "second", "category": "risk"},
        ],
        seed_rewards={("node=only", "first"): 1.0, ("node=only", "second"): 1.0},
    )
    assert engine.select_task({"node": "only"}).action == "first"


def test_recompute_swaps_in_new_solver_run(tiny_engine: TaskSelectionEngine) -> None:
    report = tiny_engine.compute_optimal_policy("policy_iteration")
    assert report.solver == "policy_iteration"
    assert tiny_engine.config.solver == "policy_iteration"
    assert tiny_engine.metrics.solver_runs == 2


def test_policy_iteration_reports_capped_evaluation() -> None:
    engine = build_tiny("policy_iteration", max_evaluation_sweeps=1)
    report = engine.last_report
    assert report is not None
    assert not report.converged
    assert report.delta >= 1e-4
    assert report.details["evaluation_sweeps"] == report.iterations
