from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any

import numpy as np

from .model import MarkovModel
from .store import ValueStore

logger = logging.getLogger(__name__)


@dataclass
class SolveReport:
    solver: str
    converged: bool
    iterations: int
    delta: float
    elapsed_s: float
    details: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ValueIterationParams:
    gamma: float = 0.95
    theta: float = 0.01
    max_iterations: int = 1000


@dataclass
class PolicyIterationParams:
    gamma: float = 0.95
    theta: float = 0.01
    max_policy_iterations: int = 100
    max_evaluation_sweeps: int = 1000
    seed: int = 1337


class Solver:
    name = "base"

    def solve(self, model: MarkovModel, store: ValueStore) -> SolveReport:
        raise NotImplementedError


def _log_report(report: SolveReport) -> None:
    if report.converged:
        logger.info(
            "%s converged in %d iterations (delta=%.3g, %.3fs)",
            report.solver,
            report.iterations,
            report.delta,
            report.elapsed_s,
        )
    else:
        logger.warning(
            "%s stopped at iteration cap %d without converging (delta=%.3g)",
            report.solver,
            report.iterations,
            report.delta,
        )


@dataclass
class ValueIterationSolver(Solver):
    params: ValueIterationParams = field(default_factory=ValueIterationParams)
    name = "value_iteration"

    def solve(self, model: MarkovModel, store: ValueStore) -> SolveReport:
        t0 = time.perf_counter()
        gamma, theta = self.params.gamma, self.params.theta
        delta = float("inf")
        iterations = 0
        while iterations < self.params.max_iterations:
            delta = 0.0
            # in-place sweep: later states see this sweep's updated values
            for sid in range(model.n_states):
                old = float(store.values[sid])
                store.q_table[sid] = model.q_row(sid, store.values, gamma)
                store.greedy_update(sid)
                delta = max(delta, abs(old - float(store.values[sid])))
            iterations += 1
            if delta < theta:
                break
        report = SolveReport(
            solver=self.name,
            converged=delta < theta,
            iterations=iterations,
            delta=float(delta),
            elapsed_s=time.perf_counter() - t0,
        )
        _log_report(report)
        return report


@dataclass
class PolicyIterationSolver(Solver):
    params: PolicyIterationParams = field(default_factory=PolicyIterationParams)
    name = "policy_iteration"

    def _evaluate(self, model: MarkovModel, store: ValueStore) -> tuple[int, float]:
        gamma, theta = self.params.gamma, self.params.theta
        delta = float("inf")
        sweeps = 0
        while sweeps < self.params.max_evaluation_sweeps:
            delta = 0.0
            for sid in range(model.n_states):
                old = float(store.values[sid])
                new = model.q_value(sid, int(store.policy[sid]), store.values, gamma)
                store.values[sid] = new
                delta = max(delta, abs(old - new))
            sweeps += 1
            if delta < theta:
                break
        return sweeps, delta

    def _improve(self, model: MarkovModel, store: ValueStore) -> bool:
        stable = True
        for sid in range(model.n_states):
            store.q_table[sid] = model.q_row(sid, store.values, self.params.gamma)
            old = int(store.policy[sid])
            best = store.best_action(sid)
            # an incumbent tied for best is kept so the loop cannot cycle between equals
            if store.q_table[sid, best] > store.q_table[sid, old]:
                store.policy[sid] = best
                stable = False
        return stable

    def solve(self, model: MarkovModel, store: ValueStore) -> SolveReport:
        t0 = time.perf_counter()
        rng = np.random.default_rng(self.params.seed)
        store.policy[:] = rng.integers(0, model.n_actions, size=model.n_states)

        stable = False
        outer = 0
        sweeps_total = 0
        delta = float("inf")
        while not stable and outer < self.params.max_policy_iterations:
            sweeps, delta = self._evaluate(model, store)
            sweeps_total += sweeps
            stable = self._improve(model, store)
            outer += 1

        report = SolveReport(
            solver=self.name,
            converged=stable and delta < self.params.theta,
            iterations=outer,
            delta=float(delta),
            elapsed_s=time.perf_counter() - t0,
            details={"evaluation_sweeps": float(sweeps_total)},
        )
        _log_report(report)
        return report
