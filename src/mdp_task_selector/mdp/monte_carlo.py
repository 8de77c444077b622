from __future__ import annotations

import time
from dataclasses import dataclass, field

import numpy as np

from .episodes import EpisodeSimulator
from .model import MarkovModel
from .solvers import SolveReport, Solver, _log_report
from .store import ValueStore


@dataclass
class MonteCarloParams:
    gamma: float = 0.95
    episodes: int = 100
    max_steps_per_episode: int = 100
    epsilon: float = 0.1
    seed: int = 1337


@dataclass
class MonteCarloSolver(Solver):
    params: MonteCarloParams = field(default_factory=MonteCarloParams)
    name = "monte_carlo"

    def solve(self, model: MarkovModel, store: ValueStore) -> SolveReport:
        t0 = time.perf_counter()
        rng = np.random.default_rng(self.params.seed)
        simulator = EpisodeSimulator(
            model,
            rng,
            epsilon=self.params.epsilon,
            max_steps=self.params.max_steps_per_episode,
        )
        returns_sum = np.zeros_like(store.q_table)
        counts = np.zeros(store.q_table.shape, dtype=np.int64)
        steps = 0
        terminated = 0

        for _ in range(self.params.episodes):
            episode = simulator.generate(store.q_table)
            steps += len(episode)
            terminated += int(episode.terminated)
            # every-visit running average of returns
            for step, g in zip(episode, episode.returns(self.params.gamma)):
                s, a = step.state_id, step.action_id
                store.q_table[s, a] = (returns_sum[s, a] + g) / (counts[s, a] + 1)
                returns_sum[s, a] += g
                counts[s, a] += 1

        store.extract_policy()
        report = SolveReport(
            solver=self.name,
            converged=True,
            iterations=self.params.episodes,
            delta=0.0,
            elapsed_s=time.perf_counter() - t0,
            details={
                "steps": float(steps),
                "terminated_episodes": float(terminated),
                "visited_pairs": float(np.count_nonzero(counts)),
            },
        )
        _log_report(report)
        return report
