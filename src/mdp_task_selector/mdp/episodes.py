from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

import numpy as np
import numpy.typing as npt

from .model import MarkovModel
from .transitions import Outcome


@dataclass(frozen=True)
class Step:
    state_id: int
    action_id: int
    reward: float


@dataclass
class Episode:
    steps: list[Step] = field(default_factory=list)
    terminated: bool = False

    def append(self, step: Step) -> None:
        self.steps.append(step)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self) -> Iterator[Step]:
        return iter(self.steps)

    def returns(self, gamma: float) -> list[float]:
        """Discounted return from every step, computed backwards."""
        g = [0.0] * len(self.steps)
        running = 0.0
        for t in range(len(self.steps) - 1, -1, -1):
            running = self.steps[t].reward + gamma * running
            g[t] = running
        return g


class EpisodeSimulator:
    """Samples trajectories from the transition model under an epsilon-greedy policy."""

    def __init__(
        self,
        model: MarkovModel,
        rng: np.random.Generator,
        *,
        epsilon: float = 0.1,
        max_steps: int = 100,
    ) -> None:
        self.model = model
        self.rng = rng
        self.epsilon = float(epsilon)
        self.max_steps = int(max_steps)

    def choose_action(self, state_id: int, q_table: npt.NDArray[np.float64]) -> int:
        if self.rng.random() < self.epsilon:
            return int(self.rng.integers(0, self.model.n_actions))
        return int(np.argmax(q_table[state_id]))

    def sample_successor(self, state_id: int, action_id: int) -> Outcome:
        """Inverse-CDF draw over the (state, action) distribution."""
        outcomes = self.model.transitions.transition(state_id, action_id)
        u = self.rng.random()
        cumulative = 0.0
        for outcome in outcomes:
            cumulative += outcome.probability
            if u < cumulative:
                return outcome
        return outcomes[-1]

    def generate(self, q_table: npt.NDArray[np.float64], start: int | None = None) -> Episode:
        sid = int(self.rng.integers(0, self.model.n_states)) if start is None else int(start)
        episode = Episode()
        for _ in range(self.max_steps):
            aid = self.choose_action(sid, q_table)
            episode.append(Step(sid, aid, self.model.rewards.reward(sid, aid)))
            outcome = self.sample_successor(sid, aid)
            if outcome.state_id is None or self.model.is_terminal(outcome.next_state):
                episode.terminated = True
                break
            sid = outcome.state_id
        return episode
