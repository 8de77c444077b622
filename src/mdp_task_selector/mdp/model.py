from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..catalog import ActionCatalog, State, StateCatalog
from .rewards import RewardModel
from .transitions import TransitionModel


@dataclass
class MarkovModel:
    states: StateCatalog
    actions: ActionCatalog
    transitions: TransitionModel
    rewards: RewardModel
    terminal_attribute: str | None = "phase"
    terminal_value: str | None = "completed"

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def n_actions(self) -> int:
        return len(self.actions)

    def is_terminal(self, state: State) -> bool:
        if self.terminal_attribute is None or self.terminal_value is None:
            return False
        return state.get(self.terminal_attribute) == self.terminal_value

    def q_value(
        self, state_id: int, action_id: int, values: npt.NDArray[np.float64], gamma: float
    ) -> float:
        """One-step lookahead R(s,a) + gamma * sum_s' P(s'|s,a) V(s')."""
        return self.rewards.reward(state_id, action_id) + gamma * self.transitions.expected_value(
            state_id, action_id, values
        )

    def q_row(
        self, state_id: int, values: npt.NDArray[np.float64], gamma: float
    ) -> npt.NDArray[np.float64]:
        return np.array(
            [self.q_value(state_id, a, values, gamma) for a in range(self.n_actions)],
            dtype=np.float64,
        )
