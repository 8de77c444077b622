from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import numpy.typing as npt


@dataclass
class ValueStore:
    """V(s), Q(s, a) and the greedy policy pi(s) as parallel numpy tables."""

    values: npt.NDArray[np.float64]
    q_table: npt.NDArray[np.float64]
    policy: npt.NDArray[np.int64]

    @classmethod
    def zeros(cls, n_states: int, n_actions: int) -> ValueStore:
        return cls(
            values=np.zeros(n_states, dtype=np.float64),
            q_table=np.zeros((n_states, n_actions), dtype=np.float64),
            policy=np.zeros(n_states, dtype=np.int64),
        )

    @property
    def n_states(self) -> int:
        return int(self.q_table.shape[0])

    @property
    def n_actions(self) -> int:
        return int(self.q_table.shape[1])

    def q_values(self, state_id: int) -> npt.NDArray[np.float64]:
        return self.q_table[state_id]

    def best_action(self, state_id: int) -> int:
        # np.argmax returns the first maximum: lowest action id wins ties
        return int(np.argmax(self.q_table[state_id]))

    def greedy_update(self, state_id: int) -> int:
        best = self.best_action(state_id)
        self.policy[state_id] = best
        self.values[state_id] = self.q_table[state_id, best]
        return best

    def extract_policy(self) -> None:
        for sid in range(self.n_states):
            self.greedy_update(sid)

    def max_q(self) -> float:
        if self.q_table.size == 0:
            return 0.0
        return float(self.q_table.max())

    def copy(self) -> ValueStore:
        return ValueStore(
            values=np.array(self.values, copy=True),
            q_table=np.array(self.q_table, copy=True),
            policy=np.array(self.policy, copy=True),
        )
