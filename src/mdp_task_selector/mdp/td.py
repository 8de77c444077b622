from __future__ import annotations

from dataclasses import dataclass, field

from .store import ValueStore


@dataclass
class TDUpdater:
    gamma: float = 0.95
    alpha: float = 0.01
    td_errors: list[float] = field(default_factory=list)
    max_history: int = 256

    def step(
        self,
        store: ValueStore,
        state_id: int,
        action_id: int,
        reward: float,
        next_state_id: int | None,
        done: bool = False,
    ) -> float:
        """Single TD(0) update of Q(s, a); re-derives pi(s) and V(s) from the new row."""
        q_sa = float(store.q_table[state_id, action_id])
        if next_state_id is None or done:
            next_q = 0.0
        else:
            next_q = float(store.q_values(next_state_id).max())
        target = float(reward) + self.gamma * next_q
        td_error = target - q_sa
        store.q_table[state_id, action_id] = q_sa + self.alpha * td_error
        store.greedy_update(state_id)
        self.td_errors.append(td_error)
        if len(self.td_errors) > self.max_history:
            del self.td_errors[0 : len(self.td_errors) - self.max_history]
        return td_error
