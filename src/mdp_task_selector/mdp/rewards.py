from __future__ import annotations

import math

import numpy as np
import numpy.typing as npt

from ..contracts import SeedTableError


class RewardModel:
    """Dense R(s, a) table with exponential-average online revision."""

    def __init__(self, n_states: int, n_actions: int, *, smoothing: float = 0.9) -> None:
        self.smoothing = float(smoothing)
        self._table: npt.NDArray[np.float64] = np.zeros((n_states, n_actions), dtype=np.float64)

    @property
    def shape(self) -> tuple[int, int]:
        return self._table.shape  # type: ignore[return-value]

    def reward(self, state_id: int, action_id: int) -> float:
        return float(self._table[state_id, action_id])

    def set_reward(self, state_id: int, action_id: int, value: float) -> None:
        if not isinstance(value, (int, float, np.floating)) or not math.isfinite(float(value)):
            raise SeedTableError(f"reward for ({state_id}, {action_id}) must be finite, got {value!r}")
        self._table[state_id, action_id] = float(value)

    def record_observed_reward(self, state_id: int, action_id: int, observed: float) -> float:
        if not math.isfinite(float(observed)):
            raise ValueError(f"observed reward must be finite, got {observed!r}")
        old = float(self._table[state_id, action_id])
        new = self.smoothing * old + (1.0 - self.smoothing) * float(observed)
        self._table[state_id, action_id] = new
        return new

    def bounds(self) -> tuple[float, float]:
        return float(self._table.min()), float(self._table.max())

    def export_table(self) -> npt.NDArray[np.float64]:
        return np.array(self._table, copy=True)
