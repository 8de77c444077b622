from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

import numpy as np
import numpy.typing as npt

from ..catalog import ActionCatalog, State, StateCatalog
from ..contracts import (
    InvariantViolation,
    SeedTableError,
    UnknownStateError,
    validate_distribution,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Outcome:
    next_state: State
    # None when the successor is outside the catalog (absorbing, value 0)
    state_id: int | None
    probability: float


Distribution = tuple[Outcome, ...]


class TransitionModel:
    """P(s'|s,a) per (state id, action id); unseeded pairs are self-loops."""

    def __init__(
        self,
        states: StateCatalog,
        actions: ActionCatalog,
        *,
        boost: float = 1.1,
        new_successor_weight: float = 0.1,
    ) -> None:
        self.states = states
        self.actions = actions
        self.boost = float(boost)
        self.new_successor_weight = float(new_successor_weight)
        self._entries: dict[tuple[int, int], Distribution] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def has_entry(self, state_id: int, action_id: int) -> bool:
        return (state_id, action_id) in self._entries

    def transition(self, state_id: int, action_id: int) -> Distribution:
        entry = self._entries.get((state_id, action_id))
        if entry is None:
            return (Outcome(self.states[state_id], state_id, 1.0),)
        return entry

    def entries(self) -> Iterator[tuple[tuple[int, int], Distribution]]:
        return iter(sorted(self._entries.items()))

    def _build(self, weights: dict[State, float]) -> Distribution:
        total = sum(weights.values())
        return tuple(
            Outcome(s, self.states.id_of(s), w / total) for s, w in weights.items()
        )

    def set_distribution(
        self, state_id: int, action_id: int, outcomes: Iterable[tuple[State, float]]
    ) -> Distribution:
        pairs = [(s, float(p)) for s, p in outcomes]
        key = f"{self.states[state_id].key}::{self.actions[action_id].id}"
        try:
            for s, _ in pairs:
                self.states.check_conforms(s)
            validate_distribution(pairs)
        except (InvariantViolation, UnknownStateError) as e:
            raise SeedTableError(f"transition seed for {key}: {e}") from e
        weights: dict[State, float] = {}
        for s, p in pairs:
            weights[s] = weights.get(s, 0.0) + p
        dist = self._build(weights)
        self._entries[(state_id, action_id)] = dist
        return dist

    def record_observed_transition(
        self, state_id: int, action_id: int, next_state: State
    ) -> Distribution:
        """Boost the observed successor's weight, then renormalize; successors are never dropped."""
        self.states.check_conforms(next_state)
        weights = {o.next_state: o.probability for o in self.transition(state_id, action_id)}
        current = weights.get(next_state, 0.0)
        if current > 0.0:
            weights[next_state] = current * self.boost
        else:
            weights[next_state] = self.new_successor_weight
        dist = self._build(weights)
        validate_distribution((o.next_state, o.probability) for o in dist)
        self._entries[(state_id, action_id)] = dist
        return dist

    def expected_value(
        self, state_id: int, action_id: int, values: npt.NDArray[np.float64]
    ) -> float:
        total = 0.0
        for o in self.transition(state_id, action_id):
            if o.state_id is not None:
                total += o.probability * float(values[o.state_id])
        return total
