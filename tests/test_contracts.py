from __future__ import annotations

import numpy as np
import pytest

from mdp_task_selector.contracts import (
    InvariantViolation,
    validate_distribution,
    validate_policy,
    validate_q_table,
)


def test_distribution_invariants_ok() -> None:
    assert validate_distribution([("a", 0.25), ("b", 0.75)]) == pytest.approx(1.0)
    assert validate_distribution([("a", 1.0 - 5e-7)]) == pytest.approx(1.0, abs=1e-6)


@pytest.mark.parametrize(
    "outcomes",
    [
        [],
        [("a", 0.5), ("b", 0.4)],
        [("a", 1.2), ("b", -0.2)],
        [("a", float("nan"))],
        [("a", float("inf"))],
        [("a", "1.0")],
    ],
)
def test_distribution_invariants_fail(outcomes: list) -> None:
    with pytest.raises(InvariantViolation):
        validate_distribution(outcomes)


def test_policy_invariants() -> None:
    validate_policy(np.array([0, 2, 1], dtype=np.int64), n_states=3, n_actions=3)
    with pytest.raises(InvariantViolation):
        validate_policy(np.array([0, 1], dtype=np.int64), n_states=3, n_actions=3)
    with pytest.raises(InvariantViolation):
        validate_policy(np.array([0, 3, 1], dtype=np.int64), n_states=3, n_actions=3)
    with pytest.raises(InvariantViolation):
        validate_policy(np.array([-1, 0, 0], dtype=np.int64), n_states=3, n_actions=3)


def test_q_table_must_be_finite() -> None:
    validate_q_table(np.zeros((2, 2)))
    with pytest.raises(InvariantViolation):
        validate_q_table(np.array([[0.0, np.nan]]))
