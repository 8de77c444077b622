from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any

import numpy as np
import numpy.typing as npt

PROBABILITY_TOLERANCE = 1e-6


class ConfigurationError(ValueError):
    """Fatal configuration problem detected while building the engine."""


class CatalogError(ConfigurationError):
    """Empty, duplicate or malformed state/action catalog input."""


class SeedTableError(ConfigurationError):
    """Malformed seed transition or reward table."""


class UnknownStateError(KeyError):
    """A state that is not part of the catalog was referenced."""


class UnknownActionError(KeyError):
    """An action id that is not part of the catalog was referenced."""


class InvariantViolation(RuntimeError):
    """Raised when a runtime invariant is violated."""


def _is_finite(x: Any) -> bool:
    return isinstance(x, (int, float, np.floating, np.integer)) and math.isfinite(float(x))


def validate_distribution(
    outcomes: Iterable[tuple[Any, float]], *, tol: float = PROBABILITY_TOLERANCE
) -> float:
    """
    Contract for a successor distribution of one (state, action) pair.

    Invariants:
      - DST-001: at least one successor
      - DST-002: every probability is finite and >= 0
      - DST-003: probabilities sum to 1 within ``tol``

    Returns the raw probability total so callers may renormalize exactly.
    """
    total = 0.0
    count = 0
    for successor, p in outcomes:
        if not _is_finite(p):
            raise InvariantViolation(f"DST-002 probability for {successor!r} must be finite")
        if float(p) < 0.0:
            raise InvariantViolation(f"DST-002 negative probability for {successor!r}: {p}")
        total += float(p)
        count += 1
    if count == 0:
        raise InvariantViolation("DST-001 distribution has no successors")
    if abs(total - 1.0) > tol:
        raise InvariantViolation(f"DST-003 probabilities sum to {total:.9f}, expected 1")
    return total


def validate_policy(policy: npt.NDArray[np.int64], n_states: int, n_actions: int) -> None:
    """
    Policy contract.

    Invariants:
      - POL-001: exactly one entry per catalog state
      - POL-002: every entry names a catalog action
    """
    if policy.shape != (n_states,):
        raise InvariantViolation(
            f"POL-001 policy has shape {policy.shape}, expected ({n_states},)"
        )
    if n_states and (int(policy.min()) < 0 or int(policy.max()) >= n_actions):
        raise InvariantViolation("POL-002 policy references an action outside the catalog")


def validate_q_table(q: npt.NDArray[np.float64]) -> None:
    """QFN-001: every Q value is finite."""
    if not bool(np.all(np.isfinite(q))):
        raise InvariantViolation("QFN-001 Q table contains NaN or Inf")
