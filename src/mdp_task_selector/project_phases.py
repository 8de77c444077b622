"""Seed model for construction project-phase scheduling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .catalog import Action, State

PHASES = ("planning", "foundation", "structure", "envelope", "interior", "finishing")
COMPLETED_PHASE = "completed"

ATTRIBUTE_DOMAINS: dict[str, tuple[str, ...]] = {
    "phase": PHASES + (COMPLETED_PHASE,),
    "resources": ("abundant", "adequate", "constrained", "critical"),
    "schedule": ("ahead", "on_time", "slight_delay", "major_delay"),
    "budget": ("under", "on_budget", "slight_over", "major_over"),
    "quality": ("excellent", "good", "acceptable", "issues"),
}

# One representative state per phase rather than the full product.
_KEY_STATE_ROWS = (
    ("planning", "adequate", "on_time", "on_budget", "good"),
    ("foundation", "adequate", "on_time", "on_budget", "good"),
    ("structure", "adequate", "on_time", "on_budget", "good"),
    ("envelope", "constrained", "slight_delay", "slight_over", "acceptable"),
    ("interior", "adequate", "on_time", "on_budget", "excellent"),
    ("finishing", "abundant", "ahead", "under", "excellent"),
)
KEY_STATES: tuple[dict[str, str], ...] = tuple(
    dict(zip(ATTRIBUTE_DOMAINS, row)) for row in _KEY_STATE_ROWS
)

ACTIONS: tuple[dict[str, str], ...] = (
    {"id": "hire_workers", "category": "resource", "cost": "medium", "duration": "short"},
    {"id": "order_materials", "category": "resource", "cost": "high", "duration": "medium"},
    {"id": "rent_equipment", "category": "resource", "cost": "medium", "duration": "variable"},
    {"id": "quality_inspection", "category": "quality", "cost": "low", "duration": "short"},
    {"id": "rework", "category": "quality", "cost": "high", "duration": "medium"},
    {"id": "preventive_measures", "category": "quality", "cost": "medium", "duration": "short"},
    {"id": "overtime", "category": "schedule", "cost": "high", "duration": "immediate"},
    {"id": "parallel_tasks", "category": "schedule", "cost": "medium", "duration": "medium"},
    {"id": "fast_track", "category": "schedule", "cost": "very_high", "duration": "long"},
    {"id": "weather_protection", "category": "risk", "cost": "medium", "duration": "short"},
    {"id": "safety_training", "category": "risk", "cost": "low", "duration": "short"},
    {"id": "contingency_planning", "category": "risk", "cost": "low", "duration": "medium"},
    {"id": "continue_normal", "category": "progress", "cost": "normal", "duration": "standard"},
    {"id": "accelerate", "category": "progress", "cost": "high", "duration": "reduced"},
    {"id": "slow_down", "category": "progress", "cost": "low", "duration": "extended"},
)

COST_PENALTY: dict[str, float] = {
    "low": -2.0,
    "medium": -5.0,
    "high": -10.0,
    "very_high": -20.0,
    "normal": -3.0,
}

COMPLETION_BONUS = 100.0


def cost_penalty(cost: str) -> float:
    return COST_PENALTY.get(cost, 0.0)


def completion_bonus(state: State, action: Action) -> float:
    if state.get("phase") == PHASES[-1] and action.id == "continue_normal":
        return COMPLETION_BONUS
    return 0.0


def schedule_term(state: State) -> float:
    return {"ahead": 10.0, "major_delay": -20.0}.get(state.get("schedule") or "", 0.0)


def budget_term(state: State) -> float:
    return {"under": 15.0, "major_over": -25.0}.get(state.get("budget") or "", 0.0)


def quality_term(state: State) -> float:
    return {"excellent": 20.0, "issues": -30.0}.get(state.get("quality") or "", 0.0)


def resource_term(state: State) -> float:
    return {"abundant": 5.0, "critical": -15.0}.get(state.get("resources") or "", 0.0)


@dataclass
class RewardWeights:
    # status terms are constant per state; off unless explicitly weighted
    w_completion: float = 1.0
    w_cost: float = 1.0
    w_schedule: float = 0.0
    w_budget: float = 0.0
    w_quality: float = 0.0
    w_resources: float = 0.0


def compute_reward(state: State, action: Action, weights: RewardWeights | None = None) -> float:
    w = weights or RewardWeights()
    return float(
        w.w_completion * completion_bonus(state, action)
        + w.w_cost * cost_penalty(action.cost)
        + w.w_schedule * schedule_term(state)
        + w.w_budget * budget_term(state)
        + w.w_quality * quality_term(state)
        + w.w_resources * resource_term(state)
    )


def next_phase(state: State) -> State:
    phase = state.get("phase")
    if phase in PHASES[:-1]:
        return state.replace(phase=PHASES[PHASES.index(phase) + 1])
    return state.replace(phase=COMPLETED_PHASE)


def compute_transitions(state: State, action: Action) -> list[tuple[State, float]]:
    if action.category == "resource" and state.get("resources") == "constrained":
        return [
            (state.replace(resources="adequate"), 0.7),
            (state.replace(resources="abundant"), 0.2),
            (state, 0.1),
        ]
    if action.category == "schedule" and state.get("schedule") == "slight_delay":
        return [
            (state.replace(schedule="on_time"), 0.6),
            (state.replace(schedule="ahead"), 0.1),
            (state, 0.3),
        ]
    if action.category == "quality" and state.get("quality") == "issues":
        return [
            (state.replace(quality="acceptable"), 0.5),
            (state.replace(quality="good"), 0.3),
            (state, 0.2),
        ]
    if action.id == "continue_normal":
        return [(next_phase(state), 0.8), (state, 0.2)]
    return [(state, 1.0)]


def seed_tables(
    states: list[State] | tuple[State, ...],
    actions: list[Action] | tuple[Action, ...],
    weights: RewardWeights | None = None,
) -> tuple[dict[tuple[State, str], list[tuple[State, float]]], dict[tuple[State, str], float]]:
    transitions: dict[tuple[State, str], list[tuple[State, float]]] = {}
    rewards: dict[tuple[State, str], float] = {}
    for state in states:
        for action in actions:
            transitions[(state, action.id)] = compute_transitions(state, action)
            rewards[(state, action.id)] = compute_reward(state, action, weights)
    return transitions, rewards


def scenario_inputs(weights: RewardWeights | None = None) -> dict[str, Any]:
    """Keyword arguments for ``TaskSelectionEngine.initialize``."""
    states = [State.of(s) for s in KEY_STATES]
    actions = [Action.model_validate(a) for a in ACTIONS]
    transitions, rewards = seed_tables(states, actions, weights)
    return {
        "state_attribute_domains": ATTRIBUTE_DOMAINS,
        "action_descriptors": actions,
        "seed_transitions": transitions,
        "seed_rewards": rewards,
        "states": states,
    }
