from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterable, Iterator, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.functional_validators import field_validator

from . import project_phases
from .catalog import (
    Action,
    ActionCatalog,
    MatchKind,
    State,
    StateCatalog,
    coerce_state,
    define_actions,
    define_states,
)
from .contracts import (
    ConfigurationError,
    SeedTableError,
    UnknownActionError,
    UnknownStateError,
    validate_policy,
    validate_q_table,
)
from .mdp import (
    MarkovModel,
    MonteCarloParams,
    MonteCarloSolver,
    PolicyIterationParams,
    PolicyIterationSolver,
    RewardModel,
    SolveReport,
    Solver,
    TDUpdater,
    TransitionModel,
    ValueIterationParams,
    ValueIterationSolver,
    ValueStore,
)
from .metrics import EngineMetrics

logger = logging.getLogger(__name__)

SolverName = Literal["value_iteration", "policy_iteration", "monte_carlo"]
PAIR_SEP = "::"
NEUTRAL_CONFIDENCE = 0.5
FALLBACK_ACTION = "continue_normal"


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    solver: SolverName = "value_iteration"
    gamma: float = Field(default=0.95, gt=0.0, lt=1.0)
    theta: float = Field(default=0.01, gt=0.0)
    max_iterations: int = Field(default=1000, ge=1)
    max_policy_iterations: int = Field(default=100, ge=1)
    max_evaluation_sweeps: int = Field(default=1000, ge=1)

    episodes: int = Field(default=100, ge=1)
    max_steps_per_episode: int = Field(default=100, ge=1)
    epsilon: float = Field(default=0.1, ge=0.0, le=1.0)

    learning_rate: float = Field(default=0.01, ge=0.0, le=1.0)
    transition_boost: float = Field(default=1.1, gt=1.0)
    new_successor_weight: float = Field(default=0.1, gt=0.0, le=1.0)
    reward_smoothing: float = Field(default=0.9, ge=0.0, lt=1.0)

    similarity_threshold: float = Field(default=0.7, gt=0.0, le=1.0)
    terminal_attribute: str | None = "phase"
    terminal_value: str | None = "completed"
    default_state: dict[str, str] | None = None
    default_action: str | None = None

    max_states: int = Field(default=10_000, ge=1)
    top_n: int = Field(default=5, ge=1)
    seed: int = 1337

    @field_validator("default_state", mode="before")
    @classmethod
    def _stringify_default_state(cls, v: Any) -> Any:
        if v is None:
            return v
        if not isinstance(v, Mapping):
            raise ValueError("default_state must be a mapping of attribute values")
        return {str(k): str(val) for k, val in v.items()}


class TaskRecommendation(BaseModel):
    action: str
    details: dict[str, Any]
    confidence: float
    expected_value: float
    matched_state: MatchKind
    state_id: int | None
    state: dict[str, str]
    similarity: float


def _coerce_config(config: EngineConfig | Mapping[str, Any] | None) -> EngineConfig:
    if config is None:
        return EngineConfig()
    if isinstance(config, EngineConfig):
        return config
    if isinstance(config, Mapping):
        try:
            return EngineConfig(**dict(config))
        except ValidationError as e:
            raise ConfigurationError(f"invalid engine config: {e}") from e
    raise TypeError("config must be an EngineConfig or mapping")


def build_solver(config: EngineConfig) -> Solver:
    if config.solver == "value_iteration":
        return ValueIterationSolver(
            ValueIterationParams(
                gamma=config.gamma, theta=config.theta, max_iterations=config.max_iterations
            )
        )
    if config.solver == "policy_iteration":
        return PolicyIterationSolver(
            PolicyIterationParams(
                gamma=config.gamma,
                theta=config.theta,
                max_policy_iterations=config.max_policy_iterations,
                max_evaluation_sweeps=config.max_evaluation_sweeps,
                seed=config.seed,
            )
        )
    return MonteCarloSolver(
        MonteCarloParams(
            gamma=config.gamma,
            episodes=config.episodes,
            max_steps_per_episode=config.max_steps_per_episode,
            epsilon=config.epsilon,
            seed=config.seed,
        )
    )


def pair_key(state: State, action_id: str) -> str:
    return f"{state.key}{PAIR_SEP}{action_id}"


def _resolve_pair(key: Any, states: StateCatalog, actions: ActionCatalog) -> tuple[int, int]:
    try:
        if isinstance(key, str):
            state_key, sep, action_id = key.rpartition(PAIR_SEP)
            if not sep:
                raise ValueError(f"expected '<state>{PAIR_SEP}<action>', got {key!r}")
            raw_state: Any = state_key
        elif isinstance(key, tuple) and len(key) == 2:
            raw_state, action_id = key
            if isinstance(action_id, Action):
                action_id = action_id.id
        else:
            raise ValueError(f"unsupported seed key {key!r}")
        return states.require_id(raw_state), actions.require_id(str(action_id))
    except (ValueError, UnknownStateError, UnknownActionError) as e:
        raise SeedTableError(f"seed key {key!r}: {e}") from e


def _outcome_pairs(outcomes: Any) -> list[tuple[State, float]]:
    if isinstance(outcomes, Mapping) or not isinstance(outcomes, Iterable):
        raise SeedTableError(f"outcomes must be a list of (state, probability), got {outcomes!r}")
    pairs: list[tuple[State, float]] = []
    for item in outcomes:
        try:
            if isinstance(item, Mapping):
                raw_state, p = item["state"], item["probability"]
            else:
                raw_state, p = item
            pairs.append((coerce_state(raw_state), float(p)))
        except (KeyError, TypeError, ValueError) as e:
            raise SeedTableError(f"malformed outcome {item!r}: {e}") from e
    return pairs


def _records_to_seeds(
    data: Mapping[str, Any],
) -> tuple[dict[tuple[State, str], Any], dict[tuple[State, str], Any]]:
    """Convert YAML record lists into seed tables keyed by (State, action id)."""
    transitions: dict[tuple[State, str], Any] = {}
    rewards: dict[tuple[State, str], Any] = {}
    try:
        for rec in data.get("transitions") or []:
            transitions[(coerce_state(rec["state"]), str(rec["action"]))] = rec["outcomes"]
        for rec in data.get("rewards") or []:
            rewards[(coerce_state(rec["state"]), str(rec["action"]))] = rec["reward"]
    except (KeyError, TypeError, ValueError) as e:
        raise SeedTableError(f"malformed seed record: {e}") from e
    return transitions, rewards


class TaskSelectionEngine:
    """
    Recommends the next project action from a solved MDP and revises the
    model online from observed outcomes.

    All mutations and reads happen under one re-entrant lock, so a reader
    always sees a complete policy.
    """

    def __init__(self, config: EngineConfig | Mapping[str, Any] | None = None) -> None:
        self.config = _coerce_config(config)
        self._lock = threading.RLock()
        self.model: MarkovModel | None = None
        self.store: ValueStore | None = None
        self.td = TDUpdater(gamma=self.config.gamma, alpha=self.config.learning_rate)
        self.metrics = EngineMetrics()
        self.last_report: SolveReport | None = None
        self.is_initialized = False
        self._default_state_id = 0
        self._default_action_id: int | None = None

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> TaskSelectionEngine:
        engine = cls(data.get("engine") or {})
        scenario = data.get("scenario")
        if scenario == "project_phases":
            try:
                weights = project_phases.RewardWeights(**(data.get("reward_weights") or {}))
            except TypeError as e:
                raise ConfigurationError(f"invalid reward_weights: {e}") from e
            engine.initialize(**project_phases.scenario_inputs(weights))
        elif scenario is not None:
            raise ConfigurationError(f"unknown scenario {scenario!r}")
        else:
            transitions, rewards = _records_to_seeds(data)
            engine.initialize(
                data.get("attributes") or {},
                data.get("actions") or [],
                seed_transitions=transitions,
                seed_rewards=rewards,
                states=data.get("states"),
            )
        return engine

    def _merged_config(
        self, solver: str | None, solver_params: Mapping[str, Any] | None
    ) -> EngineConfig:
        if solver is None and not solver_params:
            return self.config
        merged = self.config.model_dump()
        merged.update(dict(solver_params or {}))
        if solver is not None:
            merged["solver"] = solver
        return _coerce_config(merged)

    def initialize(
        self,
        state_attribute_domains: Mapping[str, Iterable[Any]],
        action_descriptors: Iterable[Action | Mapping[str, Any]],
        seed_transitions: Mapping[Any, Any] | None = None,
        seed_rewards: Mapping[Any, Any] | None = None,
        solver: SolverName | None = None,
        solver_params: Mapping[str, Any] | None = None,
        *,
        states: Iterable[Any] | None = None,
    ) -> SolveReport:
        config = self._merged_config(solver, solver_params)
        catalog = define_states(state_attribute_domains, states, max_states=config.max_states)
        actions = define_actions(action_descriptors)

        transitions = TransitionModel(
            catalog,
            actions,
            boost=config.transition_boost,
            new_successor_weight=config.new_successor_weight,
        )
        for key, outcomes in (seed_transitions or {}).items():
            sid, aid = _resolve_pair(key, catalog, actions)
            transitions.set_distribution(sid, aid, _outcome_pairs(outcomes))

        rewards = RewardModel(len(catalog), len(actions), smoothing=config.reward_smoothing)
        for key, value in (seed_rewards or {}).items():
            sid, aid = _resolve_pair(key, catalog, actions)
            rewards.set_reward(sid, aid, value)

        default_state_id = 0
        if config.default_state is not None:
            try:
                default_state_id = catalog.require_id(config.default_state)
            except UnknownStateError as e:
                raise ConfigurationError(f"default_state is not a catalog state: {e}") from e
        default_action_id: int | None = None
        if config.default_action is not None:
            default_action_id = actions.id_of(config.default_action)
            if default_action_id is None:
                raise ConfigurationError(
                    f"default_action {config.default_action!r} is not a catalog action"
                )

        model = MarkovModel(
            states=catalog,
            actions=actions,
            transitions=transitions,
            rewards=rewards,
            terminal_attribute=config.terminal_attribute,
            terminal_value=config.terminal_value,
        )
        logger.info(
            "Initialized MDP: %d states, %d actions, %d seeded transitions",
            len(catalog),
            len(actions),
            len(transitions),
        )
        with self._lock:
            store, report = self._run_solver(model, config)
            self.config = config
            self.model = model
            self.td = TDUpdater(gamma=config.gamma, alpha=config.learning_rate)
            self._default_state_id = default_state_id
            self._default_action_id = default_action_id
            self._commit(store, report)
            self.is_initialized = True
        return report

    def _require_ready(self) -> tuple[MarkovModel, ValueStore]:
        if self.model is None or self.store is None:
            raise RuntimeError("engine not initialized; call initialize() first")
        return self.model, self.store

    def _run_solver(
        self, model: MarkovModel, config: EngineConfig
    ) -> tuple[ValueStore, SolveReport]:
        store = ValueStore.zeros(model.n_states, model.n_actions)
        report = build_solver(config).solve(model, store)
        validate_policy(store.policy, model.n_states, model.n_actions)
        validate_q_table(store.q_table)
        return store, report

    def _commit(self, store: ValueStore, report: SolveReport) -> None:
        self.store = store
        self.last_report = report
        self.metrics.record_solve(report.to_dict())

    def compute_optimal_policy(
        self, solver: SolverName | None = None, solver_params: Mapping[str, Any] | None = None
    ) -> SolveReport:
        config = self._merged_config(solver, solver_params)
        with self._lock:
            model, _ = self._require_ready()
            store, report = self._run_solver(model, config)
            self.config = config
            self.td = TDUpdater(gamma=config.gamma, alpha=config.learning_rate)
            self._commit(store, report)
            return report

    @staticmethod
    def _confidence(store: ValueStore, state_id: int, action_id: int) -> float:
        max_q = store.max_q()
        if max_q <= 0.0 or not math.isfinite(max_q):
            return NEUTRAL_CONFIDENCE
        confidence = float(store.q_table[state_id, action_id]) / max_q
        return confidence if math.isfinite(confidence) else NEUTRAL_CONFIDENCE

    def _uninitialized_recommendation(self) -> TaskRecommendation:
        action_id = self.config.default_action or FALLBACK_ACTION
        logger.warning("select_task before initialize(); recommending %s", action_id)
        self.metrics.record_query(MatchKind.DEFAULT)
        return TaskRecommendation(
            action=action_id,
            details={"id": action_id},
            confidence=NEUTRAL_CONFIDENCE,
            expected_value=0.0,
            matched_state=MatchKind.DEFAULT,
            state_id=None,
            state={},
            similarity=0.0,
        )

    def select_task(self, observed_state_attributes: Any) -> TaskRecommendation:
        with self._lock:
            if self.model is None or self.store is None:
                return self._uninitialized_recommendation()
            model, store = self.model, self.store
            sid, kind, similarity = model.states.match(
                observed_state_attributes, self.config.similarity_threshold
            )
            if sid is None:
                logger.warning(
                    "No catalog state matches %r; using default state", observed_state_attributes
                )
                sid = self._default_state_id
                aid = (
                    self._default_action_id
                    if self._default_action_id is not None
                    else int(store.policy[sid])
                )
                confidence = NEUTRAL_CONFIDENCE
            else:
                if kind is MatchKind.APPROXIMATE:
                    logger.debug(
                        "Approximate match %s (similarity %.2f)", model.states[sid].key, similarity
                    )
                aid = int(store.policy[sid])
                confidence = self._confidence(store, sid, aid)
            self.metrics.record_query(kind)
            action = model.actions[aid]
            return TaskRecommendation(
                action=action.id,
                details=action.model_dump(),
                confidence=confidence,
                expected_value=float(store.q_table[sid, aid]),
                matched_state=kind,
                state_id=sid,
                state=model.states[sid].as_dict(),
                similarity=similarity,
            )

    def record_experience(self, state: Any, action: Any, reward: float, next_state: Any) -> float:
        """Revise transitions, rewards and Q(s, a) from one observed outcome; returns the TD error."""
        reward = float(reward)
        if not math.isfinite(reward):
            raise ValueError(f"reward must be finite, got {reward!r}")
        with self._lock:
            model, store = self._require_ready()
            sid = model.states.require_id(state)
            aid = model.actions.require_id(action.id if isinstance(action, Action) else str(action))
            try:
                nxt = coerce_state(next_state)
            except (TypeError, ValueError) as e:
                raise UnknownStateError(f"malformed next state {next_state!r}: {e}") from e

            model.transitions.record_observed_transition(sid, aid, nxt)
            model.rewards.record_observed_reward(sid, aid, reward)
            td_error = self.td.step(
                store, sid, aid, reward, model.states.id_of(nxt), done=model.is_terminal(nxt)
            )
            self.metrics.record_experience(td_error)
            logger.debug(
                "Experience %s -> %s: reward=%.3f td_error=%.4f",
                model.states[sid].key,
                model.actions[aid].id,
                reward,
                td_error,
            )
            return td_error

    def get_status(self) -> dict[str, Any]:
        with self._lock:
            model = self.model
            return {
                "initialized": self.is_initialized,
                "solver": self.config.solver,
                "states": model.n_states if model else 0,
                "actions": model.n_actions if model else 0,
                "transitions": len(model.transitions) if model else 0,
                "policy_size": int(self.store.policy.shape[0]) if self.store is not None else 0,
                "converged": self.last_report.converged if self.last_report else False,
                "last_solve": self.last_report.to_dict() if self.last_report else {},
                "metrics": self.metrics.snapshot(),
            }

    def _recommendations(self, model: MarkovModel, store: ValueStore) -> Iterator[dict[str, Any]]:
        for sid, state in enumerate(model.states):
            aid = int(store.policy[sid])
            yield {
                "state_id": sid,
                "state": state.key,
                "phase": state.get("phase"),
                "action": model.actions[aid].id,
                "value": float(store.q_table[sid, aid]),
            }

    def get_policy_summary(self, top_n: int | None = None) -> dict[str, Any]:
        n = self.config.top_n if top_n is None else max(0, int(top_n))
        with self._lock:
            model, store = self._require_ready()
            recs = sorted(
                self._recommendations(model, store), key=lambda r: (-r["value"], r["state_id"])
            )
            return {
                "states": model.n_states,
                "actions": model.n_actions,
                "policy_entries": int(store.policy.shape[0]),
                "recommendations": recs[:n],
            }

    def export_tables(self) -> dict[str, Any]:
        """Flat key -> value records; ``transitions`` and ``rewards`` are valid seed tables."""
        with self._lock:
            model, store = self._require_ready()
            transitions = {
                pair_key(model.states[sid], model.actions[aid].id): [
                    [o.next_state.key, o.probability] for o in dist
                ]
                for (sid, aid), dist in model.transitions.entries()
            }
            rewards: dict[str, float] = {}
            q_values: dict[str, float] = {}
            for sid, state in enumerate(model.states):
                for aid, action in enumerate(model.actions):
                    key = pair_key(state, action.id)
                    rewards[key] = model.rewards.reward(sid, aid)
                    q_values[key] = float(store.q_table[sid, aid])
            return {
                "transitions": transitions,
                "rewards": rewards,
                "values": {s.key: float(store.values[i]) for i, s in enumerate(model.states)},
                "q_values": q_values,
                "policy": {
                    s.key: model.actions[int(store.policy[i])].id
                    for i, s in enumerate(model.states)
                },
            }
