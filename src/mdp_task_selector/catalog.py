from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from .contracts import CatalogError, UnknownActionError, UnknownStateError

logger = logging.getLogger(__name__)

ActionCategory = Literal["resource", "quality", "schedule", "risk", "progress"]
CostTier = Literal["low", "medium", "high", "very_high", "normal"]
DurationTier = Literal[
    "immediate", "short", "medium", "long", "variable", "standard", "reduced", "extended"
]

_KEY_SEP = "|"
_PAIR_SEP = "="
_RESERVED = (_KEY_SEP, _PAIR_SEP, "::")


class MatchKind(str, Enum):
    EXACT = "exact"
    APPROXIMATE = "approximate"
    DEFAULT = "default"


@dataclass(frozen=True)
class State:
    """Immutable attribute record; equality is structural, independent of input order."""

    items: tuple[tuple[str, str], ...]

    @classmethod
    def of(cls, attributes: Mapping[str, Any]) -> State:
        return cls(tuple(sorted((str(k), str(v)) for k, v in attributes.items())))

    @classmethod
    def from_key(cls, key: str) -> State:
        pairs: dict[str, str] = {}
        for chunk in key.split(_KEY_SEP):
            name, sep, value = chunk.partition(_PAIR_SEP)
            if not sep or not name:
                raise ValueError(f"malformed state key: {key!r}")
            pairs[name] = value
        return cls.of(pairs)

    @property
    def key(self) -> str:
        return _KEY_SEP.join(f"{k}{_PAIR_SEP}{v}" for k, v in self.items)

    def get(self, name: str, default: str | None = None) -> str | None:
        for k, v in self.items:
            if k == name:
                return v
        return default

    def __getitem__(self, name: str) -> str:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    def as_dict(self) -> dict[str, str]:
        return dict(self.items)

    def replace(self, **changes: str) -> State:
        data = self.as_dict()
        data.update({k: str(v) for k, v in changes.items()})
        return State.of(data)


StateLike = Union[State, Mapping[str, Any], str]


def coerce_state(obj: StateLike) -> State:
    if isinstance(obj, State):
        return obj
    if isinstance(obj, str):
        return State.from_key(obj)
    if isinstance(obj, Mapping):
        return State.of(obj)
    raise TypeError(f"cannot interpret {type(obj).__name__} as a state")


class Action(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    category: ActionCategory = Field(validation_alias=AliasChoices("category", "type"))
    cost: CostTier = "normal"
    duration: DurationTier = "standard"
    description: str = ""


class StateCatalog:
    """Canonically ordered set of decision states; a state's id is its index."""

    def __init__(self, domains: Mapping[str, Sequence[str]], states: Sequence[State]) -> None:
        self.domains: dict[str, tuple[str, ...]] = {k: tuple(v) for k, v in domains.items()}
        self.attributes: tuple[str, ...] = tuple(self.domains)
        self._states: tuple[State, ...] = tuple(states)
        self._index: dict[State, int] = {s: i for i, s in enumerate(self._states)}

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[State]:
        return iter(self._states)

    def __getitem__(self, state_id: int) -> State:
        return self._states[state_id]

    def __contains__(self, state: object) -> bool:
        return state in self._index

    def id_of(self, state: State) -> int | None:
        return self._index.get(state)

    def check_conforms(self, state: State) -> None:
        """Raise UnknownStateError unless ``state`` uses exactly the catalog attributes and domains."""
        problem = _domain_problem(self.domains, state)
        if problem is not None:
            raise UnknownStateError(problem)

    def require_id(self, state: StateLike) -> int:
        try:
            resolved = coerce_state(state)
        except (TypeError, ValueError) as e:
            raise UnknownStateError(str(e)) from e
        sid = self._index.get(resolved)
        if sid is None:
            raise UnknownStateError(resolved.key)
        return sid

    def _normalize(self, observed: Mapping[str, Any]) -> dict[str, str]:
        return {name: str(observed[name]) for name in self.attributes if name in observed}

    def similarity(self, state_id: int, observed: Mapping[str, Any]) -> float:
        if not self.attributes:
            return 0.0
        state = self._states[state_id]
        norm = self._normalize(observed)
        matches = sum(1 for name in self.attributes if norm.get(name) == state.get(name))
        return matches / len(self.attributes)

    def match(self, observed: Any, threshold: float) -> tuple[int | None, MatchKind, float]:
        """Exact lookup, then best attribute overlap at or above ``threshold``."""
        if isinstance(observed, str):
            try:
                observed = State.from_key(observed)
            except ValueError:
                logger.warning("Unparseable state key %r", observed)
                return None, MatchKind.DEFAULT, 0.0
        if isinstance(observed, State):
            observed = observed.as_dict()
        if not isinstance(observed, Mapping):
            logger.warning("Unusable observed state of type %s", type(observed).__name__)
            return None, MatchKind.DEFAULT, 0.0

        norm = self._normalize(observed)
        if len(norm) == len(self.attributes):
            sid = self._index.get(State.of(norm))
            if sid is not None:
                return sid, MatchKind.EXACT, 1.0

        best_id: int | None = None
        best_score = -1.0
        for sid in range(len(self._states)):
            score = self.similarity(sid, norm)
            # strict '>' keeps the first state in canonical order on ties
            if score > best_score:
                best_id, best_score = sid, score
        if best_id is not None and best_score >= threshold:
            return best_id, MatchKind.APPROXIMATE, best_score
        return None, MatchKind.DEFAULT, max(best_score, 0.0)


class ActionCatalog:
    def __init__(self, actions: Sequence[Action]) -> None:
        self._actions: tuple[Action, ...] = tuple(actions)
        self._index: dict[str, int] = {a.id: i for i, a in enumerate(self._actions)}

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self) -> Iterator[Action]:
        return iter(self._actions)

    def __getitem__(self, action_id: int) -> Action:
        return self._actions[action_id]

    def __contains__(self, action_id: object) -> bool:
        return action_id in self._index

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(a.id for a in self._actions)

    def id_of(self, action_id: str) -> int | None:
        return self._index.get(action_id)

    def require_id(self, action_id: str) -> int:
        aid = self._index.get(action_id)
        if aid is None:
            raise UnknownActionError(action_id)
        return aid


def _domain_problem(domains: Mapping[str, Sequence[str]], state: State) -> str | None:
    attrs = state.as_dict()
    if set(attrs) != set(domains):
        return f"state {state.key!r} must define exactly the attributes {sorted(domains)}"
    for name, value in attrs.items():
        if value not in domains[name]:
            return f"state {state.key!r}: {value!r} not in domain of {name!r}"
    return None


def _check_token(kind: str, token: str) -> None:
    if not token:
        raise CatalogError(f"{kind} must be a non-empty string")
    for reserved in _RESERVED:
        if reserved in token:
            raise CatalogError(f"{kind} {token!r} contains reserved sequence {reserved!r}")


def define_states(
    attribute_domains: Mapping[str, Iterable[Any]],
    states: Iterable[StateLike] | None = None,
    *,
    max_states: int = 10_000,
) -> StateCatalog:
    """
    Build the state catalog.

    Without ``states`` the catalog is the Cartesian product of the domains in
    declaration order. With ``states`` only those key states are enumerated,
    each validated against the domains.
    """
    if not isinstance(attribute_domains, Mapping) or not attribute_domains:
        raise CatalogError("attribute domains must be a non-empty mapping")

    domains: dict[str, tuple[str, ...]] = {}
    for name, values in attribute_domains.items():
        name = str(name)
        _check_token("attribute name", name)
        if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
            raise CatalogError(f"domain of {name!r} must be a list of values")
        vals = tuple(str(v) for v in values)
        if not vals:
            raise CatalogError(f"domain of {name!r} is empty")
        if len(set(vals)) != len(vals):
            raise CatalogError(f"domain of {name!r} lists a value twice")
        for v in vals:
            _check_token(f"value of {name!r}", v)
        domains[name] = vals

    if states is None:
        size = 1
        for vals in domains.values():
            size *= len(vals)
        if size > max_states:
            raise CatalogError(f"state space of {size} exceeds max_states={max_states}")
        names = list(domains)
        enumerated = [
            State.of(dict(zip(names, combo)))
            for combo in itertools.product(*(domains[n] for n in names))
        ]
    else:
        enumerated = []
        seen: set[State] = set()
        for raw in states:
            try:
                state = coerce_state(raw)
            except (TypeError, ValueError) as e:
                raise CatalogError(f"malformed state {raw!r}: {e}") from e
            problem = _domain_problem(domains, state)
            if problem is not None:
                raise CatalogError(problem)
            if state in seen:
                raise CatalogError(f"duplicate state {state.key!r}")
            seen.add(state)
            enumerated.append(state)
        if not enumerated:
            raise CatalogError("explicit state list is empty")
        if len(enumerated) > max_states:
            raise CatalogError(f"{len(enumerated)} states exceed max_states={max_states}")

    logger.info("Defined %d states over %d attributes", len(enumerated), len(domains))
    return StateCatalog(domains, enumerated)


def define_actions(action_descriptors: Iterable[Action | Mapping[str, Any]]) -> ActionCatalog:
    actions: list[Action] = []
    seen: set[str] = set()
    for raw in action_descriptors:
        if isinstance(raw, Action):
            action = raw
        elif isinstance(raw, Mapping):
            try:
                action = Action.model_validate(dict(raw))
            except ValidationError as e:
                raise CatalogError(f"invalid action descriptor {dict(raw)!r}: {e}") from e
        else:
            raise CatalogError(f"action descriptor must be a mapping, got {type(raw).__name__}")
        _check_token("action id", action.id)
        if action.id in seen:
            raise CatalogError(f"duplicate action id {action.id!r}")
        seen.add(action.id)
        actions.append(action)
    if not actions:
        raise CatalogError("action catalog is empty")
    logger.info("Defined %d actions", len(actions))
    return ActionCatalog(actions)
