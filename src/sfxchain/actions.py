"""
Action values and the append-only action queue.

Each fluent call on :class:`~sfxchain.chain.AudioChain` records exactly one
immutable action here. Nothing is validated at append time: a malformed
option set is only reported when the queue is executed.

Example:
    >>> queue = ActionQueue()
    >>> queue.append(AddAction("intro.mp3"))
    >>> queue.append(SilenceAction(500))
    >>> actions = queue.drain()
    >>> len(actions), queue.consumed
    (2, True)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Tuple, Union

from sfxchain.errors import AlreadyFinalized, InvalidOption


class DurationPolicy(str, Enum):
    """How two mixed tracks of different lengths set the output length."""
    SHORTEST = "shortest"
    LONGEST = "longest"
    FIRST = "first"


@dataclass(frozen=True)
class MixOptions:
    """Options for a mix action.

    Attributes:
        duration: Duration policy, kept as given so an invalid value is
            reported at execution time rather than when the mix is recorded.
    """
    duration: Union[DurationPolicy, str] = DurationPolicy.LONGEST


@dataclass(frozen=True)
class TrimOptions:
    """Options for the silence-trim action.

    Attributes:
        start_duration: Minimum leading silence (seconds) to remove.
        start_threshold: Leading silence threshold (dB).
        stop_duration: Minimum trailing silence (seconds) to remove.
        stop_threshold: Trailing silence threshold (dB).
        padding_start: Silence (ms) added at the start after trimming.
        padding_end: Silence (ms) added at the end after trimming.
    """
    start_duration: float = 0.1
    start_threshold: float = -50.0
    stop_duration: float = 0.1
    stop_threshold: float = -50.0
    padding_start: float = 0
    padding_end: float = 0

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]]) -> "TrimOptions":
        """Build options from a mapping of snake_case or camelCase keys.

        Missing or None values keep their defaults.

        Raises:
            InvalidOption: For unknown keys or non-numeric values.
        """
        values = {}
        for key, value in (options or {}).items():
            name = _TRIM_ALIASES.get(key, key)
            if name not in _TRIM_FIELDS:
                raise InvalidOption("trim", key, value, "unknown option")
            if value is None:
                continue
            try:
                values[name] = float(value)
            except (TypeError, ValueError):
                raise InvalidOption("trim", key, value, "expected a number") from None
        return cls(**values)


_TRIM_FIELDS = frozenset(TrimOptions.__dataclass_fields__)
_TRIM_ALIASES = {
    "startDuration": "start_duration",
    "startThreshold": "start_threshold",
    "stopDuration": "stop_duration",
    "stopThreshold": "stop_threshold",
    "paddingStart": "padding_start",
    "paddingEnd": "padding_end",
}


@dataclass(frozen=True)
class AddAction:
    source: str


@dataclass(frozen=True)
class MixAction:
    source: str
    options: MixOptions = field(default_factory=MixOptions)


@dataclass(frozen=True)
class SilenceAction:
    duration_ms: float


@dataclass(frozen=True)
class FilterAction:
    name: str
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Snapshot the caller's mapping so later mutation cannot leak in.
        object.__setattr__(
            self, "options", MappingProxyType(dict(self.options or {}))
        )


@dataclass(frozen=True)
class TrimAction:
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "options", MappingProxyType(dict(self.options or {}))
        )


Action = Union[AddAction, MixAction, SilenceAction, FilterAction, TrimAction]


def action_kind(action: Action) -> str:
    """Short tag for an action, also used to name its scratch files."""
    return {
        AddAction: "concat",
        MixAction: "mix",
        SilenceAction: "silence",
        FilterAction: "filter",
        TrimAction: "trim",
    }[type(action)]


class ActionQueue:
    """Ordered, append-only sequence of pending actions.

    The queue accepts appends until :meth:`drain` is called. Draining hands
    out an immutable snapshot and marks the queue consumed; from then on
    both :meth:`append` and :meth:`drain` raise :class:`AlreadyFinalized`
    until :meth:`clear` starts a fresh queue.
    """

    def __init__(self) -> None:
        self._actions: List[Action] = []
        self._consumed = False

    def __len__(self) -> int:
        return len(self._actions)

    def __iter__(self):
        return iter(tuple(self._actions))

    @property
    def consumed(self) -> bool:
        """Whether the queue was already drained."""
        return self._consumed

    @property
    def is_empty(self) -> bool:
        return not self._actions

    def append(self, action: Action) -> None:
        if self._consumed:
            raise AlreadyFinalized()
        self._actions.append(action)

    def add(self, source: str) -> None:
        self.append(AddAction(str(source)))

    def mix(self, source: str, options: Optional[MixOptions] = None) -> None:
        """Append a mix, degrading to an add when the queue is still empty."""
        if self.is_empty:
            self.add(source)
        else:
            self.append(MixAction(str(source), options or MixOptions()))

    def drain(self) -> Tuple[Action, ...]:
        """Return every queued action and mark the queue consumed."""
        if self._consumed:
            raise AlreadyFinalized()
        self._consumed = True
        return tuple(self._actions)

    def clear(self) -> None:
        """Drop all actions and make the queue appendable again."""
        self._actions = []
        self._consumed = False
