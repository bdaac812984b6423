"""
Named filter to ffmpeg filter-graph translation.

This module turns a filter name plus a caller-supplied option mapping into
the ffmpeg ``-af`` graph string that implements it. It is pure: nothing here
touches the filesystem or runs the engine, which keeps every translation
cheap to test.

Supported filters:
    ``normalize``, ``telephone``, ``echo``, ``reverb``, ``highpass``,
    ``lowpass``, ``volume``, ``equalizer`` and ``tempo``.

Composite algorithms:
    - :func:`decompose_tempo` splits any positive tempo factor into
      ``atempo`` stages that each stay inside ffmpeg's ``[0.5, 2.0]`` domain.
    - :func:`build_trim_chain` builds the reverse/trim/reverse graph that
      removes only leading and trailing silence, plus optional padding.

Example:
    >>> build_filter_chain("telephone", {})
    'highpass=f=300,lowpass=f=3400'
    >>> build_filter_chain("tempo", {"x": 4})
    'atempo=2.0,atempo=2.0'
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sfxchain.actions import TrimOptions
from sfxchain.config import FilterDefaults
from sfxchain.errors import InvalidOption, MissingRequiredOption, UnknownFilter

TEMPO_MIN = 0.5
TEMPO_MAX = 2.0


@dataclass(frozen=True)
class FilterSpec:
    """A filter name with its options after defaults were applied."""
    name: str
    options: Tuple[Tuple[str, Any], ...]

    def get(self, key: str) -> Any:
        return dict(self.options)[key]


def _fmt(value: Any) -> str:
    """Render a number the way ffmpeg option strings expect it."""
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _optional(options: Mapping[str, Any], key: str, default: Any) -> Any:
    value = options.get(key)
    return default if value is None else value


def _required(name: str, options: Mapping[str, Any], *keys: str) -> List[Any]:
    values = []
    for key in keys:
        value = options.get(key)
        if value is None or value == "":
            raise MissingRequiredOption(name, key)
        values.append(value)
    return values


def _as_number(name: str, key: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidOption(name, key, value, "expected a number") from None


def resolve_filter(
    name: str,
    options: Optional[Mapping[str, Any]] = None,
    defaults: Optional[FilterDefaults] = None,
) -> FilterSpec:
    """Apply defaults and required-option checks for a named filter.

    Args:
        name: Filter name.
        options: Caller options; missing or None values take defaults.
        defaults: Default values to fill in. Uses :class:`FilterDefaults`
            when omitted.

    Returns:
        The resolved :class:`FilterSpec`.

    Raises:
        UnknownFilter: If ``name`` is not a supported filter.
        MissingRequiredOption: If a required option is absent. Required
            options are checked in their documented order, so the first
            missing one is reported.
        InvalidOption: If a value cannot be used (e.g. a non-positive tempo).
    """
    options = dict(options or {})
    d = defaults or FilterDefaults()

    if name == "normalize":
        resolved = {
            "i": _optional(options, "i", d.normalize_i),
            "tp": _optional(options, "tp", d.normalize_tp),
            "lra": _optional(options, "lra", d.normalize_lra),
        }
    elif name == "telephone":
        resolved = {
            "lowFreq": _optional(options, "lowFreq", d.telephone_low_freq),
            "highFreq": _optional(options, "highFreq", d.telephone_high_freq),
        }
    elif name == "echo":
        resolved = {
            "in_gain": _optional(options, "in_gain", d.echo_in_gain),
            "out_gain": _optional(options, "out_gain", d.echo_out_gain),
            "delay": _optional(options, "delay", d.echo_delay),
            "decay": _optional(options, "decay", d.echo_decay),
        }
    elif name == "reverb":
        resolved = {}
    elif name in ("highpass", "lowpass"):
        (frequency,) = _required(name, options, "frequency")
        resolved = {"frequency": frequency}
    elif name == "volume":
        (volume,) = _required(name, options, "volume")
        resolved = {"volume": volume}
    elif name == "equalizer":
        frequency, width, gain = _required(
            name, options, "frequency", "width", "gain"
        )
        resolved = {"frequency": frequency, "width": width, "gain": gain}
    elif name == "tempo":
        (x,) = _required(name, options, "x")
        x = _as_number(name, "x", x)
        if x <= 0:
            raise InvalidOption(name, "x", x, "tempo factor must be positive")
        resolved = {"x": x}
    else:
        raise UnknownFilter(name)

    return FilterSpec(name=name, options=tuple(resolved.items()))


def decompose_tempo(x: float) -> List[float]:
    """Split a tempo factor into factors ffmpeg's ``atempo`` accepts.

    ``atempo`` only takes factors in ``[0.5, 2.0]``. Any other positive
    factor is realized by peeling off the nearest boundary until the
    remainder fits, so the product of the returned factors equals ``x``
    (up to floating-point composition).

    Args:
        x: Requested tempo factor; 0.75 slows down by 25%.

    Returns:
        Factors to apply left to right, each within ``[0.5, 2.0]``.

    Raises:
        ValueError: If ``x`` is not positive.

    Example:
        >>> decompose_tempo(0.2)
        [0.5, 0.5, 0.8]
        >>> decompose_tempo(1.5)
        [1.5]
    """
    if x <= 0:
        raise ValueError(f"tempo factor must be positive, got {x}")

    factors: List[float] = []
    remaining = float(x)
    while remaining < TEMPO_MIN:
        factors.append(TEMPO_MIN)
        remaining /= TEMPO_MIN
    while remaining > TEMPO_MAX:
        factors.append(TEMPO_MAX)
        remaining /= TEMPO_MAX
    factors.append(remaining)
    return factors


def build_trim_chain(options: Optional[TrimOptions] = None) -> str:
    """Build the silence-trim graph with optional padding.

    Stages:
        1. ``silenceremove`` drops leading silence.
        2. ``areverse`` flips the signal.
        3. ``silenceremove`` drops the new leading edge, which is the
           original trailing silence.
        4. ``areverse`` restores the original orientation.

    Interior silence is never touched. Start padding is added with
    ``adelay`` (milliseconds) and end padding with ``apad`` (seconds).

    Args:
        options: Trim options; :class:`TrimOptions` defaults when omitted.

    Returns:
        Comma-separated filter graph string.
    """
    o = options or TrimOptions()
    stages = [
        "silenceremove=start_periods=1"
        f":start_duration={_fmt(o.start_duration)}"
        f":start_threshold={_fmt(o.start_threshold)}dB",
        "areverse",
        "silenceremove=start_periods=1"
        f":start_duration={_fmt(o.stop_duration)}"
        f":start_threshold={_fmt(o.stop_threshold)}dB",
        "areverse",
    ]
    if o.padding_start and o.padding_start > 0:
        stages.append(f"adelay={_fmt(o.padding_start)}:all=1")
    if o.padding_end and o.padding_end > 0:
        stages.append(f"apad=pad_dur={_fmt(o.padding_end / 1000.0)}")
    return ",".join(stages)


def _normalize(spec: FilterSpec, d: FilterDefaults) -> str:
    return (
        f"loudnorm=I={_fmt(spec.get('i'))}:TP={_fmt(spec.get('tp'))}"
        f":LRA={_fmt(spec.get('lra'))}:print_format=none"
    )


def _telephone(spec: FilterSpec, d: FilterDefaults) -> str:
    return (
        f"highpass=f={_fmt(spec.get('lowFreq'))},"
        f"lowpass=f={_fmt(spec.get('highFreq'))}"
    )


def _echo(spec: FilterSpec, d: FilterDefaults) -> str:
    return (
        f"aecho={_fmt(spec.get('in_gain'))}:{_fmt(spec.get('out_gain'))}"
        f":{_fmt(spec.get('delay'))}:{_fmt(spec.get('decay'))}"
    )


def _reverb(spec: FilterSpec, d: FilterDefaults) -> str:
    return d.reverb_graph


def _highpass(spec: FilterSpec, d: FilterDefaults) -> str:
    return f"highpass=f={_fmt(spec.get('frequency'))}"


def _lowpass(spec: FilterSpec, d: FilterDefaults) -> str:
    return f"lowpass=f={_fmt(spec.get('frequency'))}"


def _volume(spec: FilterSpec, d: FilterDefaults) -> str:
    return f"volume={_fmt(spec.get('volume'))}"


def _equalizer(spec: FilterSpec, d: FilterDefaults) -> str:
    return (
        f"equalizer=f={_fmt(spec.get('frequency'))}:width_type=h"
        f":width={_fmt(spec.get('width'))}:g={_fmt(spec.get('gain'))}"
    )


def _tempo(spec: FilterSpec, d: FilterDefaults) -> str:
    return ",".join(f"atempo={f}" for f in decompose_tempo(spec.get("x")))


_RENDERERS: Dict[str, Callable[[FilterSpec, FilterDefaults], str]] = {
    "normalize": _normalize,
    "telephone": _telephone,
    "echo": _echo,
    "reverb": _reverb,
    "highpass": _highpass,
    "lowpass": _lowpass,
    "volume": _volume,
    "equalizer": _equalizer,
    "tempo": _tempo,
}

AVAILABLE_FILTERS = tuple(sorted(_RENDERERS))


def build_filter_chain(
    name: str,
    options: Optional[Mapping[str, Any]] = None,
    defaults: Optional[FilterDefaults] = None,
) -> str:
    """Translate a named filter and its options into an ffmpeg graph.

    Args:
        name: One of :data:`AVAILABLE_FILTERS`.
        options: Filter options.
        defaults: Defaults for optional parameters.

    Returns:
        Filter graph string for ``ffmpeg -af``.

    Raises:
        UnknownFilter: If ``name`` is not supported.
        MissingRequiredOption: If a required option is absent.
        InvalidOption: If an option value is unusable.
    """
    d = defaults or FilterDefaults()
    spec = resolve_filter(name, options, d)
    return _RENDERERS[spec.name](spec, d)
