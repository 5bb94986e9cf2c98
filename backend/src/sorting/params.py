"""Pixel sort parameters — enums, the per-pass Params record, and clamping.

Every component downstream of this module assumes it receives a Params that
has already gone through clamp_params(). Raw user input (effect params dicts,
ZMQ requests) enters through params_from_dict(), which never raises.
"""

import math
from dataclasses import dataclass, fields, replace
from enum import Enum, IntEnum


class Direction(IntEnum):
    HORIZONTAL = 0
    VERTICAL = 1


class SortKey(IntEnum):
    BRIGHTNESS = 0
    HUE = 1
    SATURATION = 2
    INTENSITY = 3
    MINIMUM = 4
    RED = 5
    GREEN = 6
    BLUE = 7


class IntervalMode(IntEnum):
    THRESHOLD = 0
    RANDOM = 1
    EDGES = 2
    WAVES = 3
    NONE = 4


class SortAxis(Enum):
    """Effective sorting axis, derived once per pass."""

    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"
    ROTATED = "rotated"


THRESHOLD_MAX = 255
JITTER_MAX = 100
FALLOFF_MAX = 100
SPAN_LIMIT = 10_000


@dataclass(frozen=True)
class Params:
    direction: Direction = Direction.HORIZONTAL
    sort_key: SortKey = SortKey.BRIGHTNESS
    interval_mode: IntervalMode = IntervalMode.THRESHOLD
    lower_threshold: int = 64
    upper_threshold: int = 204
    reverse: bool = False
    jitter: int = 0
    span_min: int = 1
    span_max: int = 0  # 0 = unlimited
    angle: int = 0  # degrees, horizontal only
    falloff: int = 0  # percent chance to skip a span

    @property
    def effective_axis(self) -> SortAxis:
        if self.direction == Direction.VERTICAL:
            return SortAxis.VERTICAL
        if self.angle != 0:
            return SortAxis.ROTATED
        return SortAxis.HORIZONTAL

    @property
    def lower_norm(self) -> float:
        return self.lower_threshold / 255.0

    @property
    def upper_norm(self) -> float:
        return self.upper_threshold / 255.0


DEFAULT_PARAMS = Params()


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(hi, value))


def _coerce_enum(enum_cls, value, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(int(value))
    except (TypeError, ValueError):
        return default


def clamp_params(params: Params) -> Params:
    """Repair every field of params into its declared range."""
    direction = _coerce_enum(Direction, params.direction, DEFAULT_PARAMS.direction)
    sort_key = _coerce_enum(SortKey, params.sort_key, DEFAULT_PARAMS.sort_key)
    interval_mode = _coerce_enum(
        IntervalMode, params.interval_mode, DEFAULT_PARAMS.interval_mode
    )

    lower = _clamp(int(params.lower_threshold), 0, THRESHOLD_MAX)
    upper = _clamp(int(params.upper_threshold), 0, THRESHOLD_MAX)
    if upper < lower:
        upper = lower

    span_min = _clamp(int(params.span_min), 1, SPAN_LIMIT)
    span_max = _clamp(int(params.span_max), 0, SPAN_LIMIT)
    if 0 < span_max < span_min:
        span_max = span_min

    return replace(
        params,
        direction=direction,
        sort_key=sort_key,
        interval_mode=interval_mode,
        lower_threshold=lower,
        upper_threshold=upper,
        reverse=bool(params.reverse),
        jitter=_clamp(int(params.jitter), 0, JITTER_MAX),
        span_min=span_min,
        span_max=span_max,
        angle=int(params.angle) % 360,
        falloff=_clamp(int(params.falloff), 0, FALLOFF_MAX),
    )


_ENUM_FIELDS = {
    "direction": Direction,
    "sort_key": SortKey,
    "interval_mode": IntervalMode,
}


def _parse_enum(enum_cls, raw, default):
    if isinstance(raw, str):
        name = raw.strip().upper()
        if name in enum_cls.__members__:
            return enum_cls[name]
        if name.lstrip("-").isdigit():
            return _coerce_enum(enum_cls, name, default)
        return default
    if isinstance(raw, bool):
        return default
    return _coerce_enum(enum_cls, raw, default)


def _parse_int(raw, default: int) -> int:
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, str):
        try:
            raw = float(raw)
        except ValueError:
            return default
    if isinstance(raw, float):
        if math.isnan(raw) or math.isinf(raw):
            return default
        return int(round(raw))
    if isinstance(raw, int):
        return raw
    return default


def _parse_bool(raw, default: bool) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if raw is None:
        return default
    return bool(raw)


def params_from_dict(raw: dict) -> Params:
    """Build a clamped Params from a loosely-typed dict.

    Enum fields accept member names ("vertical", "hue") or integers. Integer
    knobs accept ints, floats and numeric strings. Unknown keys are ignored
    and unparseable values fall back to defaults.
    """
    values = {}
    for f in fields(Params):
        if f.name not in raw:
            continue
        default = getattr(DEFAULT_PARAMS, f.name)
        value = raw[f.name]
        if f.name in _ENUM_FIELDS:
            values[f.name] = _parse_enum(_ENUM_FIELDS[f.name], value, default)
        elif f.name == "reverse":
            values[f.name] = _parse_bool(value, default)
        else:
            values[f.name] = _parse_int(value, default)
    return clamp_params(Params(**values))


def params_to_dict(params: Params) -> dict:
    """Inverse of params_from_dict, using lowercase enum names."""
    out = {}
    for f in fields(Params):
        value = getattr(params, f.name)
        out[f.name] = value.name.lower() if isinstance(value, IntEnum) else value
    return out
