"""Sort keys — map an RGB triple to the scalar that orders it within a span.

All arithmetic runs in float32 so the scalar and vectorized forms agree
element-wise; threshold detection depends on that when a value sits exactly
on a threshold boundary.
"""

import numpy as np

from sorting.params import SortKey

_F = np.float32
_W_R = _F(0.299)
_W_G = _F(0.587)
_W_B = _F(0.114)
_THREE = _F(3.0)
_SIXTY = _F(60.0)
_U8_MAX = _F(255.0)
_DEGREES = _F(360.0)


def _channels(pixels: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    px = np.asarray(pixels).reshape(-1, 3).astype(np.float32)
    return px[:, 0], px[:, 1], px[:, 2]


def _brightness(r, g, b):
    return _W_R * r + _W_G * g + _W_B * b


def _hue(r, g, b):
    max_c = np.maximum(np.maximum(r, g), b)
    min_c = np.minimum(np.minimum(r, g), b)
    delta = max_c - min_c
    chromatic = delta > 0
    safe = np.where(chromatic, delta, _F(1.0))

    # Channel priority r, g, b when several share the maximum
    from_r = _SIXTY * np.fmod((g - b) / safe, _F(6.0))
    from_g = _SIXTY * (((b - r) / safe) + _F(2.0))
    from_b = _SIXTY * (((r - g) / safe) + _F(4.0))
    hue = np.where(max_c == r, from_r, np.where(max_c == g, from_g, from_b))
    hue = np.where(hue < 0, hue + _DEGREES, hue)
    return np.where(chromatic, hue, _F(0.0)).astype(np.float32)


def _saturation(r, g, b):
    max_c = np.maximum(np.maximum(r, g), b)
    min_c = np.minimum(np.minimum(r, g), b)
    safe = np.where(max_c > 0, max_c, _F(1.0))
    return np.where(max_c > 0, (max_c - min_c) / safe, _F(0.0)).astype(np.float32)


_RAW = {
    SortKey.BRIGHTNESS: _brightness,
    SortKey.HUE: _hue,
    SortKey.SATURATION: _saturation,
    SortKey.INTENSITY: lambda r, g, b: (r + g + b) / _THREE,
    SortKey.MINIMUM: lambda r, g, b: np.minimum(np.minimum(r, g), b),
    SortKey.RED: lambda r, g, b: r,
    SortKey.GREEN: lambda r, g, b: g,
    SortKey.BLUE: lambda r, g, b: b,
}

# Divisor that maps each key's raw range onto [0, 1]
_NORM_DIVISOR = {
    SortKey.BRIGHTNESS: _U8_MAX,
    SortKey.HUE: _DEGREES,
    SortKey.SATURATION: _F(1.0),
    SortKey.INTENSITY: _U8_MAX,
    SortKey.MINIMUM: _U8_MAX,
    SortKey.RED: _U8_MAX,
    SortKey.GREEN: _U8_MAX,
    SortKey.BLUE: _U8_MAX,
}


def sort_values(pixels: np.ndarray, key: SortKey) -> np.ndarray:
    """Raw sort values for an (N, 3) uint8 array. Returns float32 (N,)."""
    r, g, b = _channels(pixels)
    return np.asarray(_RAW[key](r, g, b), dtype=np.float32)


def sort_values_norm(pixels: np.ndarray, key: SortKey) -> np.ndarray:
    """Sort values normalized to [0, 1]. Returns float32 (N,)."""
    values = sort_values(pixels, key)
    if key == SortKey.SATURATION:
        return values
    return (values / _NORM_DIVISOR[key]).astype(np.float32)


def brightness_norm(pixels: np.ndarray) -> np.ndarray:
    """Normalized luma used by edge detection regardless of sort key."""
    return sort_values_norm(pixels, SortKey.BRIGHTNESS)


def sort_value(r: int, g: int, b: int, key: SortKey) -> float:
    return float(sort_values(np.array([[r, g, b]], dtype=np.uint8), key)[0])


def sort_value_norm(r: int, g: int, b: int, key: SortKey) -> float:
    return float(sort_values_norm(np.array([[r, g, b]], dtype=np.uint8), key)[0])
