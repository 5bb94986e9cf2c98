"""Pixel Sort effect — reorders pixels inside detected spans of each line.

Adapter between the effect contract (RGBA frame + loose params dict) and the
sorting core. The frame's RGB channels are gathered into a working buffer,
sorted, and scattered into a copy; alpha passes through untouched.
"""

import numpy as np

from sorting.buffer import PixelBuffer
from sorting.orchestrator import sort_image
from sorting.params import Direction, IntervalMode, SortKey, params_from_dict

EFFECT_ID = "fx.pixelsort"
EFFECT_NAME = "Pixel Sort"
EFFECT_CATEGORY = "glitch"


def _choices(enum_cls) -> list[str]:
    return [m.name.lower() for m in enum_cls]


PARAMS: dict = {
    "direction": {
        "type": "choice",
        "choices": _choices(Direction),
        "default": "horizontal",
        "label": "Direction",
    },
    "sort_key": {
        "type": "choice",
        "choices": _choices(SortKey),
        "default": "brightness",
        "label": "Sort By",
    },
    "interval_mode": {
        "type": "choice",
        "choices": _choices(IntervalMode),
        "default": "threshold",
        "label": "Intervals",
        "description": "How each line is split into spans before sorting",
    },
    "lower_threshold": {
        "type": "int",
        "min": 0,
        "max": 255,
        "default": 64,
        "label": "Lower Threshold",
        "curve": "linear",
    },
    "upper_threshold": {
        "type": "int",
        "min": 0,
        "max": 255,
        "default": 204,
        "label": "Upper Threshold",
        "curve": "linear",
    },
    "reverse": {
        "type": "bool",
        "default": False,
        "label": "Reverse Sort",
    },
    "jitter": {
        "type": "int",
        "min": 0,
        "max": 100,
        "default": 0,
        "label": "Jitter",
        "unit": "px",
        "description": "Maximum random displacement after sorting",
    },
    "span_min": {
        "type": "int",
        "min": 1,
        "max": 10000,
        "default": 1,
        "label": "Min Span",
        "unit": "px",
    },
    "span_max": {
        "type": "int",
        "min": 0,
        "max": 10000,
        "default": 0,
        "label": "Max Span",
        "unit": "px",
        "description": "Longer spans are cut into pieces (0 = unlimited)",
    },
    "angle": {
        "type": "int",
        "min": 0,
        "max": 359,
        "default": 0,
        "label": "Angle",
        "unit": "°",
        "description": "Sorting angle (horizontal direction only)",
    },
    "falloff": {
        "type": "int",
        "min": 0,
        "max": 100,
        "default": 0,
        "label": "Falloff",
        "unit": "%",
        "description": "Chance that a span is left unsorted",
    },
}


def apply(
    frame: np.ndarray,
    params: dict,
    state_in: dict | None = None,
    *,
    frame_index: int,
    seed: int,
    resolution: tuple[int, int],
    selection: np.ndarray | None = None,
) -> tuple[np.ndarray, dict | None]:
    """Sort spans of every row or column. Stateless.

    selection is an optional (H, W) uint8 coverage mask; pixels with zero
    coverage never take part in a sort.
    """
    sort_params = params_from_dict(params)
    buffer = PixelBuffer.from_array(frame)
    sort_image(buffer, sort_params, selection=selection, seed=seed)

    output = frame.copy()
    buffer.scatter_array(output)
    return output, None
