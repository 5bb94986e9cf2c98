"""Line sorter — reorder the pixels of each span in place.

Per span: falloff skip, selection filtering, stable sort by key, optional
reverse, optional jitter, then write-back with partial-selection blending.

RNG consumption order is part of the output contract: one falloff draw per
span of length >= 2 (only when falloff > 0), then one block of jitter draws
per sorted span (only when jitter > 0).
"""

import numpy as np

from sorting.buffer import LineView
from sorting.keys import sort_values
from sorting.params import Params
from sorting.spans import Span

FULL_COVERAGE = 255


def blend(original: np.ndarray, sorted_px: np.ndarray, coverage: np.ndarray) -> np.ndarray:
    """orig + (sorted - orig) * m / 255 per channel, truncated toward zero."""
    orig = original.astype(np.int32)
    diff = sorted_px.astype(np.int32) - orig
    weighted = diff * coverage.astype(np.int32)[:, np.newaxis]
    # Integer division that truncates toward zero (numpy // floors)
    step = np.sign(weighted) * (np.abs(weighted) // FULL_COVERAGE)
    return (orig + step).astype(np.uint8)


def jitter_order(
    count: int, jitter: int, rng: np.random.Generator
) -> np.ndarray:
    """Permutation produced by one left-to-right pass of bounded random swaps."""
    order = np.arange(count)
    offsets = rng.integers(-jitter, jitter, size=count, endpoint=True)
    for i in range(count):
        j = min(count - 1, max(0, i + int(offsets[i])))
        order[i], order[j] = order[j], order[i]
    return order


def sort_span(
    line: LineView,
    span: Span,
    params: Params,
    selection: np.ndarray | None,
    rng: np.random.Generator,
) -> bool:
    """Sort one span. Returns False when the span was skipped."""
    if span.length < 2:
        return False

    if params.falloff > 0 and int(rng.integers(0, 100)) < params.falloff:
        return False

    positions = np.arange(span.start, span.end)
    if selection is not None:
        positions = positions[selection[span.start : span.end] != 0]
    count = positions.size
    if count < 2:
        return False

    original = line.pixels[positions].copy()
    keys = sort_values(original, params.sort_key)
    order = np.argsort(keys, kind="stable")
    if params.reverse:
        order = order[::-1]
    if params.jitter > 0:
        order = order[jitter_order(count, params.jitter, rng)]
    result = original[order]

    if selection is not None:
        coverage = selection[positions]
        partial = coverage != FULL_COVERAGE
        if partial.any():
            result[partial] = blend(original[partial], result[partial], coverage[partial])

    line.pixels[positions] = result
    return True


def sort_line(
    line: LineView,
    spans: list[Span],
    params: Params,
    selection: np.ndarray | None,
    rng: np.random.Generator,
) -> int:
    """Sort every span of a line in span order. Returns the number sorted."""
    if line.length <= 1:
        return 0
    sorted_count = 0
    for span in spans:
        if sort_span(line, span, params, selection, rng):
            sorted_count += 1
    return sorted_count
