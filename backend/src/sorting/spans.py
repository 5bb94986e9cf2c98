"""Span detection — split a line into the runs of pixels that get sorted.

Five strategies, selected by IntervalMode:

  threshold  maximal runs whose normalized sort value lies in [lower, upper]
  random     random-length spans separated by random gaps (consumes the RNG)
  edges      split wherever the luma step exceeds mean + stddev of all steps
  waves      sinusoidally varying span lengths, phase offset per line index
  none       the whole line

The raw strategy output is then post-filtered by span_min / span_max. Only
the random strategy touches the RNG; every other strategy is a pure function
of the line (and its index, for waves).
"""

import math
from typing import NamedTuple

import numpy as np

from sorting.buffer import LineView
from sorting.keys import brightness_norm, sort_values_norm
from sorting.params import IntervalMode, Params, SortKey

RANDOM_MIN_LENGTH = 10
RANDOM_MAX_GAP = 20
WAVE_MIN_LENGTH = 10
WAVE_PHASE_PER_LINE = 0.1
WAVE_PHASE_STEP = 0.5


class Span(NamedTuple):
    """Half-open interval [start, end) of line-local indices."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def runs_of_true(mask: np.ndarray) -> list[Span]:
    """Maximal runs of True in a 1-D boolean array."""
    if mask.size == 0:
        return []
    padded = np.concatenate(([False], mask.astype(bool), [False]))
    changes = np.flatnonzero(padded[1:] != padded[:-1])
    return [Span(int(s), int(e)) for s, e in zip(changes[::2], changes[1::2])]


def spans_threshold(
    line: LineView, lower_norm: float, upper_norm: float, sort_key: SortKey
) -> list[Span]:
    values = sort_values_norm(line.pixels, sort_key)
    lo = np.float32(lower_norm)
    hi = np.float32(upper_norm)
    return runs_of_true((values >= lo) & (values <= hi))


def spans_random(n: int, rng: np.random.Generator) -> list[Span]:
    spans: list[Span] = []
    max_len = max(RANDOM_MIN_LENGTH + 1, n // 4)
    i = 0
    while i < n:
        length = int(rng.integers(RANDOM_MIN_LENGTH, max_len, endpoint=True))
        end = min(i + length, n)
        spans.append(Span(i, end))
        gap = int(rng.integers(1, RANDOM_MAX_GAP, endpoint=True))
        i = end + gap
    return spans


def spans_edges(line: LineView) -> list[Span]:
    n = line.length
    if n <= 0:
        return []
    if n == 1:
        return [Span(0, 1)]

    edges = np.abs(np.diff(brightness_norm(line.pixels))).astype(np.float32)
    wide = edges.astype(np.float64)
    mean = wide.sum() / edges.size
    variance = max(0.0, (wide * wide).sum() / edges.size - mean * mean)
    threshold = np.float32(mean + math.sqrt(variance))

    spans: list[Span] = []
    prev = 0
    for split in np.flatnonzero(edges > threshold) + 1:
        split = int(split)
        if split > prev:
            spans.append(Span(prev, split))
        prev = split
    if n > prev:
        spans.append(Span(prev, n))
    return spans


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def spans_waves(n: int, line_index: int) -> list[Span]:
    spans: list[Span] = []
    wavelength = max(WAVE_MIN_LENGTH, n // 8)
    phase = line_index * WAVE_PHASE_PER_LINE
    i = 0
    while i < n:
        length = max(2, _round_half_up(wavelength * (0.5 + 0.5 * math.sin(phase))))
        end = min(i + length, n)
        spans.append(Span(i, end))
        i = end
        phase += WAVE_PHASE_STEP
    return spans


def spans_none(n: int) -> list[Span]:
    return [Span(0, n)] if n > 0 else []


def filter_spans(spans: list[Span], span_min: int, span_max: int) -> list[Span]:
    """Drop spans shorter than span_min, then cut the rest into span_max pieces.

    A span_max of 0 means unlimited. Original span boundaries always remain
    boundaries; pieces never merge across them.
    """
    kept = [s for s in spans if s.length >= span_min]
    if span_max <= 0:
        return kept
    capped: list[Span] = []
    for span in kept:
        for start in range(span.start, span.end, span_max):
            capped.append(Span(start, min(start + span_max, span.end)))
    return capped


def detect_raw(
    line: LineView, params: Params, line_index: int, rng: np.random.Generator
) -> list[Span]:
    """Strategy output before span_min / span_max filtering."""
    mode = params.interval_mode
    n = line.length
    if mode == IntervalMode.THRESHOLD:
        return spans_threshold(
            line, params.lower_norm, params.upper_norm, params.sort_key
        )
    if mode == IntervalMode.RANDOM:
        return spans_random(n, rng)
    if mode == IntervalMode.EDGES:
        return spans_edges(line)
    if mode == IntervalMode.WAVES:
        return spans_waves(n, line_index)
    return spans_none(n)


def detect_spans(
    line: LineView, params: Params, line_index: int, rng: np.random.Generator
) -> list[Span]:
    spans = detect_raw(line, params, line_index, rng)
    return filter_spans(spans, params.span_min, params.span_max)
