"""Full-image sorting pass.

Gather -> (rotate) -> sort lines -> (unrotate) -> (blend selection) -> scatter.

The caller owns gather and scatter (see PixelBuffer); sort_image() mutates
the buffer it is given. Lines are processed strictly in ascending index
order against one RNG stream, which is what makes two passes with the same
seed, params and input byte-identical.
"""

import logging
import time
from typing import Callable

import numpy as np

from engine.determinism import DEFAULT_SEED, derive_line_seed, make_rng
from sorting.buffer import PixelBuffer, selection_line
from sorting.line_sorter import FULL_COVERAGE, blend, sort_line
from sorting.params import Direction, Params, SortAxis
from sorting.rotation import Rotation
from sorting.spans import detect_spans

logger = logging.getLogger(__name__)

ProgressFn = Callable[[int, int], None]
CancelFn = Callable[[], bool]


class PassCancelled(Exception):
    """Raised between lines when should_cancel() returns True."""

    def __init__(self, lines_done: int, lines_total: int):
        super().__init__(f"sorting pass cancelled after {lines_done}/{lines_total} lines")
        self.lines_done = lines_done
        self.lines_total = lines_total


def apply_selection(
    original: np.ndarray, processed: np.ndarray, selection: np.ndarray
) -> np.ndarray:
    """Per-pixel selection blend of a whole image (H, W, 3).

    Coverage 0 restores the original, 255 keeps the processed pixel, anything
    between is blended with the same truncating rule as span write-back.
    """
    out = processed.copy()
    excluded = selection == 0
    out[excluded] = original[excluded]
    partial = (selection > 0) & (selection < FULL_COVERAGE)
    if partial.any():
        out[partial] = blend(original[partial], processed[partial], selection[partial])
    return out


def _sort_lines(
    work: PixelBuffer,
    direction: Direction,
    params: Params,
    selection: np.ndarray | None,
    rng: np.random.Generator,
    seed: int,
    per_line_seeds: bool,
    should_cancel: CancelFn | None,
    progress: ProgressFn | None,
) -> int:
    total = work.line_count(direction)
    spans_sorted = 0
    for index in range(total):
        if should_cancel is not None and should_cancel():
            raise PassCancelled(index, total)
        line_rng = make_rng(derive_line_seed(seed, index)) if per_line_seeds else rng
        line = work.line(direction, index)
        spans = detect_spans(line, params, index, line_rng)
        spans_sorted += sort_line(
            line, spans, params, selection_line(selection, direction, index), line_rng
        )
        if progress is not None:
            progress(index + 1, total)
    return spans_sorted


def sort_image(
    buffer: PixelBuffer,
    params: Params,
    *,
    selection: np.ndarray | None = None,
    seed: int = DEFAULT_SEED,
    rng: np.random.Generator | None = None,
    per_line_seeds: bool = False,
    should_cancel: CancelFn | None = None,
    progress: ProgressFn | None = None,
) -> PixelBuffer:
    """Run one sorting pass over buffer, in place, and return it.

    Args:
        buffer:         Working RGB buffer; mutated.
        params:         Already-clamped parameters (see clamp_params).
        selection:      Optional (H, W) uint8 coverage mask, 0-255.
        seed:           Seed for the pass RNG (ignored when rng is given).
        rng:            Explicit RNG stream to consume instead of a fresh one.
        per_line_seeds: Give every line its own stream derived from
                        (seed, line index) instead of sharing one stream.
        should_cancel:  Polled before each line; True aborts the pass.
        progress:       Called as progress(lines_done, lines_total).

    Raises:
        PassCancelled: If should_cancel() returned True. Lines already
                       sorted stay written.
        ValueError:    If selection does not match the buffer size.
    """
    if selection is not None and selection.shape != (buffer.height, buffer.width):
        raise ValueError(
            f"selection shape {selection.shape} does not match "
            f"buffer {(buffer.height, buffer.width)}"
        )
    if rng is None:
        rng = make_rng(seed)

    axis = params.effective_axis
    logger.debug("Sort pass params: %s axis=%s seed=%d", params, axis.value, seed)
    t0 = time.monotonic()

    if axis == SortAxis.ROTATED:
        rotation = Rotation(buffer.width, buffer.height, params.angle)
        original = buffer.data.copy() if selection is not None else None
        work = PixelBuffer(rotation.rotate(buffer.data))
        # The mask lives in image coordinates; it is applied after unrotating
        spans_sorted = _sort_lines(
            work, Direction.HORIZONTAL, params, None, rng, seed,
            per_line_seeds, should_cancel, progress,
        )
        buffer.data[...] = 0
        rotation.unrotate(work.data, buffer.data)
        if original is not None:
            buffer.data[...] = apply_selection(original, buffer.data, selection)
    else:
        spans_sorted = _sort_lines(
            buffer, params.direction, params, selection, rng, seed,
            per_line_seeds, should_cancel, progress,
        )

    logger.info(
        "Sorted %dx%d image (%s, %d spans) in %.1fms",
        buffer.width,
        buffer.height,
        axis.value,
        spans_sorted,
        (time.monotonic() - t0) * 1000,
    )
    return buffer
