"""Tests for per-span sorting: ordering, reverse, jitter, falloff, selection."""

import numpy as np
import pytest

from engine.determinism import make_rng
from sorting.buffer import LineView
from sorting.keys import sort_values
from sorting.line_sorter import blend, jitter_order, sort_line, sort_span
from sorting.params import Params, SortKey
from sorting.spans import Span

pytestmark = pytest.mark.smoke


def _line(n=40, seed=1) -> LineView:
    rng = np.random.default_rng(seed)
    return LineView(rng.integers(0, 256, (n, 3), dtype=np.uint8))


def _keys(line: LineView, key=SortKey.BRIGHTNESS) -> np.ndarray:
    return sort_values(line.pixels, key)


def test_sort_ascending():
    line = _line()
    sort_line(line, [Span(0, 40)], Params(), None, make_rng(0))
    assert np.all(np.diff(_keys(line)) >= 0)


def test_sort_reverse_descending():
    line = _line()
    sort_line(line, [Span(0, 40)], Params(reverse=True), None, make_rng(0))
    assert np.all(np.diff(_keys(line)) <= 0)


@pytest.mark.parametrize("key", list(SortKey))
def test_sort_monotonic_for_every_key(key):
    line = _line(seed=5)
    sort_line(line, [Span(3, 30)], Params(sort_key=key), None, make_rng(0))
    assert np.all(np.diff(_keys(line, key)[3:30]) >= 0)


def test_sort_only_touches_spans():
    line = _line()
    before = line.pixels.copy()
    sort_line(line, [Span(5, 15), Span(20, 30)], Params(), None, make_rng(0))
    np.testing.assert_array_equal(line.pixels[:5], before[:5])
    np.testing.assert_array_equal(line.pixels[15:20], before[15:20])
    np.testing.assert_array_equal(line.pixels[30:], before[30:])
    # Each span is a permutation of its own pixels
    for s, e in [(5, 15), (20, 30)]:
        assert sorted(map(tuple, line.pixels[s:e])) == sorted(map(tuple, before[s:e]))


def test_sort_is_stable_on_ties():
    px = np.array([[10, 0, 0], [0, 10, 0], [0, 0, 10], [5, 5, 5]], dtype=np.uint8)
    line = LineView(px)
    # All four have Minimum key 0 except the last
    sort_line(line, [Span(0, 4)], Params(sort_key=SortKey.MINIMUM), None, make_rng(0))
    assert line.pixels.tolist() == [[10, 0, 0], [0, 10, 0], [0, 0, 10], [5, 5, 5]]


def test_already_sorted_is_unchanged():
    line = _line()
    sort_line(line, [Span(0, 40)], Params(), None, make_rng(0))
    once = line.pixels.copy()
    sort_line(line, [Span(0, 40)], Params(), None, make_rng(0))
    np.testing.assert_array_equal(line.pixels, once)


def test_end_to_end_four_pixels():
    # Grays with brightness [200, 50, 220, 10]
    original = np.array([[200] * 3, [50] * 3, [220] * 3, [10] * 3], dtype=np.uint8)
    line = LineView(original.copy())
    sort_line(line, [Span(0, 4)], Params(), None, make_rng(42))
    np.testing.assert_array_equal(line.pixels, original[[3, 1, 0, 2]])


def test_short_span_is_noop_and_draws_nothing():
    line = _line()
    before = line.pixels.copy()
    rng = make_rng(3)
    assert sort_span(line, Span(4, 5), Params(falloff=50), None, rng) is False
    np.testing.assert_array_equal(line.pixels, before)
    assert rng.integers(0, 1 << 30) == make_rng(3).integers(0, 1 << 30)


def test_falloff_100_skips_everything():
    line = _line()
    before = line.pixels.copy()
    n = sort_line(line, [Span(0, 10), Span(10, 40)], Params(falloff=100), None, make_rng(0))
    assert n == 0
    np.testing.assert_array_equal(line.pixels, before)


def test_falloff_0_never_skips():
    line = _line()
    spans = [Span(i, i + 4) for i in range(0, 40, 4)]
    assert sort_line(line, spans, Params(falloff=0), None, make_rng(0)) == len(spans)


def test_falloff_partial_is_deterministic():
    spans = [Span(i, i + 4) for i in range(0, 40, 4)]
    a, b = _line(), _line()
    na = sort_line(a, spans, Params(falloff=50), None, make_rng(8))
    nb = sort_line(b, spans, Params(falloff=50), None, make_rng(8))
    assert na == nb
    np.testing.assert_array_equal(a.pixels, b.pixels)


def test_jitter_order_is_permutation():
    order = jitter_order(25, 4, make_rng(2))
    assert sorted(order.tolist()) == list(range(25))


def test_jitter_order_minimal_jitter_is_permutation():
    order = jitter_order(50, 1, make_rng(6))
    assert sorted(order.tolist()) == list(range(50))


def test_jitter_keeps_span_pixels():
    line = _line()
    before = line.pixels.copy()
    sort_line(line, [Span(0, 40)], Params(jitter=10), None, make_rng(1))
    assert sorted(map(tuple, line.pixels)) == sorted(map(tuple, before))


def test_jitter_changes_sorted_order():
    plain, jittered = _line(), _line()
    sort_line(plain, [Span(0, 40)], Params(), None, make_rng(1))
    sort_line(jittered, [Span(0, 40)], Params(jitter=20), None, make_rng(1))
    assert not np.array_equal(plain.pixels, jittered.pixels)


# --- selection ---


def test_zero_coverage_pixels_untouched():
    line = _line(n=10)
    before = line.pixels.copy()
    sel = np.full(10, 255, dtype=np.uint8)
    sel[[2, 5, 7]] = 0
    sort_line(line, [Span(0, 10)], Params(), sel, make_rng(0))
    for i in (2, 5, 7):
        np.testing.assert_array_equal(line.pixels[i], before[i])
    included = [i for i in range(10) if sel[i]]
    assert np.all(np.diff(_keys(line)[included]) >= 0)


def test_too_few_selected_is_noop():
    line = _line(n=10)
    before = line.pixels.copy()
    sel = np.zeros(10, dtype=np.uint8)
    sel[4] = 255
    assert sort_span(line, Span(0, 10), Params(), sel, make_rng(0)) is False
    np.testing.assert_array_equal(line.pixels, before)


def test_full_coverage_matches_unmasked():
    a, b = _line(), _line()
    sort_line(a, [Span(0, 40)], Params(), None, make_rng(0))
    sort_line(b, [Span(0, 40)], Params(), np.full(40, 255, np.uint8), make_rng(0))
    np.testing.assert_array_equal(a.pixels, b.pixels)


def test_partial_coverage_blends_truncating():
    # Two pixels that swap: brightness 0 and 255
    px = np.array([[255, 255, 255], [0, 0, 0]], dtype=np.uint8)
    line = LineView(px)
    sel = np.array([100, 200], dtype=np.uint8)
    sort_line(line, [Span(0, 2)], Params(), sel, make_rng(0))
    # pos 0: 255 + trunc((0 - 255) * 100 / 255) = 255 - 100 = 155
    # pos 1: 0 + trunc((255 - 0) * 200 / 255) = 200
    assert line.pixels.tolist() == [[155] * 3, [200] * 3]


def test_blend_truncates_toward_zero():
    orig = np.array([[10, 200, 0]], dtype=np.uint8)
    new = np.array([[20, 100, 255]], dtype=np.uint8)
    out = blend(orig, new, np.array([128], dtype=np.uint8))
    # 10 + trunc(10*128/255=5.02) = 15; 200 + trunc(-100*128/255=-50.2) = 150; 0 + trunc(128.0)=128
    assert out.tolist() == [[15, 150, 128]]


def test_length_one_line_is_noop():
    line = LineView(np.array([[1, 2, 3]], dtype=np.uint8))
    assert sort_line(line, [Span(0, 1)], Params(), None, make_rng(0)) == 0
