"""Tests for the rotated working canvas."""

import numpy as np
import pytest

from sorting.rotation import Rotation, rotate, rotated_size, unrotate

pytestmark = pytest.mark.smoke


def _image(h=9, w=13, seed=0):
    return np.random.default_rng(seed).integers(1, 256, (h, w, 3), dtype=np.uint8)


def test_size_angle_zero():
    assert rotated_size(13, 9, 0) == (13, 9)


def test_size_angle_90_swaps():
    assert rotated_size(13, 9, 90) == (9, 13)


def test_size_angle_45():
    # ceil((13 + 9) * sqrt(2) / 2) = ceil(15.556) = 16
    assert rotated_size(13, 9, 45) == (16, 16)


def test_size_minimum_one():
    assert rotated_size(0, 0, 30) == (1, 1)


def test_round_trip_angle_zero_is_identity():
    img = _image()
    target = np.zeros_like(img)
    unrotate(rotate(img, 0), target, 0)
    np.testing.assert_array_equal(target, img)


def test_rotate_180_flips_both_axes():
    img = _image()
    out = rotate(img, 180)
    np.testing.assert_array_equal(out, img[::-1, ::-1])


def test_rotate_leaves_background_zero():
    img = _image()
    out = rotate(img, 45)
    assert out.shape == (16, 16, 3)
    # Corners of the bounding canvas fall outside the source
    assert out[0, 0].tolist() == [0, 0, 0]
    assert out[-1, -1].tolist() == [0, 0, 0]
    # Centre maps inside
    assert out[8, 8].any()


def test_unrotate_keeps_unmapped_target_pixels():
    rot = Rotation(13, 9, 0)
    # Narrower canvas: columns 5.. of the target have no source
    rot.rot_width = 5
    canvas = np.zeros((9, 5, 3), dtype=np.uint8)
    target = np.full((9, 13, 3), 77, dtype=np.uint8)
    rot.unrotate(canvas, target)
    assert (target[:, :5] == 0).all()
    assert (target[:, 5:] == 77).all()


def test_round_trip_approximate_at_angle():
    img = _image(h=20, w=30)
    target = np.zeros_like(img)
    unrotate(rotate(img, 30), target, 30)
    # Nearest-neighbour both ways: most pixels survive exactly
    same = np.all(target == img, axis=2).mean()
    assert same > 0.6


def test_works_on_single_channel():
    mask = np.arange(12, dtype=np.uint8).reshape(3, 4)
    out = rotate(mask, 180)
    np.testing.assert_array_equal(out, mask[::-1, ::-1])
