"""Rotation to and from a working canvas for angled sorting.

Sorting at an angle is done by rotating the image onto a canvas the size of
its rotated bounding box, sorting rows there, and rotating back. Both
directions are nearest-neighbour resamples that truncate (x + 0.5) toward
zero, so the round trip is lossy for angles other than 0; output depends on
that exact rounding.
"""

import math

import numpy as np


def rotated_size(width: int, height: int, angle: int) -> tuple[int, int]:
    """Bounding box (w, h) of a width x height rectangle rotated by angle."""
    rad = math.radians(angle)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    rot_w = math.ceil(abs(width * cos_a) + abs(height * sin_a))
    rot_h = math.ceil(abs(width * sin_a) + abs(height * cos_a))
    return max(1, rot_w), max(1, rot_h)


def _nearest(coord: np.ndarray) -> np.ndarray:
    # astype truncates toward zero, matching a C int cast
    return (coord + 0.5).astype(np.int64)


class Rotation:
    """Precomputed geometry for one angle and one source size."""

    def __init__(self, width: int, height: int, angle: int):
        self.width = width
        self.height = height
        self.angle = angle
        self.rot_width, self.rot_height = rotated_size(width, height, angle)
        rad = math.radians(angle)
        self.cos_a = math.cos(rad)
        self.sin_a = math.sin(rad)
        self.cx = (width - 1) / 2.0
        self.cy = (height - 1) / 2.0
        self.rcx = (self.rot_width - 1) / 2.0
        self.rcy = (self.rot_height - 1) / 2.0

    def rotate(self, src: np.ndarray) -> np.ndarray:
        """Resample src (H, W, C) onto a zero-filled rotated canvas."""
        out = np.zeros((self.rot_height, self.rot_width) + src.shape[2:], dtype=src.dtype)
        ry, rx = np.mgrid[0 : self.rot_height, 0 : self.rot_width]
        dx = rx - self.rcx
        dy = ry - self.rcy
        sx = _nearest(dx * self.cos_a - dy * self.sin_a + self.cx)
        sy = _nearest(dx * self.sin_a + dy * self.cos_a + self.cy)
        valid = (sx >= 0) & (sx < self.width) & (sy >= 0) & (sy < self.height)
        out[ry[valid], rx[valid]] = src[sy[valid], sx[valid]]
        return out

    def unrotate(self, rotated: np.ndarray, target: np.ndarray) -> np.ndarray:
        """Resample the rotated canvas back into target (H, W, C), in place.

        Target pixels whose mapping falls outside the canvas keep their
        previous contents.
        """
        fy, fx = np.mgrid[0 : self.height, 0 : self.width]
        dx = fx - self.cx
        dy = fy - self.cy
        rx = _nearest(dx * self.cos_a + dy * self.sin_a + self.rcx)
        ry = _nearest(-dx * self.sin_a + dy * self.cos_a + self.rcy)
        valid = (rx >= 0) & (rx < self.rot_width) & (ry >= 0) & (ry < self.rot_height)
        target[fy[valid], fx[valid]] = rotated[ry[valid], rx[valid]]
        return target


def rotate(src: np.ndarray, angle: int) -> np.ndarray:
    h, w = src.shape[:2]
    return Rotation(w, h, angle).rotate(src)


def unrotate(rotated: np.ndarray, target: np.ndarray, angle: int) -> np.ndarray:
    h, w = target.shape[:2]
    return Rotation(w, h, angle).unrotate(rotated, target)
