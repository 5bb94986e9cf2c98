"""Pixel buffers and line views.

PixelBuffer owns a contiguous (H, W, 3) uint8 RGB array for the duration of
one pass. It is gathered from (and scattered back to) whatever layout the
caller hands in: a strided byte buffer with row padding and arbitrary
channel offsets, or an (H, W, C) numpy frame.

LineView is a read/write window over one row or one column. Span detection
and sorting only ever talk to a LineView, so they never branch on direction.
"""

import numpy as np

from sorting.params import Direction

RGB = (0, 1, 2)


class LineView:
    """1-D accessor over a row or column of a PixelBuffer. Never copies."""

    __slots__ = ("pixels",)

    def __init__(self, pixels: np.ndarray):
        # (N, 3) view; for columns this is a strided view into the buffer
        self.pixels = pixels

    @property
    def length(self) -> int:
        return self.pixels.shape[0]

    def __len__(self) -> int:
        return self.pixels.shape[0]

    def get_rgb(self, i: int) -> tuple[int, int, int]:
        p = self.pixels[i]
        return int(p[0]), int(p[1]), int(p[2])

    def set_rgb(self, i: int, r: int, g: int, b: int) -> None:
        self.pixels[i] = (r, g, b)


def _strided_view(
    data,
    width: int,
    height: int,
    row_stride: int,
    pixel_stride: int,
) -> np.ndarray:
    """Expose a padded byte buffer as (H, W, pixel_stride) without copying."""
    if isinstance(data, np.ndarray):
        flat = data.reshape(-1)
    else:
        flat = np.frombuffer(data, dtype=np.uint8)
    needed = (height - 1) * row_stride + width * pixel_stride if height else 0
    if flat.size < needed:
        raise ValueError(
            f"buffer holds {flat.size} bytes, layout needs {needed} "
            f"({width}x{height}, row_stride={row_stride}, pixel_stride={pixel_stride})"
        )
    return np.lib.stride_tricks.as_strided(
        flat,
        shape=(height, width, pixel_stride),
        strides=(row_stride, pixel_stride, 1),
        writeable=flat.flags.writeable,
    )


class PixelBuffer:
    """Contiguous (H, W, 3) RGB working buffer for one sorting pass."""

    def __init__(self, data: np.ndarray):
        if data.ndim != 3 or data.shape[2] != 3:
            raise ValueError(f"expected (H, W, 3) array, got shape {data.shape}")
        self.data = np.ascontiguousarray(data, dtype=np.uint8)

    @classmethod
    def gather(
        cls,
        data,
        width: int,
        height: int,
        *,
        row_stride: int,
        pixel_stride: int = 3,
        channels: tuple[int, int, int] = RGB,
    ) -> "PixelBuffer":
        """Copy R, G, B out of a strided buffer into a fresh PixelBuffer."""
        view = _strided_view(data, width, height, row_stride, pixel_stride)
        return cls(view[:, :, list(channels)].copy())

    @classmethod
    def from_array(
        cls, frame: np.ndarray, channels: tuple[int, int, int] = RGB
    ) -> "PixelBuffer":
        return cls(frame[:, :, list(channels)].copy())

    def scatter(
        self,
        target,
        *,
        row_stride: int,
        pixel_stride: int = 3,
        channels: tuple[int, int, int] = RGB,
    ) -> None:
        """Write R, G, B back into a strided buffer, leaving other bytes alone."""
        view = _strided_view(target, self.width, self.height, row_stride, pixel_stride)
        for src, dst in enumerate(channels):
            view[:, :, dst] = self.data[:, :, src]

    def scatter_array(
        self, frame: np.ndarray, channels: tuple[int, int, int] = RGB
    ) -> None:
        for src, dst in enumerate(channels):
            frame[:, :, dst] = self.data[:, :, src]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    def row(self, y: int) -> LineView:
        return LineView(self.data[y])

    def column(self, x: int) -> LineView:
        return LineView(self.data[:, x])

    def line(self, direction: Direction, index: int) -> LineView:
        if direction == Direction.VERTICAL:
            return self.column(index)
        return self.row(index)

    def line_count(self, direction: Direction) -> int:
        return self.width if direction == Direction.VERTICAL else self.height


def selection_line(
    mask: np.ndarray | None, direction: Direction, index: int
) -> np.ndarray | None:
    """1-D coverage values matching buffer.line(direction, index)."""
    if mask is None:
        return None
    if direction == Direction.VERTICAL:
        return mask[:, index]
    return mask[index]


def gather_selection(
    data, width: int, height: int, *, row_stride: int, pixel_stride: int = 1
) -> np.ndarray:
    """Copy an 8-bit coverage plane out of a strided buffer."""
    view = _strided_view(data, width, height, row_stride, pixel_stride)
    return view[:, :, 0].copy()
