"""Simple row-major images and images paired with exposure information."""

from __future__ import annotations

from typing import Optional, Union

import numpy as np

Index = Union[int, tuple]


class MinimalImage:
    """A w x h image stored row-major; pixels may be scalars or small vectors.

    Pixel access with (x, y) addresses the flat index int(x) + int(y) * w,
    so an x beyond the row end continues on the next row.
    """

    def __init__(
        self,
        w: int,
        h: int,
        data: Optional[np.ndarray] = None,
        *,
        dtype=np.float32,
        channels: Optional[int] = None,
    ) -> None:
        if w <= 0 or h <= 0:
            raise ValueError(f"image size must be positive, got {w} x {h}")
        self.w = w
        self.h = h
        shape = (h, w) if channels is None else (h, w, channels)
        if data is None:
            self.data = np.zeros(shape, dtype=dtype)
            self.owns_data = True
        else:
            arr = np.asarray(data)
            if arr.size != int(np.prod(shape)):
                raise ValueError(f"data of size {arr.size} does not fit image of shape {shape}")
            self.data = arr.reshape(shape)
            self.owns_data = False

    @property
    def _flat(self) -> np.ndarray:
        return self.data.reshape((self.w * self.h,) + self.data.shape[2:])

    def _index(self, key: Index) -> int:
        if isinstance(key, tuple):
            x, y = key
            idx = int(x) + int(y) * self.w
        else:
            idx = int(key)
        if not 0 <= idx < self.w * self.h:
            raise IndexError(f"pixel index {idx} outside image of {self.w} x {self.h}")
        return idx

    def __getitem__(self, key: Index):
        return self._flat[self._index(key)]

    def __setitem__(self, key: Index, val) -> None:
        self._flat[self._index(key)] = val

    def clone(self) -> "MinimalImage":
        """Return a copy that owns its own pixel data."""
        channels = self.data.shape[2] if self.data.ndim == 3 else None
        copy = MinimalImage(self.w, self.h, dtype=self.data.dtype, channels=channels)
        copy.data[...] = self.data
        return copy

    def set_black(self) -> None:
        self.data[...] = 0

    def set_const(self, val) -> None:
        self.data[...] = val

    def set_pixel1(self, u: float, v: float, val) -> None:
        """Set the pixel nearest to (u, v)."""
        self[u + 0.5, v + 0.5] = val

    def set_pixel4(self, u: float, v: float, val) -> None:
        """Set the 2x2 block whose top-left corner is (u, v)."""
        self[u + 1.0, v + 1.0] = val
        self[u + 1.0, v] = val
        self[u, v + 1.0] = val
        self[u, v] = val

    def set_pixel9(self, u: int, v: int, val) -> None:
        """Set the 3x3 block centred on (u, v)."""
        for du in (1, 0, -1):
            for dv in (-1, 0, 1):
                self[u + du, v + dv] = val

    def set_pixel_circ(self, u: int, v: int, val) -> None:
        """Draw a square ring of width two at distance two and three around (u, v)."""
        for i in range(-3, 4):
            self[u + 3, v + i] = val
            self[u - 3, v + i] = val
            self[u + 2, v + i] = val
            self[u - 2, v + i] = val

            self[u + i, v - 3] = val
            self[u + i, v + 3] = val
            self[u + i, v - 2] = val
            self[u + i, v + 2] = val


class ImageAndExposure:
    """Irradiance image with depth, timestamp and exposure time in ms."""

    def __init__(self, w: int, h: int, timestamp: float = 0.0) -> None:
        if w <= 0 or h <= 0:
            raise ValueError(f"image size must be positive, got {w} x {h}")
        self.w = w
        self.h = h
        self.timestamp = timestamp
        self.image = np.zeros((h, w), dtype=np.float32)
        self.depth = np.zeros((h, w), dtype=np.float32)
        self.exposure_time = 1.0

    def copy_meta_to(self, other: "ImageAndExposure") -> None:
        """Copy the exposure time onto another image."""
        other.exposure_time = self.exposure_time

    def deep_copy(self) -> "ImageAndExposure":
        """Return an independent copy of image, depth and metadata."""
        copy = ImageAndExposure(self.w, self.h, self.timestamp)
        copy.exposure_time = self.exposure_time
        copy.image[...] = self.image
        copy.depth[...] = self.depth
        return copy