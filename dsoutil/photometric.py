"""Photometric calibration: inverse camera response and vignette removal."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from PIL import Image

from dsoutil.image import ImageAndExposure
from dsoutil.settings import Settings

logger = logging.getLogger(__name__)

_SIXTEEN_BIT_MODES = ("I;16", "I;16L", "I;16B", "I")


def _read_floats(line: str) -> list[float]:
    values = []
    for token in line.split():
        try:
            values.append(float(token))
        except ValueError:
            break
    return values


def _read_response(path: str) -> Optional[np.ndarray]:
    logger.info("Reading Photometric Calibration from file %s", path)
    try:
        with open(path, "r", encoding="utf-8") as fp:
            line = fp.readline()
    except (OSError, UnicodeDecodeError):
        logger.warning("PhotometricUndistorter: Could not open file!")
        return None

    g = np.asarray(_read_floats(line), dtype=np.float32)
    if g.size < 256:
        logger.warning(
            "PhotometricUndistorter: invalid format! got %d entries in first line, "
            "expected at least 256!",
            g.size,
        )
        return None
    if np.any(np.diff(g) <= 0):
        logger.warning("PhotometricUndistorter: G invalid! it has to be strictly increasing!")
        return None

    lo = float(g[0])
    hi = float(g[-1])
    return (255.0 * (g.astype(np.float64) - lo) / (hi - lo)).astype(np.float32)


def _read_vignette(path: str, w: int, h: int) -> Optional[np.ndarray]:
    logger.info("Reading Vignette Image from %s", path)
    try:
        with Image.open(path) as img:
            img.load()
            if img.mode in _SIXTEEN_BIT_MODES:
                arr = np.asarray(img, dtype=np.float32)
            else:
                arr = np.asarray(img.convert("L"), dtype=np.float32)
    except (OSError, ValueError):
        logger.warning("PhotometricUndistorter: Invalid vignette image")
        return None

    if arr.shape != (h, w):
        logger.warning(
            "PhotometricUndistorter: Invalid vignette image size! got %d x %d, expected %d x %d",
            arr.shape[1] if arr.ndim > 1 else 0,
            arr.shape[0],
            w,
            h,
        )
        return None

    max_v = max(float(arr.max()), 0.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        return (arr / np.float32(max_v)).astype(np.float32)


class PhotometricUndistorter:
    """Convert raw intensities to irradiance using a response curve and a vignette map.

    If either calibration file is missing or malformed the undistorter is left
    invalid and ``process_frame`` only scales the input.
    """

    def __init__(
        self,
        gamma_file: str,
        noise_image: str,
        vignette_image: str,
        w: int,
        h: int,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self.w = w
        self.h = h
        self.output = ImageAndExposure(w, h)
        self.valid = False
        self._g: Optional[np.ndarray] = None
        self._vignette_map: Optional[np.ndarray] = None
        self._vignette_map_inv: Optional[np.ndarray] = None

        if not gamma_file or not vignette_image:
            logger.warning("NO PHOTOMETRIC Calibration!")

        g = _read_response(gamma_file)
        if g is None:
            return
        if self.settings.photometric_calibration == 0:
            g = (255.0 * np.arange(g.size, dtype=np.float32) / np.float32(g.size - 1)).astype(
                np.float32
            )
        self._g = g

        vignette = _read_vignette(vignette_image, w, h)
        if vignette is None:
            return
        self._vignette_map = vignette
        with np.errstate(divide="ignore"):
            self._vignette_map_inv = (np.float32(1.0) / vignette).astype(np.float32)

        logger.info("Successfully read photometric calibration!")
        self.valid = True

    def gamma(self) -> Optional[np.ndarray]:
        """Return the inverse response curve, or None if the calibration is invalid."""
        if not self.valid or self._g is None:
            return None
        return self._g.copy()

    def process_frame(self, image, exposure_time: float, factor: float = 1.0) -> ImageAndExposure:
        """Convert a raw image to irradiance; the result is written to ``self.output``."""
        img = np.asarray(image)
        if img.size != self.w * self.h:
            raise ValueError(
                f"image of size {img.size} does not fit {self.w} x {self.h}"
            )
        img = img.reshape(self.h, self.w)
        mode = self.settings.photometric_calibration

        if not self.valid or exposure_time <= 0 or mode == 0:
            data = np.float32(factor) * img.astype(np.float32)
        else:
            if img.dtype.kind not in "ui":
                raise ValueError("raw image must hold integer intensities")
            data = self._g[img.astype(np.intp)]
            if mode == 2:
                data = data * self._vignette_map_inv

        self.output.image[...] = data
        self.output.exposure_time = exposure_time
        self.output.timestamp = 0.0
        if not self.settings.use_exposure:
            self.output.exposure_time = 1.0
        return self.output

    def unmap_float_image(self, image) -> np.ndarray:
        """Map float intensities through the response curve with linear interpolation."""
        if self._g is None:
            raise RuntimeError("no response curve loaded")
        g = self._g
        depth = g.size
        color = np.asarray(image, dtype=np.float32)

        low = color < np.float32(1e-3)
        high = color > np.float32(depth - 1.01)
        mid = ~(low | high) & np.isfinite(color)
        safe = np.where(mid, color, np.float32(0))
        c = safe.astype(np.intp)
        a = safe - c.astype(np.float32)
        c1 = np.minimum(c + 1, depth - 1)
        interpolated = g[c] * (1 - a) + g[c1] * a

        out = np.where(low, np.float32(0), np.where(high, np.float32(depth - 1.1), interpolated))
        out = np.where(mid | low | high, out, color)
        return np.maximum(out, np.float32(0)).astype(np.float32)