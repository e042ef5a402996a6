"""Camera intrinsics for every level of the image pyramid."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from dsoutil.settings import PYR_LEVELS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationLevel:
    """Image size and camera matrix (with inverse) of one pyramid level."""

    width: int
    height: int
    K: np.ndarray
    Ki: np.ndarray

    @property
    def fx(self) -> float:
        return float(self.K[0, 0])

    @property
    def fy(self) -> float:
        return float(self.K[1, 1])

    @property
    def cx(self) -> float:
        return float(self.K[0, 2])

    @property
    def cy(self) -> float:
        return float(self.K[1, 2])

    @property
    def fxi(self) -> float:
        return float(self.Ki[0, 0])

    @property
    def fyi(self) -> float:
        return float(self.Ki[1, 1])

    @property
    def cxi(self) -> float:
        return float(self.Ki[0, 2])

    @property
    def cyi(self) -> float:
        return float(self.Ki[1, 2])


@dataclass(frozen=True)
class GlobalCalibration:
    """Calibration of the whole pyramid, coarsest level last."""

    levels: tuple[CalibrationLevel, ...]
    w_m3: float
    h_m3: float

    @property
    def pyr_levels_used(self) -> int:
        return len(self.levels)

    def __getitem__(self, level: int) -> CalibrationLevel:
        return self.levels[level]


def set_global_calib(w: int, h: int, K) -> GlobalCalibration:
    """Build the pyramid calibration for an image of size w x h with camera matrix K."""
    K0 = np.asarray(K, dtype=np.float32)
    if K0.shape != (3, 3):
        raise ValueError(f"camera matrix must be 3x3, got shape {K0.shape}")
    if w <= 0 or h <= 0:
        raise ValueError(f"image size must be positive, got {w} x {h}")

    wlvl, hlvl = w, h
    used = 1
    while wlvl % 2 == 0 and hlvl % 2 == 0 and wlvl * hlvl > 5000 and used < PYR_LEVELS:
        wlvl //= 2
        hlvl //= 2
        used += 1

    logger.info("using pyramid levels 0 to %d. coarsest resolution: %d x %d!", used - 1, wlvl, hlvl)
    if wlvl > 100 and hlvl > 100:
        logger.warning(
            "using not enough pyramid levels. Consider scaling to a resolution "
            "that is a multiple of a power of 2."
        )
    if used < 3:
        logger.warning("resolution too low for a useful image pyramid.")

    K0 = K0.copy()
    levels = [CalibrationLevel(w, h, K0, np.linalg.inv(K0).astype(np.float32))]
    cx0 = float(K0[0, 2])
    cy0 = float(K0[1, 2])

    for level in range(1, used):
        prev = levels[-1]
        fx = prev.fx * 0.5
        fy = prev.fy * 0.5
        cx = (cx0 + 0.5) / (1 << level) - 0.5
        cy = (cy0 + 0.5) / (1 << level) - 0.5
        Kl = np.array([[fx, 0.0, cx], [0.0, fy, cy], [0.0, 0.0, 1.0]], dtype=np.float32)
        levels.append(
            CalibrationLevel(w >> level, h >> level, Kl, np.linalg.inv(Kl).astype(np.float32))
        )

    return GlobalCalibration(levels=tuple(levels), w_m3=float(w - 3), h_m3=float(h - 3))