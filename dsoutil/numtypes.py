"""Basic numeric types: affine brightness model and per-frame bookkeeping."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

MAX_RES_PER_POINT = 8
"""Maximum number of residuals a single point carries."""

NUM_THREADS = 6
"""Default number of worker threads."""

CPARS = 4
"""Number of camera intrinsic parameters (fx, fy, cx, cy)."""


def _identity_pose() -> np.ndarray:
    return np.eye(4, dtype=np.float64)


@dataclass
class AffLight:
    """Affine brightness transfer: I_frame = exp(a) * I_global + b."""

    a: float = 0.0
    b: float = 0.0

    @staticmethod
    def from_to_vec_exposure(
        exposure_f: float, exposure_t: float, g2f: "AffLight", g2t: "AffLight"
    ) -> np.ndarray:
        """Return (a, b) mapping intensities of frame F into frame T.

        A zero exposure on either side disables exposure compensation.
        """
        if exposure_f == 0 or exposure_t == 0:
            exposure_f = exposure_t = 1.0
        a = math.exp(g2t.a - g2f.a) * exposure_t / exposure_f
        b = g2t.b - a * g2f.b
        return np.array([a, b], dtype=np.float64)

    def vec(self) -> np.ndarray:
        """Return the parameters as a 2-vector (a, b)."""
        return np.array([self.a, self.b], dtype=np.float64)


@dataclass
class FrameShell:
    """Lightweight record of a frame's pose, lighting and statistics.

    Poses are 4x4 homogeneous rigid-body transforms.
    """

    id: int = 0
    incoming_id: int = 0
    timestamp: float = 0.0

    cam_to_tracking_ref: np.ndarray = field(default_factory=_identity_pose)
    tracking_ref: Optional["FrameShell"] = None

    cam_to_world: np.ndarray = field(default_factory=_identity_pose)
    aff_g2l: AffLight = field(default_factory=AffLight)
    pose_valid: bool = True

    statistics_outlier_res_on_this: int = 0
    statistics_good_res_on_this: int = 0
    marginalized_at: int = -1
    moved_by_opt: float = 0.0