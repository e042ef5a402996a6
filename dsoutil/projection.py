"""Projection of points with inverse depth between camera frames."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

SCALE_IDEPTH = 1.0
"""Scale applied to inverse-depth derivatives."""


@dataclass(frozen=True)
class Intrinsics:
    """Pinhole intrinsics of the current calibration estimate."""

    fx: float
    fy: float
    cx: float
    cy: float

    @property
    def fxi(self) -> float:
        return 1.0 / self.fx

    @property
    def fyi(self) -> float:
        return 1.0 / self.fy


@dataclass(frozen=True)
class Projection:
    """Result of projecting a host pixel into a target frame."""

    drescale: float
    u: float
    v: float
    Ku: float
    Kv: float
    KliP: np.ndarray
    new_idepth: float


def _inside(ku: float, kv: float, w_m3: float, h_m3: float) -> bool:
    return ku > 1.1 and kv > 1.1 and ku < w_m3 and kv < h_m3


def derive_idepth(t, u: float, v: float, dx_interp: float, dy_interp: float, drescale: float) -> float:
    """Derivative of the projected pixel position with respect to inverse depth."""
    t = np.asarray(t, dtype=np.float32)
    return float(
        (dx_interp * drescale * (t[0] - t[2] * u) + dy_interp * drescale * (t[1] - t[2] * v))
        * SCALE_IDEPTH
    )


def project_point(
    u_pt: float, v_pt: float, idepth: float, KRKi, Kt, w_m3: float, h_m3: float
) -> Optional[tuple[float, float]]:
    """Project a pixel with inverse depth; return (Ku, Kv) or None outside the image."""
    KRKi = np.asarray(KRKi, dtype=np.float32)
    Kt = np.asarray(Kt, dtype=np.float32)
    ptp = KRKi @ np.array([u_pt, v_pt, 1.0], dtype=np.float32) + Kt * np.float32(idepth)
    with np.errstate(divide="ignore", invalid="ignore"):
        ku = float(ptp[0] / ptp[2])
        kv = float(ptp[1] / ptp[2])
    return (ku, kv) if _inside(ku, kv, w_m3, h_m3) else None


def project_point_full(
    u_pt: float,
    v_pt: float,
    idepth: float,
    dx: int,
    dy: int,
    intrinsics: Intrinsics,
    R,
    t,
    w_m3: float,
    h_m3: float,
) -> Optional[Projection]:
    """Project the pixel (u_pt + dx, v_pt + dy) through rotation R and translation t.

    Returns None if the point lands behind the camera or outside the image.
    """
    R = np.asarray(R, dtype=np.float32)
    t = np.asarray(t, dtype=np.float32)
    klip = np.array(
        [
            (u_pt + dx - intrinsics.cx) * intrinsics.fxi,
            (v_pt + dy - intrinsics.cy) * intrinsics.fyi,
            1.0,
        ],
        dtype=np.float32,
    )
    ptp = R @ klip + t * np.float32(idepth)
    with np.errstate(divide="ignore", invalid="ignore"):
        drescale = float(np.float32(1.0) / ptp[2])
    if not drescale > 0:
        return None

    u = float(ptp[0]) * drescale
    v = float(ptp[1]) * drescale
    ku = u * intrinsics.fx + intrinsics.cx
    kv = v * intrinsics.fy + intrinsics.cy
    if not _inside(ku, kv, w_m3, h_m3):
        return None
    return Projection(
        drescale=drescale,
        u=u,
        v=v,
        Ku=ku,
        Kv=kv,
        KliP=klip,
        new_idepth=idepth * drescale,
    )