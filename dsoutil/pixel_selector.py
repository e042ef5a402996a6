"""Selection of well-textured pixels on a regular grid of blocks."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

MIN_USE_GRAD_PIXSEL = 10.0
"""Base gradient magnitude below which a pixel is never selected."""


@dataclass
class PixelStatus:
    """Selection mask, number of selected pixels and the sparsity used next."""

    mask: np.ndarray
    num_good: int
    sparsity_factor: int
    th_fac: float = 1.0


def _as_grid(grads, w: int, h: int) -> np.ndarray:
    arr = np.asarray(grads, dtype=np.float32)
    if arr.shape not in ((h, w, 3), (h * w, 3)):
        raise ValueError(
            f"gradients of shape {arr.shape} do not fit an image of {w} x {h} "
            "with three channels (intensity, dx, dy)"
        )
    return arr.reshape(h, w, 3)


def grid_max_selection(grads, w: int, h: int, pot: int, th_fac: float = 1.0) -> PixelStatus:
    """Select, in every pot x pot block, the pixels with the strongest gradient.

    ``grads`` holds (intensity, dx, dy) per pixel. In each block up to four
    pixels are picked: the largest |dx|, |dy|, |dx - dy| and |dx + dy| among
    pixels whose gradient norm exceeds the threshold. Ties go to the first
    pixel when scanning columns before rows.
    """
    if pot < 1:
        raise ValueError(f"block size must be at least 1, got {pot}")
    g = _as_grid(grads, w, h)
    mask = np.zeros((h, w), dtype=bool)

    ny = len(range(1, h - pot, pot))
    nx = len(range(1, w - pot, pot))
    if nx and ny:
        region = g[1:1 + ny * pot, 1:1 + nx * pot]
        # (by, dy, bx, dx, c) -> (by, bx, dx, dy, c): scan order is dx-major
        blocks = (
            region.reshape(ny, pot, nx, pot, 3)
            .transpose(0, 2, 3, 1, 4)
            .reshape(ny, nx, pot * pot, 3)
        )
        gx = blocks[..., 1]
        gy = blocks[..., 2]
        th = np.float32(th_fac) * np.float32(MIN_USE_GRAD_PIXSEL) * np.float32(0.75)
        strong = gx * gx + gy * gy > th * th
        candidates = np.stack([np.abs(gx), np.abs(gy), np.abs(gx - gy), np.abs(gx + gy)])
        candidates = np.where(strong, candidates, np.float32(0))
        best = candidates.argmax(axis=-1)
        best_val = np.take_along_axis(candidates, best[..., None], axis=-1)[..., 0]
        found = best_val > 0

        by, bx = np.indices((ny, nx))
        by = np.broadcast_to(by, best.shape)[found]
        bx = np.broadcast_to(bx, best.shape)[found]
        k = best[found]
        dx = k // pot
        dy = k % pot
        mask[1 + by * pot + dy, 1 + bx * pot + dx] = True

    return PixelStatus(mask=mask, num_good=int(mask.sum()), sparsity_factor=pot, th_fac=th_fac)


def make_pixel_status(
    grads,
    w: int,
    h: int,
    desired_density: float,
    sparsity_factor: int = 5,
    recs_left: int = 5,
    th_fac: float = 1.0,
) -> PixelStatus:
    """Select pixels, adapting the block size until about ``desired_density`` are found.

    The returned mask comes from the last selection made; ``sparsity_factor``
    of the result is the block size suggested for the next call.
    """
    if desired_density <= 0:
        raise ValueError("desired_density must be positive")
    if recs_left < 0:
        raise ValueError("recs_left must not be negative")

    sf = max(int(sparsity_factor), 1)
    left = recs_left
    th = th_fac
    while True:
        status = grid_max_selection(grads, w, h, sf, th)

        # the number of points is roughly proportional to sparsity^2
        quotia = float(np.float32(status.num_good) / np.float32(desired_density))
        new_sf = max(int(sf * math.sqrt(quotia) + 0.7), 1)

        old_th = th
        if new_sf == 1 and sf == 1:
            th = 0.5

        if (
            (abs(new_sf - sf) < 1 and th == old_th)
            or (quotia > 0.8 and 1.0 / quotia > 0.8)
            or left == 0
        ):
            return PixelStatus(
                mask=status.mask, num_good=status.num_good, sparsity_factor=new_sf, th_fac=th
            )
        sf = new_sf
        left -= 1