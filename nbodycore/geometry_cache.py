from __future__ import annotations
import numpy as np
from typing import Optional, Tuple

"""
This module provides the pairwise geometry kernel shared by the force and variational code. geometry_buffers computes, for a block of target positions and a set of source positions shifted by one ghost image, the separation vectors source minus target, the squared distances and the softened inverse cubed distances in a single pass using Einstein summation. Pairs listed in skip (the zero-shift self terms) and pairs at exactly zero softened distance get a zero inverse cube so they contribute nothing. Positions are (n, 3) arrays and the softening length is non-negative.

"""


__all__ = ["geometry_buffers", "self_pair_mask"]


def self_pair_mask(target_idx: np.ndarray, source_idx: np.ndarray) -> np.ndarray:
    return np.asarray(target_idx)[:, None] == np.asarray(source_idx)[None, :]


def geometry_buffers(
    targets: np.ndarray,
    sources: np.ndarray,
    shift: Optional[np.ndarray] = None,
    eps: float = 0.0,
    skip: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    targets = np.asarray(targets, dtype=float)
    sources = np.asarray(sources, dtype=float)
    if shift is not None:
        sources = sources + np.asarray(shift, dtype=float)

    diff = sources[None, :, :] - targets[:, None, :]
    r2 = np.einsum("ijk,ijk->ij", diff, diff, optimize=True)

    soft2 = r2 + eps * eps
    inv_r3 = np.zeros_like(r2, dtype=float)
    mask = soft2 > 0.0
    if skip is not None:
        mask &= ~skip
    if np.any(mask):
        inv_r3[mask] = np.power(soft2[mask], -1.5)
    return diff, r2, inv_r3
