"""
This module implements the gravitational acceleration engine.

compute_accelerations zeroes the acceleration array of the particle store and
fills it with the Plummer-softened sum G m_j (r_j - r_i) / (|r_j - r_i|^2 +
eps^2)^{3/2} over every source particle and every ghost image. Sources are the
active particles (index below N_active); with ignore_10 the central particle 0
does not attract anyone, which is what the Wisdom-Holman family kicks need.
The zero-shift self term is skipped, while ghost images of a particle itself
are included (they cancel pairwise by symmetry). BASIC mode works on blocks of
target rows with the shared geometry kernel, COMPENSATED mode walks the
sources one by one and accumulates each target row with Kahan summation, and
TREE mode asks the SpatialTree for a multipole-accelerated sum per target and
ghost. Only the acceleration array is written.
"""

from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np

from .boundary import GhostBox
from .constants import BoundaryKind, GravityMode
from .geometry_cache import geometry_buffers, self_pair_mask
from .summation import KahanVector
from .tree import SpatialTree

if TYPE_CHECKING:
    from .simulation import Simulation

logger = logging.getLogger(__name__)

_BLOCK_ROWS = 256


def source_indices(n: int, n_active: int, ignore_10: bool = False) -> np.ndarray:
    src = np.arange(min(int(n_active), int(n)), dtype=np.int64)
    if ignore_10 and src.size:
        src = src[src != 0]
    return src


def source_masses(mass: np.ndarray, n_active: int, ignore_10: bool = False) -> np.ndarray:
    sm = np.zeros_like(mass, dtype=float)
    src = source_indices(mass.shape[0], n_active, ignore_10)
    sm[src] = mass[src]
    return sm


def rebuild_tree(sim: "Simulation", ignore_10: bool = False) -> SpatialTree:
    cfg = sim.config
    store = sim.particles
    boundary = cfg.boundary_kind
    bounded = boundary is not BoundaryKind.NONE and cfg.has_box
    periodic = boundary in (BoundaryKind.PERIODIC, BoundaryKind.SHEAR)
    tree = sim.tree if sim.tree is not None else SpatialTree()
    tree.rebuild(
        store.pos,
        source_masses(store.mass, store.N_active, ignore_10),
        root_size=cfg.root_size,
        root_n=(cfg.root_nx, cfg.root_ny, cfg.root_nz),
        wrap=(periodic, periodic, periodic),
        bounded=bounded,
    )
    store.cell[:] = tree.leaf_of
    sim.tree = tree
    return tree


def _basic(pos, mass, src, G, eps, ghosts, acc) -> None:
    n = pos.shape[0]
    src_pos = pos[src]
    src_m = mass[src]
    for start in range(0, n, _BLOCK_ROWS):
        rows = np.arange(start, min(start + _BLOCK_ROWS, n))
        for gb in ghosts:
            skip = self_pair_mask(rows, src) if gb.is_zero else None
            diff, _, inv_r3 = geometry_buffers(pos[rows], src_pos, gb.pos, eps, skip)
            acc[rows] += G * np.einsum("ij,ijk->ik", src_m[None, :] * inv_r3, diff, optimize=True)


def _compensated(pos, mass, src, G, eps, ghosts, acc) -> None:
    n = pos.shape[0]
    total = KahanVector((n, 3))
    rows = np.arange(n)
    eps2 = eps * eps
    for gb in ghosts:
        shift = gb.pos
        for j in src:
            d = pos[j] + shift - pos
            soft2 = np.einsum("ij,ij->i", d, d) + eps2
            ok = soft2 > 0.0
            if gb.is_zero:
                ok &= rows != j
            inv_r3 = np.zeros(n)
            inv_r3[ok] = soft2[ok] ** -1.5
            total.add((G * mass[j] * inv_r3)[:, None] * d)
    acc += total.total


def _tree(sim, G, eps, ghosts, acc, ignore_10) -> None:
    cfg = sim.config
    tree = rebuild_tree(sim, ignore_10)
    eps2 = eps * eps
    for i in range(acc.shape[0]):
        base = tree.pos[i]
        for gb in ghosts:
            acc[i] += tree.acceleration(
                base - gb.pos,
                G,
                float(cfg.opening_angle2),
                eps2,
                skip=i if gb.is_zero else -1,
                quadrupole=bool(cfg.tree_quadrupole),
            )


def compute_accelerations(
    sim: "Simulation",
    ghost_boxes: Sequence[GhostBox],
    ignore_10: bool = False,
) -> None:
    store = sim.particles
    cfg = sim.config
    acc = store.acc
    acc[...] = 0.0
    n = len(store)
    mode = cfg.gravity_mode
    if n == 0 or mode is GravityMode.NONE or float(cfg.G) == 0.0:
        return

    G = float(cfg.G)
    eps = float(cfg.softening)
    src = source_indices(n, store.N_active, ignore_10)
    if src.size == 0:
        return

    if mode is GravityMode.BASIC:
        _basic(store.pos, store.mass, src, G, eps, ghost_boxes, acc)
    elif mode is GravityMode.COMPENSATED:
        _compensated(store.pos, store.mass, src, G, eps, ghost_boxes, acc)
    elif mode is GravityMode.TREE:
        _tree(sim, G, eps, ghost_boxes, acc, ignore_10)


def potential_energy(pos: np.ndarray, mass: np.ndarray, G: float, eps: float = 0.0, n_active: int | None = None) -> float:
    n = pos.shape[0]
    if n < 2 or G == 0.0:
        return 0.0
    n_act = n if n_active is None else min(int(n_active), n)
    total = 0.0
    for i in range(n_act):
        d = pos[i + 1:] - pos[i]
        r = np.sqrt(np.einsum("ij,ij->i", d, d) + eps * eps)
        total -= G * mass[i] * float(np.sum(mass[i + 1:] / r))
    return total


__all__ = [
    "compute_accelerations",
    "rebuild_tree",
    "source_indices",
    "source_masses",
    "potential_energy",
]
