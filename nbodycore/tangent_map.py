"""
This module computes variational dynamics for chaos analysis in N-body systems.

The TangentMap class evaluates the linearised gravitational acceleration of a set of
shadow displacement vectors, i.e. the Jacobian of the softened pair force contracted
with the displacements. It sums over the active (source) particles and over every
ghost image, so the shadow particles feel the same replicated domain as the physical
ones; the self term of the zero shift drops out because the relative displacement of
a particle with itself is zero. It assumes access to the current positions and masses
of the parent simulation.
"""

import numpy as np

from .geometry_cache import geometry_buffers, self_pair_mask
from .gravity import source_indices


class TangentMap:
    def __init__(self, sim):

        self.sim = sim

    def variational_accel(self, delta_r, ghost_boxes=None):
        sim = self.sim
        store = sim.particles
        cfg = sim.config

        n = len(store)
        G = float(cfg.G)
        delta_r = np.asarray(delta_r, dtype=float)
        if n < 2 or G == 0.0:
            return np.zeros_like(delta_r)

        pos = store.pos
        mass = store.mass
        s2 = float(cfg.softening) ** 2
        src = source_indices(n, store.N_active)
        if src.size == 0:
            return np.zeros_like(delta_r)

        ghosts = ghost_boxes if ghost_boxes else sim.ghost_boxes
        rows = np.arange(n)
        d_diff = delta_r[src][None, :, :] - delta_r[:, None, :]
        delta_a = np.zeros_like(delta_r)

        for gb in ghosts:
            skip = self_pair_mask(rows, src) if gb.is_zero else None
            diff, r2, inv_r3 = geometry_buffers(pos, pos[src], gb.pos, float(cfg.softening), skip)

            soft2 = r2 + s2
            inv_r2 = np.zeros_like(soft2)
            ok = inv_r3 > 0.0
            inv_r2[ok] = 1.0 / soft2[ok]

            dot = np.einsum("ijk,ijk->ij", diff, d_diff)
            coeff = 3.0 * dot * inv_r2 * inv_r3
            term = d_diff * inv_r3[..., None] - coeff[..., None] * diff

            delta_a += G * np.sum(mass[src][None, :, None] * term, axis=1)
        return delta_a
