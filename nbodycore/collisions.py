"""
This module finds and resolves particle collisions.

find_collisions searches the synchronised particle state for pairs that overlap
(centre distance below the sum of the radii) and approach each other, across the
collision ghost images (at most one image per periodic axis). DIRECT mode tests every
pair i < j against every image of the first particle. TREE mode rebuilds the spatial
tree at the current positions and queries it around every particle image with the
particle radius plus the largest radius any partner can have; the pairs it finds are
put in canonical (min, max) order, negating the image shift when the order flips, so
both modes return the same set. Duplicate records of one pair (several images) are
collapsed into the one with the smallest separation. A record found through a
non-zero ghost image is marked as crossing the box boundary.

resolve_collisions hands each record to the configured resolver (hard_sphere by
default) and acts on the returned CollisionEffect: MERGE removes the second particle,
HALT raises the simulation's exit flag, BOUNCE and IGNORE need nothing further.
Removals are applied after the pass, highest index first, and records that refer to
an already removed particle are skipped.
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

import numpy as np

from .boundary import GhostBox, collision_ghost_counts, ghost_shifts
from .constants import CollisionEffect, CollisionMode
from .gravity import rebuild_tree

if TYPE_CHECKING:
	from .simulation import Simulation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collision:
	p1: int
	p2: int
	shift: GhostBox
	time: float
	distance: float = 0.0
	crossing: bool = False

	@property
	def pair(self) -> Tuple[int, int]:
		return self.p1, self.p2


def _negate(gb: GhostBox) -> GhostBox:
	return GhostBox(-gb.shiftx, -gb.shifty, -gb.shiftz, -gb.shiftvx, -gb.shiftvy, -gb.shiftvz)


def collision_ghosts(sim: "Simulation") -> List[GhostBox]:
	cfg = sim.config
	ngx, ngy, ngz = collision_ghost_counts(cfg.nghostx, cfg.nghosty, cfg.nghostz)
	return ghost_shifts(cfg.boundary_kind, cfg.boxsize, ngx, ngy, ngz, sim.t, cfg.shear_omega)


def _pair_test(store, i: int, j: int, gb: GhostBox) -> Tuple[bool, float]:
	d = store.pos[j] - (store.pos[i] + gb.pos)
	dist = math.sqrt(float(d @ d))
	if not dist < store.radius[i] + store.radius[j]:
		return False, dist
	dv = store.vel[j] - (store.vel[i] + gb.vel)
	return float(dv @ d) < 0.0, dist


def _direct(sim: "Simulation", ghosts: Sequence[GhostBox]) -> List[Collision]:
	store = sim.particles
	pos, vel, rad = store.pos, store.vel, store.radius
	n = len(store)
	found: List[Collision] = []
	for i in range(n - 1):
		others = np.arange(i + 1, n)
		for gb in ghosts:
			d = pos[others] - (pos[i] + gb.pos)
			dist = np.sqrt(np.einsum("ij,ij->i", d, d))
			dv = vel[others] - (vel[i] + gb.vel)
			hit = (dist < rad[i] + rad[others]) & (np.einsum("ij,ij->i", dv, d) < 0.0)
			for k in np.flatnonzero(hit):
				found.append(Collision(i, int(others[k]), gb, sim.t, float(dist[k]), not gb.is_zero))
	return found


def _tree(sim: "Simulation", ghosts: Sequence[GhostBox]) -> List[Collision]:
	store = sim.particles
	tree = rebuild_tree(sim)
	rmax0, rmax1 = store.max_radii()
	found: List[Collision] = []
	for i in range(len(store)):
		ri = float(store.radius[i])
		partner = rmax1 if ri == rmax0 else rmax0
		for gb in ghosts:
			point = tree.pos[i] + gb.pos
			for j in tree.collision_candidates(point, ri + partner):
				if j == i:
					continue
				if i < j:
					p1, p2, shift = i, j, gb
				else:
					p1, p2, shift = j, i, _negate(gb)
				hit, dist = _pair_test(store, p1, p2, shift)
				if hit:
					found.append(Collision(p1, p2, shift, sim.t, dist, not shift.is_zero))
	return found


def find_collisions(sim: "Simulation", ghost_boxes: Sequence[GhostBox] | None = None) -> List[Collision]:
	mode = sim.config.collision_mode
	if mode is CollisionMode.NONE or len(sim.particles) < 2:
		return []
	ghosts = list(ghost_boxes) if ghost_boxes is not None else collision_ghosts(sim)
	if mode is CollisionMode.DIRECT:
		raw = _direct(sim, ghosts)
	else:
		raw = _tree(sim, ghosts)

	best: Dict[Tuple[int, int], Collision] = {}
	for c in raw:
		prev = best.get(c.pair)
		if prev is None or c.distance < prev.distance:
			best[c.pair] = c
	return [best[k] for k in sorted(best)]


def hard_sphere(sim: "Simulation", c: Collision) -> CollisionEffect:
	store = sim.particles
	i, j = c.p1, c.p2
	x21 = store.pos[i] + c.shift.pos - store.pos[j]
	dist = math.sqrt(float(x21 @ x21))
	r1, r2 = float(store.radius[i]), float(store.radius[j])
	if dist == 0.0 or dist > r1 + r2:
		return CollisionEffect.IGNORE
	v21 = store.vel[i] + c.shift.vel - store.vel[j]
	n = x21 / dist
	vn = float(v21 @ n)
	if vn > 0.0:
		return CollisionEffect.IGNORE

	outer = i if x21[0] > 0.0 else j
	oldvy_outer = float(store.vel[outer, 1])

	eps = 1.0
	if sim.coefficient_of_restitution is not None:
		eps = float(sim.coefficient_of_restitution(sim, abs(vn)))
	dv = -(1.0 + eps) * vn
	mcv = float(sim.config.minimum_collision_velocity)
	minr = min(r1, r2)
	maxr = max(r1, r2)
	if minr > 0.0:
		mindv = minr * mcv * (1.0 - (dist - maxr) / minr)
	else:
		mindv = maxr * mcv
	if mindv > maxr * mcv:
		mindv = maxr * mcv
	if dv < mindv:
		dv = mindv

	m1, m2 = float(store.mass[i]), float(store.mass[j])
	mtot = m1 + m2
	if mtot > 0.0:
		f1, f2 = m2 / mtot, m1 / mtot
	else:
		f1 = f2 = 0.5
	store.vel[i] += f1 * dv * n
	store.vel[j] -= f2 * dv * n
	store.lastcollision[i] = sim.t
	store.lastcollision[j] = sim.t

	sim.collisions_plog += -abs(float(x21[0])) * (oldvy_outer - float(store.vel[outer, 1])) * float(store.mass[outer])
	sim.collisions_Nlog += 1
	return CollisionEffect.BOUNCE


def merge(sim: "Simulation", c: Collision) -> CollisionEffect:
	store = sim.particles
	i, j = c.p1, c.p2
	m1, m2 = float(store.mass[i]), float(store.mass[j])
	mtot = m1 + m2
	x2 = store.pos[j] - c.shift.pos
	v2 = store.vel[j] - c.shift.vel
	if mtot > 0.0:
		store.pos[i] = (m1 * store.pos[i] + m2 * x2) / mtot
		store.vel[i] = (m1 * store.vel[i] + m2 * v2) / mtot
	else:
		store.pos[i] = 0.5 * (store.pos[i] + x2)
		store.vel[i] = 0.5 * (store.vel[i] + v2)
	store.mass[i] = mtot
	store.radius[i] = float(np.cbrt(store.radius[i] ** 3 + store.radius[j] ** 3))
	store.lastcollision[i] = sim.t
	sim.collisions_Nlog += 1
	return CollisionEffect.MERGE


def halt(sim: "Simulation", c: Collision) -> CollisionEffect:
	return CollisionEffect.HALT


def resolve_collisions(sim: "Simulation", collisions: Sequence[Collision]) -> List[CollisionEffect]:
	resolver = sim.collision_resolve or hard_sphere
	removed: set = set()
	effects: List[CollisionEffect] = []
	for c in collisions:
		if c.p1 in removed or c.p2 in removed:
			effects.append(CollisionEffect.IGNORE)
			continue
		effect = CollisionEffect(resolver(sim, c))
		if effect is CollisionEffect.MERGE:
			removed.add(c.p2)
		elif effect is CollisionEffect.HALT:
			sim.exit_flag = True
			logger.info("collision between particles %d and %d requested a halt at t=%g", c.p1, c.p2, sim.t)
		effects.append(effect)
	for idx in sorted(removed, reverse=True):
		sim.remove(idx)
	if removed:
		logger.debug("removed %d particle(s) after merging collisions", len(removed))
	return effects


__all__ = [
	"Collision",
	"collision_ghosts",
	"find_collisions",
	"resolve_collisions",
	"hard_sphere",
	"merge",
	"halt",
]
