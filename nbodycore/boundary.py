from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence, Tuple

import numpy as np

from .constants import BoundaryKind

if TYPE_CHECKING:
	from .simulation import Simulation

"""
This module enumerates the ghost images of the simulation box and enforces the boundary condition after each step. GhostBox is an immutable shift of position and velocity; ghost_shifts returns the single zero shift for open and unbounded domains, the Cartesian product of integer offsets for periodic boxes, and for the shearing sheet adds the azimuthal velocity shift of each radial neighbour together with the time dependent azimuthal position offset (C fmod semantics via math.fmod). Because that offset depends on t the list is rebuilt every step. check_boundaries wraps periodic particles, applies the shear wrap with its matching vy kick, and returns the indices an open box wants removed.

"""

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GhostBox:
	shiftx: float = 0.0
	shifty: float = 0.0
	shiftz: float = 0.0
	shiftvx: float = 0.0
	shiftvy: float = 0.0
	shiftvz: float = 0.0

	@property
	def pos(self) -> np.ndarray:
		return np.array([self.shiftx, self.shifty, self.shiftz])

	@property
	def vel(self) -> np.ndarray:
		return np.array([self.shiftvx, self.shiftvy, self.shiftvz])

	@property
	def is_zero(self) -> bool:
		return (self.shiftx == 0.0 and self.shifty == 0.0 and self.shiftz == 0.0
				and self.shiftvx == 0.0 and self.shiftvy == 0.0 and self.shiftvz == 0.0)


ZERO_GHOST = GhostBox()


def _shear_ghost(i: int, j: int, k: int, boxsize: Sequence[float], t: float, omega: float) -> GhostBox:
	bx, by, bz = boxsize
	shiftvy = -1.5 * i * omega * bx
	if i == 0:
		shift = -math.fmod(shiftvy * t, by)
	elif i > 0:
		shift = -math.fmod(shiftvy * t - by / 2.0, by) - by / 2.0
	else:
		shift = -math.fmod(shiftvy * t + by / 2.0, by) + by / 2.0
	return GhostBox(
		shiftx=bx * i,
		shifty=by * j - shift,
		shiftz=bz * k,
		shiftvy=shiftvy,
	)


def ghost_shifts(
	boundary: BoundaryKind | str,
	boxsize: Sequence[float],
	nghostx: int = 0,
	nghosty: int = 0,
	nghostz: int = 0,
	t: float = 0.0,
	omega: float = 0.0,
) -> List[GhostBox]:
	boundary = BoundaryKind(boundary)
	if boundary in (BoundaryKind.NONE, BoundaryKind.OPEN):
		return [ZERO_GHOST]

	bx, by, bz = (float(b) for b in boxsize)
	boxes: List[GhostBox] = []
	for i in range(-int(nghostx), int(nghostx) + 1):
		for j in range(-int(nghosty), int(nghosty) + 1):
			for k in range(-int(nghostz), int(nghostz) + 1):
				if boundary is BoundaryKind.SHEAR:
					boxes.append(_shear_ghost(i, j, k, (bx, by, bz), float(t), float(omega)))
				else:
					boxes.append(GhostBox(shiftx=bx * i, shifty=by * j, shiftz=bz * k))
	return boxes


def collision_ghost_counts(nghostx: int, nghosty: int, nghostz: int) -> Tuple[int, int, int]:
	return min(int(nghostx), 1), min(int(nghosty), 1), min(int(nghostz), 1)


def is_in_box(boxsize: Sequence[float], pos: np.ndarray) -> np.ndarray:
	half = 0.5 * np.asarray(boxsize, dtype=float)
	pos = np.atleast_2d(np.asarray(pos, dtype=float))
	return np.all((pos >= -half) & (pos < half), axis=1)


def _wrap_axis(values: np.ndarray, size: float) -> None:
	half = 0.5 * size
	hi = values > half
	while np.any(hi):
		values[hi] -= size
		hi = values > half
	lo = values < -half
	while np.any(lo):
		values[lo] += size
		lo = values < -half


def check_boundaries(sim: "Simulation") -> List[int]:
	"""
	Enforce the configured boundary on the synchronized particle state.

	Returns the indices of particles that must be removed (open boxes only);
	the caller removes them so that integrator and tracker rows stay aligned.
	"""
	cfg = sim.config
	boundary = cfg.boundary_kind
	store = sim.particles
	if boundary is BoundaryKind.NONE or len(store) == 0:
		return []

	bx, by, bz = cfg.boxsize
	if boundary is BoundaryKind.OPEN:
		outside = ~is_in_box((bx, by, bz), store.pos)
		doomed = [int(i) for i in np.flatnonzero(outside)]
		if doomed:
			logger.debug("open boundary: %d particle(s) left the box at t=%g", len(doomed), sim.t)
		return doomed

	pos = store.pos
	if boundary is BoundaryKind.SHEAR:
		omega = cfg.shear_omega
		t = sim.t
		offsetp1 = -math.fmod(-1.5 * omega * bx * t + by / 2.0, by) - by / 2.0
		offsetm1 = -math.fmod(1.5 * omega * bx * t - by / 2.0, by) + by / 2.0
		vel = store.vel
		for i in range(len(store)):
			while pos[i, 0] > bx / 2.0:
				pos[i, 0] -= bx
				pos[i, 1] += offsetp1
				vel[i, 1] += 1.5 * omega * bx
			while pos[i, 0] < -bx / 2.0:
				pos[i, 0] += bx
				pos[i, 1] += offsetm1
				vel[i, 1] -= 1.5 * omega * bx
	else:
		_wrap_axis(pos[:, 0], bx)

	_wrap_axis(pos[:, 1], by)
	_wrap_axis(pos[:, 2], bz)
	return []


__all__ = [
	"GhostBox",
	"ZERO_GHOST",
	"ghost_shifts",
	"collision_ghost_counts",
	"is_in_box",
	"check_boundaries",
]
