"""
This module manages the column-wise particle storage for N-body simulations.

The ParticleStore class keeps numpy arrays for positions, velocities,
accelerations (N, 3), masses, radii, last collision times, integer ids and the
ephemeral tree-cell index of every particle. It provides index and id based
access, ordered removal (so the central body stays at index 0 for the
Wisdom-Holman family), the active-particle count used by the force loops, and
cheap snapshots used to restore the last valid state after a numerical
failure. The store never interprets the physics; every engine reads and writes
its arrays in place.
"""

from __future__ import annotations
import logging
from typing import Iterator
import numpy as np

from .particle import Particle, ParticleView

logger = logging.getLogger(__name__)


class ParticleStore:

	def __init__(self):
		self.pos: np.ndarray = np.empty((0, 3), dtype=np.float64)
		self.vel: np.ndarray = np.empty((0, 3), dtype=np.float64)
		self.acc: np.ndarray = np.empty((0, 3), dtype=np.float64)
		self.mass: np.ndarray = np.empty(0, dtype=np.float64)
		self.radius: np.ndarray = np.empty(0, dtype=np.float64)
		self.lastcollision: np.ndarray = np.empty(0, dtype=np.float64)
		self.ids: np.ndarray = np.empty(0, dtype=np.int64)
		self.cell: np.ndarray = np.empty(0, dtype=np.int64)
		self._n_active: int | None = None
		self._next_id = 0

	def __len__(self) -> int:
		return int(self.mass.shape[0])

	@property
	def N(self) -> int:
		return len(self)

	@property
	def N_active(self) -> int:
		if self._n_active is None:
			return len(self)
		return min(int(self._n_active), len(self))

	@N_active.setter
	def N_active(self, value: int | None) -> None:
		if value is None:
			self._n_active = None
			return
		if int(value) < 0:
			raise ValueError("N_active must be non-negative")
		self._n_active = int(value)

	def __getitem__(self, idx: int) -> ParticleView:
		n = len(self)
		i = int(idx)
		if i < 0:
			i += n
		if not 0 <= i < n:
			raise IndexError(f"particle index {idx} out of range for {n} particles")
		return ParticleView(self, i)

	def __iter__(self) -> Iterator[ParticleView]:
		for i in range(len(self)):
			yield ParticleView(self, i)

	def add(self, particle: Particle) -> int:
		pid = particle.id
		if pid is None:
			pid = self._next_id
		elif np.any(self.ids == pid):
			raise ValueError(f"particle id {pid} already in use")
		self._next_id = max(self._next_id, int(pid)) + 1

		self.pos = np.vstack([self.pos, [[particle.x, particle.y, particle.z]]])
		self.vel = np.vstack([self.vel, [[particle.vx, particle.vy, particle.vz]]])
		self.acc = np.vstack([self.acc, [[0.0, 0.0, 0.0]]])
		self.mass = np.append(self.mass, float(particle.m))
		self.radius = np.append(self.radius, float(particle.r))
		self.lastcollision = np.append(self.lastcollision, float(particle.lastcollision))
		self.ids = np.append(self.ids, np.int64(pid))
		self.cell = np.append(self.cell, np.int64(-1))
		return len(self) - 1

	def remove(self, index: int) -> None:
		n = len(self)
		i = int(index)
		if not 0 <= i < n:
			raise IndexError(f"particle index {index} out of range for {n} particles")
		if self._n_active is not None and i < self._n_active:
			self._n_active -= 1
		self.pos = np.delete(self.pos, i, axis=0)
		self.vel = np.delete(self.vel, i, axis=0)
		self.acc = np.delete(self.acc, i, axis=0)
		self.mass = np.delete(self.mass, i)
		self.radius = np.delete(self.radius, i)
		self.lastcollision = np.delete(self.lastcollision, i)
		self.ids = np.delete(self.ids, i)
		self.cell = np.delete(self.cell, i)
		logger.debug("removed particle at index %d (%d left)", i, len(self))

	def index_of(self, pid: int) -> int:
		hits = np.flatnonzero(self.ids == int(pid))
		if hits.size == 0:
			raise KeyError(f"no particle with id {pid}")
		return int(hits[0])

	def remove_by_id(self, pid: int) -> int:
		i = self.index_of(pid)
		self.remove(i)
		return i

	def clear(self) -> None:
		self.__init__()

	def max_radii(self) -> tuple[float, float]:
		if len(self) == 0:
			return 0.0, 0.0
		if len(self) == 1:
			return float(self.radius[0]), 0.0
		top = np.partition(self.radius, -2)[-2:]
		return float(top[1]), float(top[0])

	def total_mass(self) -> float:
		return float(np.sum(self.mass))

	def snapshot(self) -> dict:
		return {
			"pos": self.pos.copy(),
			"vel": self.vel.copy(),
			"acc": self.acc.copy(),
			"mass": self.mass.copy(),
			"radius": self.radius.copy(),
			"lastcollision": self.lastcollision.copy(),
			"ids": self.ids.copy(),
			"cell": self.cell.copy(),
			"n_active": self._n_active,
			"next_id": self._next_id,
		}

	def restore(self, snap: dict) -> None:
		self.pos = snap["pos"].copy()
		self.vel = snap["vel"].copy()
		self.acc = snap["acc"].copy()
		self.mass = snap["mass"].copy()
		self.radius = snap["radius"].copy()
		self.lastcollision = snap["lastcollision"].copy()
		self.ids = snap["ids"].copy()
		self.cell = snap["cell"].copy()
		self._n_active = snap["n_active"]
		self._next_id = snap["next_id"]


__all__ = ["ParticleStore"]
