"""
This module defines the particle value type and the row proxy used to access
particles held by a ParticleStore.

Particle is a plain data container used when adding particles and returned by
tools such as get_com; it stores position, velocity, acceleration, mass,
radius, last collision time and an optional integer id as floats. ParticleView
maps the same attribute names onto one row of the store's numpy arrays, so
`sim.particles[1].vx += 0.1` mutates the simulation in place without copying.
The view's `cell` attribute is the index of the tree leaf the particle sat in
after the last rebuild and is meaningless once the tree is rebuilt again.
"""

from __future__ import annotations
from typing import TYPE_CHECKING
import numpy as np

if TYPE_CHECKING:
	from .particle_store import ParticleStore


class Particle:
	def __init__(
		self,
		m: float = 0.0,
		x: float = 0.0,
		y: float = 0.0,
		z: float = 0.0,
		vx: float = 0.0,
		vy: float = 0.0,
		vz: float = 0.0,
		r: float = 0.0,
		id: int | None = None,
		lastcollision: float = 0.0,
	):
		self.m = float(m)
		self.x = float(x)
		self.y = float(y)
		self.z = float(z)
		self.vx = float(vx)
		self.vy = float(vy)
		self.vz = float(vz)
		self.ax = 0.0
		self.ay = 0.0
		self.az = 0.0
		self.r = float(r)
		self.id = None if id is None else int(id)
		self.lastcollision = float(lastcollision)

	@property
	def pos(self) -> np.ndarray:
		return np.array([self.x, self.y, self.z])

	@property
	def vel(self) -> np.ndarray:
		return np.array([self.vx, self.vy, self.vz])

	def __repr__(self) -> str:
		return (f"Particle(m={self.m}, x={self.x}, y={self.y}, z={self.z}, "
				f"vx={self.vx}, vy={self.vy}, vz={self.vz}, r={self.r}, id={self.id})")


def _column(array_name: str, col: int | None):
	if col is None:
		def fget(self):
			return float(getattr(self._store, array_name)[self._i])

		def fset(self, v):
			getattr(self._store, array_name)[self._i] = float(v)
	else:
		def fget(self):
			return float(getattr(self._store, array_name)[self._i, col])

		def fset(self, v):
			getattr(self._store, array_name)[self._i, col] = float(v)
	return property(fget, fset)


class ParticleView:
	__slots__ = ("_store", "_i")

	def __init__(self, store: "ParticleStore", idx: int) -> None:
		self._store = store
		self._i = int(idx)

	x = _column("pos", 0)
	y = _column("pos", 1)
	z = _column("pos", 2)
	vx = _column("vel", 0)
	vy = _column("vel", 1)
	vz = _column("vel", 2)
	ax = _column("acc", 0)
	ay = _column("acc", 1)
	az = _column("acc", 2)
	m = _column("mass", None)
	r = _column("radius", None)
	lastcollision = _column("lastcollision", None)

	@property
	def index(self) -> int:
		return self._i

	@property
	def id(self) -> int:
		return int(self._store.ids[self._i])

	@property
	def cell(self) -> int:
		return int(self._store.cell[self._i])

	@property
	def pos(self) -> np.ndarray:
		return self._store.pos[self._i].copy()

	@property
	def vel(self) -> np.ndarray:
		return self._store.vel[self._i].copy()

	def copy(self) -> Particle:
		p = Particle(
			m=self.m, x=self.x, y=self.y, z=self.z,
			vx=self.vx, vy=self.vy, vz=self.vz,
			r=self.r, id=self.id, lastcollision=self.lastcollision,
		)
		p.ax, p.ay, p.az = self.ax, self.ay, self.az
		return p

	def __repr__(self) -> str:
		return (f"Particle(m={self.m}, x={self.x}, y={self.y}, z={self.z}, "
				f"vx={self.vx}, vy={self.vy}, vz={self.vz}, r={self.r}, id={self.id})")


__all__ = ["Particle", "ParticleView"]
