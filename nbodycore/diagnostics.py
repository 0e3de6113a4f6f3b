from __future__ import annotations
import numpy as np
from typing import TYPE_CHECKING, Tuple

from .gravity import potential_energy
from .tools import center_of_mass

if TYPE_CHECKING:
	from .simulation import Simulation

"""
This module computes conserved quantities of an N-body simulation. The Diagnostics class provides the kinetic energy, the softened gravitational potential energy (pairs with at least one active particle, matching the force loops), the total energy, the total angular momentum vector, the linear momentum and the centre of mass position and velocity. All quantities are read from the particle arrays as they are; callers that may hold an unsynchronised integrator (Simulation.compute_total_energy does) synchronise first. Shearing-sheet runs have no conserved total energy in this sense and the numbers are only meaningful for isolated systems.

"""


class Diagnostics:
	def __init__(self, simulation: "Simulation"):
		self.sim = simulation

	def kinetic_energy(self) -> float:
		store = self.sim.particles
		if len(store) == 0:
			return 0.0
		return 0.5 * float(np.sum(store.mass * np.einsum("ij,ij->i", store.vel, store.vel)))

	def potential_energy(self) -> float:
		store = self.sim.particles
		cfg = self.sim.config
		return potential_energy(store.pos, store.mass, float(cfg.G), float(cfg.softening), store.N_active)

	def energy(self) -> float:
		return self.kinetic_energy() + self.potential_energy()

	def angular_momentum(self) -> np.ndarray:
		store = self.sim.particles
		if len(store) == 0:
			return np.zeros(3)
		return np.sum(store.mass[:, None] * np.cross(store.pos, store.vel), axis=0)

	def linear_momentum(self) -> np.ndarray:
		store = self.sim.particles
		if len(store) == 0:
			return np.zeros(3)
		return np.sum(store.mass[:, None] * store.vel, axis=0)

	def center_of_mass(self) -> Tuple[np.ndarray, np.ndarray]:
		store = self.sim.particles
		_, x_cm, v_cm = center_of_mass(store.mass, store.pos, store.vel)
		return x_cm, v_cm


__all__ = ["Diagnostics"]
