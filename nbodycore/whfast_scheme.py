from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .constants import (
	WHFAST_CORRECTOR_A,
	WHFAST_CORRECTOR_B3,
	WHFAST_CORRECTOR_B5,
	WHFAST_CORRECTOR_B7,
)
from .coordinates import inertial_to_jacobi, jacobi_masses, jacobi_to_inertial
from .errors import ConfigurationError
from .integration_scheme_base import IntegrationScheme

"""
This module implements the Wisdom-Holman fast integration scheme for hierarchical N-body systems. The WHFastScheme class keeps the system in Jacobi coordinates between steps: each Jacobi body drifts on an exact Kepler orbit about its interior mass (mu_i = G eta_i) via the universal-variable solver while the barycentre drifts freely, and the kick applies the interaction part of the Jacobi acceleration, i.e. the full acceleration (planet terms from the gravity engine with the central body ignored, plus the central term added analytically) with the Kepler term removed. In safe mode every step ends synchronised; otherwise the trailing half drift is merged with the leading half drift of the next step and only synchronize() brings the particles back. Symplectic correctors of order 3, 5 or 7 are applied when a step leaves the synchronised state and inverted when synchronizing. Shadow particles follow a drift-kick-drift of the linearised flow with forces evaluated at the kick point. The central body must have positive mass.

"""

logger = logging.getLogger(__name__)


@dataclass
class WHFastState:
	jpos: np.ndarray
	jvel: np.ndarray
	is_synchronized: bool = True
	last_dt: float = 0.0

	@property
	def size(self) -> int:
		return int(self.jpos.shape[0])


def add_central_term(pos: np.ndarray, mass: np.ndarray, acc: np.ndarray, G: float, eps: float, n_active: int) -> None:
	if pos.shape[0] < 2 or n_active < 1:
		return
	d = pos[1:] - pos[0]
	r2 = np.einsum("ij,ij->i", d, d) + eps * eps
	inv_r3 = np.zeros_like(r2)
	ok = r2 > 0.0
	inv_r3[ok] = r2[ok] ** -1.5
	acc[1:] -= G * mass[0] * inv_r3[:, None] * d


class WHFastScheme(IntegrationScheme):
	name = "whfast"

	def __init__(self, integrator, force_safe_mode: bool = False) -> None:
		super().__init__(integrator)
		self.force_safe_mode = bool(force_safe_mode)
		self.recalculate_jacobi = True

	@property
	def is_synchronized(self) -> bool:
		return self.state is None or self.state.is_synchronized

	@property
	def safe_mode(self) -> bool:
		return self.force_safe_mode or bool(self.sim.config.whfast_safe_mode)

	def validate(self) -> None:
		store = self.sim.particles
		if len(store) > 0 and not store.mass[0] > 0.0:
			raise ConfigurationError(f"{self.name} requires a central body (index 0) with positive mass")

	def _load_jacobi(self) -> WHFastState:
		store = self.sim.particles
		jpos = inertial_to_jacobi(store.pos, store.mass)
		jvel = inertial_to_jacobi(store.vel, store.mass)
		if self.state is None:
			self.state = WHFastState(jpos, jvel)
		else:
			self.state.jpos = jpos
			self.state.jvel = jvel
		self.recalculate_jacobi = False
		return self.state

	def _kepler_steps(self, h: float) -> None:
		st = self.state
		mass = self.sim.particles.mass
		if st.size < 2:
			return
		mu = float(self.sim.config.G) * jacobi_masses(mass)[1:]
		st.jpos[1:], st.jvel[1:] = self._kepler_propagate(st.jpos[1:], st.jvel[1:], mu, h)

	def _com_step(self, h: float) -> None:
		self.state.jpos[0] += h * self.state.jvel[0]

	def _interaction_step(self, h: float) -> None:
		sim = self.sim
		st = self.state
		store = sim.particles
		mass = store.mass
		G = float(sim.config.G)
		store.pos[...] = jacobi_to_inertial(st.jpos, mass)
		sim.update_acceleration(ignore_10=True)
		acc = store.acc.copy()
		add_central_term(store.pos, mass, acc, G, float(sim.config.softening), store.N_active)
		jacc = inertial_to_jacobi(acc, mass)
		if st.size < 2:
			return
		eta = jacobi_masses(mass)[1:]
		rj = st.jpos[1:]
		rj2 = np.einsum("ij,ij->i", rj, rj)
		inv_r3 = np.zeros_like(rj2)
		ok = rj2 > 0.0
		inv_r3[ok] = rj2[ok] ** -1.5
		st.jvel[1:] += h * (jacc[1:] + (G * eta * inv_r3)[:, None] * rj)

	def _corrector_z(self, a: float, b: float) -> None:
		self._kepler_steps(a)
		self._interaction_step(-b)
		self._kepler_steps(-2.0 * a)
		self._interaction_step(b)
		self._kepler_steps(a)

	def apply_corrector(self, inv: float, dt: float, order: Optional[int] = None) -> None:
		order = int(self.sim.config.whfast_corrector if order is None else order)
		if order <= 0:
			return
		a1, a2, a3 = (a * dt for a in WHFAST_CORRECTOR_A)
		if order == 3:
			b31 = WHFAST_CORRECTOR_B3[0] * dt
			self._corrector_z(a1, -inv * b31)
			self._corrector_z(-a1, inv * b31)
		elif order == 5:
			b51, b52 = (b * dt for b in WHFAST_CORRECTOR_B5)
			self._corrector_z(-a2, -inv * b51)
			self._corrector_z(-a1, -inv * b52)
			self._corrector_z(a1, inv * b52)
			self._corrector_z(a2, inv * b51)
		elif order == 7:
			b71, b72, b73 = (b * dt for b in WHFAST_CORRECTOR_B7)
			self._corrector_z(-a3, -inv * b71)
			self._corrector_z(-a2, -inv * b72)
			self._corrector_z(-a1, -inv * b73)
			self._corrector_z(a1, inv * b73)
			self._corrector_z(a2, inv * b72)
			self._corrector_z(a3, inv * b71)

	def _write_back(self) -> None:
		st = self.state
		store = self.sim.particles
		mass = store.mass
		store.pos[...] = jacobi_to_inertial(st.jpos, mass)
		store.vel[...] = jacobi_to_inertial(st.jvel, mass)

	def advance(self, dt: float) -> float:
		sim = self.sim
		if len(sim.particles) == 0:
			return dt
		self.validate()
		st = self.state
		stale = st is None or st.size != len(sim.particles)
		if stale or st.is_synchronized:
			if stale or self.safe_mode or self.recalculate_jacobi:
				st = self._load_jacobi()
			self.apply_corrector(1.0, dt)
			self._kepler_steps(0.5 * dt)
			self._com_step(0.5 * dt)
		else:
			self._kepler_steps(dt)
			self._com_step(dt)
		st.is_synchronized = False
		st.last_dt = dt

		self.shadow_drift(0.5 * dt)
		self._interaction_step(dt)
		self.shadow_kick(dt)
		self.shadow_drift(0.5 * dt)

		if self.safe_mode:
			self.synchronize()
		return dt

	def synchronize(self) -> None:
		st = self.state
		if st is None or st.is_synchronized:
			return
		h = 0.5 * st.last_dt
		self._kepler_steps(h)
		self._com_step(h)
		self.apply_corrector(-1.0, st.last_dt)
		self._write_back()
		st.is_synchronized = True

	def reset(self) -> None:
		self.state = None
		self.recalculate_jacobi = True


__all__ = ["WHFastScheme", "WHFastState", "add_central_term"]
