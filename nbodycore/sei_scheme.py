"""
This module implements the symplectic epicycle integrator (SEI) for the shearing sheet.

The SEIScheme class splits Hill's equations into the exactly solvable epicyclic part
and the perturbing forces. The epicyclic drift over half a step moves each particle
around its guiding centre by a rotation written as three shears (which keeps the
rotation area preserving in floating point), lets the guiding centre slide along the
shear, and evolves the vertical motion as a harmonic oscillator with frequency
OMEGAZ (defaulting to OMEGA). Between the two half drifts, velocities are kicked with
gravity plus any additional forces. The rotation coefficients depend only on dt and are
cached until dt changes. The drift is linear and homogeneous in the phase-space
coordinates, so shadow particles are advanced by exactly the same map.
"""

from __future__ import annotations
import math
from dataclasses import dataclass

import numpy as np

from .integration_scheme_base import IntegrationScheme


@dataclass
class SEIState:
	lastdt: float
	omega: float
	omegaz: float
	sindt: float
	tanhalfdt: float
	sindtz: float
	tanhalfdtz: float


class SEIScheme(IntegrationScheme):
	name = "sei"

	def _coefficients(self, dt: float) -> SEIState:
		cfg = self.sim.config
		omega = cfg.shear_omega
		omegaz = cfg.omegaz
		st = self.state
		if st is None or st.lastdt != dt or st.omega != omega or st.omegaz != omegaz:
			st = SEIState(
				lastdt=dt,
				omega=omega,
				omegaz=omegaz,
				sindt=math.sin(omega * (-dt / 2.0)),
				tanhalfdt=math.tan(omega * (-dt / 4.0)),
				sindtz=math.sin(omegaz * (-dt / 2.0)),
				tanhalfdtz=math.tan(omegaz * (-dt / 4.0)),
			)
			self.state = st
		return st

	@staticmethod
	def _epicycle_drift(st: SEIState, pos: np.ndarray, vel: np.ndarray, tau: float) -> None:
		omega = st.omega
		omegaz = st.omegaz

		zx = pos[:, 2] * omegaz
		zy = vel[:, 2].copy()
		zt1 = zx - st.tanhalfdtz * zy
		zyt = st.sindtz * zt1 + zy
		zxt = zt1 - st.tanhalfdtz * zyt
		pos[:, 2] = zxt / omegaz
		vel[:, 2] = zyt

		aO = 2.0 * vel[:, 1] + 4.0 * pos[:, 0] * omega
		bO = pos[:, 1] * omega - 2.0 * vel[:, 0]
		ys = vel[:, 0].copy()
		xs = pos[:, 0] * omega - aO
		xst1 = xs - st.tanhalfdt * ys
		yst = st.sindt * xst1 + ys
		xst = xst1 - st.tanhalfdt * yst
		pos[:, 0] = (xst + aO) / omega
		pos[:, 1] = (2.0 * yst + bO) / omega - 1.5 * aO * tau
		vel[:, 0] = yst
		vel[:, 1] = -2.0 * xst - 1.5 * aO

	def _drift_all(self, st: SEIState, tau: float) -> None:
		store = self.sim.particles
		self._epicycle_drift(st, store.pos, store.vel, tau)
		var = self.sim.variational
		if var.active:
			self._epicycle_drift(st, var.dpos, var.dvel, tau)

	def advance(self, dt: float) -> float:
		sim = self.sim
		if len(sim.particles) == 0:
			return dt
		st = self._coefficients(dt)
		self._drift_all(st, 0.5 * dt)
		sim.update_acceleration()
		self.kick(dt)
		self._drift_all(st, 0.5 * dt)
		return dt


__all__ = ["SEIScheme", "SEIState"]
