"""
This module implements the classic Wisdom-Holman map in democratic heliocentric
coordinates.

A step is the symmetric composition jump(dt/2), Kepler(dt/2), kick(dt),
Kepler(dt/2), jump(dt/2). Positions are heliocentric and velocities barycentric;
the Kepler drift moves every body about the central mass alone (mu = G m0), the
jump shifts all heliocentric positions by the total barycentric momentum of the
planets divided by m0, and the kick applies the planet-planet accelerations the
gravity engine returns when the central body is ignored as a source. The
barycentre drifts freely during both Kepler halves. The scheme is synchronised at
the end of every step.
"""

from __future__ import annotations
import numpy as np

from .coordinates import from_democratic_heliocentric, to_democratic_heliocentric
from .errors import ConfigurationError
from .integration_scheme_base import IntegrationScheme


class WHScheme(IntegrationScheme):
	name = "wh"

	def validate(self) -> None:
		store = self.sim.particles
		if len(store) > 0 and not store.mass[0] > 0.0:
			raise ConfigurationError("wh requires a central body (index 0) with positive mass")

	def _jump(self, hpos: np.ndarray, hvel: np.ndarray, mass: np.ndarray, h: float) -> None:
		p = (mass[1:, None] * hvel[1:]).sum(axis=0)
		hpos[1:] += h * p / mass[0]

	def _kepler(self, hpos: np.ndarray, hvel: np.ndarray, mass: np.ndarray, h: float) -> None:
		if hpos.shape[0] > 1:
			mu = float(self.sim.config.G) * float(mass[0])
			hpos[1:], hvel[1:] = self._kepler_propagate(hpos[1:], hvel[1:], mu, h)
		hpos[0] += h * hvel[0]

	def advance(self, dt: float) -> float:
		sim = self.sim
		store = sim.particles
		if len(store) == 0:
			return dt
		self.validate()
		mass = store.mass
		h2 = 0.5 * dt
		hpos, hvel = to_democratic_heliocentric(store.pos, store.vel, mass)

		self._jump(hpos, hvel, mass, h2)
		self._kepler(hpos, hvel, mass, h2)
		self.shadow_drift(h2)

		store.pos[...], _ = from_democratic_heliocentric(hpos, hvel, mass)
		sim.update_acceleration(ignore_10=True)
		hvel[1:] += dt * store.acc[1:]
		self.shadow_kick(dt)

		self._kepler(hpos, hvel, mass, h2)
		self._jump(hpos, hvel, mass, h2)
		self.shadow_drift(h2)

		store.pos[...], store.vel[...] = from_democratic_heliocentric(hpos, hvel, mass)
		return dt


__all__ = ["WHScheme"]
