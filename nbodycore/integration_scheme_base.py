"""
This abstract base class defines the interface for numerical integration schemes.

The IntegrationScheme class provides the shared contract (advance returning the step
actually taken, synchronize, reset) and the common building blocks: drift for
position updates, kick for velocity updates and their shadow-particle counterparts,
plus access to the universal-variable Kepler solver owned by the parent Integrator.
Each concrete scheme keeps its private working arrays in a payload dataclass stored
on `self.state`; reset drops that payload so that it is rebuilt from the particle
arrays on the next advance. Schemes obtain accelerations by calling
sim.update_acceleration() at the points where they need them.
"""

from __future__ import annotations
import copy
from typing import TYPE_CHECKING, Any
import numpy as np

if TYPE_CHECKING:
	from .integrator import Integrator
	from .simulation import Simulation


class IntegrationScheme:
	name = "base"

	def __init__(self, integrator: "Integrator") -> None:
		self.integ = integrator
		self.state: Any = None

	@property
	def sim(self) -> "Simulation":
		return self.integ.sim

	@property
	def is_synchronized(self) -> bool:
		return True

	def validate(self) -> None:
		return None

	def advance(self, dt: float) -> float:
		raise NotImplementedError

	def synchronize(self) -> None:
		return None

	def reset(self) -> None:
		self.state = None

	def payload_snapshot(self) -> Any:
		return copy.deepcopy(self.state)

	def payload_restore(self, snap: Any) -> None:
		self.state = copy.deepcopy(snap)

	def drift(self, h: float) -> None:
		sim = self.sim
		sim.particles.pos += h * sim.particles.vel
		sim.variational.drift(h)

	def kick(self, h: float) -> None:
		sim = self.sim
		sim.particles.vel += h * sim.particles.acc
		sim.variational.kick(h)

	def shadow_drift(self, h: float) -> None:
		self.sim.variational.drift(h)

	def shadow_kick(self, h: float) -> None:
		self.sim.variational.kick(h)

	def _kepler_propagate(self, r: np.ndarray, v: np.ndarray, mu, dt: float):
		return self.integ._uv_solver.propagate(r, v, mu, dt)


__all__ = ["IntegrationScheme"]
