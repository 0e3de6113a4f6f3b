from __future__ import annotations
import logging
from typing import TYPE_CHECKING, Any, Dict, Type

from .constants import IntegratorKind
from .errors import ConfigurationError
from .hybrid_scheme import HybridScheme
from .ias15_scheme import IAS15Scheme
from .integration_scheme_base import IntegrationScheme
from .kepler_solver import UniversalVariableKeplerSolver
from .leapfrog_scheme import LeapfrogScheme
from .sei_scheme import SEIScheme
from .wh_scheme import WHScheme
from .whfast_scheme import WHFastScheme

if TYPE_CHECKING:
	from .simulation import Simulation

"""
This central module implements the Integrator class that dispatches timestepping to exactly one integration scheme. The scheme is chosen from the configured IntegratorKind when the Integrator is built; the owning Simulation synchronises the outgoing scheme and rebuilds the Integrator whenever the configured kind changes, which discards the previous scheme together with its private payload rather than leaving stale state behind. Every scheme exposes the same contract: advance(dt) returns the step actually taken (IAS15 may take less than requested and picks the next dt itself), synchronize() makes the particle arrays observable and is a no-op for schemes that always end synchronised, and reset() drops cached coefficients and coordinates after the particle set or physical parameters changed underneath the integrator. The Kepler solver is shared by all schemes that need it.

"""

logger = logging.getLogger(__name__)

SCHEMES: Dict[IntegratorKind, Type[IntegrationScheme]] = {
	IntegratorKind.IAS15: IAS15Scheme,
	IntegratorKind.WHFAST: WHFastScheme,
	IntegratorKind.WH: WHScheme,
	IntegratorKind.SEI: SEIScheme,
	IntegratorKind.LEAPFROG: LeapfrogScheme,
	IntegratorKind.HYBRID: HybridScheme,
}


class Integrator:
	def __init__(self, sim: "Simulation") -> None:
		self.sim = sim
		self.kind = sim.config.integrator_kind
		self._uv_solver = UniversalVariableKeplerSolver()
		self._scheme: IntegrationScheme = self._make_scheme(self.kind)
		logger.debug("selected integrator %s", self.kind.value)

	def _make_scheme(self, kind: IntegratorKind) -> IntegrationScheme:
		try:
			cls = SCHEMES[kind]
		except KeyError:
			raise ConfigurationError(f"no integration scheme for {kind!r}") from None
		return cls(self)

	@property
	def scheme(self) -> IntegrationScheme:
		return self._scheme

	@property
	def state(self) -> Any:
		return self._scheme.state

	@property
	def is_synchronized(self) -> bool:
		return self._scheme.is_synchronized

	def validate(self) -> None:
		self._scheme.validate()

	def advance(self, dt: float) -> float:
		return float(self._scheme.advance(float(dt)))

	def synchronize(self) -> None:
		self._scheme.synchronize()

	def reset(self) -> None:
		self._scheme.reset()

	def checkpoint(self) -> Any:
		return self._scheme.payload_snapshot()

	def restore(self, snap: Any) -> None:
		self._scheme.payload_restore(snap)

	def mark_particles_changed(self) -> None:
		if isinstance(self._scheme, WHFastScheme):
			self._scheme.recalculate_jacobi = True
		elif isinstance(self._scheme, HybridScheme):
			self._scheme.whfast.recalculate_jacobi = True


__all__ = ["Integrator", "SCHEMES"]
