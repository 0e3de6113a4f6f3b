"""
This module maintains the shadow particles and running statistics behind the MEGNO
and Lyapunov chaos indicators.

The VariationalTracker owns one 6-dimensional displacement per particle (position and
velocity parts) plus its linearised acceleration, evaluated through TangentMap at
whatever positions the active integrator chooses as force points. megno_init draws the
displacements from a standard normal distribution, scales every particle's 6-vector to
the requested length and resets all statistics; time for the indicators is measured
from that call. After every completed step, on the synchronised state, update adds
dY = 2 dt t (delta_dot . delta) / |delta|^2 to the running integral, accumulates the
time average <Y> and the covariance of <Y> with time (Welford updates), and rescales
the displacements once their norm exceeds the renormalisation threshold; both
indicators are invariant under that rescaling. Reading an indicator before megno_init
raises DiagnosticMisuseError rather than returning zero.
"""

from __future__ import annotations
import logging
import math
from typing import TYPE_CHECKING, Optional

import numpy as np

from .constants import IntegratorConstants
from .errors import DiagnosticMisuseError
from .tangent_map import TangentMap

if TYPE_CHECKING:
	from .simulation import Simulation

logger = logging.getLogger(__name__)


class VariationalTracker:
	def __init__(self, sim: "Simulation") -> None:
		self.sim = sim
		self.tangent = TangentMap(sim)
		self.active = False
		self.dpos = np.empty((0, 3))
		self.dvel = np.empty((0, 3))
		self.dacc = np.empty((0, 3))
		self._reset_statistics()

	def _reset_statistics(self) -> None:
		self.t0 = 0.0
		self.Ys = 0.0
		self.Yss = 0.0
		self.cov_Yt = 0.0
		self.var_t = 0.0
		self.mean_t = 0.0
		self.mean_Y = 0.0
		self.n = 0

	@property
	def N_var(self) -> int:
		return int(self.dpos.shape[0]) if self.active else 0

	def megno_init(self, delta: float = 1.0e-16, rng=None) -> None:
		if not (math.isfinite(delta) and delta > 0.0):
			raise ValueError("megno_init requires a positive finite displacement length")
		n = len(self.sim.particles)
		gen = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)
		draws = gen.standard_normal((n, 6))
		norms = np.linalg.norm(draws, axis=1)
		norms[norms == 0.0] = 1.0
		draws *= (delta / norms)[:, None]
		self.dpos = draws[:, :3].copy()
		self.dvel = draws[:, 3:].copy()
		self.dacc = np.zeros((n, 3))
		self.active = True
		self._reset_statistics()
		self.t0 = float(self.sim.t)
		logger.debug("initialised %d shadow particles with delta=%g", n, delta)

	def _require_init(self) -> None:
		if not self.active:
			raise DiagnosticMisuseError("MEGNO and Lyapunov indicators require megno_init() first")

	def compute_accelerations(self, ghost_boxes=None) -> None:
		if not self.active:
			return
		self.dacc = self.tangent.variational_accel(self.dpos, ghost_boxes)

	def drift(self, h: float) -> None:
		if self.active:
			self.dpos += h * self.dvel

	def kick(self, h: float) -> None:
		if self.active:
			self.dvel += h * self.dacc

	def elapsed(self) -> float:
		return float(self.sim.t) - self.t0

	def update(self, dt: float) -> None:
		if not self.active or self.dpos.shape[0] == 0:
			return
		self.compute_accelerations()
		delta2 = float(np.sum(self.dpos * self.dpos) + np.sum(self.dvel * self.dvel))
		t_el = self.elapsed()
		if delta2 > 0.0 and t_el != 0.0:
			deltad = float(np.sum(self.dvel * self.dpos) + np.sum(self.dacc * self.dvel)) / delta2
			dY = 2.0 * dt * t_el * deltad
			self.Ys += dY
			Y = self.Ys / t_el
			self.Yss += Y * dt

			self.n += 1
			nf = float(self.n)
			d_t = t_el - self.mean_t
			Y_avg = self.current_Y()
			d_Y = Y_avg - self.mean_Y
			self.mean_t += d_t / nf
			self.mean_Y += d_Y / nf
			self.cov_Yt += (nf - 1.0) / nf * d_t * d_Y
			self.var_t += (nf - 1.0) / nf * d_t * d_t

		norm = math.sqrt(delta2)
		if norm > IntegratorConstants.SHADOW_RENORM_THRESHOLD:
			scale = 1.0 / norm
			self.dpos *= scale
			self.dvel *= scale
			self.dacc *= scale

	def current_Y(self) -> float:
		self._require_init()
		t_el = self.elapsed()
		if t_el == 0.0:
			return 0.0
		return self.Yss / t_el

	def lyapunov_estimate(self) -> float:
		self._require_init()
		if self.var_t == 0.0:
			return 0.0
		return 2.0 * self.cov_Yt / self.var_t

	def add_row(self) -> None:
		if not self.active:
			return
		self.dpos = np.vstack([self.dpos, np.zeros((1, 3))])
		self.dvel = np.vstack([self.dvel, np.zeros((1, 3))])
		self.dacc = np.vstack([self.dacc, np.zeros((1, 3))])

	def remove(self, index: int) -> None:
		if not self.active:
			return
		self.dpos = np.delete(self.dpos, index, axis=0)
		self.dvel = np.delete(self.dvel, index, axis=0)
		self.dacc = np.delete(self.dacc, index, axis=0)

	def snapshot(self) -> dict:
		return {
			"active": self.active,
			"dpos": self.dpos.copy(),
			"dvel": self.dvel.copy(),
			"dacc": self.dacc.copy(),
			"stats": (self.t0, self.Ys, self.Yss, self.cov_Yt, self.var_t, self.mean_t, self.mean_Y, self.n),
		}

	def restore(self, snap: Optional[dict]) -> None:
		if snap is None:
			return
		self.active = snap["active"]
		self.dpos = snap["dpos"].copy()
		self.dvel = snap["dvel"].copy()
		self.dacc = snap["dacc"].copy()
		(self.t0, self.Ys, self.Yss, self.cov_Yt, self.var_t,
		 self.mean_t, self.mean_Y, self.n) = snap["stats"]


__all__ = ["VariationalTracker"]
