"""
This module implements the hybrid integrator that switches between WHFast and IAS15.

Before every step the HybridScheme class refreshes a per-particle encounter flag. For
each body i >= 1 the mutual Hill radius scale is rH = |r - r_0| cbrt(m / 3 m_0); body
i joins the encounter set as soon as |r_i - r_j| / (rH_i + rH_j) drops below the
switch ratio for any other body j >= 1, and leaves it only once every such ratio
exceeds switch_ratio * hysteresis, which prevents chattering at the threshold. While
the set is non-empty the coupled system is stepped with IAS15 (whose adaptive step
is never allowed to grow beyond the nominal dt); otherwise WHFast in safe mode takes
the step. A switch synchronises and resets the outgoing sub-integrator and, when
returning to WHFast, restores the nominal dt that was active before the encounter.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .ias15_scheme import IAS15Scheme
from .integration_scheme_base import IntegrationScheme
from .whfast_scheme import WHFastScheme

logger = logging.getLogger(__name__)


@dataclass
class HybridState:
	flags: np.ndarray
	mode: str = "whfast"
	nominal_dt: Optional[float] = None


def hill_ratios(pos: np.ndarray, mass: np.ndarray) -> np.ndarray:
	n = pos.shape[0]
	if n < 3 or not mass[0] > 0.0:
		return np.full((n, n), np.inf)
	d0 = np.linalg.norm(pos[1:] - pos[0], axis=1)
	rh = np.zeros(n)
	rh[1:] = d0 * np.cbrt(mass[1:] / (3.0 * mass[0]))
	diff = pos[:, None, :] - pos[None, :, :]
	dist = np.sqrt(np.einsum("ijk,ijk->ij", diff, diff))
	denom = rh[:, None] + rh[None, :]
	ratio = np.full((n, n), np.inf)
	ok = denom > 0.0
	ratio[ok] = dist[ok] / denom[ok]
	ratio[0, :] = np.inf
	ratio[:, 0] = np.inf
	np.fill_diagonal(ratio, np.inf)
	return ratio


class HybridScheme(IntegrationScheme):
	name = "hybrid"

	def __init__(self, integrator) -> None:
		super().__init__(integrator)
		self.whfast = WHFastScheme(integrator, force_safe_mode=True)
		self.ias15 = IAS15Scheme(integrator)

	@property
	def active(self) -> IntegrationScheme:
		if self.state is not None and self.state.mode == "ias15":
			return self.ias15
		return self.whfast

	@property
	def is_synchronized(self) -> bool:
		return self.active.is_synchronized

	def validate(self) -> None:
		self.whfast.validate()

	def update_flags(self) -> np.ndarray:
		sim = self.sim
		store = sim.particles
		cfg = sim.config
		n = len(store)
		if self.state is None or self.state.flags.shape[0] != n:
			self.state = HybridState(flags=np.zeros(n, dtype=bool))
		ratio = hill_ratios(store.pos, store.mass)
		min_ratio = ratio.min(axis=1) if n else np.empty(0)
		enter = min_ratio < float(cfg.hybrid_switch_ratio)
		stay = min_ratio <= float(cfg.hybrid_switch_ratio) * float(cfg.hybrid_hysteresis)
		flags = enter | (self.state.flags & stay)
		self.state.flags = flags
		return flags

	def _switch(self, mode: str) -> None:
		st = self.state
		sim = self.sim
		if mode == st.mode:
			return
		if mode == "ias15":
			self.whfast.synchronize()
			self.whfast.reset()
			self.ias15.reset()
			st.nominal_dt = sim.dt
			logger.debug("hybrid: close encounter at t=%g, switching to ias15 (%d flagged)", sim.t, int(st.flags.sum()))
		else:
			self.ias15.reset()
			self.whfast.reset()
			if st.nominal_dt is not None:
				sim.dt = st.nominal_dt
			logger.debug("hybrid: encounter over at t=%g, switching back to whfast", sim.t)
		st.mode = mode

	def advance(self, dt: float) -> float:
		sim = self.sim
		if len(sim.particles) == 0:
			return dt
		self.validate()
		flags = self.update_flags()
		self._switch("ias15" if bool(np.any(flags)) else "whfast")
		st = self.state
		if st.mode == "ias15":
			dt_done = self.ias15.advance(dt)
			if st.nominal_dt is not None and abs(sim.dt) > abs(st.nominal_dt):
				sim.dt = st.nominal_dt
			return dt_done
		return self.whfast.advance(dt)

	def synchronize(self) -> None:
		self.active.synchronize()

	def reset(self) -> None:
		self.whfast.reset()
		self.ias15.reset()
		self.state = None

	def payload_snapshot(self):
		return (
			super().payload_snapshot(),
			self.whfast.payload_snapshot(),
			self.ias15.payload_snapshot(),
		)

	def payload_restore(self, snap) -> None:
		own, wh, ias = snap
		super().payload_restore(own)
		self.whfast.payload_restore(wh)
		self.ias15.payload_restore(ias)


__all__ = ["HybridScheme", "HybridState", "hill_ratios"]
