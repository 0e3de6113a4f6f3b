from __future__ import annotations
import logging
import math
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from .constants import (
	GAUSS_RADAU_H,
	IntegratorConstants,
	PREDICTOR_BINOMIAL,
	RADAU_C,
	RADAU_D,
	RADAU_POS_WEIGHTS,
	RADAU_VEL_WEIGHTS,
)
from .integration_scheme_base import IntegrationScheme
from .summation import compensated_add

"""
This module implements IAS15, the 15th-order Gauss-Radau predictor-corrector with adaptive step-size control. The state advanced is the stacked vector of physical coordinates followed by the shadow (variational) coordinates, so chaos indicators are integrated with the same accuracy as the orbit. Within a step, the acceleration is represented as a0 + sum b_k s^(k+1) over the step fraction s; the corrector evaluates forces at the seven Radau substeps, converts them into divided differences g and back into b through the precomputed change-of-basis matrices, and iterates until the last correction stops changing (relative 1e-16), stops improving, or hits the iteration cap. The step error is the size of b6 relative to the acceleration (globally or per component), the next step is dt (epsilon/err)^(1/7) capped between the safety factor bounds, and a step whose successor would shrink below the safety factor is rejected and retried from the saved start state. Position and velocity updates are applied with compensated summation, and the b coefficients of the next step are predicted by extrapolating the current polynomial to the new step size.

"""

logger = logging.getLogger(__name__)


@dataclass
class IAS15State:
	size: int
	g: np.ndarray = field(init=False)
	b: np.ndarray = field(init=False)
	e: np.ndarray = field(init=False)
	br: np.ndarray = field(init=False)
	er: np.ndarray = field(init=False)
	csx: np.ndarray = field(init=False)
	csv: np.ndarray = field(init=False)
	dt_last_success: float = 0.0
	iterations: int = 0

	def __post_init__(self) -> None:
		shape = (7, self.size)
		self.g = np.zeros(shape)
		self.b = np.zeros(shape)
		self.e = np.zeros(shape)
		self.br = np.zeros(shape)
		self.er = np.zeros(shape)
		self.csx = np.zeros(self.size)
		self.csv = np.zeros(self.size)


class IAS15Scheme(IntegrationScheme):
	name = "ias15"

	def _gather(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
		sim = self.sim
		store = sim.particles
		var = sim.variational
		if var.active:
			x = np.concatenate([store.pos.ravel(), var.dpos.ravel()])
			v = np.concatenate([store.vel.ravel(), var.dvel.ravel()])
			a = np.concatenate([store.acc.ravel(), var.dacc.ravel()])
		else:
			x = store.pos.ravel().copy()
			v = store.vel.ravel().copy()
			a = store.acc.ravel().copy()
		return x, v, a

	def _accel(self) -> np.ndarray:
		sim = self.sim
		sim.update_acceleration()
		store = sim.particles
		var = sim.variational
		if var.active:
			return np.concatenate([store.acc.ravel(), var.dacc.ravel()])
		return store.acc.ravel().copy()

	def _scatter(self, x: np.ndarray, v: np.ndarray | None = None) -> None:
		sim = self.sim
		store = sim.particles
		n3 = 3 * len(store)
		store.pos[...] = x[:n3].reshape(-1, 3)
		if v is not None:
			store.vel[...] = v[:n3].reshape(-1, 3)
		var = sim.variational
		if var.active:
			var.dpos[...] = x[n3:].reshape(-1, 3)
			if v is not None:
				var.dvel[...] = v[n3:].reshape(-1, 3)

	def _ensure_state(self, size: int) -> IAS15State:
		if self.state is None or self.state.size != size:
			self.state = IAS15State(size)
		return self.state

	@staticmethod
	def _predict(ratio: float, b_src: np.ndarray, e_src: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
		if not math.isfinite(ratio) or abs(ratio) > IntegratorConstants.IAS15_MAX_PREDICTOR_RATIO:
			return np.zeros_like(b_src), np.zeros_like(e_src)
		q = ratio ** np.arange(1, 8)
		e_new = q[:, None] * (PREDICTOR_BINOMIAL @ b_src)
		b_new = e_new + (b_src - e_src)
		return b_new, e_new

	def advance(self, dt: float) -> float:
		sim = self.sim
		cfg = sim.config
		if len(sim.particles) == 0:
			return dt

		safety = IntegratorConstants.IAS15_SAFETY_FACTOR
		velocity_dependent = bool(cfg.force_is_velocity_dependent)
		epsilon = float(cfg.ias15_epsilon)
		min_dt = float(cfg.ias15_min_dt)

		sim.update_acceleration()
		x0, v0, a0 = self._gather()
		st = self._ensure_state(x0.size)
		n_phys = 3 * len(sim.particles)

		while True:
			st.g = RADAU_D @ st.b
			pc_error = 1.0e300
			pc_error_prev = 2.0
			iterations = 0
			at = a0
			while True:
				if pc_error < IntegratorConstants.IAS15_PC_TOLERANCE:
					break
				if iterations > 2 and pc_error_prev <= pc_error:
					break
				if iterations >= IntegratorConstants.IAS15_MAX_ITERATIONS:
					logger.warning(
						"IAS15 predictor-corrector did not converge after %d iterations (t=%g, dt=%g)",
						iterations, sim.t, dt,
					)
					break
				pc_error_prev = pc_error
				iterations += 1
				for n in range(1, 8):
					s = GAUSS_RADAU_H[n]
					sp = s ** np.arange(1, 8)
					sdt = s * dt
					x = x0 + sdt * v0 + sdt * sdt * (0.5 * a0 + (RADAU_POS_WEIGHTS * sp) @ st.b)
					if velocity_dependent:
						v = v0 + sdt * (a0 + (RADAU_VEL_WEIGHTS * sp) @ st.b)
						self._scatter(x, v)
					else:
						self._scatter(x)
					at = self._accel()

					gk = (at - a0) / s
					for k in range(n - 1):
						gk = (gk - st.g[k]) / (s - GAUSS_RADAU_H[k + 1])
					delta = gk - st.g[n - 1]
					st.g[n - 1] = gk
					st.b[:n] += RADAU_C[:n, n - 1][:, None] * delta[None, :]
					if n == 7:
						maxa = float(np.max(np.abs(at))) if at.size else 0.0
						maxd = float(np.max(np.abs(delta))) if delta.size else 0.0
						pc_error = maxd / maxa if maxa > 0.0 else 0.0
			st.iterations = iterations

			dt_done = dt
			if epsilon > 0.0:
				b6 = np.abs(st.b[6, :n_phys])
				ak = np.abs(at[:n_phys])
				if cfg.ias15_epsilon_global:
					maxak = float(np.max(ak)) if ak.size else 0.0
					err = float(np.max(b6)) / maxak if maxak > 0.0 else 0.0
				else:
					nz = ak > 0.0
					err = float(np.max(b6[nz] / ak[nz])) if np.any(nz) else 0.0
				if math.isfinite(err) and err > 0.0:
					dt_new = dt_done * (epsilon / err) ** (1.0 / 7.0)
				else:
					dt_new = dt_done / safety
				if abs(dt_new) < min_dt:
					dt_new = math.copysign(min_dt, dt_new)
				if abs(dt_new / dt_done) < safety:
					self._scatter(x0, v0)
					if st.dt_last_success != 0.0:
						st.b, st.e = self._predict(dt_new / st.dt_last_success, st.br, st.er)
					else:
						st.b[...] = 0.0
						st.e[...] = 0.0
					logger.debug("IAS15 rejected step dt=%g, retrying with dt=%g", dt_done, dt_new)
					dt = dt_new
					continue
				if abs(dt_new / dt_done) > 1.0 / safety:
					dt_new = dt_done / safety
			else:
				dt_new = dt_done
			break

		dx = dt_done * v0 + dt_done * dt_done * (0.5 * a0 + RADAU_POS_WEIGHTS @ st.b)
		dv = dt_done * (a0 + RADAU_VEL_WEIGHTS @ st.b)
		x = x0.copy()
		v = v0.copy()
		compensated_add(x, st.csx, dx)
		compensated_add(v, st.csv, dv)
		self._scatter(x, v)

		st.dt_last_success = dt_done
		st.br = st.b.copy()
		st.er = st.e.copy()
		st.b, st.e = self._predict(dt_new / dt_done, st.b, st.e)
		sim.dt = dt_new
		return dt_done

	def reset(self) -> None:
		self.state = None


__all__ = ["IAS15Scheme", "IAS15State"]
