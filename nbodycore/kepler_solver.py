"""
This module implements Kepler's equation solver using Stiefel-Scheifele universal
variables.

The UniversalVariableKeplerSolver class provides exact two-body propagation through
the propagate method. The universal anomaly chi is found with Newton-Raphson from a
Vallado-style starting guess; when Newton fails to converge (or produces a non-finite
iterate) the solve restarts with the Laguerre-Conway iteration, which converges from
almost any guess. Stumpff c-functions are evaluated by a short power series after
reducing the argument by quartering, then rebuilt with the quadruple-argument
identities, so elliptic, parabolic and hyperbolic orbits share one code path. The
Lagrange f and g coefficients map the initial state to the final one. A non-positive
gravitational parameter or a particle sitting on the central body falls back to a
straight-line drift.
"""

from __future__ import annotations
import logging
import math
import numpy as np

from .constants import IntegratorConstants

logger = logging.getLogger(__name__)


def _series(z: float, first: int) -> float:
	# sum_k (-z)^k / (first + 2k)!
	term = 1.0 / math.factorial(first)
	total = term
	k = 0
	while True:
		k += 1
		term *= -z / ((first + 2 * k - 1) * (first + 2 * k))
		if abs(term) < 1.0e-18 * abs(total) or k > 12:
			break
		total += term
	return total


class UniversalVariableKeplerSolver:
	def __init__(self, tol: float = 1.0e-15) -> None:
		self.tol = float(tol)

	def _cfunc(self, z: float):
		z = float(z)
		n = 0
		while abs(z) > 0.1:
			z *= 0.25
			n += 1
		c2 = _series(z, 2)
		c3 = _series(z, 3)
		c0 = 1.0 - z * c2
		c1 = 1.0 - z * c3
		while n:
			c3 = 0.25 * (c2 + c0 * c3)
			c2 = 0.5 * c1 * c1
			z *= 4.0
			n -= 1
			c0 = 1.0 - z * c2
			c1 = 1.0 - z * c3
		return c0, c1, c2, c3

	def _initial_guess(self, r0, vr0r0, alpha, sqrt_mu, mu, dt):
		if alpha > 1.0e-12:
			period = 2.0 * math.pi / (sqrt_mu * alpha ** 1.5)
			dt_red = math.fmod(dt, period)
			return sqrt_mu * alpha * dt_red, dt_red
		if alpha < -1.0e-12:
			a = 1.0 / alpha
			s = 1.0 if dt >= 0.0 else -1.0
			denom = vr0r0 + s * math.sqrt(-mu * a) * (1.0 - r0 * alpha)
			arg = (-2.0 * mu * alpha * dt) / denom if denom != 0.0 else -1.0
			if arg > 0.0:
				return s * math.sqrt(-a) * math.log(arg), dt
		return sqrt_mu * dt / r0, dt

	def _kepler_terms(self, chi, r0, sigma0, alpha):
		z = alpha * chi * chi
		_, _, c2, c3 = self._cfunc(z)
		beta = 1.0 - alpha * r0
		chi2 = chi * chi
		f = sigma0 * chi2 * c2 + beta * chi2 * chi * c3 + r0 * chi
		fp = sigma0 * chi * (1.0 - z * c3) + beta * chi2 * c2 + r0
		fpp = sigma0 * (1.0 - z * c2) + beta * chi * (1.0 - z * c3)
		return f, fp, fpp

	def _solve_newton(self, chi, r0, sigma0, alpha, target):
		for _ in range(IntegratorConstants.KEPLER_NEWTON_ITERATIONS):
			f, fp, _ = self._kepler_terms(chi, r0, sigma0, alpha)
			if fp == 0.0 or not math.isfinite(fp):
				return chi, False
			step = (f - target) / fp
			chi_new = chi - step
			if not math.isfinite(chi_new):
				return chi, False
			if abs(chi_new - chi) <= self.tol * max(1.0, abs(chi_new)):
				return chi_new, True
			chi = chi_new
		return chi, False

	def _solve_laguerre(self, chi, r0, sigma0, alpha, target):
		n = 5.0
		for _ in range(IntegratorConstants.KEPLER_LAGUERRE_ITERATIONS):
			f, fp, fpp = self._kepler_terms(chi, r0, sigma0, alpha)
			f -= target
			disc = abs((n - 1.0) ** 2 * fp * fp - n * (n - 1.0) * f * fpp)
			denom = fp + math.copysign(math.sqrt(disc), fp)
			if denom == 0.0:
				break
			chi_new = chi - n * f / denom
			if abs(chi_new - chi) <= self.tol * max(1.0, abs(chi_new)):
				return chi_new
			chi = chi_new
		logger.warning("Kepler solver did not converge (chi=%g)", chi)
		return chi

	def _propagate_single(self, r, v, mu, dt):
		r = np.asarray(r, dtype=float)
		v = np.asarray(v, dtype=float)
		mu = float(mu)
		dt = float(dt)
		r0 = float(np.linalg.norm(r))
		if r0 < 1e-300 or mu <= 0.0 or dt == 0.0:
			return r + v * dt, v.copy()
		sqrt_mu = math.sqrt(mu)
		rv = float(np.dot(r, v))
		v2 = float(np.dot(v, v))
		alpha = 2.0 / r0 - v2 / mu
		sigma0 = rv / sqrt_mu

		chi0, dt_red = self._initial_guess(r0, rv, alpha, sqrt_mu, mu, dt)
		target = sqrt_mu * dt_red
		chi, ok = self._solve_newton(chi0, r0, sigma0, alpha, target)
		if not ok:
			chi = self._solve_laguerre(sqrt_mu * dt_red / r0, r0, sigma0, alpha, target)

		z = alpha * chi * chi
		_, _, c2, c3 = self._cfunc(z)
		chi2 = chi * chi
		f = 1.0 - chi2 * c2 / r0
		g = dt_red - chi2 * chi * c3 / sqrt_mu
		r_vec = f * r + g * v
		rn = float(np.linalg.norm(r_vec))
		fdot = sqrt_mu / (rn * r0) * (alpha * chi2 * chi * c3 - chi)
		gdot = 1.0 - chi2 * c2 / rn
		v_vec = fdot * r + gdot * v
		return r_vec, v_vec

	def propagate(self, r, v, mu, dt):
		r = np.asarray(r, dtype=float)
		v = np.asarray(v, dtype=float)
		dt = float(dt)
		if r.ndim == 1:
			return self._propagate_single(r, v, float(mu), dt)
		mu_arr = np.broadcast_to(np.asarray(mu, dtype=float), (r.shape[0],))
		out_r = np.empty_like(r)
		out_v = np.empty_like(v)
		for k in range(r.shape[0]):
			out_r[k], out_v[k] = self._propagate_single(r[k], v[k], mu_arr[k], dt)
		return out_r, out_v


__all__ = ["UniversalVariableKeplerSolver"]
