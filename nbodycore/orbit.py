from __future__ import annotations
import math
from dataclasses import dataclass

import numpy as np

"""
This module converts a particle and its primary into osculating Keplerian elements. compute_orbit works in the frame of the primary with mu = G (m + m_primary): the semi-major axis comes from the vis-viva energy, the eccentricity vector from the Laplace-Runge-Lenz relation, and the angles from the angular momentum and node vectors, with the usual quadrant fixes. Degenerate geometry is resolved deterministically: for equatorial orbits the node is put on the x axis (Omega = 0) and for circular orbits the pericentre is put on the node (omega = 0), so the true anomaly is then measured from that reference direction. Mean anomaly is defined for elliptic and hyperbolic orbits; the period is infinite for unbound orbits. The result is a read-only snapshot that is never stored by the simulation.

"""

_TINY = 1.0e-12


@dataclass(frozen=True)
class Orbit:
	a: float
	e: float
	inc: float
	Omega: float
	omega: float
	f: float
	M: float
	l: float
	h: float
	P: float
	n: float
	r: float
	v: float


def _wrap(angle: float) -> float:
	two_pi = 2.0 * math.pi
	angle = math.fmod(angle, two_pi)
	if angle < 0.0:
		angle += two_pi
	return angle


def _angle_between(u: np.ndarray, w: np.ndarray) -> float:
	nu = float(np.linalg.norm(u))
	nw = float(np.linalg.norm(w))
	c = float(u @ w) / (nu * nw)
	return math.acos(max(-1.0, min(1.0, c)))


def mean_anomaly(e: float, f: float) -> float:
	if e < 1.0:
		E = 2.0 * math.atan(math.sqrt((1.0 - e) / (1.0 + e)) * math.tan(0.5 * f))
		return _wrap(E - e * math.sin(E))
	if e > 1.0:
		F = 2.0 * math.atanh(math.sqrt((e - 1.0) / (e + 1.0)) * math.tan(0.5 * f))
		return e * math.sinh(F) - F
	D = math.tan(0.5 * f)
	return D + D ** 3 / 3.0


def compute_orbit(G: float, particle, primary) -> Orbit:
	mu = float(G) * (float(particle.m) + float(primary.m))
	if mu <= 0.0:
		raise ValueError("orbit requires a positive gravitational parameter G (m + m_primary)")
	dx = np.array([particle.x - primary.x, particle.y - primary.y, particle.z - primary.z], dtype=float)
	dv = np.array([particle.vx - primary.vx, particle.vy - primary.vy, particle.vz - primary.vz], dtype=float)
	r = float(np.linalg.norm(dx))
	if r == 0.0:
		raise ValueError("particle and primary coincide; orbit is undefined")
	v2 = float(dv @ dv)
	v = math.sqrt(v2)
	vr = float(dx @ dv) / r

	hvec = np.cross(dx, dv)
	h = float(np.linalg.norm(hvec))

	energy = 0.5 * v2 - mu / r
	a = -mu / (2.0 * energy) if energy != 0.0 else math.inf

	evec = ((v2 - mu / r) * dx - r * vr * dv) / mu
	e = float(np.linalg.norm(evec))

	inc = math.acos(max(-1.0, min(1.0, hvec[2] / h))) if h > 0.0 else 0.0
	node = np.array([-hvec[1], hvec[0], 0.0])
	nnode = float(np.linalg.norm(node))

	if nnode > _TINY * max(h, _TINY):
		Omega = _angle_between(node, np.array([1.0, 0.0, 0.0]))
		if node[1] < 0.0:
			Omega = 2.0 * math.pi - Omega
		ref = node
	else:
		Omega = 0.0
		ref = np.array([1.0, 0.0, 0.0])
	retro = hvec[2] < 0.0 and nnode <= _TINY * max(h, _TINY)

	if e > _TINY:
		omega = _angle_between(ref, evec)
		if nnode > _TINY * max(h, _TINY):
			if evec[2] < 0.0:
				omega = 2.0 * math.pi - omega
		else:
			if (evec[1] < 0.0) != retro:
				omega = 2.0 * math.pi - omega
		f = _angle_between(evec, dx)
		if vr < 0.0:
			f = 2.0 * math.pi - f
	else:
		omega = 0.0
		f = _angle_between(ref, dx)
		if nnode > _TINY * max(h, _TINY):
			if dx[2] < 0.0:
				f = 2.0 * math.pi - f
		else:
			if (dx[1] < 0.0) != retro:
				f = 2.0 * math.pi - f

	M = mean_anomaly(e, f)
	if a > 0.0 and math.isfinite(a):
		n = math.sqrt(mu / a ** 3)
		P = 2.0 * math.pi / n
	elif math.isfinite(a):
		n = math.sqrt(mu / abs(a) ** 3)
		P = math.inf
	else:
		n = 0.0
		P = math.inf
	l = _wrap(Omega + omega + M)

	return Orbit(a=a, e=e, inc=inc, Omega=Omega, omega=omega, f=f, M=M, l=l, h=h, P=P, n=n, r=r, v=v)


__all__ = ["Orbit", "compute_orbit", "mean_anomaly"]
