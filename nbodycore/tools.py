from __future__ import annotations
import math
from typing import TYPE_CHECKING, Tuple

import numpy as np

from .particle import Particle

if TYPE_CHECKING:
	from .simulation import Simulation

"""
This module provides small physics utilities used around the integration pipeline: center_of_mass works on plain mass, position and velocity arrays; get_com combines two particles into a single particle at their centre of mass; orbit_from_elements builds a Cartesian particle from Keplerian elements around a primary (the inverse of compute_orbit); move_to_com shifts a simulation into its barycentric frame; and output_check reports whether the simulation time has just crossed a multiple of an output interval, which is the timing half of periodic output (formatting is left to the caller). The helpers handle single particles and zero total mass gracefully.

"""


def center_of_mass(
	masses: np.ndarray, positions: np.ndarray, velocities: np.ndarray
) -> Tuple[float, np.ndarray, np.ndarray]:
	total_mass = float(np.sum(masses))
	if total_mass == 0.0 or len(masses) == 0:
		return total_mass, np.zeros(3), np.zeros(3)
	x_cm = np.sum(masses[:, None] * positions, axis=0) / total_mass
	v_cm = np.sum(masses[:, None] * velocities, axis=0) / total_mass
	return total_mass, x_cm, v_cm


def get_com(p1, p2) -> Particle:
	m = float(p1.m) + float(p2.m)
	if m == 0.0:
		w1 = w2 = 0.5
	else:
		w1 = float(p1.m) / m
		w2 = float(p2.m) / m
	return Particle(
		m=m,
		x=w1 * p1.x + w2 * p2.x,
		y=w1 * p1.y + w2 * p2.y,
		z=w1 * p1.z + w2 * p2.z,
		vx=w1 * p1.vx + w2 * p2.vx,
		vy=w1 * p1.vy + w2 * p2.vy,
		vz=w1 * p1.vz + w2 * p2.vz,
	)


def orbit_from_elements(
	G: float,
	primary,
	m: float = 0.0,
	a: float = 1.0,
	e: float = 0.0,
	inc: float = 0.0,
	Omega: float = 0.0,
	omega: float = 0.0,
	f: float = 0.0,
	r: float = 0.0,
	id: int | None = None,
) -> Particle:
	if e < 0.0:
		raise ValueError("eccentricity must be non-negative")
	if e == 1.0:
		raise ValueError("parabolic orbits cannot be specified by a semi-major axis")
	if (e > 1.0 and a > 0.0) or (e < 1.0 and a < 0.0):
		raise ValueError("bound orbits need a > 0 and unbound orbits a < 0")
	if e > 1.0 and math.cos(f) < -1.0 / e:
		raise ValueError("true anomaly beyond the asymptote of a hyperbolic orbit")
	mu = float(G) * (float(primary.m) + float(m))
	if mu <= 0.0:
		raise ValueError("orbit requires a positive gravitational parameter G (m + m_primary)")

	p = a * (1.0 - e * e)
	dist = p / (1.0 + e * math.cos(f))
	v0 = math.sqrt(mu / p)

	cO, sO = math.cos(Omega), math.sin(Omega)
	co, so = math.cos(omega), math.sin(omega)
	ci, si = math.cos(inc), math.sin(inc)
	cf, sf = math.cos(f), math.sin(f)
	cof, sof = math.cos(omega + f), math.sin(omega + f)

	x = dist * (cO * cof - sO * sof * ci)
	y = dist * (sO * cof + cO * sof * ci)
	z = dist * sof * si

	vx = v0 * ((e + cf) * (-ci * co * sO - cO * so) - sf * (co * cO - ci * so * sO))
	vy = v0 * ((e + cf) * (ci * co * cO - sO * so) - sf * (co * sO + ci * so * cO))
	vz = v0 * ((e + cf) * co * si - sf * si * so)

	return Particle(
		m=m,
		x=primary.x + x,
		y=primary.y + y,
		z=primary.z + z,
		vx=primary.vx + vx,
		vy=primary.vy + vy,
		vz=primary.vz + vz,
		r=r,
		id=id,
	)


def move_to_com(sim: "Simulation") -> None:
	store = sim.particles
	if len(store) == 0:
		return
	_, x_cm, v_cm = center_of_mass(store.mass, store.pos, store.vel)
	store.pos -= x_cm
	store.vel -= v_cm


def output_check(sim: "Simulation", interval: float) -> bool:
	if interval <= 0.0:
		return False
	t = float(sim.t)
	dt_last = float(sim.dt_last_done)
	if dt_last == 0.0:
		return t == 0.0
	t_prev = t - dt_last
	return math.floor(t / interval) != math.floor(t_prev / interval)


__all__ = [
	"center_of_mass",
	"get_com",
	"orbit_from_elements",
	"move_to_com",
	"output_check",
]
