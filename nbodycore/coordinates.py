"""
Coordinate transforms used by the Wisdom-Holman family.

Jacobi coordinates: body i >= 1 is measured from the centre of mass of bodies
0..i-1 (interior mass eta_{i-1}), and slot 0 holds the barycentre. The same
linear map applies to positions, velocities and accelerations, so one pair of
functions serves all three. Democratic heliocentric coordinates keep positions
relative to the central body and velocities relative to the barycentre; slot 0
again holds the barycentre. All functions are vectorised over bodies and
require a positive mass in slot 0.
"""

from __future__ import annotations
from typing import Tuple

import numpy as np


def jacobi_masses(mass: np.ndarray) -> np.ndarray:
	return np.cumsum(np.asarray(mass, dtype=float))


def inertial_to_jacobi(vec: np.ndarray, mass: np.ndarray) -> np.ndarray:
	mass = np.asarray(mass, dtype=float)
	eta = jacobi_masses(mass)
	weighted = np.cumsum(mass[:, None] * vec, axis=0)
	out = np.empty_like(vec)
	out[1:] = vec[1:] - weighted[:-1] / eta[:-1, None]
	out[0] = weighted[-1] / eta[-1]
	return out


def jacobi_to_inertial(jvec: np.ndarray, mass: np.ndarray) -> np.ndarray:
	mass = np.asarray(mass, dtype=float)
	eta = jacobi_masses(mass)
	n = jvec.shape[0]
	out = np.empty_like(jvec)
	if n == 1:
		out[0] = jvec[0]
		return out
	scaled = np.zeros_like(jvec)
	scaled[1:] = (mass[1:] / eta[1:])[:, None] * jvec[1:]
	# tail[i] = sum_{k >= i} (m_k / eta_k) x'_k
	tail = np.cumsum(scaled[::-1], axis=0)[::-1]
	out[1:] = jvec[1:] + jvec[0] - tail[1:]
	out[0] = jvec[0] - tail[1]
	return out


def to_democratic_heliocentric(pos: np.ndarray, vel: np.ndarray, mass: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
	mass = np.asarray(mass, dtype=float)
	mtot = float(np.sum(mass))
	x_cm = (mass[:, None] * pos).sum(axis=0) / mtot
	v_cm = (mass[:, None] * vel).sum(axis=0) / mtot
	hpos = pos - pos[0]
	hvel = vel - v_cm
	hpos[0] = x_cm
	hvel[0] = v_cm
	return hpos, hvel


def from_democratic_heliocentric(hpos: np.ndarray, hvel: np.ndarray, mass: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
	mass = np.asarray(mass, dtype=float)
	mtot = float(np.sum(mass))
	m0 = float(mass[0])
	x0 = hpos[0] - (mass[1:, None] * hpos[1:]).sum(axis=0) / mtot
	v0 = hvel[0] - (mass[1:, None] * hvel[1:]).sum(axis=0) / m0
	pos = np.empty_like(hpos)
	vel = np.empty_like(hvel)
	pos[0] = x0
	pos[1:] = hpos[1:] + x0
	vel[0] = v0
	vel[1:] = hvel[1:] + hvel[0]
	return pos, vel


__all__ = [
	"jacobi_masses",
	"inertial_to_jacobi",
	"jacobi_to_inertial",
	"to_democratic_heliocentric",
	"from_democratic_heliocentric",
]
