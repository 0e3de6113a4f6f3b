from __future__ import annotations
import math
from enum import Enum

import numpy as np

"""
This module centralizes the mode selectors and numerical constants used across the integration pipeline. Each configuration axis (boundary, gravity, collision, integrator) is a closed Enum whose values are the lower-case names accepted by SimConfig, so string configuration keeps working while dispatch stays exhaustive. It also holds the Gauss-Radau spacings for IAS15, the change-of-basis matrices derived from them, and the WHFast symplectic corrector coefficients.

"""


class BoundaryKind(str, Enum):
	NONE = "none"
	OPEN = "open"
	PERIODIC = "periodic"
	SHEAR = "shear"


class GravityMode(str, Enum):
	NONE = "none"
	BASIC = "basic"
	COMPENSATED = "compensated"
	TREE = "tree"


class CollisionMode(str, Enum):
	NONE = "none"
	DIRECT = "direct"
	TREE = "tree"


class IntegratorKind(str, Enum):
	IAS15 = "ias15"
	WHFAST = "whfast"
	SEI = "sei"
	WH = "wh"
	LEAPFROG = "leapfrog"
	HYBRID = "hybrid"


class CollisionEffect(str, Enum):
	BOUNCE = "bounce"
	MERGE = "merge"
	HALT = "halt"
	IGNORE = "ignore"


class StopReason(str, Enum):
	STOPPED_AT_TMAX = "stopped_at_tmax"
	STOPPED_BY_EXIT_FLAG = "stopped_by_exit_flag"
	STOPPED_BY_NONFINITE = "stopped_by_nonfinite"


WH_FAMILY = frozenset({IntegratorKind.WHFAST, IntegratorKind.WH, IntegratorKind.HYBRID})


class IntegratorConstants:
	IAS15_SAFETY_FACTOR = 0.25
	IAS15_PC_TOLERANCE = 1.0e-16
	IAS15_MAX_ITERATIONS = 12
	IAS15_MAX_PREDICTOR_RATIO = 20.0

	KEPLER_NEWTON_ITERATIONS = 32
	KEPLER_LAGUERRE_ITERATIONS = 64

	TREE_MAX_DEPTH = 64
	SHADOW_RENORM_THRESHOLD = 1.0e50

	HYBRID_DEFAULT_HYSTERESIS = 1.2

	WHFAST_CORRECTOR_ORDERS = (0, 3, 5, 7)


# Gauss-Radau spacings on [0, 1]
GAUSS_RADAU_H = np.array([
	0.0,
	0.0562625605369221464656521910318,
	0.180240691736892364987579942780,
	0.352624717113169637373907769648,
	0.547153626330555383001448554766,
	0.734210177215410531523210605558,
	0.885320946839095768090359771030,
	0.977520613561287501891174488626,
])


def _radau_basis_matrices(h: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
	"""
	Column k of C holds the power-series coefficients (of s^1 .. s^7) of the
	Newton basis polynomial s * (s - h1) * ... * (s - hk), so b = C @ g.
	D = C^-1 maps the power coefficients b back to the divided differences g.
	"""
	C = np.zeros((7, 7))
	poly = np.array([1.0])
	for k in range(7):
		if k > 0:
			poly = np.convolve(poly, np.array([1.0, -h[k]]))
		coeffs = poly[::-1]
		C[: k + 1, k] = coeffs[: k + 1]
	D = np.linalg.inv(C)
	return C, D


RADAU_C, RADAU_D = _radau_basis_matrices(GAUSS_RADAU_H)

# Binomial weights for extrapolating the b coefficients to the next step
PREDICTOR_BINOMIAL = np.array([
	[math.comb(j + 1, k + 1) if j >= k else 0 for j in range(7)]
	for k in range(7)
], dtype=float)

# Integration weights: velocity uses b_k / (k + 2), position uses b_k / ((k + 2)(k + 3))
RADAU_VEL_WEIGHTS = np.array([1.0 / (k + 2) for k in range(7)])
RADAU_POS_WEIGHTS = np.array([1.0 / ((k + 2) * (k + 3)) for k in range(7)])


WHFAST_CORRECTOR_A = (
	0.41833001326703777398908601289259374469640768464934,
	0.83666002653407554797817202578518748939281536929867,
	1.2549900398011133219672580386777812340892230539480,
)
WHFAST_CORRECTOR_B3 = (
	-0.024900596027799867499350357910273437184309981229127,
)
WHFAST_CORRECTOR_B5 = (
	-0.0083001986759332891664501193034244790614366604097090,
	0.041500993379666445832250596517122395307183302048545,
)
WHFAST_CORRECTOR_B7 = (
	0.0024926811426922105779030593952776964450539008582219,
	-0.018270923246702131478062356884535264841652263842597,
	0.053964399093127498721470765475840831744212430834063,
)


__all__ = [
	"BoundaryKind",
	"GravityMode",
	"CollisionMode",
	"IntegratorKind",
	"CollisionEffect",
	"StopReason",
	"WH_FAMILY",
	"IntegratorConstants",
	"GAUSS_RADAU_H",
	"RADAU_C",
	"RADAU_D",
	"PREDICTOR_BINOMIAL",
	"RADAU_VEL_WEIGHTS",
	"RADAU_POS_WEIGHTS",
	"WHFAST_CORRECTOR_A",
	"WHFAST_CORRECTOR_B3",
	"WHFAST_CORRECTOR_B5",
	"WHFAST_CORRECTOR_B7",
]
