"""
Compensated (Kahan) summation helpers.

KahanVector accumulates whole numpy arrays element-wise and compensated_add
updates an array in place. Both keep the running compensation term so that many small
contributions of alternating sign (pair forces, position increments) do not
lose low-order bits. Inputs are assumed finite.
"""

from __future__ import annotations

import numpy as np


class KahanVector:
	def __init__(self, shape) -> None:
		self.total = np.zeros(shape, dtype=np.float64)
		self.comp = np.zeros(shape, dtype=np.float64)

	def add(self, x: np.ndarray) -> None:
		y = x - self.comp
		t = self.total + y
		self.comp = (t - self.total) - y
		self.total = t


def compensated_add(value: np.ndarray, comp: np.ndarray, delta: np.ndarray) -> None:
	"""In-place `value += delta` carrying the running error in `comp`."""
	y = delta - comp
	t = value + y
	comp[...] = (t - value) - y
	value[...] = t


__all__ = ["KahanVector", "compensated_add"]
