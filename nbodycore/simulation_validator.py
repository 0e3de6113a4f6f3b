"""
This module provides validation utilities for N-body simulation states.

The SimulationValidator class offers static methods to check that the particle
arrays are finite (positions, velocities, accelerations, masses and, when present,
shadow particles) and to report the offending rows of an invalid state through the
package logger. The orchestrator calls state_is_finite after every step; a failing
check restores the pre-step checkpoint and halts with a non-finite stop reason, so
the report is the only place the broken values are visible.
"""

from __future__ import annotations
import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class SimulationValidator:
	@staticmethod
	def state_is_finite(store, variational=None) -> bool:
		if len(store) == 0:
			return True
		for arr in (store.pos, store.vel, store.acc, store.mass):
			if not np.all(np.isfinite(arr)):
				return False
		if variational is not None and variational.active:
			if not (np.all(np.isfinite(variational.dpos)) and np.all(np.isfinite(variational.dvel))):
				return False
		return True

	@staticmethod
	def bad_rows(store) -> np.ndarray:
		bad = ~np.isfinite(store.pos).all(axis=1)
		bad |= ~np.isfinite(store.vel).all(axis=1)
		bad |= ~np.isfinite(store.acc).all(axis=1)
		bad |= ~np.isfinite(store.mass)
		return np.flatnonzero(bad)

	@staticmethod
	def report_invalid_state(label: str, store, t: Optional[float] = None) -> None:
		rows = SimulationValidator.bad_rows(store)
		logger.error("[invalid] %s (t=%s): %d particle(s) with non-finite state", label, t, rows.size)
		for i in rows[:20]:
			logger.error(
				"  particle %d (id %d): m=%r pos=%r vel=%r acc=%r",
				int(i), int(store.ids[i]), float(store.mass[i]),
				store.pos[i].tolist(), store.vel[i].tolist(), store.acc[i].tolist(),
			)
		if rows.size > 20:
			logger.error("  ... %d more", rows.size - 20)


__all__ = ["SimulationValidator"]
