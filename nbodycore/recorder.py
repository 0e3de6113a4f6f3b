"""
This module records time series of simulation diagnostics.

DiagnosticsRecorder is meant to be installed as the heartbeat of a Simulation. Each
call synchronises the simulation and appends one row with the time, total energy,
relative energy error against the first sample, particle count, collision count and
(when the shadow particles exist) the MEGNO value. With an interval set, rows are
only taken when the time crosses a multiple of it. to_frame returns the rows as a
pandas DataFrame indexed by sample number.
"""

from __future__ import annotations
import logging
import math
from typing import TYPE_CHECKING, Callable, List, Optional

import pandas as pd

from .diagnostics import Diagnostics
from .tools import output_check

if TYPE_CHECKING:
	from .simulation import Simulation

logger = logging.getLogger(__name__)

COLUMNS = ["t", "energy", "rel_energy_error", "N", "collisions", "megno"]


class DiagnosticsRecorder:
	def __init__(self, interval: Optional[float] = None, chain: Optional[Callable] = None) -> None:
		self.interval = interval
		self.chain = chain
		self.rows: List[dict] = []
		self._E0: Optional[float] = None

	def __len__(self) -> int:
		return len(self.rows)

	def __call__(self, sim: "Simulation") -> None:
		if self.chain is not None:
			self.chain(sim)
		if self.interval is not None and self.rows and not output_check(sim, self.interval):
			return
		self.sample(sim)

	def sample(self, sim: "Simulation") -> dict:
		sim.synchronize()
		energy = Diagnostics(sim).energy()
		if self._E0 is None:
			self._E0 = energy
		if self._E0 != 0.0:
			rel = abs((energy - self._E0) / self._E0)
		else:
			rel = abs(energy - self._E0)
		megno = sim.calculate_megno() if sim.variational.active else math.nan
		row = {
			"t": float(sim.t),
			"energy": energy,
			"rel_energy_error": rel,
			"N": len(sim.particles),
			"collisions": int(sim.collisions_Nlog),
			"megno": megno,
		}
		self.rows.append(row)
		return row

	def to_frame(self) -> pd.DataFrame:
		return pd.DataFrame(self.rows, columns=COLUMNS)

	def reset(self) -> None:
		self.rows.clear()
		self._E0 = None


__all__ = ["DiagnosticsRecorder", "COLUMNS"]
