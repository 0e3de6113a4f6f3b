"""
This module implements the second-order drift-kick-drift leapfrog.

The LeapfrogScheme class drifts positions for half a step, evaluates the
accelerations once at the midpoint, kicks velocities for the full step and drifts
the remaining half. Shadow particles follow the same composition with the
linearised accelerations evaluated at the same midpoint. The scheme is always
synchronised at the end of a step and keeps no private state.
"""

from __future__ import annotations
from .integration_scheme_base import IntegrationScheme


class LeapfrogScheme(IntegrationScheme):
    name = "leapfrog"

    def advance(self, dt: float) -> float:
        h2 = 0.5 * dt
        self.drift(h2)
        self.sim.update_acceleration()
        self.kick(dt)
        self.drift(h2)
        return dt
