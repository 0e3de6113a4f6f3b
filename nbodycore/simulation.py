from __future__ import annotations
import logging
from dataclasses import fields
from typing import Any, Callable, List, Optional

import numpy as np

from .boundary import ZERO_GHOST, GhostBox, check_boundaries, ghost_shifts
from .collisions import Collision, find_collisions, resolve_collisions
from .constants import BoundaryKind, CollisionMode, StopReason
from .diagnostics import Diagnostics
from .errors import ConfigurationError
from .gravity import compute_accelerations
from .integrator import Integrator
from .orbit import Orbit, compute_orbit
from .particle import Particle, ParticleView
from .particle_store import ParticleStore
from .sim_config import SimConfig
from .simulation_validator import SimulationValidator
from .tools import center_of_mass, move_to_com, orbit_from_elements
from .variational import VariationalTracker

"""
This module implements the Simulation class, the orchestrator that owns the particle store, the configuration, the active integrator and the shadow-particle tracker and drives them through one timestep at a time. A step validates the configuration and (re)selects the integrator, recomputes the ghost boxes for the current time, lets the integrator advance (forces are evaluated on demand through update_acceleration), advances the clock by the step actually taken, and then, each on a synchronised state, enforces the boundary, searches for and resolves collisions, runs the post-timestep callback and updates the chaos indicators. A step that leaves any non-finite value behind is rolled back to the checkpoint taken at its start and halts the run with STOPPED_BY_NONFINITE; a step during which the exit flag was raised halts with STOPPED_BY_EXIT_FLAG. integrate repeats steps until tmax, optionally shortening the last step so that the final time equals tmax exactly, and restores the nominal timestep afterwards. User hooks are plain optional attributes: additional_forces, post_timestep_modifications, heartbeat, coefficient_of_restitution and collision_resolve.

"""

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = frozenset(f.name for f in fields(SimConfig))


class Simulation:

	def __init__(self, config: Optional[SimConfig] = None, **overrides: Any) -> None:
		cfg = config.copy() if config is not None else SimConfig()
		for key, value in overrides.items():
			if key not in _CONFIG_FIELDS:
				raise ConfigurationError(f"unknown configuration parameter {key!r}")
			setattr(cfg, key, value)
		self.config: SimConfig = cfg

		self.particles = ParticleStore()
		self.particles.N_active = cfg.N_active
		self.t: float = 0.0
		self.dt: float = float(cfg.dt)
		self.dt_last_done: float = 0.0

		self.tree = None
		self.ghost_boxes: List[GhostBox] = [ZERO_GHOST]
		self.variational = VariationalTracker(self)

		self.exit_flag = False
		self.stop_reason: Optional[StopReason] = None
		self.collisions_plog = 0.0
		self.collisions_Nlog = 0
		self.last_collisions: List[Collision] = []

		self.additional_forces: Optional[Callable[["Simulation"], None]] = None
		self.post_timestep_modifications: Optional[Callable[["Simulation"], None]] = None
		self.heartbeat: Optional[Callable[["Simulation"], None]] = None
		self.coefficient_of_restitution: Optional[Callable[["Simulation", float], float]] = None
		self.collision_resolve: Optional[Callable] = None

		self._integrator: Optional[Integrator] = None

	@property
	def N(self) -> int:
		return len(self.particles)

	@property
	def N_active(self) -> int:
		return self.particles.N_active

	@N_active.setter
	def N_active(self, value: Optional[int]) -> None:
		self.particles.N_active = value
		self.config.N_active = value

	@property
	def N_var(self) -> int:
		return self.variational.N_var

	@property
	def G(self) -> float:
		return float(self.config.G)

	@property
	def softening(self) -> float:
		return float(self.config.softening)

	@property
	def integrator(self) -> Integrator:
		if self._integrator is None or self._integrator.kind is not self.config.integrator_kind:
			if self._integrator is not None:
				# the outgoing scheme may still hold the state in its own coordinates
				self._integrator.synchronize()
			self._integrator = Integrator(self)
		return self._integrator

	def configure_box(self, root_size: float, root_nx: int = 1, root_ny: int = 1, root_nz: int = 1) -> None:
		self.config.configure_box(root_size, root_nx, root_ny, root_nz)
		self.tree = None

	# particles

	def add(self, particle=None, primary=None, **kwargs) -> ParticleView:
		if particle is None:
			if "a" in kwargs:
				if primary is None:
					if len(self.particles) == 0:
						raise ValueError("orbital elements need a primary; add the central body first")
					primary = self.particles[0]
				elif isinstance(primary, (int, np.integer)):
					primary = self.particles[int(primary)]
				particle = orbit_from_elements(self.G, primary, **kwargs)
			else:
				particle = Particle(**kwargs)
		elif kwargs:
			raise TypeError("pass either a particle or keyword arguments, not both")
		if isinstance(particle, ParticleView):
			particle = particle.copy()

		self.synchronize()
		idx = self.particles.add(particle)
		self.variational.add_row()
		self.reset_integrator_state()
		return self.particles[idx]

	def remove(self, index: int) -> None:
		self.synchronize()
		self.particles.remove(index)
		self.variational.remove(index)
		if self.config.N_active is not None:
			self.config.N_active = self.particles.N_active
		self.reset_integrator_state()

	def remove_by_id(self, pid: int) -> None:
		self.remove(self.particles.index_of(pid))

	# forces

	def update_acceleration(self, ignore_10: bool = False) -> None:
		compute_accelerations(self, self.ghost_boxes, ignore_10)
		if self.additional_forces is not None:
			self.additional_forces(self)
		self.variational.compute_accelerations(self.ghost_boxes)

	# stepping

	def _prepare(self) -> Integrator:
		self.config.validate()
		integ = self.integrator
		self.particles.N_active = self.config.N_active
		integ.validate()
		return integ

	def _ghosts(self) -> List[GhostBox]:
		cfg = self.config
		return ghost_shifts(
			cfg.boundary_kind, cfg.boxsize,
			cfg.nghostx, cfg.nghosty, cfg.nghostz,
			self.t, cfg.shear_omega,
		)

	def _checkpoint(self, integ: Integrator) -> dict:
		return {
			"particles": self.particles.snapshot(),
			"t": self.t,
			"dt": self.dt,
			"dt_last_done": self.dt_last_done,
			"payload": integ.checkpoint(),
			"variational": self.variational.snapshot(),
			"plog": self.collisions_plog,
			"Nlog": self.collisions_Nlog,
		}

	def _restore_checkpoint(self, snap: dict) -> None:
		self.particles.restore(snap["particles"])
		self.t = snap["t"]
		self.dt = snap["dt"]
		self.dt_last_done = snap["dt_last_done"]
		self.integrator.restore(snap["payload"])
		self.variational.restore(snap["variational"])
		self.collisions_plog = snap["plog"]
		self.collisions_Nlog = snap["Nlog"]
		self.config.N_active = snap["particles"]["n_active"]
		self.tree = None

	def step(self) -> bool:
		integ = self._prepare()
		cfg = self.config
		self.exit_flag = False
		self.stop_reason = None
		snap = self._checkpoint(integ)

		self.ghost_boxes = self._ghosts()
		dt_done = integ.advance(self.dt)
		self.t += dt_done
		self.dt_last_done = dt_done

		if cfg.boundary_kind is not BoundaryKind.NONE:
			self.synchronize()
			doomed = check_boundaries(self)
			for idx in sorted(doomed, reverse=True):
				self.remove(idx)
			self.integrator.mark_particles_changed()

		self.last_collisions = []
		if cfg.collision_mode is not CollisionMode.NONE:
			self.synchronize()
			self.last_collisions = find_collisions(self)
			if self.last_collisions:
				resolve_collisions(self, self.last_collisions)
				self.integrator.mark_particles_changed()

		if self.post_timestep_modifications is not None:
			self.synchronize()
			self.post_timestep_modifications(self)
			self.integrator.mark_particles_changed()

		if self.variational.active:
			self.synchronize()
			self.variational.update(dt_done)

		if not SimulationValidator.state_is_finite(self.particles, self.variational):
			SimulationValidator.report_invalid_state("step", self.particles, self.t)
			self._restore_checkpoint(snap)
			self.stop_reason = StopReason.STOPPED_BY_NONFINITE
			logger.error("non-finite state after step; restored t=%g and halted", self.t)
			return True

		if self.exit_flag:
			self.stop_reason = StopReason.STOPPED_BY_EXIT_FLAG
			return True
		return False

	def integrate(self, tmax: float) -> StopReason:
		self._prepare()
		cfg = self.config
		tmax = float(tmax)
		forever = tmax == 0.0
		if not forever and (tmax - self.t) * self.dt < 0.0:
			self.dt = -self.dt
		direction = 1.0 if self.dt > 0.0 else -1.0
		last_full_dt = self.dt
		self.exit_flag = False
		self.stop_reason = None

		def reached() -> bool:
			return (not forever) and direction * (self.t - tmax) >= 0.0

		reason: Optional[StopReason] = None
		if self.heartbeat is not None:
			self.heartbeat(self)
		if self.exit_flag:
			reason = StopReason.STOPPED_BY_EXIT_FLAG

		while reason is None:
			if reached():
				reason = StopReason.STOPPED_AT_TMAX
				break
			shortened = False
			if cfg.exact_finish_time and not forever:
				if direction * (self.t + self.dt - tmax) > 0.0:
					self.synchronize()
					self.dt = tmax - self.t
					shortened = True
				else:
					last_full_dt = self.dt
			requested = self.dt
			halted = self.step()
			if shortened and self.stop_reason is not StopReason.STOPPED_BY_NONFINITE and self.dt_last_done == requested:
				self.t = tmax
			if self.heartbeat is not None:
				self.heartbeat(self)
			if halted:
				reason = self.stop_reason
			elif self.exit_flag:
				reason = StopReason.STOPPED_BY_EXIT_FLAG

		self.synchronize()
		if cfg.exact_finish_time:
			self.dt = last_full_dt
		self.stop_reason = reason
		logger.info("integration stopped at t=%g: %s", self.t, reason.value)
		return reason

	def synchronize(self) -> None:
		if self._integrator is not None:
			self._integrator.synchronize()

	def reset_integrator_state(self) -> None:
		if self._integrator is not None:
			self._integrator.reset()
		self.tree = None

	# diagnostics

	def _resolve(self, p):
		if isinstance(p, (int, np.integer)):
			return self.particles[int(p)]
		return p

	def _jacobi_primary(self, index: int) -> Particle:
		store = self.particles
		m, x, v = center_of_mass(store.mass[:index], store.pos[:index], store.vel[:index])
		return Particle(m=m, x=x[0], y=x[1], z=x[2], vx=v[0], vy=v[1], vz=v[2])

	def compute_orbit(self, particle, primary=None) -> Orbit:
		self.synchronize()
		p = self._resolve(particle)
		if primary is None:
			if not isinstance(p, ParticleView) or p.index == 0:
				raise ValueError("compute_orbit needs an explicit primary for this particle")
			prim = self._jacobi_primary(p.index)
		else:
			prim = self._resolve(primary)
		return compute_orbit(self.G, p, prim)

	def compute_total_energy(self) -> float:
		self.synchronize()
		return Diagnostics(self).energy()

	def move_to_center_of_mass(self) -> None:
		self.synchronize()
		move_to_com(self)
		self.reset_integrator_state()

	def get_com(self) -> Particle:
		self.synchronize()
		store = self.particles
		m, x, v = center_of_mass(store.mass, store.pos, store.vel)
		return Particle(m=m, x=x[0], y=x[1], z=x[2], vx=v[0], vy=v[1], vz=v[2])

	def megno_init(self, delta: float = 1.0e-16, rng=None) -> None:
		self.synchronize()
		self.variational.megno_init(delta, rng)
		self.reset_integrator_state()

	def calculate_megno(self) -> float:
		return self.variational.current_Y()

	def calculate_lyapunov(self) -> float:
		return self.variational.lyapunov_estimate()

	def __repr__(self) -> str:
		cfg = self.config
		return (f"Simulation(N={self.N}, t={self.t}, dt={self.dt}, "
				f"integrator={cfg.integrator_kind.value}, gravity={cfg.gravity_mode.value})")


__all__ = ["Simulation"]
