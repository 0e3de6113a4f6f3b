"""
This initialization file serves as the main entry point for the nbodycore package,
exposing the public API through a flat namespace.

It re-exports the Simulation orchestrator and its configuration (SimConfig and the mode
enums), the particle value and view types, the integrator dispatch and its schemes,
the universal-variable Kepler solver and coordinate transforms, the gravity, tree,
boundary and collision engines, the variational tracker behind MEGNO, the orbit and
tool helpers, the diagnostics and recorder, and the package error types and logging
setup. Internal modules stay importable on their own for finer-grained use.
"""

from .constants import (
    BoundaryKind,
    GravityMode,
    CollisionMode,
    IntegratorKind,
    CollisionEffect,
    StopReason,
    IntegratorConstants,
)
from .errors import NBodyError, ConfigurationError, DiagnosticMisuseError
from .logging_config import setup_logging
from .sim_config import SimConfig
from .simulation_validator import SimulationValidator

from .particle import Particle, ParticleView
from .particle_store import ParticleStore
from .simulation import Simulation
from .integrator import Integrator, SCHEMES
from .integration_scheme_base import IntegrationScheme
from .ias15_scheme import IAS15Scheme
from .whfast_scheme import WHFastScheme
from .wh_scheme import WHScheme
from .sei_scheme import SEIScheme
from .leapfrog_scheme import LeapfrogScheme
from .hybrid_scheme import HybridScheme

from .kepler_solver import UniversalVariableKeplerSolver
from .coordinates import inertial_to_jacobi, jacobi_to_inertial, jacobi_masses
from .gravity import compute_accelerations, potential_energy
from .geometry_cache import geometry_buffers
from .tree import SpatialTree, TreeCell
from .boundary import GhostBox, ghost_shifts, check_boundaries
from .collisions import Collision, find_collisions, resolve_collisions, hard_sphere, merge, halt
from .tangent_map import TangentMap
from .variational import VariationalTracker

from .orbit import Orbit, compute_orbit
from .tools import get_com, orbit_from_elements, output_check
from .diagnostics import Diagnostics
from .recorder import DiagnosticsRecorder


__all__ = [
    "BoundaryKind",
    "GravityMode",
    "CollisionMode",
    "IntegratorKind",
    "CollisionEffect",
    "StopReason",
    "IntegratorConstants",
    "NBodyError",
    "ConfigurationError",
    "DiagnosticMisuseError",
    "setup_logging",
    "SimConfig",
    "SimulationValidator",
    "Particle",
    "ParticleView",
    "ParticleStore",
    "Simulation",
    "Integrator",
    "SCHEMES",
    "IntegrationScheme",
    "IAS15Scheme",
    "WHFastScheme",
    "WHScheme",
    "SEIScheme",
    "LeapfrogScheme",
    "HybridScheme",
    "UniversalVariableKeplerSolver",
    "inertial_to_jacobi",
    "jacobi_to_inertial",
    "jacobi_masses",
    "compute_accelerations",
    "potential_energy",
    "geometry_buffers",
    "SpatialTree",
    "TreeCell",
    "GhostBox",
    "ghost_shifts",
    "check_boundaries",
    "Collision",
    "find_collisions",
    "resolve_collisions",
    "hard_sphere",
    "merge",
    "halt",
    "TangentMap",
    "VariationalTracker",
    "Orbit",
    "compute_orbit",
    "get_com",
    "orbit_from_elements",
    "output_check",
    "Diagnostics",
    "DiagnosticsRecorder",
]
