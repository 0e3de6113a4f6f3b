from __future__ import annotations
from dataclasses import dataclass, fields, replace
import math

from .constants import (
    BoundaryKind,
    GravityMode,
    CollisionMode,
    IntegratorKind,
    IntegratorConstants,
    WH_FAMILY,
)
from .errors import ConfigurationError

"""
This central configuration module defines all simulation parameters through the SimConfig dataclass. Key parameters include the gravitational constant and softening, the timestep, box geometry (root box size and counts, ghost box counts), the four mode selectors (boundary, gravity, collision, integrator), the tree opening angle, exact-finish behaviour and the per-integrator tunables. Mode selectors accept either the Enum members or their string values. The validate method rejects invalid values and mode combinations before any step runs, and configure_box mirrors the usual box setup helper. The class is the single source of truth for simulation behaviour; every component reads it through the owning Simulation.

"""


def _coerce(enum_cls, value, name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(f"unknown {name} {value!r}; expected one of {allowed}") from None


@dataclass
class SimConfig:
    G: float = 1.0
    softening: float = 0.0
    dt: float = 0.001

    root_size: float = 0.0
    root_nx: int = 1
    root_ny: int = 1
    root_nz: int = 1
    nghostx: int = 0
    nghosty: int = 0
    nghostz: int = 0

    boundary: BoundaryKind | str = BoundaryKind.NONE
    gravity: GravityMode | str = GravityMode.BASIC
    collision: CollisionMode | str = CollisionMode.NONE
    integrator: IntegratorKind | str = IntegratorKind.IAS15

    opening_angle2: float = 0.25
    tree_quadrupole: bool = True
    exact_finish_time: bool = True
    force_is_velocity_dependent: bool = False
    N_active: int | None = None

    ias15_epsilon: float = 1.0e-9
    ias15_min_dt: float = 0.0
    ias15_epsilon_global: bool = True

    whfast_corrector: int = 0
    whfast_safe_mode: bool = True

    sei_omega: float | None = None
    sei_omegaz: float | None = None

    hybrid_switch_ratio: float = 8.0
    hybrid_hysteresis: float = IntegratorConstants.HYBRID_DEFAULT_HYSTERESIS

    minimum_collision_velocity: float = 0.0

    def copy(self) -> "SimConfig":
        return replace(self)

    @property
    def boundary_kind(self) -> BoundaryKind:
        return _coerce(BoundaryKind, self.boundary, "boundary")

    @property
    def gravity_mode(self) -> GravityMode:
        return _coerce(GravityMode, self.gravity, "gravity")

    @property
    def collision_mode(self) -> CollisionMode:
        return _coerce(CollisionMode, self.collision, "collision")

    @property
    def integrator_kind(self) -> IntegratorKind:
        return _coerce(IntegratorKind, self.integrator, "integrator")

    @property
    def root_n(self) -> int:
        return int(self.root_nx) * int(self.root_ny) * int(self.root_nz)

    @property
    def boxsize(self) -> tuple[float, float, float]:
        rs = float(self.root_size)
        return (rs * int(self.root_nx), rs * int(self.root_ny), rs * int(self.root_nz))

    @property
    def has_box(self) -> bool:
        return float(self.root_size) > 0.0

    @property
    def shear_omega(self) -> float:
        if self.sei_omega is None:
            return 0.0
        return float(self.sei_omega)

    @property
    def omegaz(self) -> float:
        if self.sei_omegaz is None:
            return self.shear_omega
        return float(self.sei_omegaz)

    def configure_box(self, root_size: float, root_nx: int = 1, root_ny: int = 1, root_nz: int = 1) -> None:
        if not (math.isfinite(root_size) and root_size > 0.0):
            raise ConfigurationError("root_size must be a positive finite number")
        for n in (root_nx, root_ny, root_nz):
            if int(n) < 1:
                raise ConfigurationError("root box counts must be at least 1")
        self.root_size = float(root_size)
        self.root_nx = int(root_nx)
        self.root_ny = int(root_ny)
        self.root_nz = int(root_nz)

    def validate(self) -> None:
        boundary = self.boundary_kind
        gravity = self.gravity_mode
        collision = self.collision_mode
        integrator = self.integrator_kind

        if not math.isfinite(self.G):
            raise ConfigurationError("G must be finite")
        if not (math.isfinite(self.softening) and self.softening >= 0.0):
            raise ConfigurationError("softening must be a non-negative finite number")
        if not math.isfinite(self.dt) or self.dt == 0.0:
            raise ConfigurationError("dt must be finite and non-zero")

        for name in ("nghostx", "nghosty", "nghostz"):
            if int(getattr(self, name)) < 0:
                raise ConfigurationError(f"{name} must be non-negative")
        for name in ("root_nx", "root_ny", "root_nz"):
            if int(getattr(self, name)) < 1:
                raise ConfigurationError(f"{name} must be at least 1")
        if self.root_size < 0.0 or not math.isfinite(self.root_size):
            raise ConfigurationError("root_size must be a non-negative finite number")

        if boundary is not BoundaryKind.NONE and not self.has_box:
            raise ConfigurationError(f"boundary {boundary.value!r} requires a box; call configure_box first")
        if boundary is BoundaryKind.SHEAR and self.sei_omega is None:
            raise ConfigurationError("shear boundary requires sei_omega (the shear rate)")

        if collision is CollisionMode.TREE and gravity is not GravityMode.TREE:
            raise ConfigurationError("tree collision search requires tree gravity for its spatial index")
        if self.opening_angle2 < 0.0 or not math.isfinite(self.opening_angle2):
            raise ConfigurationError("opening_angle2 must be a non-negative finite number")

        if integrator in WH_FAMILY and boundary in (BoundaryKind.PERIODIC, BoundaryKind.SHEAR):
            raise ConfigurationError(f"integrator {integrator.value!r} requires an open or unbounded domain")
        if integrator is IntegratorKind.SEI:
            if self.sei_omega is None or not math.isfinite(self.sei_omega) or self.sei_omega == 0.0:
                raise ConfigurationError("SEI requires a finite non-zero sei_omega")
            if self.sei_omegaz is not None and (not math.isfinite(self.sei_omegaz) or self.sei_omegaz == 0.0):
                raise ConfigurationError("sei_omegaz must be finite and non-zero")

        if self.ias15_epsilon < 0.0 or not math.isfinite(self.ias15_epsilon):
            raise ConfigurationError("ias15_epsilon must be a non-negative finite number")
        if self.ias15_min_dt < 0.0:
            raise ConfigurationError("ias15_min_dt must be non-negative")
        if int(self.whfast_corrector) not in IntegratorConstants.WHFAST_CORRECTOR_ORDERS:
            raise ConfigurationError(
                f"whfast_corrector must be one of {IntegratorConstants.WHFAST_CORRECTOR_ORDERS}"
            )
        if not self.hybrid_switch_ratio > 0.0:
            raise ConfigurationError("hybrid_switch_ratio must be positive")
        if not self.hybrid_hysteresis >= 1.0:
            raise ConfigurationError("hybrid_hysteresis must be at least 1")
        if self.minimum_collision_velocity < 0.0:
            raise ConfigurationError("minimum_collision_velocity must be non-negative")
        if self.N_active is not None and int(self.N_active) < 0:
            raise ConfigurationError("N_active must be non-negative or None")

    def as_dict(self) -> dict:
        out = {}
        for f in fields(self):
            val = getattr(self, f.name)
            out[f.name] = val.value if hasattr(val, "value") else val
        return out


__all__ = ["SimConfig"]
