"""Pytest configuration and shared fixtures."""

import math
import sys
from pathlib import Path

import numpy as np
import pytest

# Add the project root to the path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from nbodycore import Diagnostics, Simulation  # noqa: E402


def make_kepler(integrator="ias15", dt=0.01, e=0.1, m1=1.0e-3, **config):
    """Star plus one planet on an a=1 orbit, in the barycentric frame."""
    sim = Simulation(integrator=integrator, dt=dt, **config)
    sim.add(m=1.0)
    sim.add(m=m1, a=1.0, e=e)
    sim.move_to_center_of_mass()
    return sim


def angular_momentum(sim):
    sim.synchronize()
    return Diagnostics(sim).angular_momentum()


@pytest.fixture
def kepler():
    """Factory for two-body Kepler simulations."""
    return make_kepler


@pytest.fixture
def kepler_period():
    return 2.0 * math.pi / math.sqrt(1.001)


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture
def cluster(rng):
    """Forty bodies with unequal masses in a unit Gaussian blob."""
    pos = rng.normal(size=(40, 3))
    vel = 0.1 * rng.normal(size=(40, 3))
    mass = rng.uniform(0.5, 1.5, size=40) / 40.0
    return pos, vel, mass


def fill(sim, pos, vel, mass, radius=0.0):
    radii = np.broadcast_to(np.asarray(radius, dtype=float), mass.shape)
    for x, v, m, r in zip(pos, vel, mass, radii):
        sim.add(m=m, x=x[0], y=x[1], z=x[2], vx=v[0], vy=v[1], vz=v[2], r=r)
    return sim


@pytest.fixture
def populate():
    """Adds arrays of particles to a simulation."""
    return fill


@pytest.fixture
def total_angular_momentum():
    return angular_momentum
