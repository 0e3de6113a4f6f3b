"""
Tests for collision search, resolution and boundary enforcement.

Validates:
1. Direct and tree searches find the same pairs (with and without ghost images)
2. Hard-sphere bounces conserve momentum and energy, restitution is honoured
3. Merging conserves mass and momentum and removes the second particle
4. Halting collisions and open/periodic boundaries
"""

import numpy as np
import pytest

from nbodycore import CollisionEffect, Simulation, StopReason, find_collisions, halt, merge


def head_on(**config):
    """Two overlapping spheres approaching along x."""
    sim = Simulation(integrator="leapfrog", gravity="none", collision="direct", dt=1e-3, **config)
    sim.add(m=1.0, x=-0.09, vx=1.0, r=0.1)
    sim.add(m=2.0, x=0.09, vx=-1.0, r=0.1)
    return sim


def momentum(sim):
    store = sim.particles
    return (store.mass[:, None] * store.vel).sum(axis=0)


def kinetic(sim):
    store = sim.particles
    return 0.5 * float(np.sum(store.mass * np.einsum("ij,ij->i", store.vel, store.vel)))


class TestCollisionSearch:

    def _box_sim(self, rng, boundary):
        sim = Simulation(boundary=boundary, gravity="none", collision="direct",
                         nghostx=1, nghosty=1, nghostz=1)
        sim.configure_box(1.0)
        pos = rng.uniform(-0.5, 0.5, size=(80, 3))
        vel = rng.normal(size=(80, 3))
        for x, v in zip(pos, vel):
            sim.add(m=1e-3, x=x[0], y=x[1], z=x[2], vx=v[0], vy=v[1], vz=v[2], r=0.06)
        return sim

    @pytest.mark.parametrize("boundary", ["open", "periodic"])
    def test_direct_and_tree_agree(self, rng, boundary):
        sim = self._box_sim(rng, boundary)
        direct = find_collisions(sim)

        sim.config.gravity = "tree"
        sim.config.collision = "tree"
        tree = find_collisions(sim)

        assert len(direct) > 0
        assert [c.pair for c in tree] == [c.pair for c in direct]
        for a, b in zip(direct, tree):
            assert a.distance == pytest.approx(b.distance)
            assert a.p1 < a.p2

    def test_periodic_images_find_pairs_across_the_edge(self):
        sim = Simulation(boundary="periodic", gravity="none", collision="direct", nghostx=1)
        sim.configure_box(1.0)
        sim.add(m=1.0, x=0.48, vx=1.0, r=0.03)
        sim.add(m=1.0, x=-0.48, vx=-1.0, r=0.03)
        found = find_collisions(sim)
        assert [c.pair for c in found] == [(0, 1)]
        assert found[0].shift.shiftx == pytest.approx(-1.0)
        assert found[0].crossing

    def test_receding_pair_is_ignored(self):
        sim = Simulation(gravity="none", collision="direct")
        sim.add(m=1.0, x=-0.05, vx=-1.0, r=0.1)
        sim.add(m=1.0, x=0.05, vx=1.0, r=0.1)
        assert find_collisions(sim) == []

    def test_disabled_search_finds_nothing(self):
        sim = head_on()
        sim.config.collision = "none"
        assert find_collisions(sim) == []


class TestResolution:

    def test_hard_sphere_conserves_momentum_and_energy(self):
        sim = head_on()
        P0 = momentum(sim)
        T0 = kinetic(sim)

        halted = sim.step()

        assert not halted
        assert sim.collisions_Nlog == 1
        assert np.allclose(momentum(sim), P0, atol=1e-14)
        assert kinetic(sim) == pytest.approx(T0)
        assert sim.particles[0].vx == pytest.approx(-5.0 / 3.0)
        assert sim.particles[1].vx == pytest.approx(1.0 / 3.0)
        assert sim.particles[0].lastcollision == sim.t

    def test_coefficient_of_restitution(self):
        sim = head_on()
        seen = []

        def restitution(s, v):
            seen.append(v)
            return 0.5

        sim.coefficient_of_restitution = restitution
        sim.step()
        assert seen == [pytest.approx(2.0)]
        rel = sim.particles[1].vx - sim.particles[0].vx
        assert rel == pytest.approx(1.0)
        assert np.allclose(momentum(sim), [-1.0, 0.0, 0.0])

    def test_merge_conserves_mass_and_momentum(self):
        sim = head_on()
        sim.collision_resolve = merge
        P0 = momentum(sim)
        com0 = sim.get_com()

        sim.step()

        assert sim.N == 1
        p = sim.particles[0]
        assert p.m == pytest.approx(3.0)
        assert p.vx == pytest.approx(-1.0 / 3.0)
        assert np.allclose(momentum(sim), P0)
        assert p.r == pytest.approx(np.cbrt(2.0 * 0.1 ** 3))
        assert p.x == pytest.approx(com0.x + com0.vx * sim.dt_last_done)
        assert sim.collisions_Nlog == 1

    def test_halt_sets_exit_reason(self):
        sim = head_on()
        sim.collision_resolve = halt
        assert sim.step() is True
        assert sim.stop_reason is StopReason.STOPPED_BY_EXIT_FLAG
        assert sim.N == 2

    def test_integrate_stops_on_halt(self):
        sim = head_on()
        sim.collision_resolve = halt
        reason = sim.integrate(1.0)
        assert reason is StopReason.STOPPED_BY_EXIT_FLAG
        assert sim.t < 1.0

    def test_custom_resolver_sees_records(self):
        sim = head_on()
        records = []

        def resolver(s, c):
            records.append(c)
            return CollisionEffect.IGNORE

        sim.collision_resolve = resolver
        sim.step()
        assert len(records) == 1
        assert records[0].pair == (0, 1)
        assert records[0].shift.is_zero
        assert not records[0].crossing
        assert sim.particles[0].vx == 1.0


class TestBoundaries:

    def test_open_boundary_removes_escapers(self):
        sim = Simulation(integrator="leapfrog", gravity="none", boundary="open", dt=0.1)
        sim.configure_box(2.0)
        sim.add(m=1.0, x=0.95, vx=1.0, id=10)
        sim.add(m=1.0, x=0.0, id=11)
        sim.step()
        assert sim.N == 1
        assert sim.particles[0].id == 11

    def test_periodic_boundary_wraps(self):
        sim = Simulation(integrator="leapfrog", gravity="none", boundary="periodic", dt=0.1)
        sim.configure_box(2.0)
        sim.add(m=1.0, x=0.95, vx=1.0)
        sim.step()
        assert sim.N == 1
        assert sim.particles[0].x == pytest.approx(-0.95)

    def test_shear_boundary_kicks_velocity(self):
        sim = Simulation(integrator="sei", gravity="none", boundary="shear", sei_omega=1.0, dt=0.01)
        sim.configure_box(1.0)
        sim.add(m=1.0, x=0.499, vx=1.0, vy=-1.5 * 0.499)
        sim.step()
        p = sim.particles[0]
        assert p.x < 0.0
        # the shear flow velocity at the new position
        assert p.vy == pytest.approx(-1.5 * p.x, abs=0.05)
