"""
Tests for gravity, ghost boxes and the spatial tree.

Validates:
1. Direct summation against known two-body forces (softened and unsoftened)
2. Compensated and tree modes against the direct sum
3. Ghost box generation for periodic and shearing boundaries
4. Tree cell placement and leaf bookkeeping
"""

import math

import numpy as np
import pytest

from nbodycore import GravityMode, Simulation, SpatialTree, ghost_shifts
from nbodycore.boundary import collision_ghost_counts, is_in_box
from nbodycore.gravity import potential_energy


def accelerations(pos, vel, mass, populate, **config):
    sim = populate(Simulation(**config), pos, vel, mass)
    sim.update_acceleration()
    return sim.particles.acc.copy()


class TestDirectGravity:

    def test_two_body_inverse_square(self):
        sim = Simulation(G=2.0)
        sim.add(m=3.0)
        sim.add(m=0.5, x=2.0)
        sim.update_acceleration()
        acc = sim.particles.acc
        assert acc[0, 0] == pytest.approx(2.0 * 0.5 / 4.0)
        assert acc[1, 0] == pytest.approx(-2.0 * 3.0 / 4.0)
        assert np.allclose(acc[:, 1:], 0.0)

    def test_plummer_softening(self):
        sim = Simulation(softening=1.0)
        sim.add(m=1.0)
        sim.add(m=1.0, x=1.0)
        sim.update_acceleration()
        assert sim.particles.acc[1, 0] == pytest.approx(-1.0 / 2.0 ** 1.5)

    def test_momentum_balance(self, cluster, populate):
        pos, vel, mass = cluster
        acc = accelerations(pos, vel, mass, populate)
        assert np.allclose((mass[:, None] * acc).sum(axis=0), 0.0, atol=1e-12)

    def test_test_particles_do_not_attract(self):
        sim = Simulation(N_active=1)
        sim.add(m=1.0)
        sim.add(m=1.0, x=1.0)
        sim.update_acceleration()
        assert np.allclose(sim.particles.acc[0], 0.0)
        assert sim.particles.acc[1, 0] == pytest.approx(-1.0)

    def test_no_gravity_mode(self, cluster, populate):
        pos, vel, mass = cluster
        acc = accelerations(pos, vel, mass, populate, gravity=GravityMode.NONE)
        assert np.all(acc == 0.0)

    def test_additional_forces_are_added(self):
        sim = Simulation(gravity="none")
        sim.add(m=1.0)

        def drag(s):
            s.particles.acc[:, 0] += 0.25

        sim.additional_forces = drag
        sim.update_acceleration()
        assert sim.particles.acc[0, 0] == 0.25

    def test_potential_energy_pair(self):
        pos = np.array([[0.0, 0.0, 0.0], [0.0, 2.0, 0.0]])
        mass = np.array([1.0, 3.0])
        assert potential_energy(pos, mass, 1.0) == pytest.approx(-1.5)


class TestCompensatedAndTree:

    def test_compensated_matches_basic(self, cluster, populate):
        pos, vel, mass = cluster
        basic = accelerations(pos, vel, mass, populate)
        comp = accelerations(pos, vel, mass, populate, gravity="compensated")
        assert np.allclose(comp, basic, rtol=1e-12, atol=1e-15)

    def test_tree_converges_to_direct(self, cluster, populate):
        pos, vel, mass = cluster
        direct = accelerations(pos, vel, mass, populate)
        scale = np.abs(direct).max()

        errors = []
        for theta2 in (0.5, 0.05):
            tree = accelerations(pos, vel, mass, populate, gravity="tree", opening_angle2=theta2)
            errors.append(np.abs(tree - direct).max() / scale)
        assert errors[1] < errors[0]
        assert errors[0] < 0.05

        exact = accelerations(pos, vel, mass, populate, gravity="tree", opening_angle2=0.0)
        assert np.allclose(exact, direct, rtol=1e-10, atol=1e-14)

    def test_quadrupole_improves_accuracy(self, cluster, populate):
        pos, vel, mass = cluster
        direct = accelerations(pos, vel, mass, populate)
        mono = accelerations(pos, vel, mass, populate, gravity="tree", opening_angle2=0.5, tree_quadrupole=False)
        quad = accelerations(pos, vel, mass, populate, gravity="tree", opening_angle2=0.5)
        assert np.abs(quad - direct).max() < np.abs(mono - direct).max()

    def test_particle_cells_recorded(self, cluster, populate):
        pos, vel, mass = cluster
        sim = populate(Simulation(gravity="tree"), pos, vel, mass)
        sim.update_acceleration()
        cells = [p.cell for p in sim.particles]
        assert all(c >= 0 for c in cells)
        assert len(set(cells)) == len(cells)


class TestGhostBoxes:

    def test_periodic_single_axis(self):
        boxes = ghost_shifts("periodic", (2.0, 2.0, 2.0), 1, 0, 0)
        assert len(boxes) == 3
        assert sorted(b.shiftx for b in boxes) == [-2.0, 0.0, 2.0]
        assert all(b.shifty == 0.0 and b.shiftz == 0.0 for b in boxes)
        assert all(np.all(b.vel == 0.0) for b in boxes)

    def test_unbounded_has_only_the_zero_box(self):
        boxes = ghost_shifts("none", (0.0, 0.0, 0.0), 2, 2, 2)
        assert len(boxes) == 1
        assert boxes[0].is_zero

    def test_shear_boxes_are_antisymmetric(self):
        boxes = ghost_shifts("shear", (1.0, 1.0, 1.0), 1, 0, 0, t=0.37, omega=1.0)
        by_x = {b.shiftx: b for b in boxes}
        plus, minus, centre = by_x[1.0], by_x[-1.0], by_x[0.0]
        assert plus.shiftvy == pytest.approx(-1.5)
        assert minus.shiftvy == pytest.approx(1.5)
        assert plus.shifty == pytest.approx(-minus.shifty, abs=1e-15)
        assert centre.is_zero

    def test_collision_ghost_counts_capped(self):
        assert collision_ghost_counts(3, 0, 1) == (1, 0, 1)

    def test_is_in_box_half_open(self):
        inside = is_in_box((2.0, 2.0, 2.0), np.array([[-1.0, 0.0, 0.0], [1.0, 0.0, 0.0]]))
        assert inside.tolist() == [True, False]

    def test_periodic_gravity_is_translation_invariant(self):
        def pair_acc(offset):
            sim = Simulation(boundary="periodic", nghostx=1, nghosty=1, nghostz=1)
            sim.configure_box(4.0)
            sim.add(m=1.0, x=-0.5 + offset)
            sim.add(m=1.0, x=0.5 + offset)
            sim.ghost_boxes = ghost_shifts("periodic", sim.config.boxsize, 1, 1, 1)
            sim.update_acceleration()
            return sim.particles.acc.copy()

        assert np.allclose(pair_acc(0.0), pair_acc(0.7), atol=1e-14)


class TestSpatialTree:

    def test_centre_point_goes_to_upper_child(self):
        tree = SpatialTree().rebuild(
            np.array([[0.0, 0.0, 0.0], [-0.5, -0.5, -0.5]]),
            np.ones(2),
            root_size=2.0,
            bounded=True,
        )
        leaf = tree.cells[tree.leaf_of[0]]
        assert np.allclose(leaf.center, [0.5, 0.5, 0.5])
        other = tree.cells[tree.leaf_of[1]]
        assert np.allclose(other.center, [-0.5, -0.5, -0.5])

    def test_upper_face_uses_last_root_box(self):
        tree = SpatialTree().rebuild(
            np.array([[1.0, 0.0, 0.0], [-1.0, 0.0, 0.0]]),
            np.ones(2),
            root_size=1.0,
            root_n=(2, 1, 1),
            bounded=True,
        )
        assert len(tree.roots) == 2
        assert tree.root_index(np.array([1.0, 0.0, 0.0])) == 1
        assert tree.root_index(np.array([-1.0, 0.0, 0.0])) == 0
        assert tree.leaf_of[0] >= 0 and tree.leaf_of[1] >= 0

    def test_every_particle_in_exactly_one_leaf(self, rng):
        pos = rng.uniform(-1.0, 1.0, size=(200, 3))
        tree = SpatialTree().rebuild(pos, np.ones(200))
        counts = np.zeros(200, dtype=int)
        for cell in tree.cells:
            if cell.is_leaf:
                for i in cell.particles:
                    counts[i] += 1
        assert np.all(counts == 1)

    def test_coincident_particles_share_a_bucket(self):
        pos = np.array([[0.1, 0.2, 0.3], [0.1, 0.2, 0.3], [-0.4, 0.0, 0.0]])
        tree = SpatialTree().rebuild(pos, np.ones(3))
        assert tree.leaf_of[0] == tree.leaf_of[1]
        assert sorted(tree.cells[tree.leaf_of[0]].particles) == [0, 1]

    def test_root_mass_and_centre_of_mass(self, rng):
        pos = rng.normal(size=(50, 3))
        mass = rng.uniform(0.1, 1.0, size=50)
        tree = SpatialTree().rebuild(pos, mass)
        root = tree.cells[tree.roots[0]]
        assert root.m == pytest.approx(mass.sum())
        assert np.allclose(root.com, (mass[:, None] * pos).sum(axis=0) / mass.sum())
        assert np.trace(root.quad) == pytest.approx(0.0, abs=1e-10)

    def test_collision_candidates_cover_neighbours(self, rng):
        pos = rng.uniform(-1.0, 1.0, size=(100, 3))
        tree = SpatialTree().rebuild(pos, np.ones(100))
        point = np.zeros(3)
        radius = 0.4
        found = set(tree.collision_candidates(point, radius))
        near = set(np.flatnonzero(np.linalg.norm(pos - point, axis=1) < radius).tolist())
        assert near <= found

    def test_opening_angle_zero_is_exact(self, rng):
        pos = rng.normal(size=(30, 3))
        mass = rng.uniform(0.1, 1.0, size=30)
        tree = SpatialTree().rebuild(pos, mass)
        point = np.array([3.0, -2.0, 0.5])
        expected = np.zeros(3)
        for x, m in zip(pos, mass):
            d = x - point
            expected += m * d / math.sqrt(float(d @ d)) ** 3
        assert np.allclose(tree.acceleration(point, 1.0, 0.0), expected, rtol=1e-12)
