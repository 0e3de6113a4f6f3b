"""
Tests for the Simulation orchestrator.

Validates:
1. Exact-finish integration forwards and backwards
2. Configuration errors are refused before any state changes
3. Non-finite states roll back and halt
4. Particle bookkeeping (add, remove, ids, active particles)
5. MEGNO and Lyapunov indicators, orbital elements, conserved quantities and diagnostics recording
"""

import logging
import math

import numpy as np
import pytest

from nbodycore import (
    ConfigurationError,
    Diagnostics,
    DiagnosticMisuseError,
    DiagnosticsRecorder,
    IntegratorKind,
    Particle,
    Simulation,
    SimConfig,
    StopReason,
    setup_logging,
)
from nbodycore.recorder import COLUMNS


def drifting(dt=0.1, **config):
    sim = Simulation(integrator="leapfrog", gravity="none", dt=dt, **config)
    sim.add(m=1.0, vx=1.0)
    return sim


class TestIntegrate:

    def test_exact_finish_time(self):
        sim = drifting()
        reason = sim.integrate(1.05)
        assert reason is StopReason.STOPPED_AT_TMAX
        assert sim.t == 1.05
        assert sim.dt == 0.1
        assert sim.particles[0].x == pytest.approx(1.05)

    def test_without_exact_finish_overshoots_by_less_than_a_step(self):
        sim = drifting(exact_finish_time=False)
        sim.integrate(1.05)
        assert sim.t >= 1.05
        assert sim.t - sim.dt < 1.05

    def test_backwards_integration_flips_dt(self):
        sim = drifting()
        reason = sim.integrate(-0.5)
        assert reason is StopReason.STOPPED_AT_TMAX
        assert sim.t == -0.5
        assert sim.dt == pytest.approx(-0.1)
        assert sim.particles[0].x == pytest.approx(-0.5)

    def test_integrate_to_current_time_takes_no_step(self):
        sim = drifting()
        sim.integrate(0.3)
        x = sim.particles[0].x
        sim.integrate(0.3)
        assert sim.particles[0].x == x

    def test_step_returns_false_normally(self):
        sim = drifting()
        assert sim.step() is False
        assert sim.stop_reason is None
        assert sim.t == pytest.approx(0.1)

    def test_heartbeat_exit_flag_stops_run(self):
        sim = drifting()

        def stop_late(s):
            if s.t > 0.25:
                s.exit_flag = True

        sim.heartbeat = stop_late
        reason = sim.integrate(10.0)
        assert reason is StopReason.STOPPED_BY_EXIT_FLAG
        assert sim.t == pytest.approx(0.3)

    def test_switching_integrator_rebuilds_it(self, kepler):
        sim = kepler("leapfrog")
        sim.step()
        assert sim.integrator.kind is IntegratorKind.LEAPFROG
        sim.config.integrator = "whfast"
        sim.step()
        assert sim.integrator.kind is IntegratorKind.WHFAST


class TestConfigurationErrors:

    @pytest.mark.parametrize("setup", [
        dict(collision="tree", gravity="basic"),
        dict(boundary="periodic"),
        dict(integrator="sei"),
        dict(whfast_corrector=4, integrator="whfast"),
        dict(integrator="rk4"),
        dict(nghostx=-1),
        dict(dt=0.0),
    ])
    def test_invalid_configuration_is_refused(self, setup):
        sim = Simulation(**setup)
        sim.add(m=1.0)
        sim.add(m=1e-3, a=1.0)
        x0 = sim.particles.pos.copy()
        with pytest.raises(ConfigurationError):
            sim.step()
        assert sim.t == 0.0
        assert np.array_equal(sim.particles.pos, x0)

    def test_whfast_refuses_periodic_box(self):
        sim = Simulation(integrator="whfast", boundary="periodic")
        sim.configure_box(10.0)
        sim.add(m=1.0)
        sim.add(m=1e-3, a=1.0)
        with pytest.raises(ConfigurationError):
            sim.integrate(1.0)
        assert sim.t == 0.0

    def test_whfast_requires_massive_central_body(self):
        sim = Simulation(integrator="whfast")
        sim.add(m=0.0)
        sim.add(m=1e-3, x=1.0, vy=1.0)
        with pytest.raises(ConfigurationError):
            sim.step()

    def test_unknown_parameter(self):
        with pytest.raises(ConfigurationError):
            Simulation(timestep=0.1)

    def test_bad_box(self):
        sim = Simulation()
        with pytest.raises(ConfigurationError):
            sim.configure_box(-1.0)

    def test_config_is_copied_on_construction(self):
        cfg = SimConfig(dt=0.5)
        sim = Simulation(config=cfg, integrator="whfast")
        sim.config.dt = 0.25
        assert isinstance(sim.config, SimConfig)
        assert sim.config is not cfg
        assert cfg.dt == 0.5
        assert cfg.integrator_kind is IntegratorKind.IAS15
        assert sim.dt == 0.5


class TestNonFiniteHalt:

    def test_rolls_back_and_halts(self):
        sim = drifting()

        def poison(s):
            if s.t >= 0.45:
                s.particles.acc[:] = np.nan

        sim.additional_forces = poison
        reason = sim.integrate(1.0)

        assert reason is StopReason.STOPPED_BY_NONFINITE
        assert sim.t == pytest.approx(0.5)
        assert np.all(np.isfinite(sim.particles.pos))
        assert np.all(np.isfinite(sim.particles.vel))
        assert sim.particles[0].x == pytest.approx(0.5)

    def test_nonfinite_is_logged(self, caplog):
        sim = drifting()
        sim.additional_forces = lambda s: s.particles.acc.fill(np.inf)
        with caplog.at_level(logging.ERROR, logger="nbodycore"):
            assert sim.step() is True
        assert sim.stop_reason is StopReason.STOPPED_BY_NONFINITE
        assert sim.t == 0.0
        assert any("non-finite" in r.getMessage() for r in caplog.records)


class TestParticles:

    def test_add_returns_live_view(self):
        sim = Simulation()
        p = sim.add(m=2.0, x=1.0)
        p.vx = 3.0
        assert sim.particles.vel[0, 0] == 3.0
        assert sim.N == 1

    def test_add_copies_views(self):
        other = Simulation()
        first = other.add(m=1.0, x=1.0)
        sim = Simulation()
        sim.add(first)
        first.x = 5.0
        assert sim.particles[0].x == 1.0
        assert sim.particles[0].id == first.id

    def test_add_particle_object(self):
        sim = Simulation()
        sim.add(Particle(m=1.0, y=2.0, id=7))
        assert sim.particles[0].y == 2.0
        assert sim.particles[0].id == 7

    def test_particle_and_keywords_conflict(self):
        sim = Simulation()
        with pytest.raises(TypeError):
            sim.add(Particle(m=1.0), m=2.0)

    def test_elements_need_a_primary(self):
        sim = Simulation()
        with pytest.raises(ValueError):
            sim.add(m=1e-3, a=1.0)

    def test_duplicate_ids_are_rejected(self):
        sim = Simulation()
        sim.add(m=1.0, id=3)
        with pytest.raises(ValueError):
            sim.add(m=1.0, id=3)

    def test_automatic_ids_are_unique(self):
        sim = Simulation()
        sim.add(m=1.0, id=5)
        sim.add(m=1.0)
        sim.add(m=1.0)
        ids = [p.id for p in sim.particles]
        assert len(set(ids)) == 3

    def test_remove_and_remove_by_id(self):
        sim = Simulation()
        for k in range(4):
            sim.add(m=1.0, x=float(k), id=100 + k)
        sim.remove(1)
        assert [p.id for p in sim.particles] == [100, 102, 103]
        sim.remove_by_id(103)
        assert [p.id for p in sim.particles] == [100, 102]
        with pytest.raises(KeyError):
            sim.remove_by_id(101)
        with pytest.raises(IndexError):
            sim.remove(5)

    def test_removing_active_particle_shrinks_n_active(self):
        sim = Simulation(N_active=2)
        for k in range(4):
            sim.add(m=1.0, x=float(k))
        sim.remove(0)
        assert sim.N_active == 1
        assert sim.config.N_active == 1
        sim.remove(2)
        assert sim.N_active == 1

    def test_n_active_defaults_to_all(self):
        sim = Simulation()
        sim.add(m=1.0)
        sim.add(m=1.0, x=1.0)
        assert sim.N_active == 2
        sim.N_active = 1
        assert sim.config.N_active == 1

    def test_centre_of_mass(self):
        sim = Simulation()
        sim.add(m=1.0, x=-1.0, vy=2.0)
        sim.add(m=3.0, x=1.0)
        com = sim.get_com()
        assert com.m == pytest.approx(4.0)
        assert com.x == pytest.approx(0.5)
        assert com.vy == pytest.approx(0.5)

        sim.move_to_center_of_mass()
        com = sim.get_com()
        assert com.x == pytest.approx(0.0, abs=1e-15)
        assert com.vy == pytest.approx(0.0, abs=1e-15)


class TestChaosIndicators:

    def test_misuse_before_init(self, kepler):
        sim = kepler("whfast")
        with pytest.raises(DiagnosticMisuseError):
            sim.calculate_megno()
        with pytest.raises(DiagnosticMisuseError):
            sim.calculate_lyapunov()
        assert sim.N_var == 0

    def test_regular_orbit_megno_near_two(self, kepler):
        sim = kepler("ias15", dt=0.1)
        sim.megno_init(rng=42)
        assert sim.N_var == 2
        sim.integrate(200.0)

        assert 1.5 < sim.calculate_megno() < 2.5
        assert abs(sim.calculate_lyapunov()) < 0.1

    @pytest.mark.parametrize("integrator", ["whfast", "wh"])
    def test_regular_orbit_megno_with_symplectic_schemes(self, kepler, integrator):
        sim = kepler(integrator, dt=0.05)
        sim.megno_init(rng=42)
        sim.integrate(200.0)

        assert 1.5 < sim.calculate_megno() < 2.5
        assert abs(sim.calculate_lyapunov()) < 0.1

    def test_megno_is_zero_at_start(self, kepler):
        sim = kepler("whfast")
        sim.megno_init(rng=1)
        assert sim.calculate_megno() == 0.0
        assert sim.calculate_lyapunov() == 0.0

    def test_shadow_rows_follow_particles(self, kepler):
        sim = kepler("whfast")
        sim.megno_init(rng=7)
        sim.add(m=1e-6, a=2.0)
        assert sim.N_var == 3
        assert np.all(sim.variational.dpos[2] == 0.0)
        sim.remove(2)
        assert sim.N_var == 2

    def test_megno_init_rejects_bad_delta(self, kepler):
        sim = kepler("whfast")
        with pytest.raises(ValueError):
            sim.megno_init(delta=0.0)


class TestOrbits:

    ELEMENTS = dict(a=1.3, e=0.2, inc=0.4, Omega=1.1, omega=0.7, f=2.0)

    def test_elements_round_trip(self):
        sim = Simulation()
        sim.add(m=1.0, x=0.3, vy=-0.1)
        sim.add(m=1e-3, **self.ELEMENTS)
        orbit = sim.compute_orbit(1, primary=0)
        for name, value in self.ELEMENTS.items():
            assert getattr(orbit, name) == pytest.approx(value, rel=1e-10)
        assert orbit.P == pytest.approx(2.0 * math.pi * math.sqrt(1.3 ** 3 / 1.001))

    def test_default_primary_is_interior_centre_of_mass(self):
        sim = Simulation()
        sim.add(m=1.0)
        sim.add(m=1e-3, a=1.0, e=0.05)
        com = sim.get_com()
        sim.add(m=1e-5, primary=com, a=3.0, e=0.1, f=0.5)

        orbit = sim.compute_orbit(2)
        assert orbit.a == pytest.approx(3.0, rel=1e-10)
        assert orbit.e == pytest.approx(0.1, rel=1e-8)

    def test_central_body_needs_primary(self):
        sim = Simulation()
        sim.add(m=1.0)
        sim.add(m=1e-3, a=1.0)
        with pytest.raises(ValueError):
            sim.compute_orbit(0)

    def test_hyperbolic_orbit(self):
        sim = Simulation()
        sim.add(m=1.0)
        sim.add(m=0.0, a=-2.0, e=1.5, f=0.3)
        orbit = sim.compute_orbit(1, primary=0)
        assert orbit.a == pytest.approx(-2.0)
        assert orbit.e == pytest.approx(1.5)
        assert math.isinf(orbit.P)


class TestDiagnostics:

    def _pair(self):
        sim = Simulation()
        sim.add(m=1.0)
        sim.add(m=3.0, x=1.0, vy=2.0)
        return sim

    def test_conserved_quantities_of_a_pair(self):
        diag = Diagnostics(self._pair())
        assert np.allclose(diag.linear_momentum(), [0.0, 6.0, 0.0])
        assert np.allclose(diag.angular_momentum(), [0.0, 0.0, 6.0])
        assert diag.kinetic_energy() == pytest.approx(6.0)
        assert diag.potential_energy() == pytest.approx(-3.0)
        assert diag.energy() == pytest.approx(3.0)

    def test_center_of_mass(self):
        x_cm, v_cm = Diagnostics(self._pair()).center_of_mass()
        assert np.allclose(x_cm, [0.75, 0.0, 0.0])
        assert np.allclose(v_cm, [0.0, 1.5, 0.0])

    def test_empty_simulation(self):
        diag = Diagnostics(Simulation())
        assert diag.kinetic_energy() == 0.0
        assert np.array_equal(diag.linear_momentum(), np.zeros(3))
        assert np.array_equal(diag.angular_momentum(), np.zeros(3))


class TestRecorderAndLogging:

    def test_recorder_frame(self, kepler):
        sim = kepler("whfast", dt=0.05)
        recorder = DiagnosticsRecorder()
        sim.heartbeat = recorder
        sim.integrate(2.0)

        frame = recorder.to_frame()
        assert list(frame.columns) == COLUMNS
        assert frame["t"].iloc[0] == 0.0
        assert frame["t"].iloc[-1] == 2.0
        assert frame["rel_energy_error"].iloc[0] == 0.0
        assert frame["rel_energy_error"].max() < 1e-6
        assert frame["megno"].isna().all()
        assert (frame["N"] == 2).all()

    def test_recorder_interval(self, kepler):
        sim = kepler("leapfrog", dt=0.01)
        recorder = DiagnosticsRecorder(interval=0.5)
        sim.heartbeat = recorder
        sim.integrate(2.0)
        assert len(recorder) == 5

    def test_setup_logging_does_not_duplicate_handlers(self, tmp_path):
        logger = setup_logging("DEBUG", log_file=tmp_path / "run.log")
        count = len(logger.handlers)
        logger = setup_logging("WARNING")
        assert len(logger.handlers) == count - 1
        assert logger.level == logging.WARNING
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    def test_repr_mentions_integrator(self, kepler):
        sim = kepler("whfast")
        assert "whfast" in repr(sim)
