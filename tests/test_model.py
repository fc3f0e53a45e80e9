"""
tests/test_model.py - Integrator and history log

Tick ordering, bounds, determinism, reset and the read-only history.
"""

import dataclasses

import pytest

from ckicas_sim import (
    HISTORY_COLUMNS, INITIAL_STOCKS, STOCK_NAMES, CKICASModel, PanarchyState, environmental_pressure,
)

EXTREME = {
    "learning_rate": 1.0, "adaptation_rate": 1.0, "crisis_intensity": 1.0,
    "volatility_level": 1.0, "uncertainty_level": 1.0, "complexity_level": 1.0, "ambiguity_level": 1.0,
    "social_connectivity_baseline": 1.0, "digital_inclusion_baseline": 1.0,
    "resource_availability_baseline": 1.0, "technological_access_baseline": 1.0,
    "transformation_threshold": 0.0, "cycle_duration": 7,
}


class TestRun:

    def test_scenario_hundred_ticks(self):
        """run(100) records 100 samples, the last at t=49.5."""
        history = CKICASModel().run(100)
        assert len(history) == 100
        assert history[99].time == 49.5
        assert history[0].panarchy_phase == "r"

    def test_run_returns_full_history(self):
        model = CKICASModel()
        model.run(10)
        history = model.run(5)
        assert len(history) == 15
        assert [h.time for h in history] == [i * 0.5 for i in range(15)]

    def test_sample_uses_pre_advance_time(self):
        model = CKICASModel()
        model.step()
        assert model.history[0].time == 0.0
        assert model.time == 0.5

    def test_history_grows_by_one_per_step(self):
        model = CKICASModel()
        for n in range(1, 6):
            model.step()
            assert len(model.history) == n

    def test_pressure_recorded(self):
        model = CKICASModel()
        history = model.run(130)
        assert history[120].environmental_pressure == environmental_pressure(60.0, model.params)


class TestBounds:

    @pytest.mark.parametrize("overrides", [{}, EXTREME, {"panarchy_enabled": False}])
    def test_stocks_stay_in_unit_interval(self, overrides):
        model = CKICASModel(overrides)
        for _ in range(730):
            model.step()
            for key, value in model.stocks.items():
                assert 0.0 <= value <= 1.0, f"{key}={value} at t={model.time}"

    def test_derived_metrics(self):
        sample = CKICASModel().run(50)[-1]
        assert sample.performance_index == pytest.approx(
            0.3 * sample.community_resilience + 0.3 * sample.community_intelligence +
            0.2 * sample.system_adaptability + 0.2 * sample.resource_mobilization)
        assert sample.adaptive_capacity == pytest.approx(
            sample.system_adaptability * sample.innovation_capacity * sample.transformation_readiness)
        assert sample.collapse_risk == pytest.approx(
            (1 - sample.panarchy_resilience) * sample.panarchy_connectedness)


class TestDeterminism:

    def test_identical_instances_match(self):
        a = CKICASModel({"crisis_intensity": 0.8}).run(500)
        b = CKICASModel({"crisis_intensity": 0.8}).run(500)
        assert a == b

    def test_rerun_after_reset_matches(self):
        model = CKICASModel()
        first = model.run(300)
        model.reset()
        assert model.run(300) == first


class TestReset:

    def test_reset_restores_initial_state(self):
        model = CKICASModel()
        model.run(400)
        model.reset()
        assert list(model.stocks.values()) == [0.3, 0.2, 0.4, 0.5, 0.1, 0.3, 0.2, 0.1]
        assert list(model.stocks) == STOCK_NAMES
        assert model.panarchy == PanarchyState(0.5, 0.3, 0.7, "r", 0)
        assert set(model.dummy.values()) == {0.0}
        assert model.history == ()
        assert model.time == 0.0

    def test_reset_keeps_parameters(self):
        model = CKICASModel({"learning_rate": 0.9})
        model.run(10)
        model.reset()
        assert model.params.learning_rate == 0.9

    def test_initial_stocks_independent_of_parameters(self):
        assert CKICASModel(EXTREME).stocks == INITIAL_STOCKS


class TestPanarchyDisabled:

    def test_state_frozen_for_ten_ticks(self):
        model = CKICASModel()
        model.configure({"panarchy_enabled": False})
        for _ in range(10):
            model.step()
            assert model.panarchy == PanarchyState(), "Disabled panarchy must not update"
        for sample in model.history:
            assert (sample.panarchy_potential, sample.panarchy_connectedness,
                    sample.panarchy_resilience, sample.panarchy_phase) == (0.5, 0.3, 0.7, "r")

    def test_phase_never_changes(self):
        history = CKICASModel({"panarchy_enabled": False}).run(500)
        assert {h.panarchy_phase for h in history} == {"r"}


class TestHistory:

    def test_read_only(self):
        model = CKICASModel()
        model.run(3)
        assert isinstance(model.history, tuple)
        with pytest.raises(dataclasses.FrozenInstanceError):
            model.history[0].time = 99.0

    def test_latest(self):
        model = CKICASModel()
        assert model.latest() is None
        model.run(4)
        assert model.latest() == model.history[-1]

    def test_history_frame(self):
        model = CKICASModel()
        model.run(20)
        df = model.history_frame()
        assert list(df.columns) == HISTORY_COLUMNS
        assert len(df) == 20
        assert df["time"].iloc[-1] == 9.5

    def test_empty_history_frame(self):
        df = CKICASModel().history_frame()
        assert df.empty
        assert list(df.columns) == HISTORY_COLUMNS
