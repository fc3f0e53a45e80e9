"""
tests/test_panarchy.py - Panarchy adaptive cycle

Phase order, per-phase durations, transition ticks and per-phase bounds.
"""

import pytest

from ckicas_sim import PHASE_TABLE, PHASES, CKICASModel, PanarchyState, configure, update_panarchy


def phase_trace(ticks, overrides=None):
    model = CKICASModel(overrides)
    trace = []
    for _ in range(ticks):
        model.step()
        trace.append((model.panarchy.phase, model.panarchy.phase_time))
    return trace


def update_ticks_per_visit(trace):
    """[(phase, number of ticks that applied that phase's rule)] per visit."""
    visits = []
    for phase, phase_time in trace:
        if not visits or visits[-1][0] != phase:
            visits.append([phase, 0])
        if phase_time > 0:
            visits[-1][1] += 1
    return [tuple(v) for v in visits]


class TestPhaseSequence:

    def test_cyclic_order(self):
        """r -> K -> Omega -> alpha -> r."""
        order = [PHASES[0]]
        for _ in range(4):
            order.append(PHASE_TABLE[order[-1]][2])
        assert order == PHASES + ["r"] == ["r", "K", "Ω", "α", "r"]

    def test_default_durations(self):
        """Default lengths at dt=0.5 give 180/120/60/100 update ticks, then repeat."""
        visits = update_ticks_per_visit(phase_trace(2 * (181 + 121 + 61 + 101) - 1))
        assert visits == [("r", 180), ("K", 120), ("Ω", 60), ("α", 100)] * 2, (
            f"Unexpected phase visits: {visits}"
        )

    def test_phase_time_resets(self):
        """phase_time returns to 0 every 181/121/61/101 ticks."""
        trace = phase_trace(181 + 121 + 61 + 101)
        resets = [i + 1 for i, (_, t) in enumerate(trace) if t == 0]
        assert resets == [181, 302, 363, 464]

    def test_custom_lengths(self):
        visits = update_ticks_per_visit(phase_trace(3 + 3 + 2 + 5, {
            "phase_r_length": 1.5, "phase_k_length": 1, "phase_omega_length": 0.5, "phase_alpha_length": 2,
        }))
        assert visits == [("r", 3), ("K", 2), ("Ω", 1), ("α", 4)]


class TestTransition:

    def test_transition_tick_skips_new_rule(self):
        """The tick that changes phase applies no update rule."""
        state = PanarchyState(potential=0.6, connectedness=0.4, resilience=0.5, phase="r", phase_time=90)
        update_panarchy(state, configure(), 0.5)
        assert state == PanarchyState(0.6, 0.4, 0.5, "K", 0.0)

    def test_exploitation_rule(self):
        state = update_panarchy(PanarchyState(), configure(), 0.5)
        assert state.potential == pytest.approx(0.5 + 0.01 * 0.5)
        assert state.connectedness == pytest.approx(0.3 + 0.008 * 0.7)
        assert state.resilience == pytest.approx(0.697)
        assert state.phase_time == 0.5


class TestPhaseBounds:

    def test_conservation_caps(self):
        state = PanarchyState(potential=0.9, connectedness=0.95, resilience=0.5, phase="K")
        update_panarchy(state, configure(), 0.5)
        assert state.potential == 0.9
        assert state.connectedness == 0.95
        assert state.resilience == pytest.approx(0.49)

    def test_release_resilience_floor(self):
        state = PanarchyState(potential=0.5, connectedness=0.5, resilience=0.102, phase="Ω")
        update_panarchy(state, configure(), 0.5)
        assert state.resilience == 0.1
        assert state.potential == pytest.approx(0.485)
        assert state.connectedness == pytest.approx(0.475)

    def test_reorganization_relaxes_to_targets(self):
        state = PanarchyState(potential=0.6, connectedness=0.4, resilience=0.8, phase="α")
        update_panarchy(state, configure(), 0.5)
        assert (state.potential, state.connectedness, state.resilience) == pytest.approx((0.6, 0.4, 0.8))

    def test_clamped_to_unit_interval(self):
        """Resilience cannot fall below 0 during exploitation."""
        state = PanarchyState(resilience=0.001, phase="r")
        update_panarchy(state, configure(), 0.5)
        assert state.resilience == 0.0

    def test_values_stay_in_bounds_over_cycles(self):
        model = CKICASModel()
        for _ in range(2000):
            model.step()
            p = model.panarchy
            assert 0.0 <= p.potential <= 1.0
            assert 0.0 <= p.connectedness <= 1.0
            assert 0.0 <= p.resilience <= 1.0
