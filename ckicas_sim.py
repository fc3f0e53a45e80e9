#!/usr/bin/env python3
"""CKICAS - Community Knowledge-Intelligence Complex Adaptive System simulator.

Stock-and-flow model of community resilience: eight bounded stocks driven by
an environmental pressure signal, a panarchy adaptive cycle (r -> K -> Omega ->
alpha) and seven smoothed stage-activation signals. Fixed Euler step of half a
day per tick.
"""
__version__ = "1.2.0"

import json
import math
from collections import namedtuple
from dataclasses import dataclass, asdict, fields

import pandas as pd

DEFAULTS = {
    "social_connectivity_baseline": 0.5,
    "digital_inclusion_baseline": 0.4,
    "resource_availability_baseline": 0.6,
    "technological_access_baseline": 0.5,
    "volatility_level": 0.3,
    "uncertainty_level": 0.4,
    "complexity_level": 0.5,
    "ambiguity_level": 0.4,
    "adaptation_rate": 0.1,
    "transformation_threshold": 0.7,
    "learning_rate": 0.05,
    "feedback_strength": 0.3,
    "cycle_duration": 50,
    "crisis_start": 50,
    "crisis_duration": 20,
    "crisis_intensity": 0.5,
    "panarchy_enabled": True,
    "phase_r_length": 90,
    "phase_k_length": 60,
    "phase_omega_length": 30,
    "phase_alpha_length": 50,
}

# (key, label, min, max, step) -- documented ranges, not enforced by the model.
# Phase lengths are not user-facing controls.
PARAMETER_CONTROLS = [
    ("learning_rate", "Learning Rate", 0.0, 1.0, 0.01),
    ("adaptation_rate", "Adaptation Rate", 0.0, 1.0, 0.01),
    ("feedback_strength", "Feedback Strength", 0.0, 1.0, 0.01),
    ("transformation_threshold", "Transformation Threshold", 0.0, 1.0, 0.01),
    ("crisis_intensity", "Crisis Intensity", 0.0, 1.0, 0.01),
    ("volatility_level", "Volatility Level", 0.0, 1.0, 0.01),
    ("uncertainty_level", "Uncertainty Level", 0.0, 1.0, 0.01),
    ("complexity_level", "Complexity Level", 0.0, 1.0, 0.01),
    ("ambiguity_level", "Ambiguity Level", 0.0, 1.0, 0.01),
    ("social_connectivity_baseline", "Social Connectivity", 0.0, 1.0, 0.01),
    ("digital_inclusion_baseline", "Digital Inclusion", 0.0, 1.0, 0.01),
    ("resource_availability_baseline", "Resource Availability", 0.0, 1.0, 0.01),
    ("technological_access_baseline", "Technological Access", 0.0, 1.0, 0.01),
    ("cycle_duration", "Cycle Duration (days)", 1, 100, 1),
    ("crisis_start", "Crisis Start Time (days)", 1, 200, 1),
    ("crisis_duration", "Crisis Duration (days)", 1, 50, 1),
    ("panarchy_enabled", "Panarchy Enabled", None, None, None),
]

CONTROLS = {row[0]: row for row in PARAMETER_CONTROLS}


def control_value(key, value):
    """`value` as the control for `key` can display it: clamped to its range, snapped for integer steps."""
    _, _, lo, hi, step = CONTROLS[key]
    if lo is None:
        return bool(value)
    value = min(max(value, lo), hi)
    return int(round(value)) if isinstance(step, int) else float(value)


INITIAL_STOCKS = {
    "community_intelligence": 0.3,
    "shared_understanding": 0.2,
    "system_adaptability": 0.4,
    "resource_mobilization": 0.5,
    "knowledge_accumulation": 0.1,
    "community_resilience": 0.3,
    "innovation_capacity": 0.2,
    "transformation_readiness": 0.1,
}
STOCK_NAMES = list(INITIAL_STOCKS)

ACTIVATION_NAMES = [
    "observation_active",
    "theory_building_active",
    "system_development_active",
    "community_action_active",
    "validation_active",
    "crisis_mode",
    "transformation_mode",
]

PHASES = ["r", "K", "Ω", "α"]
PHASE_LABELS = {"r": "Exploitation", "K": "Conservation", "Ω": "Release", "α": "Reorganization"}

# Scripted secondary shock, independent of the configurable crisis window.
SECONDARY_CRISIS = (200.0, 220.0, 0.4)


class InvalidParameter(ValueError):
    """Raised for parameter values the equations cannot evaluate."""


@dataclass(frozen=True)
class ParameterSet:
    social_connectivity_baseline: float = DEFAULTS["social_connectivity_baseline"]
    digital_inclusion_baseline: float = DEFAULTS["digital_inclusion_baseline"]
    resource_availability_baseline: float = DEFAULTS["resource_availability_baseline"]
    technological_access_baseline: float = DEFAULTS["technological_access_baseline"]
    volatility_level: float = DEFAULTS["volatility_level"]
    uncertainty_level: float = DEFAULTS["uncertainty_level"]
    complexity_level: float = DEFAULTS["complexity_level"]
    ambiguity_level: float = DEFAULTS["ambiguity_level"]
    adaptation_rate: float = DEFAULTS["adaptation_rate"]
    transformation_threshold: float = DEFAULTS["transformation_threshold"]
    learning_rate: float = DEFAULTS["learning_rate"]
    feedback_strength: float = DEFAULTS["feedback_strength"]
    cycle_duration: float = DEFAULTS["cycle_duration"]
    crisis_start: float = DEFAULTS["crisis_start"]
    crisis_duration: float = DEFAULTS["crisis_duration"]
    crisis_intensity: float = DEFAULTS["crisis_intensity"]
    panarchy_enabled: bool = DEFAULTS["panarchy_enabled"]
    phase_r_length: float = DEFAULTS["phase_r_length"]
    phase_k_length: float = DEFAULTS["phase_k_length"]
    phase_omega_length: float = DEFAULTS["phase_omega_length"]
    phase_alpha_length: float = DEFAULTS["phase_alpha_length"]

    def __post_init__(self):
        if self.cycle_duration == 0:
            raise InvalidParameter("cycle_duration must be non-zero")

    @classmethod
    def configure(cls, overrides=None):
        """Defaults with `overrides` applied key by key; unknown keys are ignored."""
        overrides = overrides or {}
        return cls(**{k: v for k, v in overrides.items() if k in cls.__annotations__})

    @classmethod
    def from_json(cls, path):
        with open(path) as f:
            data = json.load(f)
        return cls.configure(data)

    def as_dict(self):
        return asdict(self)


def configure(overrides=None):
    return ParameterSet.configure(overrides)


# --- environmental pressure -------------------------------------------------

def vuca_factor(params):
    return (params.volatility_level + params.uncertainty_level +
            params.complexity_level + params.ambiguity_level) / 4


def environmental_pressure(time, params):
    seasonal = 0.2 * math.sin(2 * math.pi * time / 365)

    crisis_spike = 0
    if params.crisis_start <= time <= params.crisis_start + params.crisis_duration:
        crisis_spike = params.crisis_intensity
    lo, hi, spike = SECONDARY_CRISIS
    if lo <= time <= hi:
        crisis_spike = max(crisis_spike, spike)

    return 0.5 + seasonal + crisis_spike * vuca_factor(params)


# --- panarchy adaptive cycle -----------------------------------------------

@dataclass
class PanarchyState:
    potential: float = 0.5
    connectedness: float = 0.3
    resilience: float = 0.7
    phase: str = "r"
    phase_time: float = 0.0


def _exploitation(p):
    p.potential += 0.01 * (1 - p.potential)
    p.connectedness += 0.008 * (1 - p.connectedness)
    p.resilience -= 0.003


def _conservation(p):
    p.potential = min(0.9, p.potential + 0.001)
    p.connectedness = min(0.95, p.connectedness + 0.002)
    p.resilience -= 0.01


def _release(p):
    p.potential *= 0.97
    p.connectedness *= 0.95
    p.resilience = max(0.1, p.resilience - 0.005)


def _reorganization(p):
    p.potential += 0.008 * (0.6 - p.potential)
    p.connectedness += 0.005 * (0.4 - p.connectedness)
    p.resilience += 0.015 * (0.8 - p.resilience)


# phase -> (length parameter, update rule, next phase)
PHASE_TABLE = {
    "r": ("phase_r_length", _exploitation, "K"),
    "K": ("phase_k_length", _conservation, "Ω"),
    "Ω": ("phase_omega_length", _release, "α"),
    "α": ("phase_alpha_length", _reorganization, "r"),
}


def clamp01(x):
    return max(0.0, min(1.0, x))


def update_panarchy(state, params, dt):
    """Advance the adaptive cycle by one tick.

    A tick either applies the current phase's rule or transitions; the new
    phase's rule first runs on the following tick.
    """
    length_key, rule, next_phase = PHASE_TABLE[state.phase]
    if state.phase_time < getattr(params, length_key):
        rule(state)
        state.phase_time += dt
    else:
        state.phase = next_phase
        state.phase_time = 0.0

    state.potential = clamp01(state.potential)
    state.connectedness = clamp01(state.connectedness)
    state.resilience = clamp01(state.resilience)
    return state


# --- stage activation signals ----------------------------------------------

def smooth_ramp(current, target, rate):
    return current + rate * (target - current)


def cycle_progress(time, cycle_duration):
    if cycle_duration == 0:
        raise InvalidParameter("cycle_duration must be non-zero")
    # truncated remainder: sign follows time, not cycle_duration
    return math.fmod(time, cycle_duration) / cycle_duration


_Context = namedtuple("_Context", "pressure progress dummy stocks params")
Signal = namedtuple("Signal", "name active on_target on_rate off_target off_rate")

# Evaluated in this order; observation_active sees this tick's crisis_mode.
SIGNALS = (
    Signal("crisis_mode", lambda c: c.pressure > 0.7, 1.0, 0.2, 0.0, 0.1),
    Signal("observation_active",
           lambda c: c.progress < 0.2 or c.dummy["crisis_mode"] > 0.5, 1.0, 0.15, 0.3, 0.1),
    Signal("theory_building_active", lambda c: 0.15 < c.progress < 0.35, 1.0, 0.15, 0.2, 0.1),
    Signal("system_development_active", lambda c: 0.3 < c.progress < 0.5, 1.0, 0.15, 0.2, 0.1),
    Signal("community_action_active", lambda c: 0.45 < c.progress < 0.75, 1.0, 0.15, 0.3, 0.1),
    Signal("validation_active", lambda c: c.progress > 0.7, 1.0, 0.15, 0.2, 0.1),
    Signal("transformation_mode",
           lambda c: c.stocks["transformation_readiness"] > c.params.transformation_threshold,
           1.0, 0.1, 0.0, 0.05),
)


def update_activations(dummy, time, pressure, stocks, params):
    """Low-pass each activation signal toward its window target, in place."""
    ctx = _Context(pressure, cycle_progress(time, params.cycle_duration), dummy, stocks, params)
    for sig in SIGNALS:
        if sig.active(ctx):
            dummy[sig.name] = smooth_ramp(dummy[sig.name], sig.on_target, sig.on_rate)
        else:
            dummy[sig.name] = smooth_ramp(dummy[sig.name], sig.off_target, sig.off_rate)
    return dummy


# --- flows -------------------------------------------------------------------

def compute_flows(s, d, panarchy, p, pressure):
    flows = {}
    flows["community_intelligence"] = (
        p.learning_rate * d["observation_active"] * s["shared_understanding"] * (1 - s["community_intelligence"]) -
        0.02 * s["community_intelligence"] * (1 - d["validation_active"]))
    flows["shared_understanding"] = (
        0.1 * d["theory_building_active"] * s["community_intelligence"] * p.social_connectivity_baseline -
        0.01 * s["shared_understanding"])
    flows["system_adaptability"] = (
        p.adaptation_rate * d["system_development_active"] * s["innovation_capacity"] * (1 - s["system_adaptability"]) -
        0.03 * s["system_adaptability"] * pressure * (1 - d["crisis_mode"]))
    flows["resource_mobilization"] = (
        0.15 * d["community_action_active"] * s["shared_understanding"] * p.resource_availability_baseline -
        0.05 * s["resource_mobilization"] * (1 + pressure))
    flows["knowledge_accumulation"] = (
        0.08 * d["validation_active"] * s["community_intelligence"] * p.digital_inclusion_baseline -
        0.005 * s["knowledge_accumulation"])

    panarchy_influence = panarchy.resilience * 0.2 if p.panarchy_enabled else 0
    flows["community_resilience"] = (
        0.12 * s["system_adaptability"] * s["resource_mobilization"] * (1 - s["community_resilience"]) +
        panarchy_influence * (1 - s["community_resilience"]) -
        0.04 * s["community_resilience"] * pressure * (1 - d["transformation_mode"]))
    flows["innovation_capacity"] = (
        0.1 * s["knowledge_accumulation"] * p.technological_access_baseline * d["theory_building_active"] -
        0.02 * s["innovation_capacity"])
    flows["transformation_readiness"] = (
        0.05 * s["community_resilience"] * s["innovation_capacity"] * d["crisis_mode"] * (1 - s["transformation_readiness"]) -
        0.03 * s["transformation_readiness"] * (1 - d["transformation_mode"]))
    return flows


# --- integrator ----------------------------------------------------------------

@dataclass(frozen=True)
class HistorySample:
    time: float
    community_intelligence: float
    shared_understanding: float
    system_adaptability: float
    resource_mobilization: float
    knowledge_accumulation: float
    community_resilience: float
    innovation_capacity: float
    transformation_readiness: float
    observation_active: float
    theory_building_active: float
    system_development_active: float
    community_action_active: float
    validation_active: float
    crisis_mode: float
    transformation_mode: float
    environmental_pressure: float
    performance_index: float
    adaptive_capacity: float
    panarchy_potential: float
    panarchy_connectedness: float
    panarchy_resilience: float
    panarchy_phase: str
    collapse_risk: float


HISTORY_COLUMNS = [f.name for f in fields(HistorySample)]


class CKICASModel:
    dt = 0.5

    def __init__(self, overrides=None):
        self.params = ParameterSet.configure(overrides)
        self.reset()

    def configure(self, overrides=None):
        """Replace the parameters (merged onto DEFAULTS, not the current set) and reset."""
        self.params = ParameterSet.configure(overrides)
        self.reset()

    def reset(self):
        self.time = 0.0
        self.stocks = dict(INITIAL_STOCKS)
        self.dummy = dict.fromkeys(ACTIVATION_NAMES, 0.0)
        self.panarchy = PanarchyState()
        self.environmental_pressure = 0.0
        self._history = []

    @property
    def history(self):
        return tuple(self._history)

    def latest(self):
        return self._history[-1] if self._history else None

    def step(self):
        p = self.params
        self.environmental_pressure = environmental_pressure(self.time, p)
        update_activations(self.dummy, self.time, self.environmental_pressure, self.stocks, p)
        if p.panarchy_enabled:
            update_panarchy(self.panarchy, p, self.dt)

        flows = compute_flows(self.stocks, self.dummy, self.panarchy, p, self.environmental_pressure)
        for key in self.stocks:
            self.stocks[key] = clamp01(self.stocks[key] + flows[key] * self.dt)

        s = self.stocks
        performance_index = (0.3 * s["community_resilience"] + 0.3 * s["community_intelligence"] +
                             0.2 * s["system_adaptability"] + 0.2 * s["resource_mobilization"])
        adaptive_capacity = s["system_adaptability"] * s["innovation_capacity"] * s["transformation_readiness"]
        collapse_risk = (1 - self.panarchy.resilience) * self.panarchy.connectedness

        self._history.append(HistorySample(
            time=self.time,
            **s,
            **self.dummy,
            environmental_pressure=self.environmental_pressure,
            performance_index=performance_index,
            adaptive_capacity=adaptive_capacity,
            panarchy_potential=self.panarchy.potential,
            panarchy_connectedness=self.panarchy.connectedness,
            panarchy_resilience=self.panarchy.resilience,
            panarchy_phase=self.panarchy.phase,
            collapse_risk=collapse_risk,
        ))
        self.time += self.dt

    def run(self, steps):
        for _ in range(steps):
            self.step()
        return self.history

    def history_frame(self):
        return pd.DataFrame([asdict(h) for h in self._history], columns=HISTORY_COLUMNS)
