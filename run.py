#!/usr/bin/env python3
"""
run.py — batch runner for CKICAS scenarios
Runs each preset for a simulated year (or the two-year "run complete" horizon),
writes per-scenario history CSVs, a summary table and a comparison plot.
"""
import os
import json
import time
import argparse
import numpy as np
import pandas as pd
from scipy.stats import sem

from ckicas_sim import CKICASModel, ParameterSet, InvalidParameter

FULL_RUN_TICKS = 730
DEFAULT_DAYS = 365
OUT_DIR = "results"

SCENARIOS = {
    "Baseline": {},
    "NoPanarchy": {"panarchy_enabled": False},
    "SevereCrisis": {"crisis_intensity": 0.9, "crisis_start": 100, "crisis_duration": 25},
    "HighVUCA": {"volatility_level": 0.8, "uncertainty_level": 0.8,
                 "complexity_level": 0.8, "ambiguity_level": 0.8},
    "FastLearning": {"learning_rate": 0.8, "adaptation_rate": 0.7},
}


def ticks_for(days, dt=CKICASModel.dt):
    return int(round(days / dt))


def phase_transitions(df):
    phases = df["panarchy_phase"]
    return int((phases != phases.shift()).sum() - 1) if len(phases) else 0


def summarize(name, df):
    perf = df["performance_index"].to_numpy()
    return {
        "scenario": name,
        "performance_mean": float(np.mean(perf)),
        "performance_sem": float(sem(perf)) if len(perf) > 1 else 0.0,
        "resilience_final": float(df["community_resilience"].iloc[-1]),
        "collapse_risk_peak": float(df["collapse_risk"].max()),
        "phase_transitions": phase_transitions(df),
    }


def run_scenarios(scenarios, ticks, out_dir=OUT_DIR, prefix="ckicas", base=None):
    os.makedirs(out_dir, exist_ok=True)
    base = base or {}
    rows = []
    for name, overrides in scenarios.items():
        print(f"[RUN] {name}")
        model = CKICASModel({**base, **overrides})
        model.run(ticks)
        df = model.history_frame()
        df.to_csv(f"{out_dir}/{prefix}_{name}_history.csv", index=False)
        rows.append(summarize(name, df))

    summary = pd.DataFrame(rows)
    summary.to_csv(f"{out_dir}/{prefix}_summary.csv", index=False)
    return summary


def plot_summary(df, out_dir, prefix):
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
        fig, ax = plt.subplots(1, 2, figsize=(12, 5))
        ax[0].bar(df["scenario"], df["performance_mean"], yerr=df["performance_sem"], capsize=5, color="steelblue")
        ax[0].set_title("Performance Index")
        ax[0].set_ylabel("Mean ± SEM")
        ax[0].tick_params(axis="x", rotation=30)
        ax[1].scatter(df["collapse_risk_peak"], df["resilience_final"])
        for _, row in df.iterrows():
            ax[1].annotate(row["scenario"], (row["collapse_risk_peak"], row["resilience_final"]))
        ax[1].set_xlabel("Peak collapse risk"); ax[1].set_ylabel("Final resilience")
        ax[1].set_title("Resilience vs Collapse Risk")
        plt.tight_layout()
        plt.savefig(f"{out_dir}/{prefix}_summary.png", dpi=200)
        plt.close(fig)
        print(f"[INFO] Plot saved: {prefix}_summary.png")
    except ImportError:
        print("[WARN] Matplotlib not found. Skipping plots.")


def parse_assignment(text):
    """'key=value' -> (key, value); value parsed as a JSON scalar, else kept as a string."""
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise ValueError(f"expected key=value, got {text!r}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key.strip(), value


def parse_overrides(items):
    """['key=value', ...] -> dict of known parameters; unknown keys are warned about and dropped."""
    overrides = {}
    for item in items:
        key, value = parse_assignment(item)
        if key not in ParameterSet.__annotations__:
            print(f"[WARN] Unknown parameter ignored: {key}")
            continue
        overrides[key] = value
    return overrides


def build_parser():
    parser = argparse.ArgumentParser(description="CKICAS — community resilience scenario runner")
    parser.add_argument("--days", type=float, default=DEFAULT_DAYS, help="Simulated days per scenario")
    parser.add_argument("--full", action="store_true", help=f"Run {FULL_RUN_TICKS} ticks (two simulated years)")
    parser.add_argument("--scenario", action="append", choices=sorted(SCENARIOS), help="Limit to scenario (repeatable)")
    parser.add_argument("--config", help="JSON file of parameter overrides applied to every scenario")
    parser.add_argument("--set", dest="overrides", action="append", default=[], metavar="KEY=VALUE",
                        help="Parameter override applied to every scenario (repeatable)")
    parser.add_argument("--out-dir", default=OUT_DIR)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    base = {}
    if args.config:
        with open(args.config) as f:
            base.update(json.load(f))
    try:
        base.update(parse_overrides(args.overrides))
    except ValueError as e:
        parser.error(str(e))

    scenarios = {k: v for k, v in SCENARIOS.items() if not args.scenario or k in args.scenario}
    ticks = FULL_RUN_TICKS if args.full else ticks_for(args.days)
    if ticks < 1:
        parser.error("--days must give at least one tick")
    prefix = f"ckicas_{time.strftime('%Y%m%d_%H%M%S')}"

    try:
        df = run_scenarios(scenarios, ticks, args.out_dir, prefix, base)
    except InvalidParameter as e:
        print(f"[ERROR] {e}")
        return 2

    with open(f"{args.out_dir}/{prefix}_config.json", "w") as f:
        json.dump({"ticks": ticks, "dt": CKICASModel.dt,
                   "parameters": ParameterSet.configure(base).as_dict(),
                   "scenarios": scenarios}, f, indent=2, ensure_ascii=False)
    plot_summary(df, args.out_dir, prefix)

    print(f"\n=== RESULTS ({ticks} ticks) ===")
    print(df.round(4).to_string(index=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
