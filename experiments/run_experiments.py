"""
experiments/run_experiments.py

Experiment harness that loads the hospital config, applies scenario
overrides, runs multiple replications, and reports KPIs with confidence
intervals. Optionally compares two scenarios under common random numbers and
saves occupancy / utilization plots.
"""

from __future__ import annotations
import argparse
import logging
import math
import os
from statistics import mean, stdev
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from scipy.stats import t as student_t

from experiments.scenarios import SCENARIOS
from patientflow.config import DEFAULT_CONFIG, apply_overrides, build_simulator, load_cfg
from patientflow.errors import PatientFlowError
from patientflow.metrics import SimulationResult

log = logging.getLogger(__name__)

DEFAULT_OUT_DIR = os.path.join("experiments", "output")


def mean_ci(values: List[float], confidence_level: float) -> Tuple[float, float]:
    """Return (mean, half-width) using a t-distribution critical value."""
    if not values:
        return 0.0, 0.0
    mu = mean(values)
    n = len(values)
    if n < 2:
        return mu, 0.0
    level = min(max(confidence_level, 0.0), 0.999999)
    alpha = 1.0 - level
    tcrit = student_t.ppf(1 - alpha / 2.0, n - 1)
    half = tcrit * (stdev(values) / math.sqrt(n))
    return mu, half


def sample_stddev(values: List[float]) -> float:
    """Return sample standard deviation or 0 if insufficient data."""
    if len(values) < 2:
        return 0.0
    return stdev(values)


def series(results: List[Dict], extractor: Callable[[Dict], float]) -> List[float]:
    """Collect a numeric series from each replication summary."""
    return [float(extractor(res)) for res in results]


def avg_nested(results: List[Dict], key: str) -> Dict[str, float]:
    """Average nested dictionaries (e.g., station_utilization) across replications."""
    if not results:
        return {}
    totals: Dict[str, float] = {}
    for res in results:
        nested = res.get(key, {})
        for subk, val in nested.items():
            totals[subk] = totals.get(subk, 0.0) + float(val)
    return {subk: totals[subk] / len(results) for subk in totals}


def scenario_by_name(name: str) -> Dict:
    for sc in SCENARIOS:
        if sc["name"] == name:
            return sc
    raise KeyError(name)


def run_replications(cfg: Dict, replications: int, base_seed: Optional[int] = None
                     ) -> Tuple[List[Dict], Optional[SimulationResult]]:
    """
    Run `replications` independent runs with seeds base_seed, base_seed+1, ...
    Returns the per-run summaries and the full result of the first run (for plots).
    """
    sim = build_simulator(cfg)
    if base_seed is None:
        base_seed = sim.seed or 0
    summaries: List[Dict] = []
    first: Optional[SimulationResult] = None
    for rep in range(max(1, replications)):
        res = sim.run(seed=base_seed + rep)
        summaries.append(res.summary())
        if first is None:
            first = res
    return summaries, first


def run_crn(cfg: Dict, sc_a: Dict, sc_b: Dict, replications: int, base_seed: int,
            confidence: float, C: float = 1.0, metric: str = "avg_flow_time") -> Dict:
    """
    Run a common-random-number comparison between two scenarios, using the same
    seed per replication, and report paired differences and the CI of the mean.
    C is the Bonferroni divisor when several comparisons share one error budget.
    """
    sim_a = build_simulator(apply_overrides(cfg, sc_a["overrides"]))
    sim_b = build_simulator(apply_overrides(cfg, sc_b["overrides"]))
    rows = []
    for rep in range(max(1, replications)):
        seed = base_seed + rep
        a = sim_a.run(seed=seed).summary().get(metric, 0.0)
        b = sim_b.run(seed=seed).summary().get(metric, 0.0)
        rows.append((seed, a, b))
    diffs = [b - a for (_, a, b) in rows]
    mean_diff = mean(diffs)
    sd_diff = stdev(diffs) if len(diffs) > 1 else 0.0
    level = min(max(confidence, 0.0), 0.999999)
    alpha = (1.0 - level) / max(C, 1.0)
    df = max(1, len(diffs) - 1)
    tcrit = student_t.ppf(1 - alpha / 2.0, df)
    half = tcrit * (sd_diff / math.sqrt(len(diffs))) if len(diffs) > 1 else 0.0
    print(f"CRN paired {metric} comparison ({sc_b['name']} - {sc_a['name']}):")
    print("  Replication | Seed | Scenario1 | Scenario2 | Difference")
    for idx, (seed, v1, v2) in enumerate(rows, start=1):
        print(f"    {idx:2d}        | {seed:4d} | {v1:9.2f} | {v2:9.2f} | {v2 - v1:9.2f}")
    print(f"  Mean difference: {mean_diff:.2f}")
    print(f"  Std dev of differences: {sd_diff:.2f}")
    print(f"  {level*100:.1f}% CI of mean diff: {mean_diff - half:.2f} to {mean_diff + half:.2f}")
    return {
        "rows": rows,
        "mean_diff": mean_diff,
        "sd_diff": sd_diff,
        "ci": (mean_diff - half, mean_diff + half),
    }


def plot_occupancy(result: SimulationResult, scenario_name: str, out_dir: str = DEFAULT_OUT_DIR):
    """
    Persist a PNG with one panel per station: in-service count and queue
    length as step functions over time, horizon marked.
    """
    df = result.resources_table()
    if df.empty:
        return None
    names = list(dict.fromkeys(df["resource"]))
    fig, axes = plt.subplots(len(names), 1, figsize=(9, 2.2 * len(names)), sharex=True, squeeze=False)
    for ax, name in zip(axes[:, 0], names):
        sub = df[df["resource"] == name]
        ax.step(sub["time"], sub["server"], where="post", label="in service", color="#2563eb")
        ax.step(sub["time"], sub["queue"], where="post", label="queue", color="#d97706")
        ax.axhline(sub["capacity"].iloc[0], color="#6b7280", linestyle=":", linewidth=1)
        ax.axvline(result.horizon, color="#f59e0b", linestyle="--", linewidth=1)
        ax.set_ylabel(name)
        ax.grid(True, linestyle="--", alpha=0.4)
    axes[0, 0].legend(loc="upper right")
    axes[-1, 0].set_xlabel("Time (minutes)")
    fig.suptitle(f"{scenario_name}: station occupancy")
    os.makedirs(out_dir, exist_ok=True)
    safe_name = scenario_name.lower().replace(" ", "_")
    out_path = os.path.join(out_dir, f"{safe_name}_occupancy.png")
    fig.tight_layout()
    fig.savefig(out_path, dpi=160)
    plt.close(fig)
    return out_path


def plot_all_scenario_utilization(rows: Sequence[Dict], out_dir: str = DEFAULT_OUT_DIR):
    """Grouped bar chart of mean station utilization per scenario."""
    if not rows:
        return None
    stations = sorted({st for r in rows for st in r["utilization"]})
    width = 0.8 / len(rows)
    plt.figure(figsize=(9, 5))
    for k, r in enumerate(rows):
        xs = [i + k * width for i in range(len(stations))]
        ys = [r["utilization"].get(st, 0.0) * 100.0 for st in stations]
        plt.bar(xs, ys, width=width, label=r["name"])
    plt.xticks([i + 0.4 - width / 2 for i in range(len(stations))], stations)
    plt.ylabel("Utilization (% busy)")
    plt.title("Station utilization across scenarios")
    plt.grid(True, axis="y", linestyle="--", alpha=0.4)
    plt.legend()
    os.makedirs(out_dir, exist_ok=True)
    out_path = os.path.join(out_dir, "all_scenarios_utilization.png")
    plt.tight_layout()
    plt.savefig(out_path, dpi=160)
    plt.close()
    return out_path


def report(name: str, summaries: List[Dict], confidence: float, seeds: Tuple[int, int]):
    level_pct = confidence * 100.0
    entities = mean_ci(series(summaries, lambda r: r.get("entities", 0)), confidence)
    flow = mean_ci(series(summaries, lambda r: r.get("avg_flow_time", 0.0)), confidence)
    flow_sd = sample_stddev(series(summaries, lambda r: r.get("avg_flow_time", 0.0)))
    wait = mean_ci(series(summaries, lambda r: r.get("avg_wait_time", 0.0)), confidence)
    rejected = mean_ci(series(summaries, lambda r: r.get("rejected", 0)), confidence)
    station_wait = {k: round(v, 2) for k, v in avg_nested(summaries, "avg_station_wait").items()}
    utilizations = {k: round(v * 100.0, 1) for k, v in avg_nested(summaries, "station_utilization").items()}
    print(f"Scenario: {name} (replications={len(summaries)}, {level_pct:.1f}% CI, seeds {seeds[0]}-{seeds[1]})")
    print(f"  Patients/run: {entities[0]:.2f} ± {entities[1]:.2f}")
    print(f"  Avg time in system: {flow[0]:.2f} ± {flow[1]:.2f} min (sd {flow_sd:.2f})")
    print(f"  Avg total wait: {wait[0]:.2f} ± {wait[1]:.2f} min")
    print(f"  Rejected/run: {rejected[0]:.2f} ± {rejected[1]:.2f}")
    print(f"  Avg wait by station (min): {station_wait}")
    print(f"  Station utilization (mean % busy): {utilizations}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point: drive all scenarios, replications, and report KPIs."""
    parser = argparse.ArgumentParser(description="Run hospital patient-flow scenarios.")
    parser.add_argument("--config", default=DEFAULT_CONFIG, help="scenario YAML file")
    parser.add_argument("--replications", type=int, default=None, help="override experiments.replications")
    parser.add_argument("--scenario", action="append", default=None,
                        help="run only the named scenario (repeatable)")
    parser.add_argument("--out-dir", default=DEFAULT_OUT_DIR, help="where plots are written")
    parser.add_argument("--no-plots", action="store_true", help="skip matplotlib output")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    args = parser.parse_args(argv)

    level = logging.WARNING - 10 * min(args.verbose, 2)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        cfg = load_cfg(args.config)
    except (OSError, PatientFlowError) as exc:
        log.error("cannot load %s: %s", args.config, exc)
        return 2
    exp_cfg = cfg.get("experiments", {}) or {}
    replications = max(1, int(args.replications or exp_cfg.get("replications", 1)))
    confidence = float(exp_cfg.get("confidence_level", 0.95))
    make_plots = bool(exp_cfg.get("occupancy_plot", True)) and not args.no_plots
    default_seed = int(cfg.get("sim", {}).get("seed", 0))

    try:
        selected = [scenario_by_name(n) for n in args.scenario] if args.scenario else SCENARIOS
    except KeyError as exc:
        log.error("unknown scenario %s", exc)
        return 2

    util_rows = []
    for sc in selected:
        sc_cfg = apply_overrides(cfg, sc["overrides"])
        seed = int(sc_cfg.get("sim", {}).get("seed", default_seed))
        try:
            summaries, first = run_replications(sc_cfg, replications, seed)
        except PatientFlowError as exc:
            log.error("scenario %s failed: %s", sc["name"], exc)
            return 1
        report(sc["name"], summaries, confidence, (seed, seed + replications - 1))
        util_rows.append({"name": sc["name"], "utilization": avg_nested(summaries, "station_utilization")})
        if make_plots and first is not None:
            path = plot_occupancy(first, sc["name"], args.out_dir)
            if path:
                print(f"  Occupancy plot saved to: {path}")
        print("-")

    # Optional CRN comparison between named scenarios using common random numbers
    crn_pairs = exp_cfg.get("crn_compare") or []
    if crn_pairs and not args.scenario:
        # Bonferroni: C comparisons share the error budget
        C = len(crn_pairs)
        for pair in crn_pairs:
            if len(pair) != 2:
                print(f"[warn] skipping CRN entry (needs 2 names): {pair}")
                continue
            try:
                sc_a, sc_b = scenario_by_name(pair[0]), scenario_by_name(pair[1])
            except KeyError:
                print(f"[warn] CRN pair not found: {pair}")
                continue
            print(f"\nCRN & Bonferroni Comparison: {sc_a['name']} vs {sc_b['name']} "
                  f"(replications={replications}, seeds shared)")
            run_crn(cfg, sc_a, sc_b, replications, default_seed, confidence, C)

    if make_plots:
        path = plot_all_scenario_utilization(util_rows, args.out_dir)
        if path:
            print(f"\nAll-scenario utilization plot saved to: {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
