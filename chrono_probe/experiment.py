from __future__ import annotations

import argparse
import importlib
import json
import logging
import math
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from chrono_probe.algorithms import AlgorithmUnderTest, check_unique_names
from chrono_probe.distributions import InputSeries, distribution_from_config, generate_inputs
from chrono_probe.measurement import MeasurementConfig, measure
from chrono_probe.regression import fit_points, fit_result_set
from chrono_probe.results import ResultSet


logger = logging.getLogger(__name__)


# ----------------------------- Paths & IO helpers -----------------------------

RESULTS_DIR = Path("results")
RAW_DIR = RESULTS_DIR / "raw"
FIG_DIR = RESULTS_DIR / "figures"


def read_json(path: Path) -> Dict[str, Any]:
    with open(path, "r") as f:
        return json.load(f)


def write_json(obj: Dict[str, Any], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(obj, f, indent=2)


# --------------------------------- Defaults -----------------------------------

DEFAULTS: Dict[str, Any] = {
    # Inputs
    "law": "exponential",        # {"uniform","exponential","reciprocal"}
    "min_size": 1000,
    "max_size": 500_000,
    "sampling": "fixed",         # {"fixed","random"}
    "spacing": None,             # {None,"linear","log"}; None = quantiles of the law
    "method": "uniform_symbols", # {"uniform_symbols","periodic","cyclic","integers"}
    "alphabet": ["a", "b"],
    "n_steps": 10,
    "repetitions": 1,            # instances per size step

    # Timing loop
    "target_precision": 0.001,   # relative standard error of the mean
    "confidence": None,          # e.g. 0.95 -> relative t-interval half-width
    "warmup_runs": 2,
    "min_samples": 5,
    "max_samples": 1000,         # repetition cap
    "max_batch": 2**24,
    "disable_gc": True,

    # Algorithms: "package.module:function" or {"target": ..., "name": ..., "mutates": ...}
    "algorithms": [],

    # Reproducibility / parallelism
    "seed": 12345,
    "n_jobs": 1,
    "backend": "loky",
    "log_base": math.e,
}


def _coerce_alphabet(value: Any) -> List[str]:
    """Accept "ab" or ["a", "b"]; None means no alphabet."""
    if value is None:
        return []
    if isinstance(value, str):
        return list(value)
    if isinstance(value, (list, tuple)):
        return [str(s) for s in value]
    raise TypeError(f"Unsupported type for alphabet: {type(value)}")


def load_config(path: Path) -> Dict[str, Any]:
    user = read_json(path)
    if "name" not in user:
        raise KeyError(f"Config {path} missing required key: 'name'")
    cfg = {**DEFAULTS, **user}
    cfg["alphabet"] = _coerce_alphabet(cfg.get("alphabet"))
    return cfg


def measurement_config(cfg: Dict[str, Any]) -> MeasurementConfig:
    return MeasurementConfig(
        target_precision=float(cfg["target_precision"]),
        warmup_runs=int(cfg["warmup_runs"]),
        min_samples=int(cfg["min_samples"]),
        max_samples=int(cfg["max_samples"]),
        max_batch=int(cfg["max_batch"]),
        confidence=None if cfg.get("confidence") is None else float(cfg["confidence"]),
        disable_gc=bool(cfg.get("disable_gc", True)),
    )


def validate_config(cfg: Dict[str, Any]) -> None:
    """
    Fail-fast checks with actionable hints. Range and alphabet problems raise
    InvalidRangeError / InvalidAlphabetError from the Distribution itself.
    """
    distribution_from_config(cfg)
    measurement_config(cfg)

    n_steps, reps = int(cfg["n_steps"]), int(cfg["repetitions"])
    if n_steps <= 0:
        raise ValueError("n_steps must be positive.")
    if reps <= 0:
        raise ValueError("repetitions must be positive.")
    base = float(cfg.get("log_base", math.e))
    if base <= 0 or base == 1:
        raise ValueError("log_base must be positive and different from 1 (e.g. 2.718..., 2 or 10).")
    for entry in cfg.get("algorithms", []):
        target = entry.get("target") if isinstance(entry, dict) else entry
        if not isinstance(target, str) or ":" not in target:
            raise ValueError(f"algorithm {entry!r} must look like 'package.module:function'.")

    # Warn (don't fail) about settings that are legal but unhelpful.
    if n_steps < 3:
        warnings.warn(
            f"n_steps={n_steps}: a log-log fit through fewer than 3 sizes has no residual check. "
            "Increase n_steps.",
            RuntimeWarning,
        )
    if float(cfg["target_precision"]) < 1e-4:
        warnings.warn(
            f"target_precision={cfg['target_precision']} is very tight; expect many points to hit "
            f"max_samples={cfg['max_samples']}.",
            RuntimeWarning,
        )
    if int(cfg["min_size"]) == int(cfg["max_size"]):
        warnings.warn("min_size == max_size: every step has the same size, no slope can be fitted.", RuntimeWarning)


# ------------------------------ Algorithms ------------------------------------

def resolve_algorithm(entry: Any) -> AlgorithmUnderTest:
    """Import "package.module:function" (optionally a dict with name/mutates)."""
    if isinstance(entry, AlgorithmUnderTest):
        return entry
    if isinstance(entry, dict):
        target, name, mutates = entry["target"], entry.get("name"), bool(entry.get("mutates", False))
    else:
        target, name, mutates = entry, None, False
    module_name, _, attr = str(target).partition(":")
    if not module_name or not attr:
        raise ValueError(f"algorithm {target!r} must look like 'package.module:function'.")
    fn = getattr(importlib.import_module(module_name), attr)
    return AlgorithmUnderTest(name=name or attr, function=fn, mutates=mutates)


# ------------------------------- Pipeline -------------------------------------

def run_experiment(
    cfg: Dict[str, Any],
    algorithms: Optional[Sequence[Any]] = None,
    verbose: bool = True,
) -> Tuple[InputSeries, ResultSet]:
    """
    Generate inputs then time every algorithm on them.

    All configuration is validated before any input is generated.
    Generation is sequential so the series is fully determined by the seed;
    only measurement uses cfg["n_jobs"].
    """
    validate_config(cfg)
    algos = [resolve_algorithm(a) for a in (algorithms if algorithms is not None else cfg["algorithms"])]
    if not algos:
        raise ValueError("No algorithms to measure; set 'algorithms' in the config.")
    check_unique_names(algos)

    distribution = distribution_from_config(cfg)
    inputs = generate_inputs(
        distribution, int(cfg["n_steps"]),
        repetitions=int(cfg["repetitions"]),
        seed=cfg.get("seed"),
    )
    logger.info("Generated %d steps, sizes %s..%s", len(inputs), inputs.sizes[0], inputs.sizes[-1])

    results = measure(
        inputs, algos,
        config=measurement_config(cfg),
        n_jobs=int(cfg.get("n_jobs", 1)),
        backend=cfg.get("backend", "loky"),
        verbose=verbose,
    )
    return inputs, results


# ------------------------------- Aggregation/IO -------------------------------

def save_raw(results: ResultSet, cfg: Dict[str, Any], inputs: Optional[InputSeries] = None) -> Path:
    path = RAW_DIR / f"{cfg['name']}_points.csv"
    path.parent.mkdir(parents=True, exist_ok=True)
    df = results.to_frame()
    df.insert(0, "name", cfg["name"])
    df.to_csv(path, index=False)
    # Save the config, the full result set and (optionally) the inputs alongside
    write_json(cfg, RAW_DIR / f"{cfg['name']}_config.json")
    write_json(results.to_dict(), RAW_DIR / f"{cfg['name']}_results.json")
    if inputs is not None:
        write_json(inputs.to_dict(), RAW_DIR / f"{cfg['name']}_inputs.json")
    return path


def load_results(name: str) -> ResultSet:
    return ResultSet.from_dict(read_json(RAW_DIR / f"{name}_results.json"))


def load_inputs(name: str) -> InputSeries:
    return InputSeries.from_dict(read_json(RAW_DIR / f"{name}_inputs.json"))


def summarize(results: ResultSet, name: str, base: float = math.e) -> pd.DataFrame:
    fits = fit_result_set(results, base=base).rename(columns={"name": "algorithm"})
    fits.insert(0, "name", name)
    return fits


def aggregate_all_raw() -> pd.DataFrame:
    """
    Read all results/raw/*_points.csv and fit every (name, algorithm) series.
    Writes results/summary.csv and returns the DataFrame.
    """
    files = sorted(RAW_DIR.glob("*_points.csv"))
    if not files:
        raise FileNotFoundError(f"No raw point CSVs found in {RAW_DIR}.")

    rows: list[dict] = []
    for f in files:
        df = pd.read_csv(f)
        ok = df[~df["failed"].astype(bool)]
        for (name, algorithm), sub in df.groupby(["name", "algorithm"], sort=False):
            good = ok[(ok["name"] == name) & (ok["algorithm"] == algorithm)]
            row = dict(name=name, algorithm=algorithm, n_points=len(good),
                       n_failed=int(sub["failed"].astype(bool).sum()),
                       n_capped=int(good["capped"].astype(bool).sum()) if len(good) else 0)
            try:
                fit = fit_points(good["size"].to_numpy(), good["time"].to_numpy())
                row.update(slope=fit.slope, intercept=fit.intercept, r_squared=fit.r_squared,
                           stderr=fit.stderr, error=None)
            except ValueError as e:
                row.update(slope=math.nan, intercept=math.nan, r_squared=math.nan,
                           stderr=math.nan, error=str(e))
            rows.append(row)

    out = pd.DataFrame(rows).sort_values(["name", "algorithm"], ignore_index=True)
    out_path = RESULTS_DIR / "summary.csv"
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out.to_csv(out_path, index=False)
    return out


def make_all_figures() -> list[Path]:
    """One log-log figure per raw CSV."""
    from chrono_probe.plot import time_plot_frame

    files = sorted(RAW_DIR.glob("*_points.csv"))
    if not files:
        raise FileNotFoundError(f"No raw point CSVs found in {RAW_DIR}; run --run first.")
    out_paths: list[Path] = []
    for f in files:
        df = pd.read_csv(f)
        name = str(df["name"].iloc[0])
        out_paths.append(time_plot_frame(df, FIG_DIR / f"{name}_complexity.png", title=name))
    return out_paths


# ----------------------------------- CLI --------------------------------------

def parse_args(argv: List[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Empirical time-complexity measurement runner")
    p.add_argument("--check-config", action="store_true", help="Load and validate config(s) only.")
    p.add_argument("--run", action="store_true", help="Measure the algorithms of the given config(s) and write results/raw/*")
    p.add_argument("--analyze", action="store_true", help="Fit results/raw/*_points.csv into results/summary.csv")
    p.add_argument("--figures", action="store_true", help="Create log-log figures from results/raw/*_points.csv")
    p.add_argument("--config", "-c", action="append", default=[], help="Path to a JSON config. Repeatable.")
    p.add_argument("--n-jobs", type=int, default=None, help="Parallel measurement workers (-1=all cores, 1=sequential)")
    p.add_argument("--quiet", action="store_true", help="No progress bars")
    p.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...)")
    return p.parse_args(argv)


def main(argv: List[str] | None = None) -> None:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.check_config:
        if not args.config:
            raise SystemExit("Use -c path/to/config.json (repeatable) with --check-config.")
        for cpath in args.config:
            cfg = load_config(Path(cpath))
            validate_config(cfg)
            print(f"[ok] {cpath}: name={cfg['name']}, law={cfg['law']}, "
                  f"sizes=[{cfg['min_size']}, {cfg['max_size']}], steps={cfg['n_steps']}")
        return

    if args.run:
        if not args.config:
            raise SystemExit("Use -c path/to/config.json (repeatable) with --run.")
        for cpath in args.config:
            cfg = load_config(Path(cpath))
            if args.n_jobs is not None:
                cfg["n_jobs"] = args.n_jobs
            validate_config(cfg)

            print(f"[run] Running config: {cfg['name']}")
            print(f"  law={cfg['law']}, sizes=[{cfg['min_size']}, {cfg['max_size']}], "
                  f"steps={cfg['n_steps']}, target_precision={cfg['target_precision']}")

            inputs, results = run_experiment(cfg, verbose=not args.quiet)
            out = save_raw(results, cfg, inputs=inputs)
            print(f"[run] Wrote {out}")
            fits = summarize(results, cfg["name"], base=float(cfg.get("log_base", math.e)))
            for row in fits.itertuples():
                if pd.isna(row.error):
                    print(f"  {row.algorithm}: log t = {row.slope:.3f} * log n + {row.intercept:.3f}")
                else:
                    print(f"  {row.algorithm}: {row.error}")
        # fallthrough allowed; chain --run --analyze --figures in one call

    if args.analyze:
        print("[analyze] Fitting raw point CSVs...")
        summary = aggregate_all_raw()
        print(f"[analyze] Wrote {RESULTS_DIR / 'summary.csv'} with {len(summary)} rows")

    if args.figures:
        print("[figures] Making complexity figures...")
        for p in make_all_figures():
            print(f"[figures] Wrote {p}")

    if not (args.check_config or args.run or args.analyze or args.figures):
        print("Nothing to do. From the repository root try: python -m chrono_probe.experiment "
              "--run -c configs/period_exponential.json, then --analyze, then --figures.")


if __name__ == "__main__":
    main()
