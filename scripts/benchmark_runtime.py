from __future__ import annotations
import time
from pathlib import Path
import pandas as pd

from chrono_probe.experiment import load_config, validate_config, run_experiment, summarize

PROFILE_CONFIG = Path("configs/sorting_reciprocal.json")


def main() -> None:
    cfg_base = load_config(PROFILE_CONFIG)
    validate_config(cfg_base)
    print(f"[benchmark] Config={PROFILE_CONFIG.name}")

    rows = []
    for label, n_jobs in (("sequential", 1), ("parallel", -1)):
        cfg = dict(cfg_base)
        cfg["n_jobs"] = n_jobs
        print(f"[benchmark] Running {label}...", flush=True)
        t0 = time.perf_counter()
        _, results = run_experiment(cfg, verbose=False)
        wall = time.perf_counter() - t0
        print(f"[benchmark] {label} wall time: {wall:.2f} s")

        # Slopes should agree between the two modes; the wall time should not
        for fit in summarize(results, cfg["name"]).itertuples():
            rows.append({"mode": label, "algorithm": fit.algorithm, "slope": fit.slope, "wall_sec": wall})

    out_dir = Path("results/profiling")
    out_dir.mkdir(parents=True, exist_ok=True)
    out_path = out_dir / "benchmark_runtime.csv"
    pd.DataFrame(rows).to_csv(out_path, index=False)
    print(f"[benchmark] Wrote {out_path}")


if __name__ == "__main__":
    main()
