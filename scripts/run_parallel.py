from __future__ import annotations
import argparse
from pathlib import Path

from chrono_probe.experiment import load_config, validate_config, run_experiment, save_raw


def main() -> None:
    p = argparse.ArgumentParser(description="Measure one config with all cores")
    p.add_argument("config", nargs="?", default="configs/sorting_reciprocal.json")
    args = p.parse_args()

    cfg = load_config(Path(args.config))
    # Use all cores; concurrent timings are noisier than sequential ones
    cfg["n_jobs"] = -1
    cfg["name"] = f"{cfg['name']}_parallel"
    validate_config(cfg)

    print(f"[parallel] Running config={args.config} with n_jobs={cfg['n_jobs']}")
    _, results = run_experiment(cfg)
    out = save_raw(results, cfg)
    print(f"[parallel] Wrote {out}")


if __name__ == "__main__":
    main()
