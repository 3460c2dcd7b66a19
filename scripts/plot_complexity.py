import argparse
from pathlib import Path

import pandas as pd

from chrono_probe.plot import time_plot_frame
from chrono_probe.regression import fit_points

RAW_DIR = Path("results/raw")
FIG_DIR = Path("results/figures")


def main():
    p = argparse.ArgumentParser(description="Log-log plot and fit of one raw point CSV")
    p.add_argument("name", help="Experiment name (reads results/raw/<name>_points.csv)")
    p.add_argument("--linear", action="store_true", help="Linear axes instead of log-log")
    args = p.parse_args()

    df = pd.read_csv(RAW_DIR / f"{args.name}_points.csv")
    ok = df[~df["failed"].astype(bool)]

    for algorithm, sub in ok.groupby("algorithm", sort=False):
        # Safety check
        if len(sub) < 2:
            print(f"{algorithm}: need at least two points to fit a complexity curve.")
            continue
        fit = fit_points(sub["size"].to_numpy(), sub["time"].to_numpy())
        print(f"{algorithm}: estimated complexity exponent α ≈ {fit.slope:.3f} "
              f"(runtime ≈ O(n^{fit.slope:.2f}), R² = {fit.r_squared:.3f})")

    out = time_plot_frame(df, FIG_DIR / f"{args.name}_complexity.png",
                          scale="linear" if args.linear else "loglog", title=args.name)
    print(f"Saved plot to {out}")


if __name__ == "__main__":
    main()
