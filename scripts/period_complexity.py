from __future__ import annotations
import logging
from pathlib import Path

from chrono_probe.distributions import Distribution, generate_inputs
from chrono_probe.algorithms import AlgorithmUnderTest
from chrono_probe.measurement import measure
from chrono_probe.plot import time_plot

from scripts.period_algorithms import period_naive1, period_naive2, period_smart

OUT_FIG = Path("results/figures/period_complexity.png")


def main() -> None:
    logging.basicConfig(level=logging.INFO)

    # 10 log-spaced sizes between 1000 and 20000, binary strings with a random period
    distribution = Distribution("exponential", 1000, 20_000, method="periodic", alphabet=("a", "b"), spacing="log")
    inputs = generate_inputs(distribution, 10, seed=2024)

    algorithms = [
        AlgorithmUnderTest("period naive1", period_naive1),
        AlgorithmUnderTest("period naive2", period_naive2),
        AlgorithmUnderTest("period smart", period_smart),
    ]
    results = measure(inputs, algorithms, 0.01, verbose=True)

    for name, result in results.clone().items():
        try:
            slope, intercept = result.log_scale().linear_regression()
        except ValueError as e:
            print(f"{name}: {e}")
            continue
        print(f"{name}: {slope:.3f} * x + {intercept:.3f}")

    out = time_plot(results, OUT_FIG)
    print(f"Saved plot to {out}")


if __name__ == "__main__":
    main()
