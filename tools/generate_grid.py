import json
from pathlib import Path

ALGORITHMS = [
    "scripts.period_algorithms:period_naive1",
    "scripts.period_algorithms:period_naive2",
    "scripts.period_algorithms:period_smart",
]


def cfg_name(law, method, max_size):
    return f"period_{law}_{method}_max{max_size}"


def make_cfg(law, method, max_size, steps=10, seed=1019):
    return {
        "name": cfg_name(law, method, max_size),
        "law": law,
        "min_size": 1000,
        "max_size": max_size,
        "sampling": "fixed",
        "spacing": "log",
        "method": method,
        "alphabet": ["a", "b"],
        "n_steps": steps,
        "target_precision": 0.01,
        "max_samples": 200,
        "algorithms": ALGORITHMS,
        "seed": seed,
    }


def main():
    configs_dir = Path("configs"); configs_dir.mkdir(exist_ok=True)
    laws = ["uniform", "exponential", "reciprocal"]
    methods = ["uniform_symbols", "periodic", "cyclic"]
    max_sizes = [10_000, 50_000]
    for law in laws:
        for method in methods:
            for max_size in max_sizes:
                cfg = make_cfg(law, method, max_size)
                path = configs_dir / f"{cfg['name']}.json"
                path.write_text(json.dumps(cfg, indent=2))
                print("wrote", path)


if __name__ == "__main__":
    main()
