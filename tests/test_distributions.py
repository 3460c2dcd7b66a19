import json

import numpy as np
import pytest

from chrono_probe.distributions import Distribution, InputSeries, InputStep, generate_inputs, LAWS
from chrono_probe.errors import InvalidAlphabetError, InvalidRangeError


def _has_period(s, p):
    return all(s[i] == s[i + p] for i in range(len(s) - p))

####################### Distribution validation tests #######################

def test_min_greater_than_max_raises():
    with pytest.raises(InvalidRangeError):
        Distribution("uniform", 10, 5)


def test_negative_min_raises():
    with pytest.raises(InvalidRangeError):
        Distribution("uniform", -1, 5)


@pytest.mark.parametrize("law", ["exponential", "reciprocal"])
def test_log_laws_need_positive_min(law):
    with pytest.raises(InvalidRangeError):
        Distribution(law, 0, 100)


def test_range_errors_are_value_errors():
    # callers catching ValueError also see configuration errors
    with pytest.raises(ValueError):
        Distribution("uniform", 3, 2)


def test_empty_alphabet_raises_for_symbol_methods():
    for method in ("uniform_symbols", "periodic", "cyclic"):
        with pytest.raises(InvalidAlphabetError):
            Distribution("uniform", 1, 10, method=method, alphabet=())


def test_repeated_or_multichar_symbols_raise():
    with pytest.raises(InvalidAlphabetError):
        Distribution("uniform", 1, 10, alphabet=("a", "a"))
    with pytest.raises(InvalidAlphabetError):
        Distribution("uniform", 1, 10, alphabet=("ab", "c"))


def test_integers_method_needs_no_alphabet():
    d = Distribution("uniform", 1, 10, method="integers", alphabet=())
    assert d.alphabet == ()


def test_unknown_ids_raise():
    with pytest.raises(ValueError):
        Distribution("gaussian", 1, 10)
    with pytest.raises(ValueError):
        Distribution("uniform", 1, 10, method="method3")
    with pytest.raises(ValueError):
        Distribution("uniform", 1, 10, sampling="sobol")

############################# sizes tests ###################################

@pytest.mark.parametrize("law", LAWS)
@pytest.mark.parametrize("sampling", ["fixed", "random"])
def test_sizes_non_decreasing_and_bounded(law, sampling):
    d = Distribution(law, 1000, 500_000, sampling=sampling)
    sizes = d.sizes(50, rng=np.random.default_rng(3))
    assert len(sizes) == 50
    assert all(a <= b for a, b in zip(sizes, sizes[1:]))
    assert min(sizes) >= 1000 and max(sizes) <= 500_000


@pytest.mark.parametrize("law", LAWS)
def test_fixed_sampling_hits_both_bounds(law):
    sizes = Distribution(law, 1000, 500_000).sizes(10)
    assert sizes[0] == 1000
    assert sizes[-1] == 500_000


def test_uniform_fixed_is_linear_spacing():
    assert Distribution("uniform", 0, 100).sizes(5) == [0, 25, 50, 75, 100]


def test_reciprocal_fixed_is_log_spacing():
    assert Distribution("reciprocal", 1, 100).sizes(3) == [1, 10, 100]


def test_exponential_concentrates_towards_min():
    lo, hi = 1000, 500_000
    sizes = np.array(Distribution("exponential", lo, hi).sizes(101))
    # median of the truncated exponential is well below the midpoint of the range
    assert np.median(sizes) < (lo + hi) / 2
    # and the quantile spacing widens as sizes grow
    gaps = np.diff(sizes)
    assert gaps[-1] > gaps[0]


def test_single_step_and_degenerate_range():
    assert Distribution("uniform", 5, 50).sizes(1) == [5]
    assert Distribution("exponential", 7, 7).sizes(4) == [7, 7, 7, 7]


def test_inverse_cdf_rejects_out_of_unit_interval():
    with pytest.raises(ValueError):
        Distribution("uniform", 1, 10).inverse_cdf(1.5)


def test_sizes_rejects_non_positive_steps():
    with pytest.raises(ValueError):
        Distribution("uniform", 1, 10).sizes(0)

########################## generate_inputs tests ############################

def test_generate_inputs_shapes_and_symbols():
    d = Distribution("exponential", 10, 1000, alphabet=("a", "b"))
    series = generate_inputs(d, 10, seed=1)
    assert isinstance(series, InputSeries)
    assert len(series) == 10
    for step in series:
        assert isinstance(step, InputStep)
        (s,) = step.instances
        assert len(s) == step.size
        assert set(s) <= {"a", "b"}


def test_generate_inputs_determinism():
    d = Distribution("uniform", 10, 500, sampling="random", method="periodic", alphabet=("a", "b", "c"))
    s1 = generate_inputs(d, 8, repetitions=2, seed=2024)
    s2 = generate_inputs(d, 8, repetitions=2, seed=2024)
    assert s1 == s2


def test_generate_inputs_different_seeds_change_output():
    d = Distribution("uniform", 100, 500, sampling="random")
    s1 = generate_inputs(d, 5, seed=1)
    s2 = generate_inputs(d, 5, seed=2)
    assert s1.steps != s2.steps


def test_parallel_generation_matches_sequential():
    d = Distribution("reciprocal", 10, 5000, method="integers", alphabet=())
    seq = generate_inputs(d, 6, repetitions=2, seed=99, n_jobs=1)
    par = generate_inputs(d, 6, repetitions=2, seed=99, n_jobs=2)
    assert seq == par


def test_repetitions_give_independent_instances():
    d = Distribution("uniform", 200, 400)
    series = generate_inputs(d, 3, repetitions=4, seed=5)
    assert series.repetitions == 4
    for step in series:
        assert len(step) == 4
        assert all(len(s) == step.size for s in step.instances)
        assert len(set(step.instances)) > 1


def test_generate_inputs_invalid_counts():
    d = Distribution("uniform", 1, 10)
    with pytest.raises(ValueError):
        generate_inputs(d, 0)
    with pytest.raises(ValueError):
        generate_inputs(d, 3, repetitions=0)

############################# methods tests #################################

def test_cyclic_method_cycles_alphabet():
    d = Distribution("uniform", 7, 7, method="cyclic", alphabet=("x", "y", "z"))
    assert d.materialize(7, np.random.default_rng(0)) == "xyzxyzx"


def test_periodic_method_mostly_has_short_period():
    d = Distribution("uniform", 200, 200, method="periodic", alphabet=("a", "b"))
    short = 0
    for seed in range(20):
        s = d.materialize(200, np.random.default_rng(seed))
        assert len(s) == 200
        if any(_has_period(s, p) for p in range(1, 200)):
            short += 1
    assert short >= 15


def test_integers_method_range():
    d = Distribution("uniform", 1, 10, method="integers", alphabet=())
    v = d.materialize(1000, np.random.default_rng(0))
    assert isinstance(v, list) and len(v) == 1000
    assert all(isinstance(x, int) and 0 <= x < 2**32 for x in v)


def test_zero_size_inputs():
    d = Distribution("uniform", 0, 3, method="periodic")
    assert d.materialize(0, np.random.default_rng(0)) == ""

############################# spacing tests #################################

def test_log_spacing_is_geometric_for_any_law():
    sizes = Distribution("exponential", 1000, 500_000, spacing="log").sizes(10)
    assert sizes[0] == 1000 and sizes[-1] == 500_000
    ratio = 500 ** (1 / 9)
    for a, b in zip(sizes, sizes[1:]):
        assert b / a == pytest.approx(ratio, rel=2e-3)


def test_log_spacing_differs_from_law_quantiles():
    quantiles = Distribution("exponential", 1000, 500_000).sizes(10)
    grid = Distribution("exponential", 1000, 500_000, spacing="log").sizes(10)
    assert quantiles != grid


def test_linear_spacing_ignores_law():
    assert Distribution("exponential", 1, 101, spacing="linear").sizes(5) == [1, 26, 51, 76, 101]
    assert Distribution("reciprocal", 1, 101, spacing="linear").sizes(5) == [1, 26, 51, 76, 101]


def test_spacing_validation():
    with pytest.raises(ValueError):
        Distribution("uniform", 1, 10, spacing="cubic")
    with pytest.raises(ValueError):
        Distribution("uniform", 1, 10, sampling="random", spacing="log")
    with pytest.raises(InvalidRangeError):
        Distribution("uniform", 0, 10, spacing="log")
    # linear spacing accepts a zero lower bound
    assert Distribution("uniform", 0, 10, spacing="linear").sizes(3) == [0, 5, 10]

########################## serialization tests ##############################

@pytest.mark.parametrize("method, alphabet", [("periodic", ("a", "b", "c")), ("integers", ())])
def test_input_series_json_roundtrip(method, alphabet):
    d = Distribution("reciprocal", 5, 300, method=method, alphabet=alphabet, spacing="log")
    series = generate_inputs(d, 4, repetitions=2, seed=8)
    data = json.loads(json.dumps(series.to_dict()))
    assert data["distribution"]["spacing"] == "log"
    assert [s["size"] for s in data["steps"]] == series.sizes
    assert InputSeries.from_dict(data) == series
