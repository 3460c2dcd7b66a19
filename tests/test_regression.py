import math

import numpy as np
import pytest

from chrono_probe.errors import InsufficientDataError
from chrono_probe.regression import (
    RegressionFit, exp_scale, fit_points, fit_result_set, linear_regression, log_scale,
)
from chrono_probe.results import AlgorithmResult, MeasurementFailure, MeasurementPoint, ResultSet


def _power_law(name, coef, exponent, sizes):
    return AlgorithmResult(name, tuple(MeasurementPoint(n, coef * n**exponent) for n in sizes))

####################### linear_regression tests #############################

def test_recovers_exact_line():
    fit = linear_regression([(1, 3), (2, 5), (3, 7), (4, 9)])
    assert fit.slope == pytest.approx(2.0)
    assert fit.intercept == pytest.approx(1.0)
    assert fit.r_squared == pytest.approx(1.0)
    assert fit.n_points == 4
    slope, intercept = fit
    assert (slope, intercept) == (fit.slope, fit.intercept)


def test_two_points_are_enough():
    fit = linear_regression([(0, 1), (2, 5)])
    assert fit.slope == pytest.approx(2.0)
    assert fit.intercept == pytest.approx(1.0)


def test_single_point_raises():
    with pytest.raises(InsufficientDataError):
        linear_regression([(1.0, 2.0)])
    with pytest.raises(InsufficientDataError):
        linear_regression([])


def test_identical_sizes_raise():
    with pytest.raises(InsufficientDataError):
        linear_regression([(2.0, 1.0), (2.0, 3.0)])


def test_insufficient_data_is_value_error():
    with pytest.raises(ValueError):
        linear_regression([(1.0, 2.0)])


def test_noisy_line_close_to_truth():
    rng = np.random.default_rng(0)
    x = np.linspace(1, 10, 50)
    y = 1.5 * x - 2 + rng.normal(0, 0.01, size=x.size)
    fit = linear_regression(zip(x, y))
    assert fit.slope == pytest.approx(1.5, abs=0.01)
    assert fit.intercept == pytest.approx(-2.0, abs=0.05)
    assert fit.stderr < 0.01

########################### log scale tests #################################

def test_log_log_slope_recovers_exponent():
    r = _power_law("quad", 3e-9, 2.0, [100, 200, 400, 800, 1600])
    fit = linear_regression(log_scale(r))
    assert fit.slope == pytest.approx(2.0)
    assert fit.intercept == pytest.approx(math.log(3e-9))
    assert fit.predict(1000) == pytest.approx(3e-9 * 1000**2)


def test_log_base_changes_intercept_only():
    r = _power_law("lin", 2e-6, 1.0, [10, 100, 1000])
    fit10 = r.log_scale(10).linear_regression()
    assert fit10.slope == pytest.approx(1.0)
    assert fit10.intercept == pytest.approx(math.log10(2e-6))
    assert fit10.log_base == 10


def test_log_then_exp_restores_points():
    r = _power_law("cubic", 1e-10, 3.0, [5, 50, 500])
    back = exp_scale(log_scale(r, base=2))
    assert back.sizes == pytest.approx(r.sizes)
    assert back.times == pytest.approx(r.times)


def test_log_scale_excludes_and_counts_unusable_entries():
    r = AlgorithmResult("mixed", (
        MeasurementPoint(0, 1e-6),
        MeasurementPoint(10, 0.0),
        MeasurementFailure(20, "KeyError"),
        MeasurementPoint(40, 1e-5),
        MeasurementPoint(80, 2e-5),
    ))
    scaled = log_scale(r)
    assert scaled.excluded == 3
    assert len(scaled.points) == 2
    assert linear_regression(scaled).excluded == 3


def test_log_scale_rejects_bad_base_and_double_scaling():
    r = _power_law("lin", 1.0, 1.0, [1, 2])
    with pytest.raises(ValueError):
        log_scale(r, base=1)
    with pytest.raises(ValueError):
        log_scale(log_scale(r))
    with pytest.raises(ValueError):
        exp_scale(r)

########################## fit_result_set tests #############################

def test_fit_result_set_isolates_insufficient_algorithms():
    rs = ResultSet([
        _power_law("quad", 1e-9, 2.0, [100, 1000, 10000]),
        AlgorithmResult("broken", (MeasurementPoint(10, 1e-6), MeasurementFailure(20, "E"))),
    ])
    df = fit_result_set(rs)
    assert df["name"].tolist() == ["quad", "broken"]
    quad = df.set_index("name").loc["quad"]
    assert quad["slope"] == pytest.approx(2.0)
    assert df["error"].dtype == object
    assert quad["error"] is None
    broken = df.set_index("name").loc["broken"]
    assert math.isnan(broken["slope"])
    assert "at least two" in broken["error"]
    assert broken["excluded"] == 1


def test_fit_points_from_raw_columns():
    sizes = [400, 100, 200]
    times = [1.6e-4, 1e-5, 4e-5]
    fit = fit_points(sizes, times)
    assert isinstance(fit, RegressionFit)
    assert fit.slope == pytest.approx(2.0)
