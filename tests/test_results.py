import math

import pandas as pd
import pytest

from chrono_probe.results import AlgorithmResult, MeasurementFailure, MeasurementPoint, ResultSet


def _result(name="algo"):
    return AlgorithmResult(name, (
        MeasurementPoint(10, 1e-5, repetitions=5, precision=0.001),
        MeasurementFailure(20, "ZeroDivisionError", "division by zero"),
        MeasurementPoint(40, 1.6e-4, repetitions=12, precision=0.002, batch=4, capped=True),
    ))

######################### AlgorithmResult tests #############################

def test_entries_must_be_ordered_by_size():
    with pytest.raises(ValueError):
        AlgorithmResult("x", (MeasurementPoint(20, 1.0), MeasurementPoint(10, 1.0)))
    # equal sizes are allowed (repeated steps)
    AlgorithmResult("x", (MeasurementPoint(10, 1.0), MeasurementPoint(10, 2.0)))


def test_points_and_failures_are_split():
    r = _result()
    assert len(r) == 3
    assert r.sizes == [10, 40]
    assert r.times == [1e-5, 1.6e-4]
    assert [f.size for f in r.failures] == [20]
    assert r.by_size(20)[0].failed


def test_extremes_ignore_failures():
    r = _result()
    assert r.min_size() == 10 and r.max_size() == 40
    assert r.min_time() == 1e-5 and r.max_time() == 1.6e-4
    with pytest.raises(ValueError):
        AlgorithmResult("empty").max_time()


def test_failure_from_exception():
    f = MeasurementFailure.from_exception(7, KeyError("k"))
    assert f.failed and f.size == 7 and f.error_type == "KeyError"


def test_clone_is_deep_and_equal():
    r = _result()
    c = r.clone()
    assert c == r
    assert c is not r and c.entries is not r.entries


def test_to_frame_columns_and_failure_rows():
    df = _result().to_frame()
    assert list(df.columns) == ["algorithm", "size", "time", "repetitions", "precision",
                                "batch", "capped", "failed", "error_type", "message"]
    assert df["failed"].tolist() == [False, True, False]
    assert math.isnan(df.loc[1, "time"])
    assert df.loc[1, "error_type"] == "ZeroDivisionError"


def test_to_dict_from_dict():
    r = _result()
    assert AlgorithmResult.from_dict(r.to_dict()) == r

############################ ResultSet tests ################################

def test_result_set_mapping_and_order():
    rs = ResultSet([_result("b"), _result("a")], target_precision=0.01, resolution=1e-7)
    assert list(rs) == ["b", "a"] and rs.names == ["b", "a"]
    assert len(rs) == 2 and rs["a"].name == "a"
    assert "ResultSet(" in repr(rs)


def test_result_set_rejects_duplicate_names():
    with pytest.raises(ValueError):
        ResultSet([_result("a"), _result("a")])


def test_result_set_extremes_across_algorithms():
    fast = AlgorithmResult("fast", (MeasurementPoint(5, 1e-7), MeasurementPoint(500, 1e-6)))
    rs = ResultSet([_result(), fast, AlgorithmResult("failed", (MeasurementFailure(1, "E"),))])
    assert rs.min_size() == 5 and rs.max_size() == 500
    assert rs.min_time() == 1e-7 and rs.max_time() == 1.6e-4
    with pytest.raises(ValueError):
        ResultSet([AlgorithmResult("failed", (MeasurementFailure(1, "E"),))]).max_size()


def test_result_set_clone_and_roundtrip():
    rs = ResultSet([_result("a"), _result("b")], target_precision=0.01, resolution=1e-7, confidence=0.95)
    c = rs.clone()
    assert c == rs and c is not rs
    back = ResultSet.from_dict(rs.to_dict())
    assert back == rs
    assert back.target_precision == 0.01 and back.resolution == 1e-7 and back.confidence == 0.95


def test_result_set_frame_is_long_format():
    df = ResultSet([_result("a"), _result("b")]).to_frame()
    assert isinstance(df, pd.DataFrame)
    assert len(df) == 6
    assert df["algorithm"].tolist() == ["a"] * 3 + ["b"] * 3
    assert ResultSet().to_frame().empty


def test_log_scale_on_result_set():
    rs = ResultSet([_result("a")], target_precision=0.01).log_scale()
    assert rs["a"].log_base == math.e
    assert rs["a"].excluded == 1
    assert rs.target_precision == 0.01
