import json
import math

import numpy as np
import pandas as pd
import pytest

from practice_analytics.dashboard_server import ROUTES, dispatch, to_json
from practice_analytics.loader import ResourceCache
from tests.conftest import TODAY


@pytest.fixture
def cache(data_dir):
    return ResourceCache(data_dir=data_dir)


def test_to_json_sanitizes_numpy_nan_and_dates():
    payload = {"a": np.int64(3), "b": np.float64("nan"), "c": math.inf,
               "d": pd.Timestamp("2024-06-01"), "e": pd.NaT, "f": (1.5, None)}
    assert json.loads(to_json(payload)) == {"a": 3, "b": None, "c": None,
                                            "d": "2024-06-01", "e": None, "f": [1.5, None]}


def test_index_lists_routes(cache):
    status, payload = dispatch("GET", "/", cache)
    assert status == 200
    assert "/api/doctor-analysis" in payload["routes"]
    assert "/api/mbt-scenario" in payload["post_routes"]


def test_unknown_route_is_404(cache):
    assert dispatch("GET", "/api/nothing", cache)[0] == 404
    assert dispatch("POST", "/api/summary", cache, {})[0] == 404


def test_summary_includes_data_quality(cache):
    status, payload = dispatch("GET", f"/api/summary?today={TODAY}", cache)
    assert status == 200
    assert payload["revenue_ytd"] == 6000.0
    assert payload["data_quality"]["billing"]["records"] == 6


def test_doctor_analysis_route(cache):
    status, payload = dispatch(
        "GET", f"/api/doctor-analysis?doctor=DR1&compare=all&days=60&today={TODAY}", cache)
    assert status == 200
    assert payload["peer_metrics"]["total_billed"] == 1500.0
    json.loads(to_json(payload))


def test_doctor_analysis_explicit_dates(cache):
    status, payload = dispatch(
        "GET", "/api/doctor-analysis?doctor=DR1&start=2024-06-05&end=2024-06-30", cache)
    assert status == 200
    assert payload["window"] == {"start": "2024-06-05", "end": "2024-06-30"}
    assert payload["metrics"]["procedure_count"] == 1.0


def test_bad_parameter_is_400(cache):
    status, payload = dispatch("GET", "/api/financial-analysis?days=thirty", cache)
    assert status == 400
    assert "days" in payload["error"]


def test_bad_period_is_400(cache):
    assert dispatch("GET", "/api/mbt-baseline?period=forever", cache)[0] == 400


def test_financial_and_recent_patients_routes(cache):
    status, payload = dispatch("GET", f"/api/financial-analysis?days=30&today={TODAY}", cache)
    assert status == 200
    assert payload["cards"]["revenue"] == 6000
    status, payload = dispatch("GET", "/api/recent-patients?limit=2", cache)
    assert [row["id"] for row in payload] == ["P2", "P5"]


def test_mbt_scenario_route(cache):
    body = {"name": "Raise consults", "period": "last30days", "today": TODAY,
            "new_mbt": {"Consultation": 200}}
    status, payload = dispatch("POST", "/api/mbt-scenario", cache, body)
    assert status == 200
    assert payload["difference"] == pytest.approx(2000.0)
    assert payload["most_impacted"] == "Consultation"


def test_mbt_scenario_without_name_is_400(cache):
    assert dispatch("POST", "/api/mbt-scenario", cache, {"period": "last30days"})[0] == 400


def test_refresh_clears_cache(cache):
    dispatch("GET", "/api/filters", cache)
    assert cache.quality()
    status, payload = dispatch("POST", "/api/refresh", cache, {})
    assert status == 200
    assert payload == {"status": "ok"}
    assert cache.quality() == {}


@pytest.mark.parametrize("new_mbt", [{"Consultation": float("nan")}, {"Consultation": "lots"},
                                     ["Consultation", 200]])
def test_mbt_scenario_rejects_bad_mbt_values(cache, new_mbt):
    body = {"name": "Bad", "period": "last30days", "today": TODAY, "new_mbt": new_mbt}
    status, payload = dispatch("POST", "/api/mbt-scenario", cache, body)
    assert status == 400
    assert "new_mbt" in payload["error"] or "MBT" in payload["error"]


def test_mbt_scenario_rejects_infinite_count(cache):
    body = {"name": "Bad", "period": "last30days", "counts": {"Consultation": float("inf")}}
    assert dispatch("POST", "/api/mbt-scenario", cache, body)[0] == 400


def test_programming_error_is_500_not_400(cache, monkeypatch):
    def broken(cache, params):
        raise TypeError("unsupported operand")

    monkeypatch.setitem(ROUTES, "/api/summary", broken)
    status, payload = dispatch("GET", "/api/summary", cache)
    assert status == 500
    assert "TypeError" in payload["error"]
