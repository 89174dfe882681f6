"""
practice_analytics/dashboard_server.py
======================================
Standalone JSON server for the dashboard views — stdlib http.server + pandas.

Run:
    practice-dashboard
    # or: python3 -m practice_analytics.dashboard_server

Then fetch e.g. http://localhost:5050/api/doctor-analysis?doctor=DR001&days=180
"""

import json
import logging
import math
import traceback
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Callable, Dict, Optional
from urllib.parse import parse_qs, urlparse

import numpy as np
import pandas as pd

from practice_analytics.config.dashboard_config import (
    DASHBOARD, DEFAULT_DOCTOR_WINDOW_DAYS, DEFAULT_FINANCIAL_WINDOW_DAYS, LOG_LEVEL,
)
from practice_analytics.filters import InvalidFilterError
from practice_analytics.loader import ResourceCache, default_cache
from practice_analytics.views import (
    InvalidScenarioError, Scenario, compare_scenario, doctor_analysis, filter_options,
    financial_analysis, load_practice_data, practice_summary, procedure_baseline,
    recent_patients,
)

logger = logging.getLogger(__name__)


def to_json(obj) -> bytes:
    """Serialize to JSON, converting NaN/Inf floats → null (valid JSON).
    Numpy scalars become plain numbers and timestamps become YYYY-MM-DD."""
    def sanitize(o):
        if isinstance(o, (np.integer,)):
            return int(o)
        if isinstance(o, (np.floating, float)):
            o = float(o)
            return None if (math.isnan(o) or math.isinf(o)) else o
        if isinstance(o, pd.Timestamp):
            return None if pd.isna(o) else o.strftime("%Y-%m-%d")
        if o is pd.NaT:
            return None
        if isinstance(o, dict):
            return {str(k): sanitize(v) for k, v in o.items()}
        if isinstance(o, (list, tuple)):
            return [sanitize(v) for v in o]
        return o
    return json.dumps(sanitize(obj)).encode()


def _param(params: Dict[str, list], name: str, default=None):
    values = params.get(name)
    return values[0] if values else default


def _int_param(params: Dict[str, list], name: str, default: int) -> int:
    value = _param(params, name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise InvalidFilterError(f"{name} must be a whole number, got {value!r}") from None


def _window(params: Dict[str, list], default_days: int):
    start, end = _param(params, "start"), _param(params, "end")
    if start or end:
        return (start, end)
    return _int_param(params, "days", default_days)


# ── Data functions ────────────────────────────────────────────────────────────

def api_summary(cache: ResourceCache, params):
    summary = practice_summary(load_practice_data(cache), today=_param(params, "today"))
    summary["data_quality"] = cache.quality()
    return summary


def api_doctor_analysis(cache: ResourceCache, params):
    return doctor_analysis(
        load_practice_data(cache),
        selected_doctor=_param(params, "doctor"),
        comparison_doctor=_param(params, "compare"),
        window=_window(params, DEFAULT_DOCTOR_WINDOW_DAYS),
        location=_param(params, "location"),
        today=_param(params, "today"),
    )


def api_financial_analysis(cache: ResourceCache, params):
    return financial_analysis(
        load_practice_data(cache),
        days=_int_param(params, "days", DEFAULT_FINANCIAL_WINDOW_DAYS),
        today=_param(params, "today"),
    )


def api_recent_patients(cache: ResourceCache, params):
    return recent_patients(load_practice_data(cache), limit=_int_param(params, "limit", 5))


def api_mbt_baseline(cache: ResourceCache, params):
    baseline = procedure_baseline(load_practice_data(cache),
                                  period=_param(params, "period", "last30days"),
                                  today=_param(params, "today"))
    return baseline.to_dict(orient="records")


def api_filters(cache: ResourceCache, params):
    return filter_options(load_practice_data(cache))


def _scenario_values(body: dict, name: str, cast) -> dict:
    """A {description: number} mapping from the request body."""
    values = body.get(name) or {}
    if not isinstance(values, dict):
        raise InvalidScenarioError(f"{name} must be an object of description → number")
    try:
        return {str(k): cast(v) for k, v in values.items()}
    except (TypeError, ValueError, OverflowError):
        raise InvalidScenarioError(f"{name} values must be numbers") from None


def api_mbt_scenario(cache: ResourceCache, params, body: dict):
    period = body.get("period", "last30days")
    baseline = procedure_baseline(load_practice_data(cache), period=period,
                                  today=body.get("today"))
    scenario = Scenario(
        name=str(body.get("name", "")),
        period=period,
        new_mbt=_scenario_values(body, "new_mbt", float),
        counts=_scenario_values(body, "counts", int),
    )
    return compare_scenario(baseline, scenario)


def api_refresh(cache: ResourceCache, params, body: dict):
    cache.invalidate(body.get("resource") or _param(params, "resource"))
    return {"status": "ok"}


# ── HTTP handler ──────────────────────────────────────────────────────────────

ROUTES: Dict[str, Callable] = {
    "/api/summary":            api_summary,
    "/api/doctor-analysis":    api_doctor_analysis,
    "/api/financial-analysis": api_financial_analysis,
    "/api/recent-patients":    api_recent_patients,
    "/api/mbt-baseline":       api_mbt_baseline,
    "/api/filters":            api_filters,
}

POST_ROUTES: Dict[str, Callable] = {
    "/api/mbt-scenario": api_mbt_scenario,
    "/api/refresh":      api_refresh,
}


def dispatch(method: str, raw_path: str, cache: ResourceCache,
             body: Optional[dict] = None):
    """Run one request; returns (status, payload)."""
    url = urlparse(raw_path)
    params = parse_qs(url.query)

    if method == "GET" and url.path == "/":
        return 200, {"routes": sorted(ROUTES), "post_routes": sorted(POST_ROUTES)}

    routes = ROUTES if method == "GET" else POST_ROUTES
    fn = routes.get(url.path)
    if fn is None:
        return 404, {"error": f"Not found: {url.path}"}

    try:
        if method == "GET":
            return 200, fn(cache, params)
        return 200, fn(cache, params, body or {})
    except (InvalidFilterError, InvalidScenarioError, ValueError) as e:
        return 400, {"error": str(e)}
    except Exception:
        err = traceback.format_exc()
        logger.error("Request %s %s failed:\n%s", method, raw_path, err)
        return 500, {"error": err}


class Handler(BaseHTTPRequestHandler):

    cache: ResourceCache = None

    def do_GET(self):
        status, payload = dispatch("GET", self.path, self.cache or default_cache())
        self._send(status, to_json(payload), "application/json")

    def do_POST(self):
        length = int(self.headers.get("Content-Length") or 0)
        try:
            body = json.loads(self.rfile.read(length) or b"{}")
        except json.JSONDecodeError as e:
            self._send(400, to_json({"error": f"Invalid JSON body: {e}"}), "application/json")
            return
        if not isinstance(body, dict):
            self._send(400, to_json({"error": "JSON body must be an object"}), "application/json")
            return
        status, payload = dispatch("POST", self.path, self.cache or default_cache(), body)
        self._send(status, to_json(payload), "application/json")

    def _send(self, code, body, ctype):
        self.send_response(code)
        self.send_header("Content-Type", ctype)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, fmt, *args):
        logger.debug("%s - " + fmt, self.address_string(), *args)


def main():
    logging.basicConfig(level=LOG_LEVEL,
                        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s")
    port = DASHBOARD["port"]
    print(f"\n{'═'*52}")
    print(f"  🏥  Practice Analytics Dashboard API")
    print(f"  → Open in browser: http://localhost:{port}")
    print(f"  → Press Ctrl+C to stop")
    print(f"{'═'*52}\n")
    server = HTTPServer((DASHBOARD["host"], port), Handler)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
