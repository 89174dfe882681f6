"""
practice_analytics/loader.py
============================
Reads the flat-file resources and keeps them in a process-wide cache.

Every view works from the same five files. Rather than each view reading
them again, the first request populates a ResourceCache and every later
request reads from it. The cache is only cleared on an explicit refresh.

A resource that cannot be read never raises past this module by default:
the failure is logged and an empty, correctly-shaped record set is returned
so the view can show its empty state.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, Iterable, Optional

import pandas as pd

from practice_analytics.config.dashboard_config import CSV_OPTIONS, DATA_DIR, RESOURCE_FILES
from practice_analytics.records import SCHEMAS, CoercionResult, coerce_records, empty_records

logger = logging.getLogger(__name__)


class ResourceLoadError(Exception):
    """A resource could not be read or parsed."""


def resource_path(name: str, data_dir: Optional[Path] = None) -> Path:
    if name not in RESOURCE_FILES:
        raise KeyError(f"Unknown resource: {name!r}")
    return Path(data_dir or DATA_DIR) / RESOURCE_FILES[name]


def read_resource(name: str, data_dir: Optional[Path] = None,
                  strict: bool = False) -> pd.DataFrame:
    """
    Read one resource as raw strings, using the header row as field names.

    Every cell stays a string (blank for missing) so the typing rules in
    records.py decide what counts as a number or a date.
    """
    path = resource_path(name, data_dir)
    malformed = []

    def skip_malformed(fields):
        # Lines with more fields than the header; short lines are padded instead
        malformed.append(fields)
        return None

    try:
        raw = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True,
                          engine="python", on_bad_lines=skip_malformed, **CSV_OPTIONS)
    except (OSError, UnicodeDecodeError, pd.errors.EmptyDataError,
            pd.errors.ParserError) as e:
        if strict:
            raise ResourceLoadError(f"Could not load {name} from {path}: {e}") from e
        logger.error("Could not load %s from %s: %s", name, path, e)
        return pd.DataFrame(columns=list(SCHEMAS[name].columns), dtype=object)

    if malformed:
        logger.warning("%s: skipped %d malformed line(s) in %s", name, len(malformed), path)
    raw = raw.fillna("")
    raw.columns = [str(c).strip().lstrip("\ufeff") for c in raw.columns]
    logger.debug("Read %s: %d rows, columns=%s", name, len(raw), list(raw.columns))
    return raw


def load_resource_result(name: str, data_dir: Optional[Path] = None,
                         strict: bool = False) -> CoercionResult:
    schema = SCHEMAS[name]
    raw = read_resource(name, data_dir, strict=strict)
    if raw.empty:
        return CoercionResult(records=empty_records(schema),
                              quarantined=empty_records(schema))
    return coerce_records(raw, schema)


def load_resource(name: str, data_dir: Optional[Path] = None,
                  strict: bool = False) -> pd.DataFrame:
    """Read one resource and return its typed, validated records."""
    return load_resource_result(name, data_dir, strict=strict).records


class ResourceCache:
    """
    Typed records keyed by resource name.

    Populated once and read many times; the cached frames are shared, so
    callers derive new frames from them and never modify them in place.
    """

    def __init__(self, data_dir: Optional[Path] = None, strict: bool = False):
        self.data_dir = Path(data_dir) if data_dir else None
        self.strict = strict
        self._results: Dict[str, CoercionResult] = {}
        self._lock = threading.Lock()

    def _load(self, name: str) -> CoercionResult:
        result = load_resource_result(name, self.data_dir, strict=self.strict)
        logger.info("Loaded %s: %d records (%d quarantined, %d duplicates)",
                    name, len(result.records), len(result.quarantined), result.duplicates)
        return result

    def get(self, name: str) -> pd.DataFrame:
        return self.get_many([name])[name]

    def get_many(self, names: Iterable[str]) -> Dict[str, pd.DataFrame]:
        """Return every requested resource, loading the missing ones in parallel."""
        names = list(dict.fromkeys(names))
        for name in names:
            if name not in SCHEMAS:
                raise KeyError(f"Unknown resource: {name!r}")

        with self._lock:
            missing = [name for name in names if name not in self._results]
            if missing:
                with ThreadPoolExecutor(max_workers=len(missing)) as pool:
                    loaded = dict(zip(missing, pool.map(self._load, missing)))
                self._results.update(loaded)
            return {name: self._results[name].records for name in names}

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop one resource (or all of them) so the next read reloads it."""
        with self._lock:
            if name is None:
                self._results.clear()
            else:
                self._results.pop(name, None)
        logger.info("Cache invalidated: %s", name or "all resources")

    def quality(self) -> Dict[str, Dict[str, int]]:
        """Per-resource counts of loaded, quarantined and duplicate rows."""
        with self._lock:
            return {
                name: {
                    "records":     len(result.records),
                    "quarantined": len(result.quarantined),
                    "duplicates":  result.duplicates,
                }
                for name, result in self._results.items()
            }


_default_cache: Optional[ResourceCache] = None
_default_lock = threading.Lock()


def default_cache() -> ResourceCache:
    """The process-wide cache shared by every view."""
    global _default_cache
    with _default_lock:
        if _default_cache is None:
            _default_cache = ResourceCache()
        return _default_cache
