from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from water_core.backend import BackendError, fetch_water_meter_rows, is_backend_configured
from water_core.balance import filter_by_type, zone_meters
from water_core.config import Settings, get_settings
from water_core.filters import WaterFilters, normalize_filters
from water_core.meters import LEVELS, ZONE_CONFIG, MeterRecord, month_sequence, resolve_months

logger = logging.getLogger(__name__)

SOURCE_SUPABASE = "supabase"
SOURCE_SAMPLE = "sample"

METER_COLUMNS = {
    "account_number": "account_number",
    "account_no": "account_number",
    "accountnumber": "account_number",
    "acct_#": "account_number",
    "acct": "account_number",
    "label": "label",
    "meter_name": "label",
    "meter_label": "label",
    "name": "label",
    "level": "level",
    "meter_level": "level",
    "zone": "zone",
    "type": "type",
    "meter_type": "type",
}
NAME_COLUMNS = {"meter_name", "meter_label", "name"}
IDENTITY_COLUMNS = ["account_number", "label", "level", "zone", "type"]
NA_TOKENS = {"", "nan", "none", "null", "<na>", "na", "n/a", "-"}
MONTH_ABBRS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


@dataclass(frozen=True)
class WaterDataset:
    meters: Tuple[MeterRecord, ...]
    source: str
    months: Tuple[str, ...]


def _header_key(value: object) -> str:
    return re.sub(r"[\s_]+", "_", str(value).strip().lower())


def normalize_month_key(value: object) -> Optional[str]:
    """Map "Jan-25", "jan_25", "Jan 25", "JAN-25" or "2025-01" to "Jan-25"."""
    s = str(value).strip()
    match = re.fullmatch(r"([A-Za-z]{3})[-_ ](\d{2})", s)
    if match:
        mon = match.group(1).title()
        return f"{mon}-{match.group(2)}" if mon in MONTH_ABBRS else None
    match = re.fullmatch(r"(\d{4})-(\d{2})", s)
    if match and 1 <= int(match.group(2)) <= 12:
        return f"{MONTH_ABBRS[int(match.group(2)) - 1]}-{match.group(1)[2:]}"
    return None


def clean_str(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            value = int(value)
    s = str(value).strip()
    if s.lower() in NA_TOKENS:
        return None
    return s


def _label_is_level(keys: Iterable[str]) -> bool:
    # Sheet exports carry "Meter Name" for the display name and "Label" for L1..DC.
    keys = set(keys)
    return "label" in keys and not any(METER_COLUMNS.get(k) == "level" for k in keys) and bool(keys & NAME_COLUMNS)


def _numeric_readings(out: pd.DataFrame, col: str) -> pd.Series:
    raw = out[col]
    values = pd.to_numeric(raw, errors="coerce").astype(float)
    values = values.where(np.isfinite(values))
    bad = values.isna() & raw.map(clean_str).notna()
    for idx in raw.index[bad.to_numpy()]:
        account = clean_str(out.at[idx, "account_number"]) if "account_number" in out.columns else None
        logger.warning("Unparsable reading %r for meter %s, %s; skipped", raw.at[idx], account, col)
    return values


def normalize_columns(df: pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
    """Rename identity and month headers; returns the frame and its month columns."""
    keys = {col: _header_key(col) for col in df.columns}
    label_is_level = _label_is_level(keys.values())
    rename: Dict[object, str] = {}
    month_cols: List[str] = []
    for col, key in keys.items():
        if key == "label" and label_is_level:
            rename[col] = "level"
            continue
        if key in METER_COLUMNS:
            rename[col] = METER_COLUMNS[key]
            continue
        month = normalize_month_key(col)
        if month is not None:
            rename[col] = month
            if month not in month_cols:
                month_cols.append(month)
    out = df.rename(columns=rename)
    dropped = list(out.columns[out.columns.duplicated()])
    if dropped:
        logger.warning("Duplicate meter columns after renaming, keeping the first: %s", dropped)
    out = out.loc[:, ~out.columns.duplicated()].copy()
    for col in month_cols:
        out[col] = _numeric_readings(out, col)
    return out, month_cols


def rows_to_meters(rows: Union[pd.DataFrame, Iterable[Dict[str, Any]]]) -> List[MeterRecord]:
    df = rows if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    if df.empty:
        return []
    df, month_cols = normalize_columns(df)
    if "account_number" not in df.columns or "level" not in df.columns:
        logger.warning("Meter rows have no account number or level column; columns=%s", list(df.columns))
        return []

    meters: List[MeterRecord] = []
    seen = set()
    for row in df.to_dict(orient="records"):
        account = clean_str(row.get("account_number"))
        level = (clean_str(row.get("level")) or "").upper()
        if account is None:
            logger.warning("Skipping meter row without account number: %s", clean_str(row.get("label")))
            continue
        if level not in LEVELS:
            logger.warning("Skipping meter %s with unknown level %r", account, row.get("level"))
            continue
        if account in seen:
            logger.warning("Duplicate account number %s; keeping the first row", account)
            continue
        seen.add(account)

        readings = {month: float(row[month]) for month in month_cols if pd.notna(row.get(month))}
        meters.append(
            MeterRecord(
                account_number=account,
                label=clean_str(row.get("label")) or account,
                level=level,
                zone=clean_str(row.get("zone")),
                type=clean_str(row.get("type")) or "",
                readings=readings,
            )
        )
    return meters


def meters_to_frame(meters: Iterable[MeterRecord], months: Sequence[str]) -> pd.DataFrame:
    rows = []
    for m in meters:
        row: Dict[str, Any] = {"account_number": m.account_number, "label": m.label, "level": m.level, "zone": m.zone, "type": m.type}
        for month in months:
            row[month] = m.readings.get(month)
        rows.append(row)
    return pd.DataFrame(rows, columns=IDENTITY_COLUMNS + list(months))


@lru_cache(maxsize=4)
def _load_sample_cached(path: str, mtime: float) -> Tuple[MeterRecord, ...]:
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    return tuple(rows_to_meters(df))


def load_sample_meters(path: Optional[Path] = None) -> Tuple[MeterRecord, ...]:
    path = Path(path or get_settings().SAMPLE_DATA_PATH)
    if not path.exists():
        logger.error("Sample meter file not found: %s", path)
        return ()
    return _load_sample_cached(str(path), path.stat().st_mtime)


def load_water_data(settings: Optional[Settings] = None) -> WaterDataset:
    """Meters from the hosted table, or the bundled sample when it is unavailable or empty."""
    settings = settings or get_settings()
    months = month_sequence(settings.FIRST_MONTH, settings.LAST_MONTH)

    if is_backend_configured(settings):
        try:
            meters = rows_to_meters(fetch_water_meter_rows(settings))
            if meters:
                logger.info("Water data loaded from Supabase: %d meters", len(meters))
                return WaterDataset(meters=tuple(meters), source=SOURCE_SUPABASE, months=months)
            logger.info("No Supabase water data, using sample data")
        except BackendError:
            logger.exception("Supabase water fetch failed, using sample data")
        except Exception:
            logger.exception("Unexpected error loading Supabase water data, using sample data")
    else:
        logger.info("Supabase not configured, using sample data")

    return WaterDataset(meters=load_sample_meters(settings.SAMPLE_DATA_PATH), source=SOURCE_SAMPLE, months=months)


def prepare_context(filters: Union[dict, WaterFilters], dataset: WaterDataset) -> Dict[str, Any]:
    if not isinstance(filters, WaterFilters):
        filters = normalize_filters(filters, available_months=dataset.months, zone_codes=[z.code for z in ZONE_CONFIG])
    meters = list(dataset.meters)
    return {
        "meters": meters,
        "months": dataset.months,
        "range_months": resolve_months(filters.start_month, filters.end_month, dataset.months),
        "filtered_meters": filter_by_type(meters, filters.meter_type),
        "zone_meters": zone_meters(meters, filters.zone),
        "zones": ZONE_CONFIG,
        "source": dataset.source,
    }
