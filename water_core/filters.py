from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence


@dataclass(frozen=True)
class WaterFilters:
    start_month: str = ""
    end_month: str = ""
    zone: str = ""
    meter_type: str = "All"
    top_n: int = 15


def _as_str(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_filters(
    raw: dict,
    *,
    available_months: Optional[Sequence[str]] = None,
    zone_codes: Optional[Sequence[str]] = None,
) -> WaterFilters:
    available_months = list(available_months or [])
    zone_codes = list(zone_codes or [])

    # Blank selections fall back to the full calendar; explicit but unknown months
    # are kept so the balance reports them as an empty range.
    start_month = _as_str(raw.get("start_month")) or (available_months[0] if available_months else "")
    end_month = _as_str(raw.get("end_month")) or (available_months[-1] if available_months else "")
    zone = _as_str(raw.get("zone")) or (zone_codes[0] if zone_codes else "")
    meter_type = _as_str(raw.get("meter_type")) or "All"

    top_n = raw.get("top_n", 15)
    try:
        top_n = int(top_n)
    except Exception:
        top_n = 15
    top_n = max(1, min(200, top_n))

    return WaterFilters(
        start_month=start_month,
        end_month=end_month,
        zone=zone,
        meter_type=meter_type,
        top_n=top_n,
    )
