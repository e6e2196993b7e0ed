from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

from water_core.balance import meter_counts_by_level, meter_range_totals
from water_core.filters import WaterFilters
from water_core.meters import AVAILABLE_MONTHS, ZONE_CONFIG


def compute_database(filters: WaterFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    meters = ctx.get("meters", [])
    filtered = ctx.get("filtered_meters", meters)
    months = ctx.get("months", AVAILABLE_MONTHS)

    rows = meter_range_totals(filtered, filters.start_month, filters.end_month, months=months)
    return {
        "filters": asdict(filters),
        "source": ctx.get("source"),
        "row_counts": {"meters": len(meters), "filtered_meters": len(filtered), "zones": len(ZONE_CONFIG)},
        "meter_counts": meter_counts_by_level(filtered),
        "columns": ["account_number", "label", "level", "zone", "type", *ctx.get("range_months", ()), "total"],
        "meters": rows,
    }
