from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import altair as alt
import pandas as pd

from water_core.balance import all_zones_balance, meter_range_totals, zone_balance, zone_monthly_series
from water_core.charts import PALETTE, to_vega_spec
from water_core.filters import WaterFilters
from water_core.meters import AVAILABLE_MONTHS, ZONE_CONFIG


def compute_zone(filters: WaterFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    meters = ctx.get("meters", [])
    months = ctx.get("months", AVAILABLE_MONTHS)
    zones_cfg = ctx.get("zones", ZONE_CONFIG)

    # Zone figures are a single-month snapshot taken at the end of the range.
    month = filters.end_month
    selected = zone_balance(meters, filters.zone, month, zones=zones_cfg)
    zones = [asdict(z) for z in all_zones_balance(meters, month, zones=zones_cfg)]
    trend = zone_monthly_series(meters, filters.zone, months, zones=zones_cfg)

    table = meter_range_totals(ctx.get("zone_meters", []), filters.start_month, filters.end_month, months=months)
    table = sorted(table, key=lambda r: r["total"], reverse=True)

    charts: Dict[str, Any] = {}
    trend_df = pd.DataFrame(trend)
    if not trend_df.empty:
        long_df = trend_df.melt(id_vars="month", value_vars=["zone_bulk", "individual_total", "loss"], var_name="series", value_name="volume")
        line = (
            alt.Chart(long_df)
            .mark_line(point=True)
            .encode(
                x=alt.X("month:N", title="Month", sort=list(months)),
                y=alt.Y("volume:Q", title="Volume (m³)"),
                color=alt.Color(
                    "series:N",
                    title="Series",
                    scale=alt.Scale(domain=["zone_bulk", "individual_total", "loss"], range=[PALETTE["A2"], PALETTE["A3"], PALETTE["loss"]]),
                ),
                strokeDash=alt.StrokeDash("series:N", legend=None),
                tooltip=["month", "series", alt.Tooltip("volume:Q", format=",.0f")],
            )
        )
        charts["zone_trend"] = to_vega_spec(line)

    zones_df = pd.DataFrame(zones)
    if not zones_df.empty:
        bar = (
            alt.Chart(zones_df)
            .mark_bar()
            .encode(
                x=alt.X("zone_name:N", title="Zone", sort=[z["zone_name"] for z in zones]),
                y=alt.Y("loss:Q", title=f"Loss {month} (m³)"),
                color=alt.condition(alt.datum.loss > 0, alt.value(PALETTE["loss"]), alt.value(PALETTE["A1"])),
                tooltip=[
                    "zone_name",
                    alt.Tooltip("bulk_meter_reading:Q", format=",.0f"),
                    alt.Tooltip("individual_total:Q", format=",.0f"),
                    alt.Tooltip("loss:Q", format=",.0f"),
                    alt.Tooltip("loss_percentage:Q", title="Loss %"),
                ],
            )
        )
        charts["zone_comparison"] = to_vega_spec(bar)

    return {
        "filters": asdict(filters),
        "month": month,
        "zone": asdict(selected),
        "zones": zones,
        "trend": trend,
        "meters": table,
        "charts": charts,
    }
