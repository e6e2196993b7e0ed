from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict

import altair as alt
import pandas as pd

from water_core.balance import consumption_by_type, highest_consumer, meter_range_totals, meter_types
from water_core.charts import PALETTE, to_vega_spec
from water_core.filters import WaterFilters
from water_core.meters import AVAILABLE_MONTHS


def compute_consumption(filters: WaterFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    meters = ctx.get("meters", [])
    filtered = ctx.get("filtered_meters", meters)
    months = ctx.get("months", AVAILABLE_MONTHS)

    by_type = consumption_by_type(meters, filters.start_month, filters.end_month, months=months)
    rows = meter_range_totals(filtered, filters.start_month, filters.end_month, months=months)
    total = float(sum(r["total"] for r in rows))

    top = highest_consumer(filtered, filters.start_month, filters.end_month, months=months)
    top_payload = None
    if top is not None:
        m = top["meter"]
        top_payload = {"account_number": m.account_number, "label": m.label, "type": m.type, "zone": m.zone, "total": top["total"]}

    top_meters = sorted(rows, key=lambda r: r["total"], reverse=True)[: filters.top_n]
    for rank, row in enumerate(top_meters, start=1):
        row["rank"] = rank

    charts: Dict[str, Any] = {}
    df = pd.DataFrame(by_type)
    if not df.empty:
        bar = (
            alt.Chart(df)
            .mark_bar()
            .encode(
                x=alt.X("total:Q", title="Consumption (m³)", axis=alt.Axis(format="~s")),
                y=alt.Y("type:N", title="Type", sort="-x"),
                color=alt.condition(
                    alt.datum.type == filters.meter_type, alt.value(PALETTE["loss"]), alt.value(PALETTE["A3"])
                ),
                tooltip=["type", alt.Tooltip("total:Q", format=",.0f")],
            )
        )
        charts["consumption_by_type"] = to_vega_spec(bar)

    return {
        "filters": asdict(filters),
        "types": meter_types(meters),
        "by_type": by_type,
        "kpis": {
            "total_consumption": total,
            "meter_count": len(filtered),
            "highest_consumer": top_payload,
        },
        "top_meters": top_meters,
        "charts": charts,
    }
