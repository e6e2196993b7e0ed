from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import pandas as pd

from water_core.balance import SystemBalance, meter_counts_by_level, monthly_series, system_balance
from water_core.charts import PALETTE, to_vega_spec
from water_core.filters import WaterFilters
from water_core.meters import AVAILABLE_MONTHS

CRITICAL_LOSS_PERCENTAGE = 30


def _trend_charts(series: List[Dict[str, Any]]) -> Dict[str, Any]:
    if not series:
        return {}
    df = pd.DataFrame(series)
    month_order = df["month"].tolist()

    tiers = df.melt(id_vars="month", value_vars=["A1", "A2", "A3_individual"], var_name="tier", value_name="volume")
    tier_chart = (
        alt.Chart(tiers)
        .mark_line(point=True)
        .encode(
            x=alt.X("month:N", title="Month", sort=month_order),
            y=alt.Y("volume:Q", title="Volume (m³)", axis=alt.Axis(format="~s")),
            color=alt.Color(
                "tier:N",
                title="Tier",
                scale=alt.Scale(domain=["A1", "A2", "A3_individual"], range=[PALETTE["A1"], PALETTE["A2"], PALETTE["A3"]]),
            ),
            tooltip=["month", "tier", alt.Tooltip("volume:Q", format=",.0f")],
        )
    )

    losses = df.melt(id_vars="month", value_vars=["stage1_loss", "stage2_loss"], var_name="stage", value_name="loss")
    loss_chart = (
        alt.Chart(losses)
        .mark_bar()
        .encode(
            x=alt.X("month:N", title="Month", sort=month_order),
            xOffset="stage:N",
            y=alt.Y("loss:Q", title="Loss (m³)"),
            color=alt.Color("stage:N", title="Stage", scale=alt.Scale(range=[PALETTE["warning"], PALETTE["loss"]])),
            tooltip=["month", "stage", alt.Tooltip("loss:Q", format=",.0f")],
        )
    )
    return {"monthly_trend": to_vega_spec(tier_chart), "loss_trend": to_vega_spec(loss_chart)}


def loss_alerts(balance: SystemBalance) -> List[Dict[str, Any]]:
    """Alert cards for the overview; a system loss above the threshold is critical."""
    if balance.loss_percentage <= CRITICAL_LOSS_PERCENTAGE:
        return []
    return [
        {
            "severity": "critical",
            "title": "Critical Water Loss Detected",
            "message": (
                f"System water loss is at {balance.loss_percentage}% ({balance.total_loss:,.0f} m³). "
                f"This exceeds the {CRITICAL_LOSS_PERCENTAGE}% threshold and requires immediate investigation."
            ),
            "loss_percentage": balance.loss_percentage,
            "total_loss": balance.total_loss,
        }
    ]


def compute_overview(filters: WaterFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    meters = ctx.get("meters", [])
    months = ctx.get("months", AVAILABLE_MONTHS)

    balance = system_balance(meters, filters.start_month, filters.end_month, months=months)
    series = [asdict(row) for row in monthly_series(meters, filters.start_month, filters.end_month, months=months)]

    return {
        "filters": asdict(filters),
        "source": ctx.get("source"),
        "range": {"start_month": filters.start_month, "end_month": filters.end_month, "months": list(ctx.get("range_months", []))},
        "kpis": asdict(balance),
        "alerts": loss_alerts(balance),
        "monthly": series,
        "meter_counts": meter_counts_by_level(meters),
        "charts": _trend_charts(series),
    }
