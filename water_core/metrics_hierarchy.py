from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List

import altair as alt
import pandas as pd

from water_core.balance import meter_hierarchy
from water_core.charts import PALETTE, to_vega_spec
from water_core.filters import WaterFilters
from water_core.meters import AVAILABLE_MONTHS, ZONE_CONFIG

HIERARCHY_COLUMNS = ["branch", "parent", "account_number", "label", "level", "type", "total"]


def hierarchy_rows(tree: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Flatten the supply tree into table rows, parents before children."""
    rows: List[Dict[str, Any]] = []
    main_label = tree["main"][0]["label"] if tree["main"] else ""
    for node in tree["main"]:
        rows.append({"branch": "Main supply", "parent": "", **node})
    for zone in tree["zones"]:
        bulk = zone["bulk"]
        if bulk is not None:
            rows.append({"branch": zone["zone_name"], "parent": main_label, **bulk})
        parent = bulk["label"] if bulk is not None else ""
        for node in zone["L3"] + zone["L4"]:
            rows.append({"branch": zone["zone_name"], "parent": parent, **node})
    for node in tree["direct_connections"]:
        rows.append({"branch": "Direct connections", "parent": main_label, **node})
    for node in tree["unassigned"]:
        rows.append({"branch": "Unassigned", "parent": "", **node})
    return rows


def _supply_split_chart(tree: Dict[str, Any]) -> Dict[str, Any]:
    split = [{"branch": z["zone_name"], "total": z["bulk"]["total"]} for z in tree["zones"] if z["bulk"] is not None]
    split.append({"branch": "Direct connections", "total": sum(n["total"] for n in tree["direct_connections"])})
    df = pd.DataFrame(split)
    if df["total"].sum() <= 0:
        return {}
    bar = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            y=alt.Y("branch:N", title=None, sort="-x"),
            x=alt.X("total:Q", title="Volume (m³)"),
            color=alt.condition(alt.datum.branch == "Direct connections", alt.value(PALETTE["warning"]), alt.value(PALETTE["A2"])),
            tooltip=["branch", alt.Tooltip("total:Q", format=",.0f")],
        )
    )
    return {"supply_split": to_vega_spec(bar)}


def compute_hierarchy(filters: WaterFilters, ctx: Dict[str, Any]) -> Dict[str, Any]:
    meters = ctx.get("meters", [])
    months = ctx.get("months", AVAILABLE_MONTHS)
    zones_cfg = ctx.get("zones", ZONE_CONFIG)

    tree = meter_hierarchy(meters, filters.start_month, filters.end_month, months=months, zones=zones_cfg)
    return {
        "filters": asdict(filters),
        "source": ctx.get("source"),
        "range": {"start_month": filters.start_month, "end_month": filters.end_month, "months": list(ctx.get("range_months", []))},
        "hierarchy": tree,
        "columns": HIERARCHY_COLUMNS,
        "rows": hierarchy_rows(tree),
        "charts": _supply_split_chart(tree),
    }
