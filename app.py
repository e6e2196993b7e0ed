from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import pandas as pd
import streamlit as st

from water_core.balance import meter_types
from water_core.config import configure_logging
from water_core.data import SOURCE_SUPABASE, load_water_data, prepare_context
from water_core.export import export_filename, records_to_csv
from water_core.filters import normalize_filters
from water_core.meters import ZONE_CONFIG, find_zone
from water_core.metrics_consumption import compute_consumption
from water_core.metrics_database import compute_database
from water_core.metrics_hierarchy import compute_hierarchy
from water_core.metrics_overview import compute_overview
from water_core.metrics_zone import compute_zone

configure_logging()


# ---------- UI / layout helpers ----------
def inject_base_styles():
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #1f2937;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #1f2937;margin-bottom: 6px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .chip-live {background: #d1fae5;color: #047857;}
        .chip-demo {background: #fef3c7;color: #b45309;}
        </style>
        """,
        unsafe_allow_html=True,
    )


@contextmanager
def card(title: str, caption: Optional[str] = None):
    box = st.container(border=True)
    with box:
        st.markdown(f"<div class='card-title'>{title}</div>", unsafe_allow_html=True)
        if caption:
            st.caption(caption)
        yield box


def format_filter_summary(start_month: str, end_month: str, zone: str, meter_type: str, source: str) -> str:
    zone_cfg = find_zone(zone)
    chips = [
        f"Range: {start_month} – {end_month}",
        f"Zone: {zone_cfg.name if zone_cfg else zone}",
        f"Type: {meter_type}",
    ]
    html = "".join([f"<span class='chip'>{txt}</span>" for txt in chips])
    if source == SOURCE_SUPABASE:
        return html + "<span class='chip chip-live'>Supabase</span>"
    return html + "<span class='chip chip-demo'>Demo Data</span>"


def render_page_header(title: str, breadcrumb: str, filter_summary_html: str, export_rows: Optional[List[Dict[str, Any]]] = None, export_prefix: str = "water"):
    top = st.container()
    c1, c2 = top.columns([7, 3])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>{breadcrumb}</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        btn_cols = st.columns(2)
        if btn_cols[0].button("Refresh"):
            st.cache_data.clear()
            st.rerun()
        if export_rows:
            btn_cols[1].download_button(
                "Export CSV",
                data=records_to_csv(export_rows),
                file_name=export_filename(export_prefix),
                mime="text/csv",
            )
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def render_chart(charts: Dict[str, Any], key: str, empty_message: str = "Not enough data for this chart."):
    spec = charts.get(key)
    if not spec:
        st.info(empty_message)
        return
    st.vega_lite_chart(spec, use_container_width=True)


def fmt_volume(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:,.0f} m³"


@st.cache_data(ttl=300, show_spinner="Loading water meters…")
def cached_water_data():
    return load_water_data()


# ---------- UI setup ----------
st.set_page_config(page_title="Water System Analysis", layout="wide")
inject_base_styles()
st.title("Water System Analysis")
st.caption("Monthly water balance across main supply, zone distribution and end consumption.")

dataset = cached_water_data()
if not dataset.meters:
    st.error("No water meters found. Configure SUPABASE_URL / SUPABASE_ANON_KEY or check the bundled sample file.")
    st.stop()

months = list(dataset.months)


def reset_range():
    st.session_state["month_range"] = (months[0], months[-1])


# ----- Sidebar: navigation + filters -----
with st.sidebar:
    st.markdown("### Navigate")
    nav_choice = st.radio("Navigate", ["Overview", "Zone Analysis", "Consumption by Type", "Water Hierarchy", "Database"], index=0)

    st.markdown("---")
    st.markdown("### Filters")
    if "month_range" not in st.session_state:
        st.session_state["month_range"] = (months[0], months[-1])
    start_month, end_month = st.select_slider("Month range", options=months, key="month_range")
    zone_codes = [z.code for z in ZONE_CONFIG]
    zone = st.selectbox("Zone", options=zone_codes, format_func=lambda code: find_zone(code).name)
    type_options = meter_types(dataset.meters)
    meter_type = st.selectbox("Meter type", options=type_options, index=0)

    with st.expander("Advanced settings", expanded=False):
        top_n = st.slider("Top N rows", min_value=5, max_value=50, value=15, step=5)

    st.button("Reset range", on_click=reset_range)

filters = normalize_filters(
    {"start_month": start_month, "end_month": end_month, "zone": zone, "meter_type": meter_type, "top_n": top_n},
    available_months=months,
    zone_codes=zone_codes,
)
ctx = prepare_context(filters, dataset)
filter_summary_html = format_filter_summary(filters.start_month, filters.end_month, filters.zone, filters.meter_type, dataset.source)


def render_overview_page():
    payload = compute_overview(filters, ctx)
    render_page_header("Overview", "Water / Overview", filter_summary_html, export_rows=payload["monthly"], export_prefix="water-monthly")
    for alert in payload["alerts"]:
        st.error(f"**{alert['title']}**  \n{alert['message']}")
    kpis = payload["kpis"]

    with card("Water Balance"):
        cols = st.columns(4)
        cols[0].metric("A1 - Main Source", fmt_volume(kpis["A1"]), help="Sum of L1 main bulk meters over the range.")
        cols[1].metric("A2 - Zone Distribution", fmt_volume(kpis["A2"]), help="L2 zone bulks plus direct connections.")
        cols[2].metric("A3 - Individual", fmt_volume(kpis["A3_individual"]), help="L3 (excluding building bulks) + L4 + direct connections.")
        cols[3].metric("A3 - Bulk Level", fmt_volume(kpis["A3_bulk"]), help="All L3 meters + direct connections. Not additive with A3 individual.")

        cols = st.columns(5)
        cols[0].metric("Stage 1 Loss", fmt_volume(kpis["stage1_loss"]), help="A1 − A2")
        cols[1].metric("Stage 2 Loss", fmt_volume(kpis["stage2_loss"]), help="A2 − A3 individual")
        cols[2].metric("Total Loss", fmt_volume(kpis["total_loss"]), help="A1 − A3 individual")
        cols[3].metric("Loss %", f"{kpis['loss_percentage']}%")
        cols[4].metric("Efficiency", f"{kpis['efficiency']}%")

    trend_cols = st.columns(2)
    with trend_cols[0]:
        with card("Monthly Consumption Trend"):
            render_chart(payload["charts"], "monthly_trend")
    with trend_cols[1]:
        with card("Monthly Losses"):
            render_chart(payload["charts"], "loss_trend")

    with card("Meters by Level"):
        st.dataframe(pd.DataFrame(payload["meter_counts"]), hide_index=True, use_container_width=True)


def render_zone_page():
    payload = compute_zone(filters, ctx)
    render_page_header("Zone Analysis", "Water / Zone Analysis", filter_summary_html, export_rows=payload["zones"], export_prefix="water-zones")
    zb = payload["zone"]

    with card(f"{zb['zone_name']} Analysis for {payload['month']}"):
        cols = st.columns(5)
        cols[0].metric("Zone Bulk Meter", fmt_volume(zb["bulk_meter_reading"]), help="Total water entering the zone.")
        cols[1].metric("L3/L4 Total", fmt_volume(zb["individual_total"]), help="Villas and apartments metered in the zone.")
        cols[2].metric("Loss", fmt_volume(zb["loss"]), delta=f"{zb['loss_percentage']}% of bulk", delta_color="inverse")
        cols[3].metric("Meters", f"{zb['meter_count']}")
        cols[4].metric("Zone Efficiency", f"{zb['efficiency']}%")

    with card("Zone Bulk vs Individual (monthly)"):
        render_chart(payload["charts"], "zone_trend")

    with card(f"All Zones ({payload['month']})"):
        render_chart(payload["charts"], "zone_comparison")
        st.dataframe(pd.DataFrame(payload["zones"]), hide_index=True, use_container_width=True)

    with card(f"Individual Meters - {zb['zone_name']}"):
        if not payload["meters"]:
            st.info("No L3/L4 meters found for this zone.")
        else:
            st.dataframe(pd.DataFrame(payload["meters"]), hide_index=True, use_container_width=True)
            st.download_button(
                "Export zone meters",
                data=records_to_csv(payload["meters"]),
                file_name=export_filename(f"water-{filters.zone}"),
                mime="text/csv",
            )


def render_consumption_page():
    payload = compute_consumption(filters, ctx)
    render_page_header("Consumption by Type", "Water / Consumption", filter_summary_html, export_rows=payload["by_type"], export_prefix="water-consumption")
    kpis = payload["kpis"]
    top = kpis["highest_consumer"]

    with card("Consumption KPIs"):
        cols = st.columns(3)
        cols[0].metric("Total Consumption", fmt_volume(kpis["total_consumption"]), help=f"Meters of type: {filters.meter_type}")
        cols[1].metric("Meters", f"{kpis['meter_count']}")
        cols[2].metric(
            "Highest Consumer",
            top["label"] if top else "N/A",
            delta=fmt_volume(top["total"]) if top else None,
            delta_color="off",
        )

    with card("Consumption by Type"):
        render_chart(payload["charts"], "consumption_by_type")

    with card(f"Top {filters.top_n} Meters"):
        if not payload["top_meters"]:
            st.info("No meters match the selected type.")
        else:
            st.dataframe(pd.DataFrame(payload["top_meters"]), hide_index=True, use_container_width=True)


def _node_table(nodes: List[Dict[str, Any]]):
    df = pd.DataFrame(nodes, columns=["account_number", "label", "level", "type", "total"])
    st.dataframe(df, hide_index=True, use_container_width=True)


def render_hierarchy_page():
    payload = compute_hierarchy(filters, ctx)
    render_page_header("Water Hierarchy", "Water / Hierarchy", filter_summary_html, export_rows=payload["rows"], export_prefix="water-hierarchy")
    tree = payload["hierarchy"]

    with card("Main Supply (L1)", caption="Main bulk meters feed the zone bulks and the direct connections."):
        if not tree["main"]:
            st.info("No L1 meter in the data.")
        for node in tree["main"]:
            st.metric(node["label"], fmt_volume(node["total"]), help=f"Account {node['account_number']}")

    with card("Supply Split"):
        render_chart(payload["charts"], "supply_split")

    for zone in tree["zones"]:
        bulk = zone["bulk"]
        title = f"{zone['zone_name']} - {fmt_volume(bulk['total']) if bulk else 'no bulk meter'}"
        with st.expander(title, expanded=False):
            cols = st.columns(3)
            cols[0].metric("Zone Bulk (L2)", fmt_volume(bulk["total"]) if bulk else "N/A")
            cols[1].metric("L3 Meters", f"{len(zone['L3'])}")
            cols[2].metric("L4 Meters", f"{len(zone['L4'])}")
            if zone["L3"]:
                st.markdown("**L3**")
                _node_table(zone["L3"])
            if zone["L4"]:
                st.markdown("**L4**")
                _node_table(zone["L4"])

    with card("Direct Connections (DC)"):
        if tree["direct_connections"]:
            _node_table(tree["direct_connections"])
        else:
            st.info("No direct connections.")

    if tree["unassigned"]:
        with card("Unassigned Meters", caption="Meters outside the configured zones."):
            _node_table(tree["unassigned"])


def render_database_page():
    payload = compute_database(filters, ctx)
    render_page_header("Meter Database", "Water / Database", filter_summary_html, export_rows=payload["meters"], export_prefix="water-meters")
    counts = payload["row_counts"]

    with card("Data Source"):
        cols = st.columns(3)
        cols[0].metric("Source", "Supabase" if payload["source"] == SOURCE_SUPABASE else "Demo Data")
        cols[1].metric("Meters", f"{counts['meters']:,}")
        cols[2].metric("Zones", f"{counts['zones']}")
        st.dataframe(pd.DataFrame(payload["meter_counts"]), hide_index=True, use_container_width=True)

    with card("Meters"):
        st.dataframe(pd.DataFrame(payload["meters"], columns=payload["columns"]), hide_index=True, use_container_width=True)
    st.caption("Readings missing for a month are counted as zero in every total.")


if nav_choice == "Overview":
    render_overview_page()
elif nav_choice == "Zone Analysis":
    render_zone_page()
elif nav_choice == "Consumption by Type":
    render_consumption_page()
elif nav_choice == "Water Hierarchy":
    render_hierarchy_page()
else:
    render_database_page()
