"""Water balance aggregation over a flat meter collection.

Three tiers are reported: A1 (main source), A2 (zone bulk plus direct
connections) and A3 (end consumption). A3 has two views that must never be
added together:

- A3 individual: L3 meters that are not building bulks, all L4 meters and DC.
- A3 bulk: every L3 meter (building bulks included) and DC.

Every function here is a pure read. Unknown months, unknown zones and missing
readings resolve to zero rather than raising.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from water_core.meters import (
    AVAILABLE_MONTHS,
    LEVELS,
    ZONE_CONFIG,
    MeterRecord,
    ZoneConfig,
    consumption_of,
    find_zone,
    resolve_months,
)


@dataclass(frozen=True)
class SystemBalance:
    A1: float = 0
    A2: float = 0
    A3_bulk: float = 0
    A3_individual: float = 0
    stage1_loss: float = 0
    stage2_loss: float = 0
    total_loss: float = 0
    efficiency: float = 0
    loss_percentage: float = 0


@dataclass(frozen=True)
class MonthlyBalance:
    month: str
    A1: float
    A2: float
    A3_individual: float
    stage1_loss: float
    stage2_loss: float
    total_loss: float


@dataclass(frozen=True)
class ZoneBalance:
    zone: str
    zone_name: str
    bulk_meter_reading: float = 0
    individual_total: float = 0
    loss: float = 0
    loss_percentage: float = 0
    efficiency: float = 0
    meter_count: int = 0


def percent_of(numerator: float, denominator: float) -> float:
    """Percentage with one decimal, rounded half up on the scaled value; 0 for a non-positive denominator."""
    if denominator <= 0:
        return 0
    return math.floor(numerator / denominator * 1000 + 0.5) / 10


def by_level(meters: Iterable[MeterRecord]) -> Dict[str, List[MeterRecord]]:
    buckets: Dict[str, List[MeterRecord]] = {level: [] for level in LEVELS}
    for m in meters:
        if m.level in buckets:
            buckets[m.level].append(m)
    return buckets


def _sum_months(meters: Iterable[MeterRecord], months: Sequence[str]) -> float:
    return sum(consumption_of(m, month) for m in meters for month in months)


def range_sum(
    meters: Iterable[MeterRecord],
    start_month: str,
    end_month: str,
    *,
    months: Sequence[str] = AVAILABLE_MONTHS,
) -> float:
    return _sum_months(meters, resolve_months(start_month, end_month, months))


def _tiers(buckets: Dict[str, List[MeterRecord]], months: Sequence[str]) -> Tuple[float, float, float, float]:
    l3_individual = [m for m in buckets["L3"] if not m.is_building_bulk]
    dc = _sum_months(buckets["DC"], months)
    a1 = _sum_months(buckets["L1"], months)
    a2 = _sum_months(buckets["L2"], months) + dc
    a3_individual = _sum_months(l3_individual, months) + _sum_months(buckets["L4"], months) + dc
    a3_bulk = _sum_months(buckets["L3"], months) + dc
    return a1, a2, a3_individual, a3_bulk


def system_balance(
    meters: Iterable[MeterRecord],
    start_month: str,
    end_month: str,
    *,
    months: Sequence[str] = AVAILABLE_MONTHS,
) -> SystemBalance:
    selected = resolve_months(start_month, end_month, months)
    if not selected:
        return SystemBalance()

    a1, a2, a3_individual, a3_bulk = _tiers(by_level(meters), selected)
    total_loss = a1 - a3_individual
    return SystemBalance(
        A1=a1,
        A2=a2,
        A3_bulk=a3_bulk,
        A3_individual=a3_individual,
        stage1_loss=a1 - a2,
        stage2_loss=a2 - a3_individual,
        total_loss=total_loss,
        efficiency=percent_of(a3_individual, a1),
        loss_percentage=percent_of(total_loss, a1),
    )


def monthly_series(
    meters: Iterable[MeterRecord],
    start_month: str,
    end_month: str,
    *,
    months: Sequence[str] = AVAILABLE_MONTHS,
) -> List[MonthlyBalance]:
    buckets = by_level(meters)
    series: List[MonthlyBalance] = []
    for month in resolve_months(start_month, end_month, months):
        a1, a2, a3_individual, _ = _tiers(buckets, (month,))
        series.append(
            MonthlyBalance(
                month=month,
                A1=a1,
                A2=a2,
                A3_individual=a3_individual,
                stage1_loss=a1 - a2,
                stage2_loss=a2 - a3_individual,
                total_loss=a1 - a3_individual,
            )
        )
    return series


def zone_meters(meters: Iterable[MeterRecord], zone_code: str) -> List[MeterRecord]:
    """L3 and L4 meters metered inside `zone_code` (building bulks included)."""
    return [m for m in meters if m.zone == zone_code and m.level in ("L3", "L4")]


def _zone_figures(
    meters: Sequence[MeterRecord], config: ZoneConfig, month: str
) -> Tuple[float, float, List[MeterRecord]]:
    bulk_meter = next((m for m in meters if m.account_number == config.bulk_meter_account), None)
    bulk_reading = consumption_of(bulk_meter, month) if bulk_meter is not None else 0
    in_zone = zone_meters(meters, config.code)
    individual_total = sum(
        consumption_of(m, month) for m in in_zone if m.level == "L4" or not m.is_building_bulk
    )
    return bulk_reading, individual_total, in_zone


def zone_balance(
    meters: Iterable[MeterRecord],
    zone_code: str,
    month: str,
    *,
    zones: Sequence[ZoneConfig] = ZONE_CONFIG,
) -> ZoneBalance:
    config = find_zone(zone_code, zones)
    if config is None:
        return ZoneBalance(zone=zone_code, zone_name=zone_code)

    bulk_reading, individual_total, in_zone = _zone_figures(list(meters), config, month)
    loss = bulk_reading - individual_total
    return ZoneBalance(
        zone=zone_code,
        zone_name=config.name,
        bulk_meter_reading=bulk_reading,
        individual_total=individual_total,
        loss=loss,
        loss_percentage=percent_of(loss, bulk_reading),
        efficiency=percent_of(individual_total, bulk_reading),
        meter_count=len(in_zone),
    )


def all_zones_balance(
    meters: Iterable[MeterRecord],
    month: str,
    *,
    zones: Sequence[ZoneConfig] = ZONE_CONFIG,
) -> List[ZoneBalance]:
    meters = list(meters)
    return [zone_balance(meters, z.code, month, zones=zones) for z in zones]


def zone_monthly_series(
    meters: Iterable[MeterRecord],
    zone_code: str,
    months: Sequence[str] = AVAILABLE_MONTHS,
    *,
    zones: Sequence[ZoneConfig] = ZONE_CONFIG,
) -> List[Dict[str, Any]]:
    meters = list(meters)
    rows = []
    for month in months:
        zb = zone_balance(meters, zone_code, month, zones=zones)
        rows.append(
            {
                "month": month,
                "zone_bulk": zb.bulk_meter_reading,
                "individual_total": zb.individual_total,
                "loss": abs(zb.loss),
            }
        )
    return rows


def meter_counts_by_level(meters: Iterable[MeterRecord]) -> List[Dict[str, Any]]:
    buckets = by_level(meters)
    return [{"level": level, "count": len(buckets[level])} for level in LEVELS]


def meter_types(meters: Iterable[MeterRecord]) -> List[str]:
    seen: Dict[str, None] = {}
    for m in meters:
        seen.setdefault(m.type, None)
    return ["All"] + list(seen)


def filter_by_type(meters: Iterable[MeterRecord], meter_type: str) -> List[MeterRecord]:
    if meter_type == "All":
        return list(meters)
    return [m for m in meters if m.type == meter_type]


def meter_range_total(meter: MeterRecord, range_months: Sequence[str]) -> float:
    return sum(consumption_of(meter, month) for month in range_months)


def consumption_by_type(
    meters: Iterable[MeterRecord],
    start_month: str,
    end_month: str,
    *,
    months: Sequence[str] = AVAILABLE_MONTHS,
) -> List[Dict[str, Any]]:
    selected = resolve_months(start_month, end_month, months)
    totals: Dict[str, float] = {}
    for m in meters:
        totals[m.type] = totals.get(m.type, 0) + meter_range_total(m, selected)
    rows = [{"type": t, "total": total} for t, total in totals.items()]
    return sorted(rows, key=lambda r: r["total"], reverse=True)


def highest_consumer(
    meters: Iterable[MeterRecord],
    start_month: str,
    end_month: str,
    *,
    months: Sequence[str] = AVAILABLE_MONTHS,
) -> Optional[Dict[str, Any]]:
    selected = resolve_months(start_month, end_month, months)
    best: Optional[Dict[str, Any]] = None
    for m in meters:
        total = meter_range_total(m, selected)
        if total > (best["total"] if best else 0):
            best = {"meter": m, "total": total}
    return best


def meter_range_totals(
    meters: Iterable[MeterRecord],
    start_month: str,
    end_month: str,
    *,
    months: Sequence[str] = AVAILABLE_MONTHS,
) -> List[Dict[str, Any]]:
    """Table rows: identity columns, one column per month in range, and the range total."""
    selected = resolve_months(start_month, end_month, months)
    rows = []
    for m in meters:
        row: Dict[str, Any] = {
            "account_number": m.account_number,
            "label": m.label,
            "level": m.level,
            "zone": m.zone,
            "type": m.type,
        }
        for month in selected:
            row[month] = consumption_of(m, month)
        row["total"] = meter_range_total(m, selected)
        rows.append(row)
    return rows


def _tree_node(meter: MeterRecord, range_months: Sequence[str]) -> Dict[str, Any]:
    return {
        "account_number": meter.account_number,
        "label": meter.label,
        "level": meter.level,
        "type": meter.type,
        "total": meter_range_total(meter, range_months),
    }


def meter_hierarchy(
    meters: Iterable[MeterRecord],
    start_month: str,
    end_month: str,
    *,
    months: Sequence[str] = AVAILABLE_MONTHS,
    zones: Sequence[ZoneConfig] = ZONE_CONFIG,
) -> Dict[str, Any]:
    """Supply tree with range totals per meter.

    L1 mains feed each zone bulk (L2) and the direct connections; a zone lists
    its L3 and L4 meters. L2 meters that are no zone's bulk, and L3/L4 meters
    outside the configured zones, end up under `unassigned`.
    """
    selected = resolve_months(start_month, end_month, months)
    buckets = by_level(meters)
    zone_codes = {z.code for z in zones}
    bulk_accounts = {z.bulk_meter_account for z in zones}

    zone_nodes = []
    for z in zones:
        bulk = next((m for m in buckets["L2"] if m.account_number == z.bulk_meter_account), None)
        l3 = [m for m in buckets["L3"] if m.zone == z.code]
        l4 = [m for m in buckets["L4"] if m.zone == z.code]
        zone_nodes.append(
            {
                "zone": z.code,
                "zone_name": z.name,
                "bulk": _tree_node(bulk, selected) if bulk is not None else None,
                "L3": [_tree_node(m, selected) for m in l3],
                "L4": [_tree_node(m, selected) for m in l4],
                "individual_total": _sum_months([m for m in l3 if not m.is_building_bulk] + l4, selected),
            }
        )

    unassigned = [m for m in buckets["L2"] if m.account_number not in bulk_accounts]
    unassigned += [m for level in ("L3", "L4") for m in buckets[level] if m.zone not in zone_codes]
    return {
        "main": [_tree_node(m, selected) for m in buckets["L1"]],
        "zones": zone_nodes,
        "direct_connections": [_tree_node(m, selected) for m in buckets["DC"]],
        "unassigned": [_tree_node(m, selected) for m in unassigned],
    }
