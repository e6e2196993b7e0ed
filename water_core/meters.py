from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple

import pandas as pd


LEVELS: Tuple[str, ...] = ("L1", "L2", "L3", "L4", "DC")
BUILDING_BULK_MARKER = "Building_Bulk"
MONTH_FORMAT = "%b-%y"


def month_sequence(first: str, last: str) -> Tuple[str, ...]:
    """Chronological "Mon-YY" keys from `first` to `last` inclusive."""
    start = pd.Period(pd.to_datetime(first, format=MONTH_FORMAT), freq="M")
    end = pd.Period(pd.to_datetime(last, format=MONTH_FORMAT), freq="M")
    return tuple(p.strftime(MONTH_FORMAT) for p in pd.period_range(start, end, freq="M"))


AVAILABLE_MONTHS: Tuple[str, ...] = month_sequence("Jan-25", "Oct-25")


@dataclass(frozen=True)
class MeterRecord:
    account_number: str
    label: str
    level: str
    zone: Optional[str] = None
    type: str = ""
    readings: Mapping[str, float] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        # Readings are read-only for the lifetime of the record.
        object.__setattr__(self, "readings", MappingProxyType(dict(self.readings)))

    def __reduce__(self):
        # mappingproxy cannot be pickled; st.cache_data and deepcopy go through here
        return (
            self.__class__,
            (self.account_number, self.label, self.level, self.zone, self.type, dict(self.readings)),
        )

    @property
    def is_building_bulk(self) -> bool:
        return BUILDING_BULK_MARKER in (self.type or "")


@dataclass(frozen=True)
class ZoneConfig:
    code: str
    name: str
    bulk_meter_account: str


ZONE_CONFIG: Tuple[ZoneConfig, ...] = (
    ZoneConfig("Zone_01_(FM)", "Zone 01 (FM)", "4300346"),
    ZoneConfig("Zone_03_(A)", "Zone 03 (A)", "4300343"),
    ZoneConfig("Zone_03_(B)", "Zone 03 (B)", "4300344"),
    ZoneConfig("Zone_05", "Zone 05", "4300345"),
    ZoneConfig("Zone_08", "Zone 08", "4300342"),
    ZoneConfig("Zone_VS", "Village Square", "4300335"),
    ZoneConfig("Zone_SC", "Sales Center", "4300296"),
)


def find_zone(zone_code: str, zones: Sequence[ZoneConfig] = ZONE_CONFIG) -> Optional[ZoneConfig]:
    for z in zones:
        if z.code == zone_code:
            return z
    return None


def consumption_of(meter: MeterRecord, month: str) -> float:
    value = meter.readings.get(month)
    if value is None:
        return 0
    return value


def resolve_months(start_month: str, end_month: str, months: Sequence[str] = AVAILABLE_MONTHS) -> Tuple[str, ...]:
    """Inclusive slice of `months`; empty when either end is unknown or start is after end."""
    months = list(months)
    try:
        start_idx = months.index(start_month)
        end_idx = months.index(end_month)
    except ValueError:
        return ()
    if start_idx > end_idx:
        return ()
    return tuple(months[start_idx : end_idx + 1])
