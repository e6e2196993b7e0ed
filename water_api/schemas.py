from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class WaterFiltersModel(BaseModel):
    start_month: Optional[str] = None
    end_month: Optional[str] = None
    zone: Optional[str] = None
    meter_type: str = "All"
    top_n: int = 15


class ZoneModel(BaseModel):
    code: str
    name: str
    bulk_meter_account: str


class MetaZonesResponse(BaseModel):
    zones: List[ZoneModel]


class MetaListResponse(BaseModel):
    values: List[str]
