from __future__ import annotations

from dataclasses import asdict
import logging
import math

import numpy as np
import pandas as pd
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response
from fastapi.encoders import jsonable_encoder

from water_api.schemas import MetaListResponse, MetaZonesResponse, WaterFiltersModel, ZoneModel
from water_core.balance import all_zones_balance, meter_types, monthly_series
from water_core.config import configure_logging, get_settings
from water_core.data import WaterDataset, load_water_data, prepare_context
from water_core.export import export_filename, records_to_csv
from water_core.filters import WaterFilters, normalize_filters
from water_core.meters import ZONE_CONFIG
from water_core.metrics_consumption import compute_consumption
from water_core.metrics_database import compute_database
from water_core.metrics_hierarchy import compute_hierarchy
from water_core.metrics_overview import compute_overview
from water_core.metrics_zone import compute_zone


configure_logging()
app = FastAPI(title="Water Balance Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _filters_from_model(model: WaterFiltersModel, dataset: WaterDataset) -> WaterFilters:
    raw = model.model_dump()
    return normalize_filters(raw, available_months=dataset.months, zone_codes=[z.code for z in ZONE_CONFIG])


def _error(exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": str(exc), "type": type(exc).__name__})


def _finite(value: object) -> float | None:
    out = float(value)  # type: ignore[arg-type]
    return out if math.isfinite(out) else None


# Payloads carry numpy scalars from pandas and may hold NaN/inf; JSON has neither.
_ENCODERS = {
    type(pd.NA): lambda _: None,
    np.integer: int,
    np.floating: _finite,
    float: _finite,
    np.bool_: bool,
}


def _json(payload: dict) -> JSONResponse:
    return JSONResponse(content=jsonable_encoder(payload, custom_encoder=_ENCODERS))


@app.get("/meta/months")
def meta_months():
    try:
        dataset = load_water_data()
        return _json({"months": list(dataset.months)})
    except Exception as exc:
        logger.exception("meta_months failed")
        return _error(exc)


@app.get("/meta/zones", response_model=MetaZonesResponse)
def meta_zones():
    return MetaZonesResponse(zones=[ZoneModel(**asdict(z)) for z in ZONE_CONFIG])


@app.get("/meta/types", response_model=MetaListResponse)
def meta_types():
    try:
        dataset = load_water_data()
        return MetaListResponse(values=meter_types(dataset.meters))
    except Exception as exc:
        logger.exception("meta_types failed")
        return _error(exc)


@app.get("/meta/source")
def meta_source():
    try:
        dataset = load_water_data()
        return _json({"source": dataset.source, "meter_count": len(dataset.meters)})
    except Exception as exc:
        logger.exception("meta_source failed")
        return _error(exc)


@app.post("/overview")
def overview(filters: WaterFiltersModel):
    try:
        dataset = load_water_data()
        f = _filters_from_model(filters, dataset)
        ctx = prepare_context(f, dataset)
        return _json(compute_overview(f, ctx))
    except Exception as exc:
        logger.exception("overview failed")
        return _error(exc)


@app.post("/zone")
def zone(filters: WaterFiltersModel):
    try:
        dataset = load_water_data()
        f = _filters_from_model(filters, dataset)
        ctx = prepare_context(f, dataset)
        return _json(compute_zone(f, ctx))
    except Exception as exc:
        logger.exception("zone failed")
        return _error(exc)


@app.post("/consumption")
def consumption(filters: WaterFiltersModel):
    try:
        dataset = load_water_data()
        f = _filters_from_model(filters, dataset)
        ctx = prepare_context(f, dataset)
        return _json(compute_consumption(f, ctx))
    except Exception as exc:
        logger.exception("consumption failed")
        return _error(exc)


@app.post("/database")
def database(filters: WaterFiltersModel):
    try:
        dataset = load_water_data()
        f = _filters_from_model(filters, dataset)
        ctx = prepare_context(f, dataset)
        return _json(compute_database(f, ctx))
    except Exception as exc:
        logger.exception("database failed")
        return _error(exc)


@app.post("/hierarchy")
def hierarchy(filters: WaterFiltersModel):
    try:
        dataset = load_water_data()
        f = _filters_from_model(filters, dataset)
        ctx = prepare_context(f, dataset)
        return _json(compute_hierarchy(f, ctx))
    except Exception as exc:
        logger.exception("hierarchy failed")
        return _error(exc)


@app.post("/export/{page}")
def export_page(page: str, filters: WaterFiltersModel):
    dataset = load_water_data()
    f = _filters_from_model(filters, dataset)
    ctx = prepare_context(f, dataset)

    records: list = []
    columns = None
    if page == "overview":
        records = [asdict(row) for row in monthly_series(ctx["meters"], f.start_month, f.end_month, months=dataset.months)]
    elif page == "zones":
        records = [asdict(z) for z in all_zones_balance(ctx["meters"], f.end_month, zones=ctx["zones"])]
    elif page == "zone":
        records = compute_zone(f, ctx)["meters"]
    elif page == "consumption":
        records = compute_consumption(f, ctx)["by_type"]
    elif page == "database":
        payload = compute_database(f, ctx)
        records, columns = payload["meters"], payload["columns"]
    elif page == "hierarchy":
        payload = compute_hierarchy(f, ctx)
        records, columns = payload["rows"], payload["columns"]

    filename = export_filename(f"water-{page}")
    return Response(
        content=records_to_csv(records, columns),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
