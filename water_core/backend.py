"""Read-only client for the hosted meter table (Supabase REST / PostgREST).

Rows come back in the wide shape the loader in `water_core.data` expects:
identity columns plus one column per month.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests

from water_core.config import Settings

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """The meter table could not be read."""


def is_backend_configured(settings: Settings) -> bool:
    return settings.backend_configured


def _headers(settings: Settings) -> Dict[str, str]:
    key = (settings.SUPABASE_ANON_KEY or "").strip()
    return {"apikey": key, "Authorization": f"Bearer {key}", "Accept": "application/json"}


def fetch_water_meter_rows(settings: Settings) -> List[Dict[str, Any]]:
    if not is_backend_configured(settings):
        raise BackendError("Supabase is not configured (set SUPABASE_URL and SUPABASE_ANON_KEY)")

    url = f"{settings.SUPABASE_URL.strip().rstrip('/')}/rest/v1/{settings.WATER_METERS_TABLE}"
    page_size = settings.SUPABASE_PAGE_SIZE
    rows: List[Dict[str, Any]] = []
    offset = 0
    while True:
        try:
            r = requests.get(
                url,
                headers=_headers(settings),
                params={"select": "*", "limit": page_size, "offset": offset},
                timeout=settings.SUPABASE_TIMEOUT,
            )
            r.raise_for_status()
            page = r.json()
        except requests.RequestException as exc:
            raise BackendError(f"GET {settings.WATER_METERS_TABLE} failed: {exc}") from exc
        except ValueError as exc:
            raise BackendError(f"GET {settings.WATER_METERS_TABLE} returned invalid JSON") from exc

        if not isinstance(page, list):
            raise BackendError(f"GET {settings.WATER_METERS_TABLE} returned {type(page).__name__}, expected a list")
        rows.extend(page)
        logger.debug("Fetched %d rows from %s (offset %d)", len(page), settings.WATER_METERS_TABLE, offset)
        if len(page) < page_size:
            break
        offset += page_size
    return rows
