from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd


def records_to_csv(records: Iterable[Dict[str, Any]], columns: Optional[Sequence[str]] = None) -> bytes:
    """Flatten a list of report rows into UTF-8 CSV bytes with a header row."""
    rows: List[Dict[str, Any]] = list(records)
    df = pd.DataFrame(rows, columns=list(columns) if columns else None)
    if df.empty and not len(df.columns):
        return b""
    return df.to_csv(index=False).encode("utf-8")


def export_filename(prefix: str, today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"{prefix}-{today.isoformat()}.csv"
