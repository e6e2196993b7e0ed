from __future__ import annotations

from typing import Any, Dict

import altair as alt

alt.data_transformers.disable_max_rows()

PALETTE = {
    "A1": "#5BA88B",
    "A2": "#81D8D0",
    "A3": "#4E4456",
    "loss": "#C95D63",
    "warning": "#E8A838",
}


def to_vega_spec(chart: alt.Chart) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()
