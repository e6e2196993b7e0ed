"""Core (UI-agnostic) water dashboard logic.

This package contains:
- the meter model and month calendar
- water balance aggregation (A1/A2/A3 tiers, losses, zone balance, supply hierarchy)
- data loading (Supabase REST -> meters, bundled CSV fallback)
- filter normalization
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict) and CSV export
"""
