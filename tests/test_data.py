"""
Unit tests for meter loading, normalization and the sample-data fallback
"""
import logging
import pickle
from unittest.mock import patch

import pandas as pd
import pytest

from water_core.backend import BackendError
from water_core.balance import system_balance, zone_balance
from water_core.data import (
    SOURCE_SAMPLE,
    SOURCE_SUPABASE,
    WaterDataset,
    clean_str,
    load_sample_meters,
    load_water_data,
    meters_to_frame,
    normalize_month_key,
    prepare_context,
    rows_to_meters,
)
from water_core.filters import WaterFilters
from water_core.meters import ZONE_CONFIG, month_sequence


class TestNormalization:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("Jan-25", "Jan-25"),
            ("jan_25", "Jan-25"),
            ("JAN-25", "Jan-25"),
            ("Sep 25", "Sep-25"),
            ("2025-03", "Mar-25"),
            ("2024-12", "Dec-24"),
            ("2025-13", None),
            ("Foo-25", None),
            ("account_number", None),
        ],
    )
    def test_normalize_month_key(self, raw, expected):
        assert normalize_month_key(raw) == expected

    @pytest.mark.parametrize(
        "raw,expected",
        [(None, None), (float("nan"), None), ("  ", None), ("N/A", None), (4300346.0, "4300346"), (" Zone_05 ", "Zone_05")],
    )
    def test_clean_str(self, raw, expected):
        assert clean_str(raw) == expected


class TestRowsToMeters:
    def test_header_aliases_and_sparse_readings(self):
        rows = [
            {"Acct #": 4300001, "Meter Name": "Z5-17", "Level": "l3", "Zone": "Zone_05", "Type": "Residential (Villa)", "jan_25": 112, "feb_25": None, "Mar 25": "81"},
        ]

        meters = rows_to_meters(rows)

        assert len(meters) == 1
        m = meters[0]
        assert m.account_number == "4300001"
        assert m.label == "Z5-17"
        assert m.level == "L3"
        assert m.zone == "Zone_05"
        assert dict(m.readings) == {"Jan-25": 112.0, "Mar-25": 81.0}

    def test_unparsable_reading_is_dropped(self, caplog):
        rows = [{"account_number": "1", "level": "L1", "Jan-25": "n/a", "Feb-25": "12", "Mar-25": "1,234"}]

        with caplog.at_level(logging.WARNING):
            meters = rows_to_meters(rows)

        assert dict(meters[0].readings) == {"Feb-25": 12.0}
        assert "Unparsable reading '1,234' for meter 1, Mar-25" in caplog.text
        assert "n/a" not in caplog.text

    def test_non_finite_reading_is_dropped(self, caplog):
        rows = [{"account_number": "1", "level": "L1", "Jan-25": float("inf"), "Feb-25": "-inf", "Mar-25": 5}]

        with caplog.at_level(logging.WARNING):
            meters = rows_to_meters(rows)

        assert dict(meters[0].readings) == {"Mar-25": 5.0}
        assert system_balance(meters, "Jan-25", "Mar-25").A1 == 5
        assert caplog.text.count("Unparsable reading") == 2

    def test_sheet_label_column_is_the_level(self):
        rows = [
            {"Acct #": "4300001", "Meter Name": "Z5-17", "Label": "L3", "Zone": "Zone_05", "Type": "Residential (Villa)", "Jan-25": 99},
        ]

        meters = rows_to_meters(rows)

        assert len(meters) == 1
        assert meters[0].label == "Z5-17"
        assert meters[0].level == "L3"
        assert dict(meters[0].readings) == {"Jan-25": 99.0}

    def test_label_without_name_column_is_the_display_name(self):
        meters = rows_to_meters([{"account_number": "1", "label": "Main", "level": "L1"}])
        assert (meters[0].label, meters[0].level) == ("Main", "L1")

    def test_blank_zone_and_label(self):
        meters = rows_to_meters([{"account_number": "C43659", "level": "L1", "zone": "", "label": None}])
        assert meters[0].zone is None
        assert meters[0].label == "C43659"
        assert meters[0].type == ""

    def test_duplicate_account_keeps_first(self, caplog):
        rows = [
            {"account_number": "1", "label": "first", "level": "L2", "Jan-25": 1},
            {"account_number": "1", "label": "second", "level": "L2", "Jan-25": 2},
        ]

        with caplog.at_level(logging.WARNING):
            meters = rows_to_meters(rows)

        assert [m.label for m in meters] == ["first"]
        assert "Duplicate account number 1" in caplog.text

    def test_unknown_level_and_missing_account_are_skipped(self):
        rows = [
            {"account_number": "1", "level": "L9"},
            {"account_number": None, "level": "L3"},
            {"account_number": "3", "level": "DC"},
        ]
        assert [m.account_number for m in rows_to_meters(rows)] == ["3"]

    def test_missing_identity_columns(self):
        assert rows_to_meters([{"label": "x", "Jan-25": 1}]) == []

    def test_empty(self):
        assert rows_to_meters([]) == []
        assert rows_to_meters(pd.DataFrame()) == []

    def test_meters_to_frame(self, network, months):
        df = meters_to_frame(network[:3], months)

        assert list(df.columns) == ["account_number", "label", "level", "zone", "type", *months]
        assert df.loc[2, "Feb-25"] == 310
        assert pd.isna(df.loc[2, "Mar-25"])


class TestSampleData:
    def test_bundled_sample_loads(self):
        meters = load_sample_meters()

        assert len(meters) == 42
        assert [m.account_number for m in meters if m.level == "L1"] == ["C43659"]
        accounts = {m.account_number for m in meters}
        for zone in ZONE_CONFIG:
            assert zone.bulk_meter_account in accounts

    def test_sample_sparse_cell(self):
        villa = next(m for m in load_sample_meters() if m.account_number == "4300060")
        assert "Mar-25" not in villa.readings

    def test_sample_balance(self):
        meters = load_sample_meters()

        jan = system_balance(meters, "Jan-25", "Jan-25")
        assert jan.A1 == 22955
        assert jan.A1 > jan.A2 > jan.A3_individual

        zone_3a = zone_balance(meters, "Zone_03_(A)", "Jan-25")
        assert zone_3a.bulk_meter_reading == 148
        assert zone_3a.individual_total == 121
        assert zone_3a.meter_count == 10

    def test_dataset_survives_pickling(self):
        dataset = WaterDataset(meters=load_sample_meters(), source=SOURCE_SAMPLE, months=month_sequence("Jan-25", "Oct-25"))

        restored = pickle.loads(pickle.dumps(dataset))

        assert restored == dataset
        assert system_balance(restored.meters, "Jan-25", "Jan-25").A1 == 22955

    def test_missing_sample_file(self, tmp_path):
        assert load_sample_meters(tmp_path / "nope.csv") == ()


class TestLoadWaterData:
    def test_not_configured_uses_sample(self, sample_settings):
        with patch("water_core.data.fetch_water_meter_rows") as fetch:
            dataset = load_water_data(sample_settings)

        fetch.assert_not_called()
        assert dataset.source == SOURCE_SAMPLE
        assert len(dataset.meters) == 42
        assert dataset.months[0] == "Jan-25"
        assert dataset.months[-1] == "Oct-25"

    def test_backend_rows_used(self, backend_settings):
        rows = [{"account_number": "M1", "level": "L1", "Jan-25": 10}]
        with patch("water_core.data.fetch_water_meter_rows", return_value=rows):
            dataset = load_water_data(backend_settings)

        assert dataset.source == SOURCE_SUPABASE
        assert [m.account_number for m in dataset.meters] == ["M1"]

    def test_empty_backend_falls_back(self, backend_settings):
        with patch("water_core.data.fetch_water_meter_rows", return_value=[]):
            dataset = load_water_data(backend_settings)

        assert dataset.source == SOURCE_SAMPLE
        assert len(dataset.meters) == 42

    def test_backend_error_falls_back(self, backend_settings, caplog):
        with patch("water_core.data.fetch_water_meter_rows", side_effect=BackendError("boom")):
            with caplog.at_level(logging.ERROR):
                dataset = load_water_data(backend_settings)

        assert dataset.source == SOURCE_SAMPLE
        assert "Supabase water fetch failed" in caplog.text

    def test_unexpected_error_falls_back(self, backend_settings):
        with patch("water_core.data.fetch_water_meter_rows", side_effect=KeyError("level")):
            dataset = load_water_data(backend_settings)

        assert dataset.source == SOURCE_SAMPLE

    def test_month_calendar_from_settings(self, sample_settings):
        settings = sample_settings.model_copy(update={"FIRST_MONTH": "Nov-24", "LAST_MONTH": "Feb-25"})
        dataset = load_water_data(settings)
        assert dataset.months == ("Nov-24", "Dec-24", "Jan-25", "Feb-25")


class TestPrepareContext:
    def test_context(self, dataset):
        filters = WaterFilters(start_month="Feb-25", end_month="Mar-25", zone="Z2", meter_type="Residential (Apart)")

        ctx = prepare_context(filters, dataset)

        assert ctx["range_months"] == ("Feb-25", "Mar-25")
        assert [m.account_number for m in ctx["filtered_meters"]] == ["A1", "A2"]
        assert [m.account_number for m in ctx["zone_meters"]] == ["V3"]
        assert ctx["source"] == SOURCE_SAMPLE
        assert len(ctx["meters"]) == 10

    def test_raw_filters_are_normalized(self, dataset):
        ctx = prepare_context({}, dataset)

        assert ctx["range_months"] == dataset.months
        assert len(ctx["filtered_meters"]) == len(dataset.meters)
