"""
Unit tests for the Supabase REST client
"""
from unittest.mock import MagicMock, patch

import pytest
import requests

from water_core.backend import BackendError, fetch_water_meter_rows, is_backend_configured


def _response(payload, status=200):
    resp = MagicMock()
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status} Error")
    return resp


class TestFetchWaterMeterRows:
    def test_configuration(self, sample_settings, backend_settings):
        assert not is_backend_configured(sample_settings)
        assert is_backend_configured(backend_settings)

    def test_blank_key_is_not_configured(self, backend_settings):
        settings = backend_settings.model_copy(update={"SUPABASE_ANON_KEY": "   "})
        assert not is_backend_configured(settings)

    def test_not_configured_raises(self, sample_settings):
        with pytest.raises(BackendError):
            fetch_water_meter_rows(sample_settings)

    def test_pages_until_short_page(self, backend_settings):
        pages = [
            _response([{"account_number": "1"}, {"account_number": "2"}]),
            _response([{"account_number": "3"}]),
        ]
        with patch("water_core.backend.requests.get", side_effect=pages) as get:
            rows = fetch_water_meter_rows(backend_settings)

        assert [r["account_number"] for r in rows] == ["1", "2", "3"]
        assert get.call_count == 2
        first_url = get.call_args_list[0].args[0]
        assert first_url == "https://example.supabase.co/rest/v1/water_meters"
        headers = get.call_args_list[0].kwargs["headers"]
        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer anon-key"
        assert get.call_args_list[0].kwargs["params"] == {"select": "*", "limit": 2, "offset": 0}
        assert get.call_args_list[1].kwargs["params"]["offset"] == 2

    def test_exact_multiple_needs_empty_page(self, backend_settings):
        pages = [_response([{"a": 1}, {"a": 2}]), _response([])]
        with patch("water_core.backend.requests.get", side_effect=pages) as get:
            rows = fetch_water_meter_rows(backend_settings)

        assert len(rows) == 2
        assert get.call_count == 2

    def test_http_error(self, backend_settings):
        with patch("water_core.backend.requests.get", return_value=_response([], status=401)):
            with pytest.raises(BackendError, match="401"):
                fetch_water_meter_rows(backend_settings)

    def test_connection_error(self, backend_settings):
        with patch("water_core.backend.requests.get", side_effect=requests.ConnectionError("unreachable")):
            with pytest.raises(BackendError):
                fetch_water_meter_rows(backend_settings)

    def test_invalid_json(self, backend_settings):
        resp = _response(None)
        resp.json.side_effect = ValueError("no json")
        with patch("water_core.backend.requests.get", return_value=resp):
            with pytest.raises(BackendError, match="invalid JSON"):
                fetch_water_meter_rows(backend_settings)

    def test_non_list_payload(self, backend_settings):
        with patch("water_core.backend.requests.get", return_value=_response({"message": "nope"})):
            with pytest.raises(BackendError, match="expected a list"):
                fetch_water_meter_rows(backend_settings)
