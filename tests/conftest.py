"""
Pytest configuration and shared fixtures
"""
import pytest

from water_core.config import SAMPLE_DATA_PATH, Settings, get_settings
from water_core.data import SOURCE_SAMPLE, WaterDataset
from water_core.meters import MeterRecord, ZoneConfig

MONTHS = ("Jan-25", "Feb-25", "Mar-25")


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep a developer's .env / shell from pointing tests at a live backend"""
    for key in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "FIRST_MONTH", "LAST_MONTH", "SAMPLE_DATA_PATH"):
        monkeypatch.delenv(key, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def sample_settings():
    """Settings with no backend, pointing at the bundled sample file"""
    return Settings(_env_file=None, SUPABASE_URL=None, SUPABASE_ANON_KEY=None, SAMPLE_DATA_PATH=SAMPLE_DATA_PATH)


@pytest.fixture
def backend_settings():
    """Settings with a (fake) configured backend"""
    return Settings(
        _env_file=None,
        SUPABASE_URL="https://example.supabase.co/",
        SUPABASE_ANON_KEY="anon-key",
        SUPABASE_PAGE_SIZE=2,
        SAMPLE_DATA_PATH=SAMPLE_DATA_PATH,
    )


@pytest.fixture
def months():
    return MONTHS


@pytest.fixture
def zones():
    return (
        ZoneConfig("Z1", "Zone One", "Z1-BULK"),
        ZoneConfig("Z2", "Zone Two", "Z2-BULK"),
    )


@pytest.fixture
def network():
    """A small two-zone network over three months"""
    return [
        MeterRecord("MAIN", "Main Bulk", "L1", None, "Main BULK", {"Jan-25": 1000, "Feb-25": 1100, "Mar-25": 1200}),
        MeterRecord("Z1-BULK", "Zone 1 Bulk", "L2", "Z1", "Zone Bulk", {"Jan-25": 500, "Feb-25": 520, "Mar-25": 540}),
        MeterRecord("Z2-BULK", "Zone 2 Bulk", "L2", "Z2", "Zone Bulk", {"Jan-25": 300, "Feb-25": 310}),
        MeterRecord("DC-1", "Hotel", "DC", "Direct Connection", "Retail", {"Jan-25": 100, "Feb-25": 100, "Mar-25": 100}),
        MeterRecord("V1", "Villa 1", "L3", "Z1", "Residential (Villa)", {"Jan-25": 200, "Feb-25": 210, "Mar-25": 220}),
        MeterRecord("V2", "Villa 2", "L3", "Z1", "Residential (Villa)", {"Jan-25": 150, "Mar-25": 160}),
        MeterRecord("B1", "Building 1 Bulk", "L3", "Z1", "D_Building_Bulk", {"Jan-25": 90, "Feb-25": 95, "Mar-25": 100}),
        MeterRecord("A1", "Apt 1", "L4", "Z1", "Residential (Apart)", {"Jan-25": 40, "Feb-25": 45, "Mar-25": 50}),
        MeterRecord("A2", "Apt 2", "L4", "Z1", "Residential (Apart)", {"Jan-25": 40, "Feb-25": 40, "Mar-25": 40}),
        MeterRecord("V3", "Villa 3", "L3", "Z2", "Residential (Villa)", {"Jan-25": 250, "Feb-25": 260, "Mar-25": 270}),
    ]


@pytest.fixture
def dataset(network, months):
    return WaterDataset(meters=tuple(network), source=SOURCE_SAMPLE, months=months)
