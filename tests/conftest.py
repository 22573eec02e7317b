import pytest

from novelgrab.settings import FetchSettings


@pytest.fixture
def settings(tmp_path):
    """Settings with every wait shrunk so the fakes run instantly."""
    return FetchSettings(
        out_dir=tmp_path / "out",
        navigation_timeout_ms=200,
        catalog_settle_ms=0,
        footer_settle_ms=0,
        delay_between_requests_ms=0,
        scroll_delay_ms=0,
        scroll_settle_ms=0,
        ready_interval_ms=1,
        ready_timeout_ms=20,
        stable_interval_ms=1,
        stable_timeout_ms=50,
        stable_samples=3,
        capture_timeout_ms=1_000,
        progress=False,
    )
