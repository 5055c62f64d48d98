import pytest

from config import get_settings


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch, tmp_path):
    monkeypatch.setenv("FINANCES_DATA_DIR", str(tmp_path))
    for name in (
        "FINANCES_ROLLUP_STRATEGY",
        "FINANCES_SAGA_COMPENSATE",
        "FINANCES_PIN_VALIDATOR_URL",
        "FINANCES_OWNER_ID",
        "FINANCES_DUE_SOON_DAYS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def configure(monkeypatch):
    def apply(**env: str) -> None:
        for key, value in env.items():
            monkeypatch.setenv(f"FINANCES_{key.upper()}", value)
        get_settings.cache_clear()

    return apply
