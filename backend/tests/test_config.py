import pytest

from salesboard import config
from salesboard.services.ingest_service import ingest_options


def test_float_setting_accepts_fractions(monkeypatch):
    monkeypatch.setenv("INGEST_MAX_SECONDS", "0.5")
    assert config._float_env("INGEST_MAX_SECONDS", 0.0) == 0.5


@pytest.mark.parametrize("raw", [None, "", "  "])
def test_unset_settings_use_defaults(monkeypatch, raw):
    if raw is None:
        monkeypatch.delenv("INGEST_MAX_SECONDS", raising=False)
        monkeypatch.delenv("INGEST_MAX_ROWS", raising=False)
    else:
        monkeypatch.setenv("INGEST_MAX_SECONDS", raw)
        monkeypatch.setenv("INGEST_MAX_ROWS", raw)

    assert config._float_env("INGEST_MAX_SECONDS", 0.0) == 0.0
    assert config._int_env("INGEST_MAX_ROWS", 0) == 0


def test_ingest_options_from_config():
    options = ingest_options({"INGEST_MAX_ROWS": 500, "INGEST_MAX_SECONDS": 1.5, "DATE_FALLBACK": "reject"})
    assert options == {"date_policy": "reject", "max_rows": 500, "max_seconds": 1.5}


def test_defaults_from_class():
    assert isinstance(config.Config.INGEST_MAX_SECONDS, float)
    assert config.Config.DATE_FALLBACK in ("today", "reject")
