import pytest

from grid_audit.config import load_config


def test_defaults(monkeypatch):
    for key in ("LOG_LEVEL", "GRID_AUDIT_MAX_PROMOTED_ECHO", "GRID_AUDIT_ALLOW_ROW_BAND_PROMOTION"):
        monkeypatch.delenv(key, raising=False)
    config = load_config()

    assert config.log_level == "INFO"
    assert config.max_promoted_echo == 5
    assert config.max_synthetic_ratio == 0.3
    assert config.bbox_epsilon == 0.01
    assert config.header_band_policy.allow_row_band_promotion is False
    assert config.spec_version == "v1.5.0-INDUSTRIAL-STRICT"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("GRID_AUDIT_MAX_PROMOTED_ECHO", "8")
    monkeypatch.setenv("GRID_AUDIT_ALLOW_ROW_BAND_PROMOTION", "yes")
    monkeypatch.setenv("GRID_AUDIT_PROMOTION_MIN_TEXT", "0.75")
    monkeypatch.setenv("GRID_AUDIT_VOCABULARY_PATH", "/tmp/vocab.json")
    config = load_config()

    assert config.log_level == "DEBUG"
    assert config.max_promoted_echo == 8
    assert config.header_band_policy.allow_row_band_promotion is True
    assert config.header_band_policy.min_text == 0.75
    assert config.vocabulary_path == "/tmp/vocab.json"


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("GRID_AUDIT_MAX_SYNTHETIC_RATIO", "1.5"),
        ("GRID_AUDIT_MAX_PROMOTED_ECHO", "many"),
        ("GRID_AUDIT_ALLOW_ROW_BAND_PROMOTION", "sometimes"),
    ],
)
def test_invalid_values_raise(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        load_config()
