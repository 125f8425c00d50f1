from pathlib import Path

import pytest

from app.utils.config import Settings, get_settings
from domains.normalizer.processors.image import NormalizationRequest


def test_defaults_match_service_constants():
    settings = Settings(_env_file=None)

    assert settings.debounce_seconds == 2.0
    assert settings.recent_window_seconds == 2.0
    assert settings.decode_retries == 5
    assert settings.decode_retry_delay == 0.2
    assert settings.event_scope == "rename"
    assert settings.strict_per_path is False


def test_environment_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("WATCH_FOLDER", str(tmp_path))
    monkeypatch.setenv("OUTPUT_FORMAT", "WEBP")
    monkeypatch.setenv("CANVAS_WIDTH", "1024")

    settings = Settings(_env_file=None)

    assert settings.watch_folder == tmp_path
    assert settings.output_format == "WEBP"
    assert settings.get_canvas_size() == (1024, 800)


def test_output_format_is_not_validated_here():
    # The normalizer rejects unknown formats per request
    assert Settings(_env_file=None, output_format="heic").output_format == "heic"


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_request_from_settings(tmp_path):
    settings = Settings(
        _env_file=None, canvas_width=640, canvas_height=480, padding=12, tolerance=7, output_format="jpeg"
    )

    request = NormalizationRequest.from_settings(tmp_path / "scan.png", settings)

    assert request == NormalizationRequest(
        source=Path(tmp_path / "scan.png"),
        canvas_size=(640, 480),
        padding=12,
        tolerance=7,
        output_format="jpeg",
    )
    with pytest.raises(AttributeError):
        request.padding = 0


if __name__ == "__main__":  # pragma: no cover
    pytest.main([__file__])
