import pytest

from hls_relay.engine import InvalidInput, is_valid_source_locator, normalize_session_id, validate_source_locator


@pytest.mark.parametrize(
    "locator",
    [
        "http://example.com/live/stream.flv",
        "https://cdn.example.com/a.flv?token=1",
        "rtmp://origin.example.com/app/key",
        "rtsp://10.0.0.5:554/cam",
    ],
)
def test_accepts_supported_schemes(locator: str) -> None:
    assert is_valid_source_locator(locator) is True
    assert validate_source_locator(f"  {locator}  ") == locator


@pytest.mark.parametrize("locator", ["ftp://example.com/a.flv", "not a url", "http://", "file:///etc/passwd", 42])
def test_rejects_bad_locators(locator) -> None:
    assert is_valid_source_locator(locator) is False
    with pytest.raises(InvalidInput) as excinfo:
        validate_source_locator(locator)
    assert excinfo.value.reason == "invalid_input"


def test_missing_locator_is_reported_as_required() -> None:
    with pytest.raises(InvalidInput, match="required"):
        validate_source_locator("   ")


def test_allowed_schemes_are_configurable() -> None:
    assert is_valid_source_locator("rtmp://host/app", allowed_schemes={"http"}) is False
    assert is_valid_source_locator("http://host/app", allowed_schemes={"http"}) is True


def test_session_ids_are_sanitized() -> None:
    assert normalize_session_id("cam 1") == "cam_1"
    assert normalize_session_id("cam/../1") == "cam____1"
    assert normalize_session_id("Cam-2_ok") == "Cam-2_ok"


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_empty_session_ids_are_rejected(raw) -> None:
    with pytest.raises(InvalidInput):
        normalize_session_id(raw)
