import pytest

from face_greeter import config
from face_greeter.config import RecognitionSettings
from face_greeter.exceptions import GreeterError


def test_env_helpers_fall_back_on_bad_values(monkeypatch):
    monkeypatch.setenv("GREETER_TEST_INT", "not-a-number")
    monkeypatch.setenv("GREETER_TEST_FLOAT", "2.5")
    monkeypatch.setenv("GREETER_TEST_STR", "   ")
    monkeypatch.delenv("GREETER_TEST_MISSING", raising=False)

    assert config._int_env("GREETER_TEST_INT", 7) == 7
    assert config._float_env("GREETER_TEST_FLOAT", 1.0) == 2.5
    assert config._str_env("GREETER_TEST_STR", "default") == "default"
    assert config._optional_float_env("GREETER_TEST_MISSING") is None


def test_saved_thresholds_override_defaults(store):
    store.set_setting("distanceThreshold", 0.45)
    store.set_setting("confidenceThreshold", 75)

    settings = RecognitionSettings.load(store)

    assert settings.distance_threshold == 0.45
    assert settings.confidence_threshold_percent == 75
    assert settings.greeting_cooldown_seconds == config.GREETING_COOLDOWN_SECONDS


def test_defaults_apply_without_saved_settings(store):
    settings = RecognitionSettings.load(store)
    assert settings.distance_threshold == config.DISTANCE_THRESHOLD
    assert settings.confidence_threshold_percent == config.CONFIDENCE_THRESHOLD_PERCENT


@pytest.mark.parametrize(
    "overrides",
    [
        {"distance_threshold": 0.0},
        {"confidence_threshold_percent": 120},
        {"greeting_cooldown_seconds": -1.0},
    ],
)
def test_invalid_settings_are_rejected(overrides):
    with pytest.raises(ValueError):
        RecognitionSettings(**overrides)


@pytest.mark.parametrize(
    "key, value",
    [
        ("confidenceThreshold", 250),
        ("confidenceThreshold", "high"),
        ("distanceThreshold", "0,5"),
        ("distanceThreshold", [0.5]),
    ],
)
def test_corrupt_saved_threshold_is_reported_with_its_key(store, key, value):
    store.set_setting(key, value)
    with pytest.raises(GreeterError, match=key):
        RecognitionSettings.load(store)
