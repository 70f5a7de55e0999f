import json

import pytest
import pytz

from irrigo.config import (DEFAULT_SETTINGS, AppConfig, Settings, load_settings, reset_settings, save_settings)
from irrigo.model.registry import Registry


def _defaults(tmp_path):
    return AppConfig(str(tmp_path / "unused" / "settings.json")).snapshot()


def test_first_load_writes_factory_defaults(tmp_path):
    config = AppConfig(str(tmp_path / "data" / "settings.json"))
    settings = load_settings(config)

    assert settings == _defaults(tmp_path)
    assert settings["PHONE_NUMBER"] == "+917305467054"
    assert settings["ON_FORMAT"] == "ON {prefix}{deviceId}"
    assert settings["LOCAL_TIMEZONE"] == pytz.UTC
    with open(config.settings_file, encoding="utf-8") as f:
        assert json.load(f) == DEFAULT_SETTINGS


def test_save_then_load_round_trip(tmp_path):
    path = str(tmp_path / "settings.json")
    settings = load_settings(AppConfig(path))
    settings["PHONE_NUMBER"] = "+15550100"
    settings["OFF_FORMAT"] = "STOP {prefix}{deviceId}"
    settings["MOTORS"] = {"motor1": {"name": "Well", "sms_id": "1", "sms_prefix": "M", "power": "7 kW"}}
    settings["LOCAL_TIMEZONE"] = pytz.timezone("Asia/Kolkata")
    save_settings(settings, AppConfig(path))

    assert load_settings(AppConfig(path)) == settings


def test_missing_keys_are_filled_from_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"PHONE_NUMBER": {"value": "+15550100"}, "SOMETHING_ELSE": 1}), encoding="utf-8")

    settings = load_settings(AppConfig(str(path)))
    assert settings["PHONE_NUMBER"] == "+15550100"
    assert settings["MOTORS"] == DEFAULT_SETTINGS["MOTORS"]
    assert settings["FERTIGATION"] == DEFAULT_SETTINGS["FERTIGATION"]
    assert "SOMETHING_ELSE" not in settings


def test_stored_device_map_replaces_default(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"VALVES": {"valve2": DEFAULT_SETTINGS["VALVES"]["valve2"]}}), encoding="utf-8")
    assert list(load_settings(AppConfig(str(path)))["VALVES"]) == ["valve2"]


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_unreadable_file_falls_back_to_defaults(tmp_path, content):
    path = tmp_path / "settings.json"
    path.write_text(content, encoding="utf-8")

    assert load_settings(AppConfig(str(path))) == _defaults(tmp_path)
    assert json.loads(path.read_text(encoding="utf-8")) == DEFAULT_SETTINGS


def test_unknown_timezone_falls_back_to_default(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"LOCAL_TIMEZONE": {"value": "Mars/Olympus"}}), encoding="utf-8")
    assert load_settings(AppConfig(str(path)))["LOCAL_TIMEZONE"] == pytz.UTC


def test_reset_restores_defaults(tmp_path):
    path = str(tmp_path / "settings.json")
    config = AppConfig(path)
    save_settings({"PHONE_NUMBER": "+15550100", "SMS_AVAILABLE": False}, config)
    assert config[Settings.SMS_AVAILABLE] is False

    assert reset_settings(config) == _defaults(tmp_path)
    assert load_settings(AppConfig(path))["PHONE_NUMBER"] == "+917305467054"


def test_save_replaces_previous_values(tmp_path):
    path = str(tmp_path / "settings.json")
    config = AppConfig(path)
    save_settings({"PHONE_NUMBER": "+15550100"}, config)
    save_settings({"ON_FORMAT": "GO {prefix}{deviceId}"}, config)

    settings = load_settings(AppConfig(path))
    assert settings["ON_FORMAT"] == "GO {prefix}{deviceId}"
    assert settings["PHONE_NUMBER"] == "+917305467054"


def test_save_failure_propagates(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(OSError):
        save_settings({"PHONE_NUMBER": "+15550100"}, AppConfig(str(blocker / "settings.json")))


def test_values_are_detached_copies(tmp_path):
    config = AppConfig(str(tmp_path / "settings.json"))
    motors = config[Settings.MOTORS]
    motors["motor1"]["name"] = "Changed"
    assert config[Settings.MOTORS]["motor1"]["name"] == "Main Pump"


def test_malformed_device_entries_are_dropped_on_load(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "MOTORS": {"motor1": "oops", "motor2": DEFAULT_SETTINGS["MOTORS"]["motor2"], " ": {"name": "Blank"}},
        "VALVES": ["valve1"],
        "FERTIGATION": {"dosing_pump": 7, "tanks": {"tank1": {"name": "A", "nutrient": "rich"},
                                                    "tank2": DEFAULT_SETTINGS["FERTIGATION"]["tanks"]["tank2"]}},
        "LOCAL_TIMEZONE": {"value": 5},
    }), encoding="utf-8")

    settings = load_settings(AppConfig(str(path)))
    assert settings["MOTORS"] == {"motor2": DEFAULT_SETTINGS["MOTORS"]["motor2"]}
    assert settings["VALVES"] == DEFAULT_SETTINGS["VALVES"]
    assert settings["FERTIGATION"]["dosing_pump"] == DEFAULT_SETTINGS["FERTIGATION"]["dosing_pump"]
    assert list(settings["FERTIGATION"]["tanks"]) == ["tank2"]
    assert settings["LOCAL_TIMEZONE"] == pytz.UTC

    registry = Registry.from_settings(settings)
    assert [m.key for m in registry.motors] == ["motor2"]
    assert [t.key for t in registry.tanks] == ["tank2"]
