#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

import copy
import os
import pytz
import json
import logging
import threading

from typing import Any
from enum import StrEnum
from pathlib import Path


def get_project_root():
    """
    Gets the root directory of the project by navigating two levels up from
    the current file's directory.

    :return: The root directory of the project as a pathlib.Path object.
    :rtype: Path
    """
    root_path = Path(__file__).parent.parent
    return root_path if root_path.exists() else None

#<editor-fold desc="Constants, Factory Settings">
DEFAULT_TIMEZONE: pytz.BaseTzInfo = pytz.UTC

# Telemetry API the sensor readings are fetched from
DEFAULT_TELEMETRY_URL = "https://api.farmapp.com/v1"

# Paths
DATA_DIR = f"{get_project_root()}/data"
LOG_DIR = f"{get_project_root()}/logs"

DEFAULT_MOTORS = {
    "motor1": {"name": "Main Pump", "sms_id": "1", "sms_prefix": "M", "power": "5.2 kW"},
    "motor2": {"name": "Booster Pump", "sms_id": "2", "sms_prefix": "M", "power": "3.7 kW"},
    "motor3": {"name": "Circulation Pump", "sms_id": "3", "sms_prefix": "M", "power": "2.1 kW"},
}
DEFAULT_VALVES = {
    "valve1": {"name": "Zone 1 - North Field", "sms_id": "1", "sms_prefix": "V", "flow": "45 L/min"},
    "valve2": {"name": "Zone 2 - South Field", "sms_id": "2", "sms_prefix": "V", "flow": "45 L/min"},
    "valve3": {"name": "Zone 3 - East Orchard", "sms_id": "3", "sms_prefix": "V", "flow": "38 L/min"},
    "valve4": {"name": "Zone 4 - West Garden", "sms_id": "4", "sms_prefix": "V", "flow": "45 L/min"},
}
DEFAULT_FERTIGATION = {
    "dosing_pump": {"sms_id": "1", "sms_prefix": "DP"},
    "tanks": {
        "tank1": {"name": "Tank A - Base Nutrients", "volume": "1000", "sms_id": "1", "sms_prefix": "T",
                  "nutrient": {"N": "15", "P": "5", "K": "10", "Ca": "5", "Mg": "2", "S": "3"}},
        "tank2": {"name": "Tank B - Calcium Nitrate", "volume": "1000", "sms_id": "2", "sms_prefix": "T",
                  "nutrient": {"N": "19", "P": "0", "K": "0", "Ca": "26", "Mg": "0", "S": "0"}},
        "tank3": {"name": "Tank C - Magnesium Sulfate", "volume": "1000", "sms_id": "3", "sms_prefix": "T",
                  "nutrient": {"N": "0", "P": "0", "K": "0", "Ca": "0", "Mg": "16", "S": "13"}},
    },
}
#</editor-fold>

class Settings(StrEnum):
    """
    Enumeration for application settings.

    This class represents different configurable settings for an application as
    enumerable constants. Each setting has an associated default value. It provides
    a structured and type-safe way of defining application configuration options.

    Attributes:
    :ivar default: The default value associated with the setting.
    :type default: Any
    """
    PHONE_NUMBER = "phone_number", {"value": "+917305467054"}
    ON_FORMAT = "on_format", {"value": "ON {prefix}{deviceId}"}
    OFF_FORMAT = "off_format", {"value": "OFF {prefix}{deviceId}"}
    MOTORS = "motors", DEFAULT_MOTORS
    VALVES = "valves", DEFAULT_VALVES
    FERTIGATION = "fertigation", DEFAULT_FERTIGATION
    TELEMETRY_BASE_URL = "telemetry_base_url", {"value": DEFAULT_TELEMETRY_URL}
    TELEMETRY_TIMEOUT_SECONDS = "telemetry_timeout_seconds", {"value": 10}
    SMS_AVAILABLE = "sms_available", {"value": True}
    LOCAL_TIMEZONE = "local_timezone", {"value": DEFAULT_TIMEZONE.zone}

    def __new__(cls, value: str, default: dict = None):
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.default = default
        return obj

# Defaults
DEFAULT_SETTINGS: dict[str, Any] = {item.name: item.default for item in Settings}


def _factory_defaults() -> dict[str, Any]:
    return copy.deepcopy(DEFAULT_SETTINGS)


class AppConfig:
    """
    Handles configuration settings for the application, providing access to settings
    and persisting configurations to a file.

    The class is used to manage application settings, enabling storage, retrieval,
    and persistence of configurations. Settings read from the backing file are merged
    over the factory defaults: any setting missing from the file takes its default value,
    while a stored setting replaces its default as a whole (e.g. a stored motors map with
    a removed motor stays that way). Writes go to a temporary file first and are atomically
    moved in place, under a lock.

    :ivar settings: A dictionary holding the application's marshaled configuration values.
    :type settings: dict[str, Any]
    """
    def __init__(self, settings_file: str = None):
        self._lock = threading.RLock()
        self.settings: dict[str, Any] = _factory_defaults()
        self._settings_file = settings_file or f"{DATA_DIR}/settings.json"
        self._logger = logging.getLogger(__name__)

    @property
    def settings_file(self) -> str:
        return self._settings_file

    @property
    def lock(self) -> threading.RLock:
        """Reentrant lock guarding the settings; hold it across a read-modify-write of several settings."""
        return self._lock

    def __getitem__(self, arg: Settings) -> Any:
        with self._lock:
            if arg.name not in self.settings:
                self.settings[arg.name] = copy.deepcopy(arg.default)
            return AppConfig.__unmarshal__(arg, copy.deepcopy(self.settings.get(arg.name)))

    def __setitem__(self, arg: Settings, value: Any):
        with self._lock:
            self.settings[arg.name] = AppConfig.__marshal__(arg, value)

    def snapshot(self) -> dict[str, Any]:
        """
        Returns the unmarshaled value of every setting, keyed by setting name.

        :return: A detached copy of all the settings.
        :rtype: dict[str, Any]
        """
        with self._lock:
            return {item.name: self[item] for item in Settings}

    def update(self, values: dict[str, Any], replace: bool = False) -> None:
        """
        Assigns the given unmarshaled values, keyed by setting name. Unknown names are ignored.

        :param values: Setting values keyed by ``Settings`` member name.
        :type values: dict[str, Any]
        :param replace: When True, settings absent from `values` revert to their factory defaults.
        :type replace: bool
        """
        with self._lock:
            if replace:
                self.settings = _factory_defaults()
            for name, value in values.items():
                if name in Settings.__members__:
                    self[Settings[name]] = value
                else:
                    self._logger.warning(f"Ignoring unknown setting '{name}'")

    def save_to_file(self):
        os.makedirs(os.path.dirname(self._settings_file), exist_ok=True)
        self._write_to_file()

    def read_from_file(self):
        os.makedirs(os.path.dirname(self._settings_file), exist_ok=True)
        if not self._read_from_file():
            self._write_to_file()   # when read from the backing file fails, write the defaults as starting point

    def reset(self):
        with self._lock:
            self.settings = _factory_defaults()
            self.save_to_file()

    @staticmethod
    def __unmarshal__(arg: Settings, value: dict[str, Any]) -> Any:
        match arg:
            case Settings.LOCAL_TIMEZONE:
                zone = value.get("value") if isinstance(value, dict) else None
                if not isinstance(zone, str):
                    return DEFAULT_TIMEZONE
                try:
                    return pytz.timezone(zone)
                except pytz.UnknownTimeZoneError:
                    return DEFAULT_TIMEZONE
            case _:
                if isinstance(value, dict) and "value" in value and len(value) == 1:
                    return value["value"]
                return value

    @staticmethod
    def __marshal__(arg: Settings, value: Any) -> dict[str, Any]:
        match arg:
            case Settings.LOCAL_TIMEZONE:
                if isinstance(value, pytz.BaseTzInfo):
                    return {"value": value.zone}
                elif isinstance(value, dict):
                    return value
                else:
                    return {"value": str(value)}
            case Settings.MOTORS | Settings.VALVES | Settings.FERTIGATION:
                return copy.deepcopy(value)
            case _:
                if isinstance(value, dict) and "value" in value and len(value) == 1:
                    return value
                else:
                    return {"value": value}

    def _read_from_file(self) -> bool:
        with self._lock:
            if not os.path.exists(self._settings_file):
                return False
            try:
                with open(self._settings_file, "r", encoding="utf-8") as f:
                    stored = json.load(f)
            except (OSError, ValueError) as e:
                self._logger.error(f"Failed to load settings from {self._settings_file}: {e}")
                self.settings = _factory_defaults()
                return False
            if not isinstance(stored, dict):
                self._logger.error(f"Settings file {self._settings_file} does not hold a JSON object - using defaults")
                self.settings = _factory_defaults()
                return False
            merged = _factory_defaults()
            merged.update({k: v for k, v in stored.items() if k in Settings.__members__})
            for item in (Settings.MOTORS, Settings.VALVES):
                merged[item.name] = self._valid_devices(item.name, merged[item.name], item.default)
            merged[Settings.FERTIGATION.name] = self._valid_fertigation(merged[Settings.FERTIGATION.name])
            self.settings = merged
            return True

    def _valid_devices(self, name: str, devices: Any, default: dict[str, Any]) -> dict[str, Any]:
        """
        Keeps the well-formed entries of a stored device map: non-blank keys mapped to JSON objects (with a JSON
        object as nutrient profile, when present). A map that is not a JSON object reverts to its default.
        """
        if not isinstance(devices, dict):
            self._logger.error(f"Setting {name} in {self._settings_file} is not a JSON object - using defaults")
            return copy.deepcopy(default)
        valid = {}
        for key, cfg in devices.items():
            if key.strip() and isinstance(cfg, dict) and isinstance(cfg.get("nutrient") or {}, dict):
                valid[key] = cfg
            else:
                self._logger.error(f"Dropping malformed entry '{key}' of {name} in {self._settings_file}: {cfg!r}")
        return valid

    def _valid_fertigation(self, fertigation: Any) -> dict[str, Any]:
        default = Settings.FERTIGATION.default
        if not isinstance(fertigation, dict):
            self._logger.error(f"Setting FERTIGATION in {self._settings_file} is not a JSON object - using defaults")
            return copy.deepcopy(default)
        pump = fertigation.get("dosing_pump") or {}
        if not isinstance(pump, dict):
            self._logger.error(f"Dropping malformed dosing pump in {self._settings_file}: {pump!r}")
            pump = copy.deepcopy(default["dosing_pump"])
        return {"dosing_pump": pump,
                "tanks": self._valid_devices("FERTIGATION tanks", fertigation.get("tanks") or {}, default["tanks"])}

    def _write_to_file(self) -> None:
        with self._lock:
            tmp_path = self._settings_file + ".tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self.settings, f, indent=2)
            os.replace(tmp_path, self._settings_file)

CONFIG = AppConfig()


def load_settings(config: AppConfig = CONFIG) -> dict[str, Any]:
    """
    Loads the settings from the backing file, merged over the factory defaults.

    :param config: The configuration holder; defaults to the application-wide one.
    :type config: AppConfig
    :return: All the settings, keyed by setting name.
    :rtype: dict[str, Any]
    """
    config.read_from_file()
    return config.snapshot()


def save_settings(settings: dict[str, Any], config: AppConfig = CONFIG) -> None:
    """
    Persists the given settings, keyed by setting name. Settings absent from the mapping are stored with their
    factory defaults. Write failures propagate to the caller.

    :param settings: Setting values keyed by ``Settings`` member name.
    :type settings: dict[str, Any]
    :param config: The configuration holder; defaults to the application-wide one.
    :type config: AppConfig
    """
    config.update(settings, replace=True)
    config.save_to_file()


def reset_settings(config: AppConfig = CONFIG) -> dict[str, Any]:
    """
    Restores and persists the factory defaults.

    :param config: The configuration holder; defaults to the application-wide one.
    :type config: AppConfig
    :return: The factory settings, keyed by setting name.
    :rtype: dict[str, Any]
    """
    config.reset()
    return config.snapshot()
