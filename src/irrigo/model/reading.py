#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

from datetime import datetime
from enum import StrEnum
from typing import Iterable, Optional

from .units import Unit, parse_float

# canonical "no data" display value, distinct from a numeric zero
PLACEHOLDER = "--"


class Subsystem(StrEnum):
    """
    Telemetry subsystems. The value is the device type used in the telemetry sensor ids.
    """
    MOTOR = "motor"
    VALVE = "valve"
    FERTIGATION = "fertigation_system"


class ReadingSource(StrEnum):
    PENDING = "pending"
    LIVE = "live"
    MOCK = "mock"


class SensorReading:
    """
    Represents one display-ready set of sensor values for a subsystem.

    Channel values are formatted numeric strings or the placeholder ``"--"``. A reading is created fresh for every
    fetch and never patched afterward; the ``loading`` flag marks the transient record shown while a fetch is
    outstanding.

    :ivar _subsystem: The subsystem the reading belongs to.
    :type _subsystem: Subsystem
    :ivar _channels: Channel values keyed by channel name (e.g. ``current``, ``pH``).
    :type _channels: dict[str, str]
    :ivar _tank_levels: Tank levels keyed by tank key; fertigation readings only.
    :type _tank_levels: dict[str, str]
    :ivar _source: Where the values came from.
    :type _source: ReadingSource
    :ivar _time: The datetime when the reading was produced.
    :type _time: datetime | None
    """
    def __init__(self, subsystem: Subsystem, channels: dict[str, str], tank_levels: Optional[dict[str, str]] = None,
                 source: ReadingSource = ReadingSource.LIVE, time: Optional[datetime] = None):
        self._subsystem = subsystem
        self._channels: dict[str, str] = dict(channels)
        self._tank_levels: dict[str, str] = dict(tank_levels or {})
        self._source = source
        self._time = time

    @classmethod
    def pending(cls, subsystem: Subsystem, channels: Iterable[str], tank_keys: Iterable[str] = (),
                time: Optional[datetime] = None) -> "SensorReading":
        """
        Creates the loading reading shown while a fetch is outstanding: every channel holds the placeholder.
        """
        return cls(subsystem, {c: PLACEHOLDER for c in channels}, {k: PLACEHOLDER for k in tank_keys},
                   ReadingSource.PENDING, time)

    @property
    def subsystem(self) -> Subsystem:
        return self._subsystem

    @property
    def channels(self) -> dict[str, str]:
        return dict(self._channels)

    @property
    def tank_levels(self) -> dict[str, str]:
        return dict(self._tank_levels)

    @property
    def source(self) -> ReadingSource:
        return self._source

    @property
    def loading(self) -> bool:
        return self._source == ReadingSource.PENDING

    @property
    def timestamp(self) -> Optional[datetime]:
        return self._time

    def __getitem__(self, channel: str) -> str:
        return self._channels[channel]

    def __eq__(self, other) -> bool:
        if not isinstance(other, SensorReading):
            return NotImplemented
        return (self._subsystem, self._channels, self._tank_levels, self._source) == \
            (other._subsystem, other._channels, other._tank_levels, other._source)

    def __repr__(self) -> str:
        return f"SensorReading({self._subsystem}, {self._channels}, tank_levels={self._tank_levels}, source={self._source})"

    def json_encode(self) -> dict:
        return {
            "subsystem": self._subsystem.value,
            "channels": self.channels,
            "tank_levels": self.tank_levels,
            "source": self._source.value,
            "loading": self.loading,
            "time": self._time.isoformat() if self._time else None,
        }


def format_sensor_value(value: str, unit: Unit | str) -> str:
    """Renders a channel value with its unit; the placeholder keeps the unit glued to it (``"--V"``)."""
    if value == PLACEHOLDER:
        return f"{PLACEHOLDER}{unit}"
    return f"{value} {unit}"


def water_quality_status(ph: str) -> str:
    """
    Classifies the water quality of a valve zone from its pH reading.

    :param ph: The formatted pH value or the placeholder.
    :type ph: str
    :return: ``"--"`` when unknown, ``"Good"`` for a pH within 6.5 and 7.5 (inclusive), ``"Check"`` otherwise.
    :rtype: str
    """
    if ph == PLACEHOLDER:
        return PLACEHOLDER
    value = parse_float(ph)
    if value is not None and 6.5 <= value <= 7.5:
        return "Good"
    return "Check"
