#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

import itertools
import logging
import random
import threading
import requests

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Optional

from .config import CONFIG, Settings
from .model.device import Device, Motor, Valve, DosingPump
from .model.reading import SensorReading, Subsystem, ReadingSource, PLACEHOLDER
from .model.times import now_local
from .model.units import Unit, parse_float, to_fixed

# the fertigation system reports as a whole, independent of the dosing pump address
FERTIGATION_SENSOR_ID = "fertigation_system"
TANK_LEVELS = "tankLevels"
FLOW_RATE = "flowRate"


@dataclass(frozen=True, slots=True)
class ChannelSpec:
    """
    Display format and mock range of a telemetry channel.

    Attributes:
        name: Channel name, as used by the telemetry API.
        decimals: Number of decimals the value is rendered with.
        unit: Display unit.
        base: Lowest mock value.
        spread: Width of the mock range; mock values fall within [base, base + spread).
    """
    name: str
    decimals: int
    unit: Unit
    base: float
    spread: float

    def format(self, value: float) -> str:
        return to_fixed(value, self.decimals)

    def mock(self, rng: random.Random) -> str:
        return self.format(self.base + rng.random() * self.spread)


SUBSYSTEM_CHANNELS: dict[Subsystem, tuple[ChannelSpec, ...]] = {
    Subsystem.MOTOR: (
        ChannelSpec("current", 1, Unit.AMPERE, 5.0, 10.0),
        ChannelSpec("voltage", 0, Unit.VOLT, 380.0, 50.0),
        ChannelSpec("temperature", 1, Unit.CELSIUS, 40.0, 20.0),
        ChannelSpec("powerFactor", 2, Unit.RATIO, 0.85, 0.3),
    ),
    Subsystem.VALVE: (
        ChannelSpec("moisture", 1, Unit.PERCENT, 40.0, 30.0),
        ChannelSpec("pressure", 1, Unit.KPA, 30.0, 20.0),
        ChannelSpec("pH", 1, Unit.PH, 6.0, 2.0),
        ChannelSpec(FLOW_RATE, 1, Unit.LITERS_PER_MIN, 0.0, 0.0),    # mock follows the valve state
        ChannelSpec("temperature", 1, Unit.CELSIUS, 20.0, 10.0),
    ),
    Subsystem.FERTIGATION: (
        ChannelSpec("ec", 1, Unit.CONDUCTIVITY, 1.0, 2.0),
        ChannelSpec("pH", 1, Unit.PH, 6.5, 1.0),
        ChannelSpec("temperature", 1, Unit.CELSIUS, 20.0, 5.0),
        ChannelSpec("pressure", 1, Unit.KPA, 30.0, 10.0),
        ChannelSpec(FLOW_RATE, 1, Unit.LITERS_PER_MIN, 5.0, 10.0),
    ),
}
TANK_LEVEL_CHANNEL = ChannelSpec("level", 0, Unit.PERCENT, 0.0, 100.0)


@dataclass(frozen=True, slots=True)
class FallbackContext:
    """
    Device state the mock readings are made plausible with.

    Attributes:
        active: Whether the device is running/open (for fertigation: whether the dosing pump runs).
        configured_flow: Configured flow of a valve (e.g. ``"45 L/min"``), reported as flow rate while open.
        tank_keys: Keys of the tanks whose levels are reported by the fertigation system.
    """
    active: bool = False
    configured_flow: str = "0"
    tank_keys: tuple[str, ...] = ()


def sensor_id(device_type: str, prefix: str, device_id: str) -> str:
    """
    Builds the telemetry sensor id of a device, e.g. ``motor_m1`` for motor ``M1``.
    """
    return f"{device_type}_{prefix}{device_id}".lower()


def _flow_value(configured_flow: str, spec: ChannelSpec) -> str:
    """
    Renders the configured flow of an open valve as a channel value: the unit text is stripped (it is added back by
    ``format_sensor_value``) and the number takes the channel decimals, so ``"45 L/min"`` reads ``"45.0"``. A flow
    configured without a numeric part shows as ``"--"``.
    """
    flow = parse_float(configured_flow)
    return spec.format(flow) if flow is not None else PLACEHOLDER


def mock_reading(subsystem: Subsystem, context: FallbackContext, rng: Optional[random.Random] = None) -> SensorReading:
    """
    Generates a complete synthetic reading for a subsystem.

    Every channel is drawn from its fixed range (see ``SUBSYSTEM_CHANNELS``), except the flow rate that follows the
    device state: a closed valve or a stopped dosing pump always reports ``"0"``, an open valve reports its
    configured flow.

    :param subsystem: The subsystem to generate the reading for.
    :type subsystem: Subsystem
    :param context: The device state the values are made plausible with.
    :type context: FallbackContext
    :param rng: Optional random source; defaults to the module-level generator.
    :type rng: random.Random | None
    :return: A mock reading.
    :rtype: SensorReading
    """
    rng = rng or random
    channels: dict[str, str] = {}
    for spec in SUBSYSTEM_CHANNELS[subsystem]:
        if spec.name == FLOW_RATE and not context.active:
            channels[spec.name] = "0"
        elif spec.name == FLOW_RATE and subsystem == Subsystem.VALVE:
            channels[spec.name] = _flow_value(context.configured_flow, spec)
        else:
            channels[spec.name] = spec.mock(rng)
    tank_levels = {}
    if subsystem == Subsystem.FERTIGATION:
        tank_levels = {k: TANK_LEVEL_CHANNEL.mock(rng) for k in context.tank_keys}
    return SensorReading(subsystem, channels, tank_levels, ReadingSource.MOCK, now_local())


def _live_reading(subsystem: Subsystem, raw: dict[str, Any], context: FallbackContext) -> SensorReading:
    channels: dict[str, str] = {}
    for spec in SUBSYSTEM_CHANNELS[subsystem]:
        value = parse_float(raw.get(spec.name))
        channels[spec.name] = spec.format(value) if value is not None else PLACEHOLDER
    tank_levels = {}
    if subsystem == Subsystem.FERTIGATION:
        levels = raw.get(TANK_LEVELS)
        levels = levels if isinstance(levels, dict) else {}
        for key in context.tank_keys or tuple(levels.keys()):
            value = parse_float(levels.get(key))
            tank_levels[key] = TANK_LEVEL_CHANNEL.format(value) if value is not None else PLACEHOLDER
    return SensorReading(subsystem, channels, tank_levels, ReadingSource.LIVE, now_local())


def normalize(subsystem: Subsystem, raw: Optional[dict[str, Any]], context: FallbackContext = FallbackContext(),
              rng: Optional[random.Random] = None) -> SensorReading:
    """
    Turns a telemetry API payload into a display-ready reading.

    When live data is available, each channel that is present and numeric is rendered with its fixed decimals, and
    each missing or unparsable channel renders as ``"--"``. When the fetch failed (no payload, or a payload that is
    not a JSON object) the whole reading is replaced with mock values - live and mock values are never mixed.

    :param subsystem: The subsystem the payload belongs to.
    :type subsystem: Subsystem
    :param raw: The decoded API payload, or None when the fetch failed.
    :type raw: dict[str, Any] | None
    :param context: Device state used to generate plausible mock values.
    :type context: FallbackContext
    :param rng: Optional random source for the mock values.
    :type rng: random.Random | None
    :return: A reading that is never in the loading state.
    :rtype: SensorReading
    """
    if isinstance(raw, dict):
        return _live_reading(subsystem, raw, context)
    return mock_reading(subsystem, context, rng)


def telemetry_target(device: Device, tank_keys: tuple[str, ...] = ()) -> tuple[Subsystem, str, FallbackContext]:
    """
    Resolves the subsystem, sensor id and fallback context the telemetry of a device is fetched with.

    :param device: A motor, a valve or the dosing pump (standing for the whole fertigation system).
    :type device: Device
    :param tank_keys: Tank keys reported by the fertigation system.
    :type tank_keys: tuple[str, ...]
    :return: The subsystem, the sensor id and the fallback context.
    :rtype: tuple[Subsystem, str, FallbackContext]
    """
    match device:
        case Motor():
            return (Subsystem.MOTOR, sensor_id(Subsystem.MOTOR, device.identity.sms_prefix, device.identity.sms_id),
                    FallbackContext(active=device.status))
        case Valve():
            return (Subsystem.VALVE, sensor_id(Subsystem.VALVE, device.identity.sms_prefix, device.identity.sms_id),
                    FallbackContext(active=device.status, configured_flow=device.flow))
        case DosingPump():
            return Subsystem.FERTIGATION, FERTIGATION_SENSOR_ID, FallbackContext(active=device.status, tank_keys=tank_keys)
    raise ValueError(f"No telemetry available for {device.kind} '{device.key}'")


class TelemetryClient:
    """
    Fetches raw sensor data from the telemetry API.

    Every failure - connection errors, timeouts, non-2xx responses, malformed JSON or a body that is not a JSON
    object - is logged and reported as a missing payload; nothing is raised to the caller.

    :ivar _base_url: Base URL of the telemetry API; sensor ids are appended as the last path segment.
    :type _base_url: str
    :ivar _timeout: Request timeout in seconds.
    :type _timeout: float
    """
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self._base_url: str = (base_url or CONFIG[Settings.TELEMETRY_BASE_URL]).rstrip("/")
        self._timeout: float = timeout or CONFIG[Settings.TELEMETRY_TIMEOUT_SECONDS]
        self._session = session or requests.Session()
        self._logger = logging.getLogger(__name__)

    @property
    def base_url(self) -> str:
        return self._base_url

    def fetch(self, sensor: str) -> Optional[dict[str, Any]]:
        """
        Retrieves the latest data of a sensor: ``GET {base_url}/{sensor}``.

        :param sensor: The sensor id, e.g. ``motor_m1``.
        :type sensor: str
        :return: The decoded JSON object, or None when the data could not be retrieved.
        :rtype: dict[str, Any] | None
        """
        url = f"{self._base_url}/{sensor}"
        try:
            r = self._session.get(url, timeout=self._timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            self._logger.error(f"Failed to fetch sensor data for {sensor}: {e}")
            return None
        if not isinstance(data, dict):
            self._logger.error(f"Unexpected sensor data for {sensor}: expected a JSON object, got {type(data).__name__}")
            return None
        return data


class TelemetryService:
    """
    Keeps the displayed reading of each sensor and refreshes it from the telemetry API.

    A refresh shows the loading reading right away, fetches and normalizes the data, then publishes the result.
    Refreshes of the same sensor are not queued: each one takes a sequence number and only the latest started
    refresh may publish its result, so a slow earlier response never overwrites a newer one.

    :ivar _client: The telemetry API client.
    :type _client: TelemetryClient
    :ivar _readings: Displayed reading per sensor id.
    :type _readings: dict[str, SensorReading]
    :ivar _latest: Sequence number of the latest refresh started per sensor id.
    :type _latest: dict[str, int]
    """
    def __init__(self, client: TelemetryClient, rng: Optional[random.Random] = None, max_workers: int = 4):
        self._lock = threading.RLock()
        self._client = client
        self._rng = rng
        self._readings: dict[str, SensorReading] = {}
        self._latest: dict[str, int] = {}
        self._sequence = itertools.count(1)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="Telemetry")
        self._logger = logging.getLogger(__name__)

    def reading(self, sensor: str) -> Optional[SensorReading]:
        with self._lock:
            return self._readings.get(sensor)

    def begin(self, subsystem: Subsystem, sensor: str, context: FallbackContext) -> int:
        """
        Starts a refresh: takes the next sequence number and shows the loading reading for the sensor.

        :return: The sequence number of the refresh.
        :rtype: int
        """
        channels = [spec.name for spec in SUBSYSTEM_CHANNELS[subsystem]]
        with self._lock:
            seq = next(self._sequence)
            self._latest[sensor] = seq
            self._readings[sensor] = SensorReading.pending(subsystem, channels, context.tank_keys, now_local())
            return seq

    def complete(self, sensor: str, seq: int, reading: SensorReading) -> bool:
        """
        Publishes the result of a refresh unless a newer refresh of the same sensor was started meanwhile.

        :return: Whether the reading was published.
        :rtype: bool
        """
        with self._lock:
            if self._latest.get(sensor) != seq:
                self._logger.debug(f"Discarding stale reading #{seq} of {sensor}")
                return False
            self._readings[sensor] = reading
            return True

    def refresh(self, subsystem: Subsystem, sensor: str, context: FallbackContext) -> SensorReading:
        """
        Fetches and normalizes the data of a sensor. Falls back to mock data when the fetch fails.

        :param subsystem: The subsystem of the sensor.
        :type subsystem: Subsystem
        :param sensor: The sensor id.
        :type sensor: str
        :param context: Device state used for the mock fallback.
        :type context: FallbackContext
        :return: The reading produced by this refresh; it is the displayed one unless a newer refresh superseded it.
        :rtype: SensorReading
        """
        seq = self.begin(subsystem, sensor, context)
        return self._fetch_and_complete(subsystem, sensor, context, seq)

    def refresh_device(self, device: Device, tank_keys: tuple[str, ...] = ()) -> SensorReading:
        subsystem, sensor, context = telemetry_target(device, tank_keys)
        return self.refresh(subsystem, sensor, context)

    def refresh_async(self, subsystem: Subsystem, sensor: str, context: FallbackContext) -> Future:
        """
        Runs :meth:`refresh` on a worker thread. The loading reading is shown before this method returns.

        :return: A future resolving to the reading of this refresh.
        :rtype: Future
        """
        seq = self.begin(subsystem, sensor, context)
        return self._executor.submit(self._fetch_and_complete, subsystem, sensor, context, seq)

    def stop(self):
        self._executor.shutdown(wait=True)

    def _fetch_and_complete(self, subsystem: Subsystem, sensor: str, context: FallbackContext, seq: int) -> SensorReading:
        raw = self._client.fetch(sensor)
        if raw is None:
            self._logger.info(f"Sensor data for {sensor} unavailable, showing simulated values")
        reading = normalize(subsystem, raw, context, self._rng)
        self.complete(sensor, seq, reading)
        return reading
