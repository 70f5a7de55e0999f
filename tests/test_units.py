import pytest

from irrigo.model.reading import SensorReading, Subsystem, ReadingSource, format_sensor_value, water_quality_status
from irrigo.model.units import Unit, parse_float, to_fixed


@pytest.mark.parametrize("value, expected", [
    ("7.25", 7.25),
    (" 45 L/min", 45.0),
    (".5", 0.5),
    ("-3", -3.0),
    ("1e3x", 1000.0),
    (12, 12.0),
    (0.926, 0.926),
])
def test_parse_float_accepts_numeric_prefix(value, expected):
    assert parse_float(value) == expected


@pytest.mark.parametrize("value", [None, True, False, "", "abc", "NaN", "Infinity", float("nan"), float("inf"), [], {}])
def test_parse_float_rejects_non_numbers(value):
    assert parse_float(value) is None


def test_to_fixed_rounds_half_away_from_zero():
    assert to_fixed(7.25, 1) == "7.3"
    assert to_fixed(2.5, 0) == "3"
    assert to_fixed(-2.5, 0) == "-3"
    assert to_fixed(0.926, 2) == "0.93"
    assert to_fixed(401.6, 0) == "402"


def test_to_fixed_works_on_the_binary_value():
    assert to_fixed(1.005, 2) == "1.00"


def test_to_fixed_pads_and_drops_negative_zero():
    assert to_fixed(12, 1) == "12.0"
    assert to_fixed(-0.04, 1) == "0.0"


def test_format_sensor_value():
    assert format_sensor_value("7.3", Unit.AMPERE) == "7.3 A"
    assert format_sensor_value("--", Unit.VOLT) == "--V"


@pytest.mark.parametrize("ph, status", [
    ("--", "--"),
    ("6.5", "Good"),
    ("7.0", "Good"),
    ("7.5", "Good"),
    ("6.4", "Check"),
    ("7.6", "Check"),
])
def test_water_quality_status(ph, status):
    assert water_quality_status(ph) == status


def test_pending_reading_holds_placeholders():
    reading = SensorReading.pending(Subsystem.FERTIGATION, ["ec", "pH"], ["tank1"])
    assert reading.loading
    assert reading.source == ReadingSource.PENDING
    assert reading.channels == {"ec": "--", "pH": "--"}
    assert reading.tank_levels == {"tank1": "--"}


def test_reading_is_detached_from_caller_dicts():
    channels = {"current": "5.0"}
    reading = SensorReading(Subsystem.MOTOR, channels)
    channels["current"] = "9.9"
    reading.channels["current"] = "1.1"
    assert reading["current"] == "5.0"
    assert not reading.loading
