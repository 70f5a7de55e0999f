import pytest

from irrigo.config import DEFAULT_SETTINGS, AppConfig
from irrigo.errors import UnknownDevice
from irrigo.model.device import (DeviceKind, DeviceIdentity, Motor, NutrientProfile, Tank, Valve,
                                 device_from_config)
from irrigo.model.registry import Registry


def test_registry_from_default_settings(registry):
    assert registry.phone_number == "+917305467054"
    assert [m.key for m in registry.motors] == ["motor1", "motor2", "motor3"]
    assert [v.key for v in registry.valves] == ["valve1", "valve2", "valve3", "valve4"]
    assert [t.key for t in registry.tanks] == ["tank1", "tank2", "tank3"]
    assert registry.dosing_pump.identity.address == "DP1"
    assert registry.find(DeviceKind.VALVE, "valve3").flow == "38 L/min"
    assert registry.find(DeviceKind.TANK, "tank2").nutrient.Ca == "26"
    assert not any(d.status for d in registry.devices())


def test_registry_settings_round_trip(registry):
    assert Registry.from_settings(registry.to_settings()) == registry


def test_to_settings_matches_factory_defaults(registry):
    settings = registry.to_settings()
    assert settings["MOTORS"] == DEFAULT_SETTINGS["MOTORS"]
    assert settings["VALVES"] == DEFAULT_SETTINGS["VALVES"]
    assert settings["FERTIGATION"] == DEFAULT_SETTINGS["FERTIGATION"]


def test_find_unknown_device(registry):
    with pytest.raises(UnknownDevice) as exc:
        registry.find(DeviceKind.MOTOR, "motor9")
    assert isinstance(exc.value, KeyError)
    assert exc.value.key == "motor9"


def test_add_motor_with_defaults(registry):
    updated, motor = registry.with_device_added(DeviceKind.MOTOR)
    assert motor == Motor("motor4", "New Motor 4", DeviceIdentity("M", "4"), power="0 kW")
    assert len(updated.motors) == 4
    assert len(registry.motors) == 3


def test_add_valve_with_defaults(registry):
    updated, valve = registry.with_device_added(DeviceKind.VALVE)
    assert valve == Valve("valve5", "New Valve 5", DeviceIdentity("V", "5"), flow="0 L/min")
    assert updated.valves[-1] is valve


def test_added_device_never_overwrites_existing_key(registry):
    trimmed = registry.without_device(DeviceKind.MOTOR, "motor2")
    updated, motor = trimmed.with_device_added(DeviceKind.MOTOR)
    assert motor.key == "motor4"
    assert [m.key for m in updated.motors] == ["motor1", "motor3", "motor4"]
    assert updated.find(DeviceKind.MOTOR, "motor3").name == "Circulation Pump"


def test_tanks_cannot_be_added(registry):
    with pytest.raises(ValueError):
        registry.with_device_added(DeviceKind.TANK)


def test_remove_device(registry):
    updated = registry.without_device(DeviceKind.VALVE, "valve1")
    assert [v.key for v in updated.valves] == ["valve2", "valve3", "valve4"]
    with pytest.raises(UnknownDevice):
        updated.without_device(DeviceKind.VALVE, "valve1")


def test_dosing_pump_cannot_be_removed(registry):
    with pytest.raises(ValueError):
        registry.without_device(DeviceKind.DOSING_PUMP, "dosing_pump")


def test_update_tank_nutrient(registry):
    updated = registry.with_tank_nutrient("tank3", NutrientProfile.from_dict({"N": "4", "Mg": ""}))
    tank = updated.find(DeviceKind.TANK, "tank3")
    assert tank.nutrient.as_dict() == {"N": "4", "P": "0", "K": "0", "Ca": "0", "Mg": "0", "S": "0"}
    assert registry.find(DeviceKind.TANK, "tank3").nutrient.Mg == "16"


def test_device_key_must_not_be_empty():
    with pytest.raises(ValueError):
        Motor(" ", "Pump")


def test_device_from_config_fills_missing_fields():
    tank = device_from_config(DeviceKind.TANK, "tank9", {"sms_id": "9"})
    assert isinstance(tank, Tank)
    assert tank.name == "tank9"
    assert tank.identity == DeviceIdentity("", "9")
    assert tank.nutrient == NutrientProfile()


def test_empty_settings_give_empty_registry(tmp_path):
    registry = Registry.from_settings({})
    assert registry.motors == () and registry.valves == () and registry.tanks == ()
    assert list(registry.devices(DeviceKind.DOSING_PUMP)) == [registry.dosing_pump]
    assert Registry.from_settings(AppConfig(str(tmp_path / "s.json")).snapshot()).phone_number == "+917305467054"


@pytest.mark.parametrize("settings", [
    {"MOTORS": {"motor1": "oops"}},
    {"MOTORS": ["motor1"]},
    {"VALVES": {"": {"name": "Blank"}}},
    {"FERTIGATION": "none"},
    {"FERTIGATION": {"dosing_pump": 7}},
    {"FERTIGATION": {"tanks": {"tank1": {"nutrient": ["N"]}}}},
])
def test_malformed_settings_raise_value_error(settings):
    with pytest.raises(ValueError):
        Registry.from_settings(settings)


def test_device_config_must_be_mapping():
    with pytest.raises(ValueError):
        device_from_config(DeviceKind.MOTOR, "motor1", "oops")
