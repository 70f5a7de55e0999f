#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

from dataclasses import dataclass, field, replace
from typing import Any, Iterator

from .device import (DeviceKind, Device, Motor, Valve, DosingPump, Tank, NutrientProfile,
                     DOSING_PUMP_KEY, device_from_config)
from ..commands import CommandTemplate
from ..errors import UnknownDevice

# defaults for devices added from the settings editor, per kind: (key stem, name stem, sms prefix, attribute, value)
_NEW_DEVICE_DEFAULTS: dict[DeviceKind, tuple[str, str, str, str, str]] = {
    DeviceKind.MOTOR: ("motor", "New Motor", "M", "power", "0 kW"),
    DeviceKind.VALVE: ("valve", "New Valve", "V", "flow", "0 L/min"),
}


def _section(settings: dict[str, Any], name: str) -> dict[str, Any]:
    section = settings.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"{name} must be a mapping, got {type(section).__name__}")
    return section


@dataclass(frozen=True, slots=True)
class Registry:
    """
    Immutable snapshot of the configured devices and the SMS command settings.

    Devices are held as ordered tuples of records; every change produces a new registry. The persisted form is the
    settings mapping managed by :mod:`irrigo.config`, see :meth:`from_settings` and :meth:`to_settings`.

    :ivar phone_number: The phone number the SMS commands are sent to.
    :ivar template: The ON/OFF command templates.
    :ivar motors: Configured motors, in configuration order.
    :ivar valves: Configured valves, in configuration order.
    :ivar dosing_pump: The fertigation dosing pump.
    :ivar tanks: Configured nutrient tanks, in configuration order.
    """
    phone_number: str
    template: CommandTemplate
    motors: tuple[Motor, ...] = ()
    valves: tuple[Valve, ...] = ()
    dosing_pump: DosingPump = field(default_factory=lambda: DosingPump(DOSING_PUMP_KEY, "Dosing Pump"))
    tanks: tuple[Tank, ...] = ()

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "Registry":
        """
        Builds the registry out of an unmarshaled settings mapping (keys are the ``Settings`` member names).

        :param settings: The settings mapping, as returned by ``irrigo.config.load_settings``.
        :type settings: dict[str, Any]
        :return: A new registry with all device statuses off.
        :rtype: Registry
        :raises ValueError: If a device section or a device configuration is not a mapping, or a device key is blank.
        """
        fertigation = _section(settings, "FERTIGATION")
        return cls(
            phone_number=str(settings.get("PHONE_NUMBER", "")),
            template=CommandTemplate(str(settings.get("ON_FORMAT", "")), str(settings.get("OFF_FORMAT", ""))),
            motors=tuple(device_from_config(DeviceKind.MOTOR, k, v) for k, v in _section(settings, "MOTORS").items()),
            valves=tuple(device_from_config(DeviceKind.VALVE, k, v) for k, v in _section(settings, "VALVES").items()),
            dosing_pump=device_from_config(DeviceKind.DOSING_PUMP, DOSING_PUMP_KEY, fertigation.get("dosing_pump") or {}),
            tanks=tuple(device_from_config(DeviceKind.TANK, k, v) for k, v in _section(fertigation, "tanks").items()),
        )

    def to_settings(self) -> dict[str, Any]:
        return {
            "PHONE_NUMBER": self.phone_number,
            "ON_FORMAT": self.template.on_format,
            "OFF_FORMAT": self.template.off_format,
            "MOTORS": {m.key: m.to_config() for m in self.motors},
            "VALVES": {v.key: v.to_config() for v in self.valves},
            "FERTIGATION": {
                "dosing_pump": self.dosing_pump.to_config(),
                "tanks": {t.key: t.to_config() for t in self.tanks},
            },
        }

    def devices(self, kind: DeviceKind | None = None) -> Iterator[Device]:
        if kind in (None, DeviceKind.MOTOR):
            yield from self.motors
        if kind in (None, DeviceKind.VALVE):
            yield from self.valves
        if kind in (None, DeviceKind.DOSING_PUMP):
            yield self.dosing_pump
        if kind in (None, DeviceKind.TANK):
            yield from self.tanks

    def find(self, kind: DeviceKind, key: str) -> Device:
        for device in self.devices(kind):
            if device.key == key:
                return device
        raise UnknownDevice(kind, key)

    def with_device_added(self, kind: DeviceKind) -> tuple["Registry", Device]:
        """
        Adds a motor or valve with default fields. The new key and SMS id use the first free index starting
        at the device count plus one, so a key left free by a removal is never overwritten.

        :param kind: Either DeviceKind.MOTOR or DeviceKind.VALVE.
        :type kind: DeviceKind
        :return: The new registry and the added device.
        :rtype: tuple[Registry, Device]
        """
        if kind not in _NEW_DEVICE_DEFAULTS:
            raise ValueError(f"Devices of kind {kind} cannot be added")
        key_stem, name_stem, prefix, attr, value = _NEW_DEVICE_DEFAULTS[kind]
        existing = list(self.devices(kind))
        taken = {d.key for d in existing}
        index = len(existing) + 1
        while f"{key_stem}{index}" in taken:
            index += 1
        device = device_from_config(kind, f"{key_stem}{index}",
                                    {"name": f"{name_stem} {index}", "sms_id": str(index), "sms_prefix": prefix, attr: value})
        return self._with_kind(kind, tuple(existing) + (device,)), device

    def without_device(self, kind: DeviceKind, key: str) -> "Registry":
        self.find(kind, key)
        if kind not in _NEW_DEVICE_DEFAULTS:
            raise ValueError(f"Devices of kind {kind} cannot be removed")
        return self._with_kind(kind, tuple(d for d in self.devices(kind) if d.key != key))

    def with_tank_nutrient(self, key: str, nutrient: NutrientProfile) -> "Registry":
        tank = self.find(DeviceKind.TANK, key)
        return replace(self, tanks=tuple(tank.with_nutrient(nutrient) if t.key == key else t for t in self.tanks))

    def _with_kind(self, kind: DeviceKind, devices: tuple) -> "Registry":
        match kind:
            case DeviceKind.MOTOR:
                return replace(self, motors=devices)
            case DeviceKind.VALVE:
                return replace(self, valves=devices)
            case DeviceKind.TANK:
                return replace(self, tanks=devices)
        raise ValueError(f"Unsupported device kind {kind!r}")
