#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any

# nutrient channel symbols, in display order
NUTRIENTS: tuple[str, ...] = ("N", "P", "K", "Ca", "Mg", "S")

DOSING_PUMP_KEY = "dosing_pump"


class DeviceKind(StrEnum):
    """
    Kinds of SMS-controlled devices. The value doubles as the telemetry device type and the URL segment.
    """
    MOTOR = "motor"
    VALVE = "valve"
    DOSING_PUMP = "dosing_pump"
    TANK = "tank"


@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """
    SMS addressing fields of a device. ``sms_prefix + sms_id`` forms the wire address of the device, e.g. ``M1``.

    Attributes:
        sms_prefix: Short code of the device family (e.g. ``M`` for motors).
        sms_id: Numeric-ish identifier of the device within its family.
    """
    sms_prefix: str = ""
    sms_id: str = ""

    @property
    def address(self) -> str:
        return f"{self.sms_prefix}{self.sms_id}"


@dataclass(frozen=True, slots=True)
class NutrientProfile:
    """
    Nutrient composition of a tank, as string-encoded percentages - exactly as entered by the user.

    Attributes:
        N: Nitrogen
        P: Phosphorus
        K: Potassium
        Ca: Calcium
        Mg: Magnesium
        S: Sulfur
    """
    N: str = "0"
    P: str = "0"
    K: str = "0"
    Ca: str = "0"
    Mg: str = "0"
    S: str = "0"

    def as_dict(self) -> dict[str, str]:
        return {n: getattr(self, n) for n in NUTRIENTS}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "NutrientProfile":
        """
        Builds a profile from a mapping of nutrient symbols. Missing, empty or None entries are stored as ``"0"``.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError(f"nutrient profile must be a mapping, got {type(data).__name__}")
        return cls(**{n: str(data.get(n) or "0") for n in NUTRIENTS})


@dataclass(frozen=True, slots=True)
class Device:
    """
    Base record of an SMS-controlled device.

    Attributes:
        key: Registry key of the device (e.g. ``motor1``); unique within its kind.
        name: Human-friendly name.
        identity: SMS addressing fields.
        status: Run/open status - True when the device was last commanded ON.
    """
    key: str
    name: str
    identity: DeviceIdentity = field(default_factory=DeviceIdentity)
    status: bool = False

    kind = None     # class-level, overridden by subclasses

    def __post_init__(self) -> None:
        if not isinstance(self.key, str) or not self.key.strip():
            raise ValueError("device key must be a non-empty string")

    def with_status(self, status: bool) -> "Device":
        return replace(self, status=status)

    def to_config(self) -> dict[str, Any]:
        return {"name": self.name, "sms_id": self.identity.sms_id, "sms_prefix": self.identity.sms_prefix}


@dataclass(frozen=True, slots=True)
class Motor(Device):
    power: str = ""

    kind = DeviceKind.MOTOR

    def to_config(self) -> dict[str, Any]:
        cfg = Device.to_config(self)
        cfg["power"] = self.power
        return cfg


@dataclass(frozen=True, slots=True)
class Valve(Device):
    flow: str = ""

    kind = DeviceKind.VALVE

    def to_config(self) -> dict[str, Any]:
        cfg = Device.to_config(self)
        cfg["flow"] = self.flow
        return cfg


@dataclass(frozen=True, slots=True)
class DosingPump(Device):
    kind = DeviceKind.DOSING_PUMP

    def to_config(self) -> dict[str, Any]:
        return {"sms_id": self.identity.sms_id, "sms_prefix": self.identity.sms_prefix}


@dataclass(frozen=True, slots=True)
class Tank(Device):
    """
    Nutrient tank feeding the fertigation system. Its status is the state of the tank feed valve; an active tank
    takes part in the nutrient mix.
    """
    volume: str = ""
    nutrient: NutrientProfile = field(default_factory=NutrientProfile)

    kind = DeviceKind.TANK

    @property
    def active(self) -> bool:
        return self.status

    def with_nutrient(self, nutrient: NutrientProfile) -> "Tank":
        return replace(self, nutrient=nutrient)

    def to_config(self) -> dict[str, Any]:
        cfg = Device.to_config(self)
        cfg["volume"] = self.volume
        cfg["nutrient"] = self.nutrient.as_dict()
        return cfg


def device_from_config(kind: DeviceKind, key: str, cfg: dict[str, Any]) -> Device:
    """
    Creates a device record from its persisted configuration mapping. Missing fields default to empty strings.

    :param kind: The kind of device to create.
    :type kind: DeviceKind
    :param key: Registry key of the device.
    :type key: str
    :param cfg: Persisted configuration of the device.
    :type cfg: dict[str, Any]
    :return: The device record, with status off.
    :rtype: Device
    :raises ValueError: If the configuration is not a mapping.
    """
    if not isinstance(cfg, dict):
        raise ValueError(f"configuration of {kind} '{key}' must be a mapping, got {type(cfg).__name__}")
    identity = DeviceIdentity(str(cfg.get("sms_prefix", "")), str(cfg.get("sms_id", "")))
    name = str(cfg.get("name", key))
    match kind:
        case DeviceKind.MOTOR:
            return Motor(key, name, identity, power=str(cfg.get("power", "")))
        case DeviceKind.VALVE:
            return Valve(key, name, identity, flow=str(cfg.get("flow", "")))
        case DeviceKind.DOSING_PUMP:
            return DosingPump(key, str(cfg.get("name", "Dosing Pump")), identity)
        case DeviceKind.TANK:
            return Tank(key, name, identity, volume=str(cfg.get("volume", "")),
                        nutrient=NutrientProfile.from_dict(cfg.get("nutrient")))
    raise ValueError(f"Unsupported device kind {kind!r}")
