#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

from dataclasses import dataclass
from enum import StrEnum

from .model.device import DeviceIdentity

PREFIX_TOKEN = "{prefix}"
DEVICE_ID_TOKEN = "{deviceId}"


class Command(StrEnum):
    ON = "ON"
    OFF = "OFF"

    @classmethod
    def for_status(cls, turn_on: bool) -> "Command":
        return cls.ON if turn_on else cls.OFF


def format_command(template: str, identity: DeviceIdentity) -> str:
    """
    Builds the SMS command text for a device out of a command template.

    The first occurrence of ``{prefix}`` is replaced with the device SMS prefix, then the first occurrence of
    ``{deviceId}`` with the device SMS id. A token missing from the template is simply not substituted, and any
    further occurrences of a token are left as literal text - e.g. ``"ON {prefix}{deviceId} {prefix}{deviceId}"``
    renders as ``"ON M1 {prefix}{deviceId}"`` for device ``M1``. Devices in the field parse the command this way.

    :param template: The command template, e.g. ``"ON {prefix}{deviceId}"``.
    :type template: str
    :param identity: SMS addressing fields of the device.
    :type identity: DeviceIdentity
    :return: The command text.
    :rtype: str
    """
    return template.replace(PREFIX_TOKEN, identity.sms_prefix, 1).replace(DEVICE_ID_TOKEN, identity.sms_id, 1)


@dataclass(frozen=True, slots=True)
class CommandTemplate:
    """
    ON/OFF command templates shared by all devices.

    Attributes:
        on_format: Template of the command turning a device on (or opening it).
        off_format: Template of the command turning a device off (or closing it).
    """
    on_format: str = f"ON {PREFIX_TOKEN}{DEVICE_ID_TOKEN}"
    off_format: str = f"OFF {PREFIX_TOKEN}{DEVICE_ID_TOKEN}"

    def template_for(self, command: Command) -> str:
        return self.on_format if command == Command.ON else self.off_format

    def command(self, turn_on: bool, identity: DeviceIdentity) -> str:
        return format_command(self.template_for(Command.for_status(turn_on)), identity)
