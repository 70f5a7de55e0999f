#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

import logging
import threading

from collections import deque
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional

from .commands import Command
from .errors import DispatchFailed, DispatchInProgress, TransportUnavailable
from .model.device import Device, DeviceKind, Tank
from .model.registry import Registry
from .sms import SmsTransport


class DeviceState(StrEnum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    ON = "on"       # running / open
    OFF = "off"     # stopped / closed


@dataclass(frozen=True, slots=True)
class SendSms:
    phone_number: str
    message: str


@dataclass(frozen=True, slots=True)
class Notify:
    title: str
    message: str
    error: bool = False


@dataclass(frozen=True, slots=True)
class Transition:
    """
    Outcome of a state machine step: the next state of the device and the side effects to carry out.
    """
    state: DeviceState
    effects: tuple[SendSms | Notify, ...] = ()


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """
    Outcome of a successful dispatch.

    Attributes:
        device: The device record carrying its new status.
        command: The command that was sent.
        message: The SMS text that was sent.
        phone_number: The recipient phone number.
        result: The result label reported by the transport.
    """
    device: Device
    command: Command
    message: str
    phone_number: str
    result: str


#<editor-fold desc="State machine transitions">
def begin_dispatch(state: DeviceState, phone_number: str, message: str) -> Transition:
    """
    Starts dispatching a command. Only one dispatch per device may be in flight.

    :raises DispatchInProgress: If the device is already dispatching.
    """
    if state == DeviceState.DISPATCHING:
        raise DispatchInProgress("A command for this device is already being sent")
    return Transition(DeviceState.DISPATCHING, (SendSms(phone_number, message),))


def complete_dispatch(turn_on: bool, message: str) -> Transition:
    """
    The transport accepted the command: the device is assumed to follow it right away, as SMS delivery is never
    confirmed by the hardware.
    """
    return Transition(DeviceState.ON if turn_on else DeviceState.OFF, (Notify("Success", f"SMS sent with command: {message}"),))


def fail_dispatch(previous: DeviceState, title: str, message: str) -> Transition:
    return Transition(previous, (Notify(title, message, error=True),))
#</editor-fold>


class DeviceController:
    """
    Turns devices on and off by sending SMS commands and keeps track of their state.

    Each device moves through ``idle -> dispatching -> on|off``. A toggle formats the command of the opposite
    status, checks the transport is available and sends the message; on success the device status flips to the
    requested one, on failure the device returns to its previous state and the error is raised to the caller.
    Devices are independent of each other, and a device can only have one command in flight.

    The registry snapshot is never modified; runtime statuses are kept by the controller and applied to the
    device records it hands out.

    :ivar _registry: The current registry snapshot.
    :type _registry: Registry
    :ivar _transport: The SMS transport commands are sent through.
    :type _transport: SmsTransport
    :ivar _status: Runtime status per (kind, key); absent means off.
    :type _status: dict[tuple[DeviceKind, str], bool]
    :ivar _states: State machine state per (kind, key); absent means idle.
    :type _states: dict[tuple[DeviceKind, str], DeviceState]
    """
    MAX_NOTICES = 50

    def __init__(self, registry: Registry, transport: SmsTransport):
        self._lock = threading.RLock()
        self._registry = registry
        self._transport = transport
        self._status: dict[tuple[DeviceKind, str], bool] = {}
        self._states: dict[tuple[DeviceKind, str], DeviceState] = {}
        self._notices: deque[Notify] = deque(maxlen=self.MAX_NOTICES)
        self._logger = logging.getLogger(__name__)

    @property
    def registry(self) -> Registry:
        with self._lock:
            return self._registry

    def reload(self, registry: Registry):
        """
        Replaces the registry snapshot. Devices that keep their kind and key keep their runtime status and state.
        """
        with self._lock:
            present = {(d.kind, d.key) for d in registry.devices()}
            self._status = {k: v for k, v in self._status.items() if k in present}
            self._states = {k: v for k, v in self._states.items() if k in present}
            self._registry = registry
        self._logger.info(f"Device registry reloaded with {len(present)} devices")

    def device(self, kind: DeviceKind, key: str) -> Device:
        with self._lock:
            device = self._registry.find(kind, key)
            return device.with_status(self._status.get((kind, key), False))

    def devices(self, kind: Optional[DeviceKind] = None) -> list[Device]:
        with self._lock:
            return [d.with_status(self._status.get((d.kind, d.key), False)) for d in self._registry.devices(kind)]

    def tanks(self) -> list[Tank]:
        return self.devices(DeviceKind.TANK)

    def state(self, kind: DeviceKind, key: str) -> DeviceState:
        with self._lock:
            self._registry.find(kind, key)
            return self._states.get((kind, key), DeviceState.IDLE)

    def notices(self) -> list[Notify]:
        with self._lock:
            return list(self._notices)

    def preview(self, kind: DeviceKind, key: str) -> tuple[str, str]:
        """
        Returns the SMS text a toggle of the device would send, and the phone number it would be sent to.
        """
        with self._lock:
            device = self.device(kind, key)
            return self._registry.template.command(not device.status, device.identity), self._registry.phone_number

    def toggle(self, kind: DeviceKind, key: str) -> DispatchResult:
        """
        Sends the command switching the device to the opposite of its current status.

        :raises UnknownDevice: If the device is not in the registry.
        :raises DispatchInProgress: If a command for the device is already being sent.
        :raises TransportUnavailable: If the SMS capability is not available.
        :raises DispatchFailed: If sending the message failed.
        """
        return self.dispatch(kind, key)

    def dispatch(self, kind: DeviceKind, key: str, turn_on: Optional[bool] = None) -> DispatchResult:
        """
        Sends the ON or OFF command to a device and updates its status once the transport accepted the message.

        :param kind: The kind of device.
        :type kind: DeviceKind
        :param key: The device key.
        :type key: str
        :param turn_on: True to send the ON command, False for OFF, None for the opposite of the current status.
            The target is resolved together with the in-flight check, so two concurrent toggles never both
            send the same command.
        :type turn_on: bool | None
        :return: The outcome of the dispatch.
        :rtype: DispatchResult
        :raises UnknownDevice: If the device is not in the registry.
        :raises DispatchInProgress: If a command for the device is already being sent.
        :raises TransportUnavailable: If the SMS capability is not available.
        :raises DispatchFailed: If sending the message failed.
        """
        ident = (kind, key)
        with self._lock:
            device = self.device(kind, key)
            if turn_on is None:
                turn_on = not device.status
            previous = self._states.get(ident, DeviceState.IDLE)
            message = self._registry.template.command(turn_on, device.identity)
            transition = begin_dispatch(previous, self._registry.phone_number, message)
            self._states[ident] = transition.state

        self._logger.info(f"Dispatching {Command.for_status(turn_on)} to {kind} '{key}': {message}")
        try:
            if not self._transport.is_available():
                raise TransportUnavailable("SMS is not available on this device")
            result = self._send(transition.effects)
        except TransportUnavailable as e:
            self._apply(ident, fail_dispatch(previous, "SMS Not Available", str(e)))
            raise
        except Exception as e:
            self._apply(ident, fail_dispatch(previous, "Error", f"Failed to send SMS to {kind} '{key}'"))
            raise DispatchFailed(f"Failed to send command '{message}': {e}") from e

        with self._lock:
            self._status[ident] = turn_on
            self._apply(ident, complete_dispatch(turn_on, message))
        return DispatchResult(device.with_status(turn_on), Command.for_status(turn_on), message,
                              transition.effects[0].phone_number, result)

    def _send(self, effects: tuple) -> str:
        result = ""
        for effect in effects:
            if isinstance(effect, SendSms):
                result = self._transport.send(effect.phone_number, effect.message)
        return result

    def _apply(self, ident: tuple[DeviceKind, str], transition: Transition):
        with self._lock:
            self._states[ident] = transition.state
            for effect in transition.effects:
                if isinstance(effect, Notify):
                    self._notices.append(effect)
                    if effect.error:
                        self._logger.error(f"{effect.title}: {effect.message}")
                    else:
                        self._logger.info(f"{effect.title}: {effect.message}")
