#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#


class IrrigoError(Exception):
    """Base class of the errors raised by the control panel."""


class UnknownDevice(IrrigoError, KeyError):
    """
    Raised when a device kind/key pair is not present in the registry.

    :ivar kind: The device kind that was looked up.
    :ivar key: The device key that was looked up.
    """
    def __init__(self, kind: str, key: str):
        super().__init__(f"Unknown {kind} '{key}'")
        self.kind = kind
        self.key = key

    def __str__(self) -> str:
        return self.args[0]


class TransportUnavailable(IrrigoError):
    """Raised when the SMS capability is not available; nothing was sent."""


class DispatchFailed(IrrigoError):
    """Raised when the SMS transport errored while sending a command. The original error is chained."""


class DispatchInProgress(IrrigoError):
    """Raised when a device is toggled while a previous command for it is still being dispatched."""
