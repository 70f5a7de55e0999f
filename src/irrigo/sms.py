#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

import abc
import logging
import threading


class SmsTransport:
    """
    Contract of the SMS capability the commands are dispatched through.

    Callers check :meth:`is_available` before composing a message; :meth:`send` raises when the attempt errors.
    """

    @abc.abstractmethod
    def is_available(self) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def send(self, phone_number: str, message: str) -> str:
        """
        Hands a message over for sending.

        :param phone_number: The recipient phone number.
        :type phone_number: str
        :param message: The message text.
        :type message: str
        :return: A result label reported by the platform (e.g. ``"sent"``).
        :rtype: str
        """
        raise NotImplementedError


class LoggingTransport(SmsTransport):
    """
    Transport recording the messages it is handed instead of reaching a modem: each message is logged and kept in
    the outbox. Used when the panel runs without an SMS gateway.

    :ivar outbox: Messages handed over so far, as (phone number, message) pairs.
    :type outbox: list[tuple[str, str]]
    """
    def __init__(self, available: bool = True):
        self._lock = threading.RLock()
        self._available = available
        self.outbox: list[tuple[str, str]] = []
        self._logger = logging.getLogger(__name__)

    def is_available(self) -> bool:
        return self._available

    def send(self, phone_number: str, message: str) -> str:
        with self._lock:
            self.outbox.append((phone_number, message))
        self._logger.info(f"SMS to {phone_number}: {message}")
        return "sent"
