import random
import threading

import pytest

from irrigo.config import AppConfig
from irrigo.controller import DeviceController
from irrigo.model.registry import Registry
from irrigo.sms import SmsTransport
from irrigo.telemetry import TelemetryService
from irrigo.web import create_app


class FakeTransport(SmsTransport):
    """SMS transport double: records sent messages, can be made unavailable, failing or blocking."""

    def __init__(self, available=True, error=None):
        self.available = available
        self.error = error
        self.sent = []
        self.block_on = None
        self.sending = threading.Event()
        self.release = threading.Event()

    def is_available(self):
        return self.available

    def send(self, phone_number, message):
        if self.block_on == message:
            self.sending.set()
            self.release.wait(5)
        if self.error is not None:
            raise self.error
        self.sent.append((phone_number, message))
        return "sent"


class StubClient:
    """Telemetry client double returning canned payloads per sensor id; None means the fetch failed."""

    def __init__(self, payloads=None):
        self.payloads = payloads or {}
        self.calls = []

    def fetch(self, sensor):
        self.calls.append(sensor)
        return self.payloads.get(sensor)


@pytest.fixture()
def app_config(tmp_path):
    config = AppConfig(str(tmp_path / "data" / "settings.json"))
    config.read_from_file()
    return config


@pytest.fixture()
def registry(app_config):
    return Registry.from_settings(app_config.snapshot())


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def controller(registry, transport):
    return DeviceController(registry, transport)


@pytest.fixture()
def stub_client():
    return StubClient()


@pytest.fixture()
def telemetry(stub_client):
    service = TelemetryService(stub_client, rng=random.Random(7))
    yield service
    service.stop()


@pytest.fixture()
def app(controller, telemetry, app_config):
    app = create_app(controller, telemetry, app_config)
    app.config["TESTING"] = True
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()
