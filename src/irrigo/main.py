#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

import sys
import threading
import logging
import platform

from importlib.metadata import version, PackageNotFoundError
from .config import CONFIG, Settings, load_settings
from .controller import DeviceController
from .model.registry import Registry
from .sms import LoggingTransport
from .telemetry import TelemetryClient, TelemetryService
from .log import init_logging
from .web import create_app, run_app

def uncaught_global_exception_handler(exc_type, exc_value, exc_traceback):
    logging.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))
    sys.__excepthook__(exc_type, exc_value, exc_traceback)

def uncaught_thread_exception_handler(exc_args: threading.ExceptHookArgs):
    logging.critical("Uncaught exception in thread %s", exc_args.thread.name, exc_info=(exc_args.exc_type, exc_args.exc_value, exc_args.exc_traceback))

def get_app_version() -> str:
    try:
        return version("irrigo")
    except PackageNotFoundError:
        return "unknown"


def main():
    settings = load_settings()
    init_logging()
    logger = logging.getLogger("main")
    sys.excepthook = uncaught_global_exception_handler
    threading.excepthook = uncaught_thread_exception_handler

    logger.info("\n\n====================================================================================================\n")
    logger.info("Starting Irrigo control panel version %s on %s %s...", get_app_version(), platform.system(), platform.release())
    logger.info("Settings loaded from %s", CONFIG.settings_file)

    registry = Registry.from_settings(settings)
    logger.info("Registry: %d motors, %d valves, %d tanks; commands sent to %s", len(registry.motors),
                len(registry.valves), len(registry.tanks), registry.phone_number)

    controller = DeviceController(registry, LoggingTransport(available=CONFIG[Settings.SMS_AVAILABLE]))
    telemetry = TelemetryService(TelemetryClient())

    logger.info("Starting web server...")
    create_app(controller, telemetry, CONFIG)
    try:
        run_app()
    finally:
        logger.info("Shutting down...")
        telemetry.stop()


if __name__ == "__main__":
    main()
