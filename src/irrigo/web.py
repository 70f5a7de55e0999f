#  MIT License
#
#  Copyright (c) 2025 by Dan Luca. All rights reserved.
#

import pytz

from typing import Any
from flask import Flask, jsonify, request, abort
from werkzeug.exceptions import HTTPException
from .config import AppConfig, Settings, save_settings, reset_settings
from .controller import DeviceController
from .errors import UnknownDevice, DispatchInProgress, TransportUnavailable, DispatchFailed
from .model.device import Device, DeviceKind, NutrientProfile, Motor, Valve, Tank
from .model.reading import SensorReading, Subsystem, format_sensor_value, water_quality_status
from .model.registry import Registry
from .model.times import valid_timezone
from .nutrients import aggregate, format_mix
from .telemetry import TelemetryService, SUBSYSTEM_CHANNELS, TANK_LEVEL_CHANNEL, telemetry_target

HTTP_HOST = "0.0.0.0"
HTTP_PORT = 8080
app = Flask(__name__)

def _controller() -> DeviceController:
    return app.config["CONTROLLER"]

def _telemetry() -> TelemetryService:
    return app.config["TELEMETRY"]

def _app_config() -> AppConfig:
    return app.config["APP_CONFIG"]

def _kind(kind: str) -> DeviceKind:
    try:
        return DeviceKind(kind)
    except ValueError:
        abort(404, description=f"Unknown device kind '{kind}'")

def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        abort(400, description="Expected a JSON object")
    return body

def _device_json(device: Device) -> dict[str, Any]:
    data = {
        "key": device.key,
        "kind": device.kind.value,
        "name": device.name,
        "sms_prefix": device.identity.sms_prefix,
        "sms_id": device.identity.sms_id,
        "address": device.identity.address,
        "status": device.status,
        "state": _controller().state(device.kind, device.key).value,
    }
    match device:
        case Motor():
            data["power"] = device.power
        case Valve():
            data["configured_flow"] = device.flow
            data["flow"] = device.flow if device.status else "0 L/min"
        case Tank():
            data["volume"] = device.volume
            data["nutrient"] = device.nutrient.as_dict()
    return data

def _reading_json(reading: SensorReading) -> dict[str, Any]:
    data = reading.json_encode()
    units = {spec.name: spec.unit for spec in SUBSYSTEM_CHANNELS[reading.subsystem]}
    data["display"] = {name: format_sensor_value(value, units[name]) for name, value in reading.channels.items()}
    data["display"].update({k: format_sensor_value(v, TANK_LEVEL_CHANNEL.unit) for k, v in reading.tank_levels.items()})
    if reading.subsystem == Subsystem.VALVE:
        data["water_quality"] = water_quality_status(reading["pH"])
    return data

def _settings_json(settings: dict[str, Any]) -> dict[str, Any]:
    return {name: value.zone if isinstance(value, pytz.BaseTzInfo) else value for name, value in settings.items()}

def _persist(registry: Registry) -> None:
    """Saves the registry with the other settings and reloads the controller. Callers hold the settings lock."""
    cfg = _app_config()
    values = cfg.snapshot()
    values.update(registry.to_settings())
    save_settings(values, cfg)
    _controller().reload(Registry.from_settings(cfg.snapshot()))

def _candidate_registry(values: dict[str, Any]) -> Registry:
    try:
        return Registry.from_settings(values)
    except (ValueError, TypeError, AttributeError) as e:
        abort(400, description=f"Invalid device settings: {e}")

# --------------------------
# JSON REST API
# --------------------------
@app.get("/api/health")
def health():
    return jsonify({"status": "ok"})

@app.get("/api/devices/<kind>")
def list_devices(kind: str):
    return jsonify({"devices": [_device_json(d) for d in _controller().devices(_kind(kind))]})

@app.get("/api/devices/<kind>/<key>")
def get_device(kind: str, key: str):
    return jsonify(_device_json(_controller().device(_kind(kind), key)))

@app.get("/api/devices/<kind>/<key>/command")
def preview_command(kind: str, key: str):
    message, phone_number = _controller().preview(_kind(kind), key)
    return jsonify({"message": message, "phone_number": phone_number})

@app.post("/api/devices/<kind>/<key>/toggle")
def toggle_device(kind: str, key: str):
    result = _controller().toggle(_kind(kind), key)
    return jsonify({
        "device": _device_json(result.device),
        "command": result.command.value,
        "message": result.message,
        "phone_number": result.phone_number,
        "result": result.result,
    })

@app.get("/api/devices/<kind>/<key>/telemetry")
def get_telemetry(kind: str, key: str):
    device = _controller().device(_kind(kind), key)
    try:
        _, sensor, _ = telemetry_target(device)
    except ValueError as e:
        abort(400, description=str(e))
    reading = _telemetry().reading(sensor)
    if reading is None:
        abort(404, description=f"No reading of {sensor} yet")
    return jsonify(_reading_json(reading))

@app.post("/api/devices/<kind>/<key>/telemetry")
def refresh_telemetry(kind: str, key: str):
    controller = _controller()
    device = controller.device(_kind(kind), key)
    tank_keys = tuple(t.key for t in controller.tanks())
    try:
        reading = _telemetry().refresh_device(device, tank_keys)
    except ValueError as e:
        abort(400, description=str(e))
    return jsonify(_reading_json(reading))

@app.get("/api/fertigation/mix")
def nutrient_mix():
    tanks = _controller().tanks()
    mix = aggregate(tanks)
    return jsonify({"mix": mix, "display": format_mix(mix), "active_tanks": [t.key for t in tanks if t.active]})

@app.put("/api/tanks/<key>/nutrients")
def update_tank_nutrients(key: str):
    body = _json_body()
    with _app_config().lock:
        registry = _controller().registry.with_tank_nutrient(key, NutrientProfile.from_dict(body))
        _persist(registry)
    return jsonify(_device_json(_controller().device(DeviceKind.TANK, key)))

@app.get("/api/notices")
def notices():
    return jsonify({"notices": [{"title": n.title, "message": n.message, "error": n.error} for n in _controller().notices()]})

@app.get("/api/settings")
def get_settings():
    return jsonify(_settings_json(_app_config().snapshot()))

@app.put("/api/settings")
def put_settings():
    body = _json_body()
    unknown = [name for name in body if name not in Settings.__members__]
    if unknown:
        abort(400, description=f"Unknown settings: {', '.join(unknown)}")
    for item in (Settings.MOTORS, Settings.VALVES, Settings.FERTIGATION):
        if item.name in body and not isinstance(body[item.name], dict):
            abort(400, description=f"Setting {item.name} must be a JSON object")
    if Settings.LOCAL_TIMEZONE.name in body:
        tz = body[Settings.LOCAL_TIMEZONE.name]
        if not isinstance(tz, str):
            abort(400, description=f"Setting {Settings.LOCAL_TIMEZONE.name} must be a timezone name")
        body[Settings.LOCAL_TIMEZONE.name] = valid_timezone(tz)
    cfg = _app_config()
    with cfg.lock:
        values = cfg.snapshot()
        values.update(body)
        _candidate_registry(values)
        save_settings(values, cfg)
        _controller().reload(Registry.from_settings(cfg.snapshot()))
        return jsonify(_settings_json(cfg.snapshot()))

@app.post("/api/settings/reset")
def post_reset_settings():
    cfg = _app_config()
    with cfg.lock:
        settings = reset_settings(cfg)
        _controller().reload(Registry.from_settings(settings))
    return jsonify(_settings_json(settings))

@app.post("/api/settings/<kind>")
def add_device(kind: str):
    with _app_config().lock:
        try:
            registry, device = _controller().registry.with_device_added(_kind(kind))
        except ValueError as e:
            abort(400, description=str(e))
        _persist(registry)
    return jsonify(_device_json(_controller().device(device.kind, device.key))), 201

@app.delete("/api/settings/<kind>/<key>")
def delete_device(kind: str, key: str):
    with _app_config().lock:
        try:
            registry = _controller().registry.without_device(_kind(kind), key)
        except ValueError as e:
            abort(400, description=str(e))
        _persist(registry)
    return jsonify({"deleted": key})

# --------------------------
# Error handling
# - JSON responses for /api/* errors
# - Control errors become user-visible notices
# --------------------------
def _error(name: str, message: str, status: int):
    return jsonify({"error": name, "message": message, "status": status}), status

@app.errorhandler(UnknownDevice)
def handle_unknown_device(e: UnknownDevice):
    return _error("Not Found", str(e), 404)

@app.errorhandler(DispatchInProgress)
def handle_dispatch_in_progress(e: DispatchInProgress):
    return _error("Dispatch In Progress", str(e), 409)

@app.errorhandler(TransportUnavailable)
def handle_transport_unavailable(e: TransportUnavailable):
    return _error("SMS Not Available", str(e), 503)

@app.errorhandler(DispatchFailed)
def handle_dispatch_failed(e: DispatchFailed):
    return _error("Dispatch Failed", str(e), 502)

@app.errorhandler(HTTPException)
def handle_http_exception(e: HTTPException):
    if request.path.startswith("/api/"):
        return _error(e.name, e.description, e.code)
    # Use default HTML error for non-API routes
    return e

def create_app(controller: DeviceController, telemetry: TelemetryService, config: AppConfig) -> Flask:
    app.config["CONTROLLER"] = controller
    app.config["TELEMETRY"] = telemetry
    app.config["APP_CONFIG"] = config
    return app

def run_app():
    app.run(host=HTTP_HOST, port=HTTP_PORT, debug=False, threaded=True)
