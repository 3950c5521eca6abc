"""
User preferences.

Scalar settings live in ``config.json``; the hidden-port list lives in
``hidden_ports.yaml`` next to it. A Settings object is created once and
handed to the scanner, the docker service and the monitor; anyone interested
in changes registers a callback with :meth:`Settings.subscribe`.
"""
import json
import os
import threading

import yaml

from .log import CONFIG_DIR, debug_log

REFRESH_INTERVALS = (0, 5, 10, 30)  # 0 = manual
DEFAULT_REFRESH_INTERVAL = 10

DEFAULTS = {
    "refresh_interval": DEFAULT_REFRESH_INTERVAL,
    "confirm_before_kill": True,
    "confirm_before_docker_stop": True,
    "show_docker_containers": True,
    "show_system_processes": False,
}

CONFIG_FILE = "config.json"
HIDDEN_PORTS_FILE = "hidden_ports.yaml"


def hidden_port_key(process_name, port):
    return f"{process_name}:{port}"


def _coerce(key, value, strict=False):
    if key == "refresh_interval":
        try:
            value = int(value)
        except (TypeError, ValueError):
            value = -1
        if value >= 0:
            return value
        if strict:
            raise ValueError("refresh_interval must be a whole number of seconds, 0 for manual")
        return DEFAULT_REFRESH_INTERVAL
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


class Settings:
    def __init__(self, values=None, hidden_ports=(), config_dir=None):
        self._lock = threading.Lock()
        self._values = dict(DEFAULTS)
        for key, value in (values or {}).items():
            if key in DEFAULTS:
                self._values[key] = _coerce(key, value)
        self._hidden = set(hidden_ports)
        self._observers = []
        self.config_dir = config_dir

    # ------------------------------------------------------------------
    # observers
    # ------------------------------------------------------------------
    def subscribe(self, callback):
        """Register callback(key, value), called after every change."""
        with self._lock:
            if callback not in self._observers:
                self._observers.append(callback)

    def unsubscribe(self, callback):
        with self._lock:
            if callback in self._observers:
                self._observers.remove(callback)

    def _notify(self, key, value):
        with self._lock:
            observers = list(self._observers)
        for callback in observers:
            callback(key, value)

    # ------------------------------------------------------------------
    # values
    # ------------------------------------------------------------------
    def get(self, key):
        with self._lock:
            return self._values[key]

    def set(self, key, value):
        if key not in DEFAULTS:
            raise KeyError(f"Unknown setting: {key}")
        value = _coerce(key, value, strict=True)
        with self._lock:
            changed = self._values[key] != value
            self._values[key] = value
        if changed:
            self._notify(key, value)

    def as_dict(self):
        with self._lock:
            return dict(self._values)

    @property
    def refresh_interval(self):
        return self.get("refresh_interval")

    @property
    def refresh_interval_seconds(self):
        """Seconds between automatic scans, None for manual refresh."""
        interval = self.get("refresh_interval")
        return interval if interval > 0 else None

    @property
    def confirm_before_kill(self):
        return self.get("confirm_before_kill")

    @property
    def confirm_before_docker_stop(self):
        return self.get("confirm_before_docker_stop")

    @property
    def show_docker_containers(self):
        return self.get("show_docker_containers")

    @property
    def show_system_processes(self):
        return self.get("show_system_processes")

    # ------------------------------------------------------------------
    # hidden ports
    # ------------------------------------------------------------------
    @property
    def hidden_ports(self):
        with self._lock:
            return frozenset(self._hidden)

    def is_port_hidden(self, process_name, port):
        key = hidden_port_key(process_name, port)
        with self._lock:
            return key in self._hidden

    def hide_port(self, process_name, port):
        key = hidden_port_key(process_name, port)
        with self._lock:
            if key in self._hidden:
                return
            self._hidden.add(key)
        self._notify("hidden_ports", self.hidden_ports)

    def unhide_port(self, process_name, port):
        key = hidden_port_key(process_name, port)
        with self._lock:
            if key not in self._hidden:
                return
            self._hidden.discard(key)
        self._notify("hidden_ports", self.hidden_ports)

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------
    def save(self):
        """Write config.json and hidden_ports.yaml. Returns False on error."""
        config_dir = self.config_dir or CONFIG_DIR
        try:
            os.makedirs(config_dir, exist_ok=True)
            with open(os.path.join(config_dir, CONFIG_FILE), "w") as f:
                json.dump(self.as_dict(), f, indent=2)
            with open(os.path.join(config_dir, HIDDEN_PORTS_FILE), "w") as f:
                yaml.safe_dump({"hidden_ports": sorted(self.hidden_ports)}, f)
        except OSError as e:
            debug_log(f"CONFIG: Error saving: {e}")
            return False
        return True


def load_settings(config_dir=None):
    """Read settings from disk, creating the files with defaults if missing."""
    config_dir = config_dir or CONFIG_DIR
    config_path = os.path.join(config_dir, CONFIG_FILE)
    hidden_path = os.path.join(config_dir, HIDDEN_PORTS_FILE)

    values = {}
    if os.path.exists(config_path):
        try:
            with open(config_path, "r") as f:
                saved = json.load(f)
            if isinstance(saved, dict):
                values.update(saved)
        except (OSError, ValueError) as e:
            debug_log(f"CONFIG: Error loading: {e}")

    hidden = []
    if os.path.exists(hidden_path):
        try:
            with open(hidden_path, "r") as f:
                data = yaml.safe_load(f) or {}
            hidden = [str(k) for k in data.get("hidden_ports") or []]
        except (OSError, yaml.YAMLError, AttributeError) as e:
            debug_log(f"CONFIG: Error loading hidden ports: {e}")

    settings = Settings(values, hidden, config_dir=config_dir)
    if not os.path.exists(config_path):
        settings.save()
    return settings
