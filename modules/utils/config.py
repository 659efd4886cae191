"""
Centralized configuration manager.
Loads a YAML config and provides typed access with defaults.

    - Schema validation for critical config fields (warnings only)
    - Dotted-path access: config.get("speech.throttle_ms")
    - Reset support for testing
"""

import os
import yaml
import logging

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")

# Schema: sections and their expected field types
_CONFIG_SCHEMA = {
    "camera": {
        "device_id": int,
        "width": int,
        "height": int,
        "fps": int,
    },
    "mediapipe": {
        "min_detection_confidence": float,
        "min_tracking_confidence": float,
    },
    "debouncing": {
        "min_hold_ms": int,
    },
    "relay": {
        "backend": str,
        "server_url": str,
        "channel": str,
    },
    "speech": {
        "backend": str,
        "throttle_ms": int,
        "rate": float,
        "pitch": float,
        "volume": float,
        "template": str,
    },
}

# Numeric fields that must fall inside a closed range
_CONFIG_RANGES = {
    "debouncing.min_hold_ms": (0, None),
    "speech.throttle_ms": (0, None),
    "speech.rate": (0.1, 10.0),
    "speech.volume": (0.0, 1.0),
    "recognition.thresholds.thumb_spread": (0.0, 1.0),
    "recognition.thresholds.c_thumb_gap": (0.0, 1.0),
    "recognition.thresholds.c_tips_level": (0.0, 1.0),
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Singleton configuration manager."""

    _instance = None
    _data = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path=None):
        """Load configuration from a YAML file; missing file means defaults."""
        config_path = config_path or os.path.join(_CONFIG_DIR, "config.yaml")

        try:
            with open(config_path, "r") as f:
                self._data = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            self._data = {}

        self._validate()
        return self

    def update(self, overrides: dict):
        """Merge overrides (e.g. from CLI flags) over the loaded values."""
        self._data = _deep_merge(self._data, overrides)
        self._validate()
        return self

    def _validate(self) -> list:
        """Validate critical config fields against schema; returns warnings."""
        warnings = []
        for section_name, fields in _CONFIG_SCHEMA.items():
            section = self._data.get(section_name)
            if section is None:
                continue
            if not isinstance(section, dict):
                warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
                continue
            for field_name, expected_type in fields.items():
                if field_name in section:
                    value = section[field_name]
                    # Allow int where float is expected
                    if expected_type is float and isinstance(value, (int, float)):
                        continue
                    if not isinstance(value, expected_type):
                        warnings.append(
                            f"{section_name}.{field_name}: expected {expected_type.__name__}, "
                            f"got {type(value).__name__} ({value!r})"
                        )

        for key_path, (low, high) in _CONFIG_RANGES.items():
            value = self.get(key_path)
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                continue
            if (low is not None and value < low) or (high is not None and value > high):
                upper = "inf" if high is None else high
                warnings.append(f"{key_path}: {value!r} outside [{low}, {upper}]")

        if warnings:
            for w in warnings:
                logger.warning("Config validation: %s", w)
        else:
            logger.debug("Config validation passed")
        return warnings

    def get(self, key_path: str, default=None):
        """Get nested config value using dot notation: 'camera.width'."""
        keys = key_path.split(".")
        value = self._data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_section(self, section: str) -> dict:
        return self._data.get(section, {}) or {}

    @property
    def camera(self) -> dict:
        return self.get_section("camera")

    @property
    def mediapipe(self) -> dict:
        return self.get_section("mediapipe")

    @property
    def recognition(self) -> dict:
        return self.get_section("recognition")

    @property
    def debouncing(self) -> dict:
        return self.get_section("debouncing")

    @property
    def relay(self) -> dict:
        return self.get_section("relay")

    @property
    def speech(self) -> dict:
        return self.get_section("speech")

    @property
    def performance(self) -> dict:
        return self.get_section("performance")

    @property
    def base_dir(self) -> str:
        return _BASE_DIR

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._data = {}
