"""Telemetry configuration for the storefront instrumentation layer.

The configuration file is loaded from the STOREFRONT_TELEMETRY_CONFIG_PATH environment variable.
If this is not set, the default configuration file is used from
storefront_telemetry/core/configs/default.yaml.
"""

import inspect
import os
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import yaml
from storefront_telemetry.common.env_vars import CI_MODE_ENV_VAR, get_boolean_env_var
from storefront_telemetry.core.domain_exceptions import InvalidTelemetryConfigException
from storefront_telemetry.core.loggers import logger_name, make_logger

logger = make_logger(logger_name())

__all__: Sequence[str] = (
    "DEFAULT_CONFIG_PATH",
    "CONFIG_PATH",
    "TelemetryConfig",
    "config_context",
    "telemetry_config",
    "use_config_context",
)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "configs" / "default.yaml"
CONFIG_PATH: str = os.getenv("STOREFRONT_TELEMETRY_CONFIG_PATH", str(DEFAULT_CONFIG_PATH))

SUPPORTED_PLATFORMS = ("ios", "android")


@dataclass
class _AppConfig:
    ios_app_id: Optional[str] = None
    android_app_id: Optional[str] = None
    platform: str = "ios"
    service_name: str = "storefront-telemetry"
    service_version: str = "1.0.0"
    app_type: str = "dogfooding_ecommerce"
    environment: str = "development"
    session_run_source: str = "Simulator"


@dataclass
class _ExportConfig:
    otlp_endpoint: Optional[str] = None
    export_timeout_ms: int = 5000
    device_id_path: str = "~/.storefront_telemetry/device_id"
    api_base_url: str = "https://api.embrace-ecommerce.com/v1"
    # Probability-gated crash injection for pipeline runs
    ci_mode: bool = False


@dataclass
class TelemetryConfig(_ExportConfig, _AppConfig):
    @classmethod
    def from_json(cls, json) -> "TelemetryConfig":
        config = cls(**{k: v for k, v in json.items() if k in inspect.signature(cls).parameters})
        if config.platform not in SUPPORTED_PLATFORMS:
            raise InvalidTelemetryConfigException(
                f"Unsupported platform {config.platform!r}, expected one of {SUPPORTED_PLATFORMS}"
            )
        return config

    @classmethod
    def from_yaml(cls, yaml_path) -> "TelemetryConfig":
        with open(yaml_path, "r") as f:
            raw_data = yaml.safe_load(f) or {}
        return TelemetryConfig.from_json(raw_data)

    @property
    def app_id(self) -> Optional[str]:
        """The backend application identifier for the configured platform."""
        if self.platform == "android":
            return self.android_app_id
        return self.ios_app_id


def _apply_env_overrides(config: TelemetryConfig) -> TelemetryConfig:
    if get_boolean_env_var(CI_MODE_ENV_VAR):
        config.ci_mode = True
    endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    if endpoint:
        config.otlp_endpoint = endpoint
    return config


def read_default_config() -> TelemetryConfig:
    logger.info(f"Using config file path: `{CONFIG_PATH}`")
    return _apply_env_overrides(TelemetryConfig.from_yaml(CONFIG_PATH))


_telemetry_config: Optional[TelemetryConfig] = None


def telemetry_config() -> TelemetryConfig:
    global _telemetry_config
    if _telemetry_config is None:
        _telemetry_config = read_default_config()
    return _telemetry_config


@contextmanager
def config_context(config_path: str):
    """Context manager that temporarily changes the config file path."""
    global _telemetry_config
    current_config = deepcopy(_telemetry_config)
    try:
        _telemetry_config = _apply_env_overrides(TelemetryConfig.from_yaml(config_path))
        yield
    finally:
        _telemetry_config = current_config


def use_config_context(config_path: str):
    """Use the config file at the given path."""
    global _telemetry_config
    _telemetry_config = _apply_env_overrides(TelemetryConfig.from_yaml(config_path))
