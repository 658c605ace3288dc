import pytest
import yaml
from storefront_telemetry.core import config as config_module
from storefront_telemetry.core.config import (
    DEFAULT_CONFIG_PATH,
    TelemetryConfig,
    config_context,
    use_config_context,
)
from storefront_telemetry.core.domain_exceptions import InvalidTelemetryConfigException


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("CI_MODE", raising=False)
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "telemetry.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "ios_app_id": "abc12",
                "android_app_id": "def34",
                "platform": "android",
                "environment": "ci",
                "not_a_field": "ignored",
            }
        )
    )
    return str(path)


def test_default_config_file_loads():
    config = TelemetryConfig.from_yaml(DEFAULT_CONFIG_PATH)
    assert config.ios_app_id == "YOUR_IOS_APP_ID"
    assert config.platform == "ios"
    assert config.ci_mode is False
    assert config.otlp_endpoint is None
    assert config.export_timeout_ms == 5000


def test_from_yaml_ignores_unknown_keys(config_file):
    config = TelemetryConfig.from_yaml(config_file)
    assert config.environment == "ci"
    assert config.service_name == "storefront-telemetry"
    assert not hasattr(config, "not_a_field")


def test_app_id_follows_platform(config_file):
    config = TelemetryConfig.from_yaml(config_file)
    assert config.app_id == "def34"
    config.platform = "ios"
    assert config.app_id == "abc12"


def test_unsupported_platform_is_rejected():
    with pytest.raises(InvalidTelemetryConfigException):
        TelemetryConfig.from_json({"platform": "windows"})


def test_env_overrides(monkeypatch, config_file):
    monkeypatch.setenv("CI_MODE", "true")
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
    with config_context(config_file):
        config = config_module.telemetry_config()
        assert config.ci_mode is True
        assert config.otlp_endpoint == "http://localhost:4317"


def test_ci_mode_env_var_must_be_true(monkeypatch, config_file):
    monkeypatch.setenv("CI_MODE", "yes")
    with config_context(config_file):
        assert config_module.telemetry_config().ci_mode is False


def test_config_context_restores_previous_config(config_file, tmp_path):
    other_file = tmp_path / "other.yaml"
    other_file.write_text(yaml.safe_dump({"environment": "staging"}))

    with config_context(config_file):
        assert config_module.telemetry_config().environment == "ci"
        with config_context(str(other_file)):
            assert config_module.telemetry_config().environment == "staging"
        assert config_module.telemetry_config().environment == "ci"


def test_use_config_context(monkeypatch, config_file):
    monkeypatch.setattr(config_module, "_telemetry_config", None)
    use_config_context(config_file)
    assert config_module.telemetry_config().environment == "ci"
