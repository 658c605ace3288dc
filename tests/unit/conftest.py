import random
from typing import Optional, Sequence
from unittest.mock import Mock

import pytest
from storefront_telemetry.core.config import TelemetryConfig
from storefront_telemetry.domain.services import (
    CommerceTrackingService,
    NetworkInstrumentationService,
    TelemetryService,
)
from storefront_telemetry.infra.gateways import FakeTaskScheduler, FakeTelemetryBackendGateway

TEST_API_BASE_URL = "https://api.test-storefront.com/v1"


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, delta_ms: int) -> None:
        self.now_ms += delta_ms


def fixed_rng(*rolls: int) -> Mock:
    """A random source whose successive randrange() calls return `rolls`."""
    rng = Mock(spec=random.Random)
    rng.randrange.side_effect = list(rolls)
    rng.random.return_value = 0.5
    return rng


@pytest.fixture
def make_fixed_rng():
    return fixed_rng


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def telemetry_config(tmp_path) -> TelemetryConfig:
    return TelemetryConfig(
        ios_app_id="test-ios-app-id",
        android_app_id="test-android-app-id",
        api_base_url=TEST_API_BASE_URL,
        device_id_path=str(tmp_path / "device_id"),
    )


@pytest.fixture
def ci_telemetry_config(telemetry_config: TelemetryConfig) -> TelemetryConfig:
    telemetry_config.ci_mode = True
    return telemetry_config


@pytest.fixture
def fake_backend_gateway() -> FakeTelemetryBackendGateway:
    return FakeTelemetryBackendGateway()


@pytest.fixture
def fake_task_scheduler() -> FakeTaskScheduler:
    return FakeTaskScheduler()


@pytest.fixture
def make_telemetry_service(
    fake_backend_gateway: FakeTelemetryBackendGateway,
    telemetry_config: TelemetryConfig,
    fake_task_scheduler: FakeTaskScheduler,
    fake_clock: FakeClock,
):
    """Builds services sharing the fake gateway and scheduler. Services start uninitialized."""

    def _make(
        config: Optional[TelemetryConfig] = None, rolls: Sequence[int] = ()
    ) -> TelemetryService:
        return TelemetryService(
            backend_gateway=fake_backend_gateway,
            config=config or telemetry_config,
            scheduler=fake_task_scheduler,
            clock=fake_clock,
            rng=fixed_rng(*rolls),
        )

    return _make


@pytest.fixture
def telemetry_service(make_telemetry_service) -> TelemetryService:
    return make_telemetry_service()


@pytest.fixture
def network_instrumentation_service(
    telemetry_service: TelemetryService, fake_clock: FakeClock
) -> NetworkInstrumentationService:
    return NetworkInstrumentationService(telemetry_service, TEST_API_BASE_URL, clock=fake_clock)


@pytest.fixture
def commerce_tracking_service(
    telemetry_service: TelemetryService, fake_clock: FakeClock
) -> CommerceTrackingService:
    return CommerceTrackingService(telemetry_service, clock=fake_clock)
