from .commerce_tracking_service import CommerceTrackingService
from .crash_simulation_service import CrashSimulationService
from .network_instrumentation_service import NetworkInstrumentationService
from .session_property_store import SessionPropertyStore
from .telemetry_service import TelemetryService

__all__ = (
    "CommerceTrackingService",
    "CrashSimulationService",
    "NetworkInstrumentationService",
    "SessionPropertyStore",
    "TelemetryService",
)
