from typing import Callable

from storefront_telemetry.common.dtos.telemetry import TransportResult
from storefront_telemetry.core.loggers import logger_name, make_logger

logger = make_logger(logger_name())


def dispatch(action: str, send: Callable[[], TransportResult]) -> bool:
    """Run a backend send, reporting any failure to the local log only. Never raises."""
    try:
        result = send()
    except Exception as e:
        logger.warning(f"Failed to {action}: {e}")
        return False
    if not result.ok:
        logger.warning(f"Failed to {action}: {result.error}")
    return result.ok
