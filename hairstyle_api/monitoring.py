# hairstyle_api/monitoring.py
"""
Timing helpers for external API calls.
"""

import time
from contextlib import contextmanager

from .logging_config import get_logger

logger = get_logger(__name__)

SLOW_EXTERNAL_CALL_MS = 30000


@contextmanager
def track_external_api_call(service_name: str, operation: str, **metadata):
    """
    Context manager for tracking external API calls

    Usage:
        with track_external_api_call("Gemini", "generate_content", model="gemini-2.0"):
            response = await client.aio.models.generate_content(...)
    """
    start_time = time.time()

    logger.info(
        f"External API call: {service_name}.{operation}",
        extra={
            "extra_data": {
                "service": service_name,
                "operation": operation,
                **metadata
            }
        }
    )

    try:
        yield

        execution_time = (time.time() - start_time) * 1000
        log = logger.warning if execution_time > SLOW_EXTERNAL_CALL_MS else logger.info
        log(
            f"External API call succeeded: {service_name}.{operation}",
            extra={
                "extra_data": {
                    "service": service_name,
                    "operation": operation,
                    "execution_time_ms": int(execution_time),
                    "status": "success",
                    **metadata
                }
            }
        )

    except Exception as e:
        execution_time = (time.time() - start_time) * 1000
        logger.error(
            f"External API call failed: {service_name}.{operation}",
            extra={
                "extra_data": {
                    "service": service_name,
                    "operation": operation,
                    "execution_time_ms": int(execution_time),
                    "status": "failed",
                    "error": str(e),
                    **metadata
                }
            }
        )
        raise
