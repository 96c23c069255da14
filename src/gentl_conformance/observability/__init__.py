"""Observability module for gentl-conformance.

Provides structured logging for discovery, configuration building, spec
caching and test execution.

Example:
    from gentl_conformance.observability import get_logger, LogContext

    logger = get_logger(__name__)

    logger.info("Run started")

    with LogContext(test_file="tAcquisition", device_id=1):
        logger.info("Setup complete", spec_key="gentl_Cam_Mono8")
"""

from gentl_conformance.observability.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
    run_log_path,
)

__all__ = [
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "run_log_path",
]
