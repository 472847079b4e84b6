"""
Utility modules for the pull request builder.
"""

from prbuilder.utils.logging import (
    get_logger,
    setup_logging,
    log_build_event,
    log_api_call,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "log_build_event",
    "log_api_call",
]
