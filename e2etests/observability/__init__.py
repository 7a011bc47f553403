"""Observability for e2etests: loguru sinks and formats."""

from e2etests.observability.logging import LogConfig, setup_logging, teardown_logging

__all__ = ["LogConfig", "setup_logging", "teardown_logging"]
