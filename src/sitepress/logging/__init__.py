"""Logging helpers for Sitepress."""

from .setup import LOGGER_NAME, RunLoggerAdapter, configure_logging, run_logger

__all__ = ["LOGGER_NAME", "RunLoggerAdapter", "configure_logging", "run_logger"]
