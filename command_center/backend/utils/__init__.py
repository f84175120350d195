"""Utility functions and response helpers."""

from .log_progress import parse_log_progress
from .responses import error_response, success_response

__all__ = ["success_response", "error_response", "parse_log_progress"]
