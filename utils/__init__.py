"""
Utility modules for the ops console.
"""

from .formatting import format_change_message, format_status_message, format_value
from .config import Config

__all__ = ["format_change_message", "format_status_message", "format_value", "Config"]
