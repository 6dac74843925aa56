"""
HTTP surface of the matchmaking feature.
"""

from .errors import register_exception_handlers
from .router import router

__all__ = ["register_exception_handlers", "router"]
