"""
HTTP surface of the workflow engine.
"""

from .routes import router

__all__ = ["router"]
