"""
Status API

HTTP view over a stack coordinator.
"""

from reporting.api.main import create_app

__all__ = ["create_app"]
