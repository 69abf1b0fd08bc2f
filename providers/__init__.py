"""
Providers

Simulated providers that stand in for cloud and cluster APIs.
"""

from .base import InMemoryProvider, ResourceRecord

__all__ = [
    "InMemoryProvider",
    "ResourceRecord",
]
