"""
NATS Adapters

Provides NATS client wrappers for publishing stack reports.
"""

from reporting.adapters.nats_client import NatsClient, NatsConfig, Topics

__all__ = ["NatsClient", "NatsConfig", "Topics"]
