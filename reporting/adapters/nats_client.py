"""
NATS Client Adapter

Publishes node snapshots and stack exports to NATS after a resolution pass.
Reporting is fire-and-forget: the stack has already resolved by the time
anything is published.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

import nats
from nats.aio.client import Client as NatsConnection

logger = logging.getLogger(__name__)


@dataclass
class NatsConfig:
    """Where stack reports go"""
    servers: List[str] = field(default_factory=lambda: ["nats://localhost:4222"])
    name: str = "stackgraph"

    @classmethod
    def from_env(cls, prefix: str = "NATS") -> "NatsConfig":
        """Read NATS_SERVERS (comma-separated) and NATS_CLIENT_NAME"""
        servers = os.getenv(f"{prefix}_SERVERS", "nats://localhost:4222")
        return cls(
            servers=[s.strip() for s in servers.split(",") if s.strip()],
            name=os.getenv(f"{prefix}_CLIENT_NAME", "stackgraph"),
        )


class NatsClient:
    """
    Publisher for stack reports.

    Topic Patterns:
    - stacks.{stack}.nodes.{type}.{name} - Node snapshot after resolution
    - stacks.{stack}.exports             - Stack exports

    Example usage:
        client = NatsClient(NatsConfig.from_env())
        await client.connect()
        await client.publish_json(Topics.exports("dev"), payload)
        await client.close()
    """

    def __init__(self, config: Optional[NatsConfig] = None):
        self.config = config or NatsConfig()
        self._nc: Optional[NatsConnection] = None

    @property
    def is_connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def connect(self) -> None:
        """
        Connect to the configured servers.

        Raises:
            Exception: Whatever nats-py raises when no server is reachable
        """
        if self.is_connected:
            return

        async def on_error(e):
            logger.error(f"NATS error while reporting: {e}")

        async def on_disconnected():
            logger.warning(f"Reporting connection to {self.config.servers} lost")

        self._nc = await nats.connect(
            servers=self.config.servers,
            name=self.config.name,
            error_cb=on_error,
            disconnected_cb=on_disconnected,
        )
        logger.info(f"Reporting to NATS at {self.config.servers} as {self.config.name}")

    async def close(self) -> None:
        """Flush pending reports and disconnect."""
        if self._nc is None:
            return
        await self._nc.drain()
        self._nc = None
        logger.info("Reporting connection closed")

    async def publish_json(self, subject: str, data: str) -> None:
        """
        Publish a JSON document.

        Raises:
            RuntimeError: If not connected
        """
        if not self.is_connected:
            raise RuntimeError("NATS client not connected")
        payload = data.encode("utf-8")
        await self._nc.publish(subject, payload)
        logger.debug(f"Published {len(payload)} bytes to {subject}")


class Topics:
    """NATS topic name builders"""

    @staticmethod
    def _sanitize(name: str) -> str:
        """
        Sanitize a name for use as one NATS topic segment.

        Only alphanumerics, hyphens and underscores are kept; anything else,
        including the ':' and '/' of resource types, becomes an underscore.
        """
        return "".join(c if c.isalnum() or c in "-_" else "_" for c in name)

    @staticmethod
    def node_state(stack: str, resource_type: str, name: str) -> str:
        """Snapshot topic for one node"""
        return (
            f"stacks.{Topics._sanitize(stack)}.nodes."
            f"{Topics._sanitize(resource_type)}.{Topics._sanitize(name)}"
        )

    @staticmethod
    def exports(stack: str) -> str:
        """Exports topic for a stack"""
        return f"stacks.{Topics._sanitize(stack)}.exports"
