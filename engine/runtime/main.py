"""
Stack Runtime - Main Entry Point

Resolves one stack: loads its YAML config, declares the program's resources,
resolves them through the registered providers, and reports the outcome.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import uvicorn

from engine.dag.registry import ProviderRegistry
from engine.errors import ConstructionError
from engine.runtime.coordinator import StackCoordinator
from providers.cloud import CloudProvider
from providers.kubernetes import KubernetesProvider
from reporting.adapters.nats_client import NatsClient, NatsConfig
from reporting.api.main import create_app
from stacks import PROGRAMS

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def setup_provider_registry() -> ProviderRegistry:
    """
    Set up provider registry and register all available providers.

    Returns:
        Configured ProviderRegistry
    """
    registry = ProviderRegistry()

    cloud = CloudProvider(region=os.getenv("CLOUD_REGION", "us-west-2"))
    registry.register("awsx", cloud)
    registry.register("eks", cloud)
    registry.register("kubernetes", KubernetesProvider())

    logger.info(
        f"Registered {len(registry.list_packages())} provider packages: "
        f"{registry.list_packages()}"
    )

    return registry


async def main() -> int:
    """
    Main entry point for the stack runtime.

    Environment Variables:
        STACK: Stack name (default: "guestbook-local")
        CONFIG_DIR: Config directory path (default: "config")
        NATS_SERVERS: NATS server URLs (default: "nats://localhost:4222")
        NATS_CLIENT_NAME: NATS client name (default: "stackgraph")
        REPORT_API_PORT: Serve the status API on this port after resolving

    Returns:
        Process exit code: 0 if every node resolved, 1 otherwise
    """
    stack = os.getenv("STACK", "guestbook-local")
    config_dir = Path(os.getenv("CONFIG_DIR", "config"))
    api_port = os.getenv("REPORT_API_PORT")

    logger.info("=" * 60)
    logger.info("Stack Runtime Starting")
    logger.info("=" * 60)
    logger.info(f"Stack: {stack}")
    logger.info(f"Config Directory: {config_dir}")

    registry = setup_provider_registry()

    try:
        coordinator = StackCoordinator(
            stack=stack,
            config_dir=config_dir,
            registry=registry,
            programs=PROGRAMS,
        )
    except ConstructionError as e:
        logger.error(f"Cannot construct stack {stack}: {e}")
        return 1

    nats_client: Optional[NatsClient] = None
    if coordinator.stack_config.reporting.nats_enabled:
        logger.info("Connecting to NATS...")
        nats_client = NatsClient(NatsConfig.from_env())
        await nats_client.connect()
        coordinator.nats = nats_client

    try:
        result = await coordinator.run()

        for name, record in coordinator.exports().items():
            if record.status == "resolved":
                logger.info(f"Export {name}: {record.value}")
            else:
                logger.warning(f"Export {name}: {record.status} {record.error or ''}".rstrip())

        metrics = coordinator.get_metrics()
        logger.info(
            f"Metrics [{stack}]: "
            f"{metrics['nodes']} nodes, "
            f"states: {metrics['node_states']}, "
            f"provider invocations: {metrics['provider_invocations']}"
        )

        if api_port:
            app = create_app(coordinator)
            host = os.getenv("HOST", "0.0.0.0")
            logger.info(f"Serving status API on {host}:{api_port}")
            server = uvicorn.Server(uvicorn.Config(app, host=host, port=int(api_port)))
            await server.serve()

        return 0 if result.succeeded else 1

    except KeyboardInterrupt:
        logger.info("Shutting down...")
        coordinator.engine.abort()
        return 1
    finally:
        if nats_client is not None:
            await nats_client.close()

        logger.info("Stack runtime stopped")


def run() -> None:
    """Console script entry point"""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
