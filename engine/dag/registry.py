"""
Provider Registry

Maps resource type packages to the providers that create them.
"""

from typing import Dict
import logging

from ..errors import ConstructionError
from .node import Provider, ResourceId

logger = logging.getLogger(__name__)


class ProviderRegistry:
    """
    Registry of providers keyed by resource type package.

    A resource type "kubernetes:core/v1:Service" belongs to package
    "kubernetes"; every node of that package is invoked through the provider
    registered for it.

    Example usage:
        registry = ProviderRegistry()
        registry.register("kubernetes", KubernetesProvider())

        provider = registry.resolve("kubernetes:apps/v1:Deployment")
    """

    def __init__(self):
        """Initialize empty registry"""
        self._providers: Dict[str, Provider] = {}
        logger.debug("Initialized ProviderRegistry")

    def register(self, package: str, provider: Provider) -> None:
        """
        Register a provider for a package.

        Args:
            package: Package prefix (e.g., "awsx", "eks", "kubernetes")
            provider: Object implementing the Provider protocol
        """
        if package in self._providers:
            logger.warning(f"Overwriting existing provider for package: {package}")

        self._providers[package] = provider
        logger.info(f"Registered provider for package: {package}")

    def resolve(self, resource_type: str) -> Provider:
        """
        Find the provider for a resource type.

        Raises:
            ConstructionError: If no provider is registered for the type's package
        """
        package = ResourceId(type=resource_type, name="").package
        if package not in self._providers:
            available = ", ".join(self._providers.keys())
            raise ConstructionError(
                f"No provider registered for resource type: {resource_type}. "
                f"Available packages: {available if available else 'none'}"
            )
        return self._providers[package]

    def list_packages(self) -> list[str]:
        """List all registered packages."""
        return list(self._providers.keys())

    def is_registered(self, package: str) -> bool:
        """Check if a package has a provider."""
        return package in self._providers
