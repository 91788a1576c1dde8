"""
Provider registry for dynamic backend lookup.

This module implements the Registry pattern, providing a central place
to register and retrieve backend bindings by name.

How Registration Works:
    Each backend package (e.g., providers/aws/__init__.py) imports this
    registry and calls register() when the module loads:

        # In providers/aws/__init__.py
        from cloudship.core.registry import ProviderRegistry
        from .provider import AWSFargateProvider
        ProviderRegistry.register("aws-fargate", AWSFargateProvider)

    Importing cloudship.providers triggers registration of all backends.
"""

from typing import Dict, Type, TYPE_CHECKING

if TYPE_CHECKING:
    from .protocols import CloudProvider

from .exceptions import ProviderNotFoundError


class ProviderRegistry:
    """
    Central registry for backend bindings.

    Class-level state is used because providers register themselves at
    import time, before any instances are created.

    Example Usage:
        ProviderRegistry.register("aws-fargate", AWSFargateProvider)

        provider = ProviderRegistry.get("aws-fargate")
        provider.initialize_clients(spec)

        available = ProviderRegistry.list_providers()
    """

    # Key: backend id, Value: provider class (not instance)
    _providers: Dict[str, Type['CloudProvider']] = {}

    @classmethod
    def register(cls, name: str, provider_class: Type['CloudProvider']) -> None:
        """
        Register a provider class under a name.

        Registering the same name twice with the same class is allowed;
        a different class raises.

        Raises:
            ValueError: If name is already registered with a different class
        """
        if name in cls._providers:
            existing_class = cls._providers[name]
            if existing_class is not provider_class:
                raise ValueError(
                    f"Provider '{name}' is already registered with {existing_class.__name__}. "
                    f"Cannot re-register with {provider_class.__name__}."
                )
            return

        cls._providers[name] = provider_class

    @classmethod
    def get(cls, name: str) -> 'CloudProvider':
        """
        Get a new instance of the named provider.

        Providers are not singletons: each Deployer gets its own instance
        bound to its own DeploymentSpec.

        Raises:
            ProviderNotFoundError: If no provider is registered with that name.
        """
        if name not in cls._providers:
            raise ProviderNotFoundError(name, cls.list_providers())

        provider_class = cls._providers[name]
        return provider_class()

    @classmethod
    def list_providers(cls) -> list[str]:
        """List all registered provider names, sorted alphabetically."""
        return sorted(cls._providers.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._providers

    @classmethod
    def clear(cls) -> None:
        """
        Clear all registered providers.

        Used by tests to reset state. Should not be called in production code.
        """
        cls._providers.clear()
