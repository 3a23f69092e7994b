"""
Provider client construction.

Reconcilers never hold long-lived controller connections: each reconcile
reads the instance's credentials secret and opens a fresh client, used as
an async context manager.
"""

from collections.abc import Callable
from typing import Any

from unifiipam.constants import CREDENTIALS_API_KEY
from unifiipam.ipam.exceptions import InstanceNotReadyError
from unifiipam.models.resources import Instance, Secret
from unifiipam.server.config import ManagerConfig
from unifiipam.store.resources import ResourceStore
from unifiipam.unifi.client import UnifiClient

ClientFactory = Callable[..., Any]


class ProviderConnector:
    """
    Builds provider clients for instances.

    Args:
        store: Resource store holding instances and secrets.
        config: Manager configuration (timeouts).
        factory: Client class or factory taking ``host``, ``api_key``,
            ``site``, ``insecure`` and ``timeout`` keyword arguments.
    """

    def __init__(
        self,
        store: ResourceStore,
        config: ManagerConfig,
        factory: ClientFactory = UnifiClient,
    ):
        self.store = store
        self.config = config
        self.factory = factory

    async def api_key(self, instance: Instance) -> str:
        """
        Read the API key from the instance's credentials secret.

        Raises:
            InstanceNotReadyError: Secret missing or without an API key.
        """
        namespace, name = instance.credentials_key
        secret = await self.store.get_or_none(Secret, namespace, name)
        if secret is None:
            raise InstanceNotReadyError(
                instance.namespace, instance.name, f"secret {namespace}/{name} not found"
            )
        api_key = secret.data.get(CREDENTIALS_API_KEY, "")
        if not api_key:
            raise InstanceNotReadyError(
                instance.namespace,
                instance.name,
                f"secret {namespace}/{name} has no {CREDENTIALS_API_KEY}",
            )
        return api_key

    def client_for(self, instance: Instance, api_key: str):
        return self.factory(
            host=instance.spec.host,
            api_key=api_key,
            site=instance.spec.site,
            insecure=instance.spec.insecure,
            timeout=self.config.PROVIDER_TIMEOUT_SECONDS,
        )

    async def connect(self, instance: Instance):
        """Client for a ready instance."""
        if not instance.status.ready:
            raise InstanceNotReadyError(instance.namespace, instance.name)
        return self.client_for(instance, await self.api_key(instance))

    async def connect_pool_instance(self, namespace: str, name: str):
        """
        Client for the instance a pool references.

        Raises:
            InstanceNotReadyError: Instance missing, not ready, or without
                usable credentials.
        """
        instance = await self.store.get_or_none(Instance, namespace, name)
        if instance is None:
            raise InstanceNotReadyError(namespace, name, "not found")
        return await self.connect(instance)
