"""
Instance reconciler.

Validates the credentials of one controller instance and publishes the
outcome as ``status.ready`` plus a Ready condition. Pools and claims only
talk to instances that are ready.
"""

from unifiipam.constants import CREDENTIALS_API_KEY
from unifiipam.controllers.provider import ProviderConnector
from unifiipam.controllers.runtime import Result
from unifiipam.models.enums import ConditionReason, ConditionType
from unifiipam.models.resources import Instance, Secret, set_condition, utcnow
from unifiipam.server.config import ManagerConfig
from unifiipam.store.resources import ResourceStore
from unifiipam.unifi.client import ProviderAPIError, ProviderError
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)


class InstanceReconciler:
    """Checks instance credentials against the controller."""

    def __init__(
        self,
        store: ResourceStore,
        connector: ProviderConnector,
        config: ManagerConfig,
    ):
        self.store = store
        self.connector = connector
        self.config = config

    async def reconcile(self, key: tuple[str, str]) -> Result:
        namespace, name = key
        instance = await self.store.get_or_none(Instance, namespace, name)
        if instance is None or instance.deleting:
            return Result()

        reason, message = await self._validate(instance)
        was_ready = instance.status.ready
        await self._publish(instance, reason, message)

        if reason is not ConditionReason.CREDENTIALS_VALID:
            if was_ready:
                logger.warning(f"Instance {namespace}/{name} is no longer ready: {message}")
            return Result(requeue_after=self.config.DEPENDENCY_RETRY_SECONDS)

        if not was_ready:
            logger.info(f"Instance {namespace}/{name} is ready ({instance.spec.host})")
        return Result(requeue_after=self.config.POOL_SYNC_INTERVAL_SECONDS)

    async def _validate(self, instance: Instance) -> tuple[ConditionReason, str]:
        secret_namespace, secret_name = instance.credentials_key
        secret = await self.store.get_or_none(Secret, secret_namespace, secret_name)
        if secret is None:
            return (
                ConditionReason.SECRET_NOT_FOUND,
                f"secret {secret_namespace}/{secret_name} not found",
            )

        api_key = secret.data.get(CREDENTIALS_API_KEY, "")
        if not api_key:
            return (
                ConditionReason.INVALID_CREDENTIALS,
                f"secret {secret_namespace}/{secret_name} has no {CREDENTIALS_API_KEY}",
            )

        try:
            client = self.connector.client_for(instance, api_key)
        except (ValueError, TypeError) as e:
            return ConditionReason.CLIENT_CREATION_FAILED, f"cannot create client: {e}"

        try:
            async with client:
                await client.validate_credentials()
        except ProviderAPIError as e:
            if e.unauthorized:
                return ConditionReason.INVALID_CREDENTIALS, str(e)
            return ConditionReason.CREDENTIALS_VALIDATION_FAILED, str(e)
        except ProviderError as e:
            return ConditionReason.CREDENTIALS_VALIDATION_FAILED, str(e)

        return ConditionReason.CREDENTIALS_VALID, f"connected to {instance.spec.host}"

    async def _publish(
        self, instance: Instance, reason: ConditionReason, message: str
    ) -> None:
        status = instance.status
        ready = reason is ConditionReason.CREDENTIALS_VALID

        status.ready = ready
        status.failure_reason = None if ready else reason.value
        status.failure_message = None if ready else message
        status.last_sync_time = utcnow()
        set_condition(
            status.conditions,
            ConditionType.READY,
            ready,
            reason.value,
            message,
            instance.metadata.generation,
        )
        await self.store.update_status(instance)
