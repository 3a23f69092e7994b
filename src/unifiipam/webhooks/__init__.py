"""
Admission hooks for the resource store.

Provides the validation and defaulting rules for pools and instances and
a helper to register them on a store.
"""

from unifiipam.constants import INSTANCE_KIND, POOL_KIND
from unifiipam.webhooks.instance import InstanceAdmission
from unifiipam.webhooks.pool import PoolAdmission


def register_webhooks(store) -> None:
    """Install the pool and instance admission hooks on a store."""
    store.register_admission(POOL_KIND, PoolAdmission(store))
    store.register_admission(INSTANCE_KIND, InstanceAdmission(store))


__all__ = [
    "InstanceAdmission",
    "PoolAdmission",
    "register_webhooks",
]
