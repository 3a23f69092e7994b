"""
Cross-resource lookups used by the reconcilers and admission hooks.

References are matched by name, kind and API group within one namespace.
"""

from unifiipam.constants import API_GROUP, POOL_KIND
from unifiipam.models.resources import Address, Claim, Pool
from unifiipam.store.resources import ResourceStore


def _references_pool(ref, pool_name: str) -> bool:
    return ref.name == pool_name and ref.kind == POOL_KIND and ref.api_group == API_GROUP


async def addresses_for_pool(
    store: ResourceStore, namespace: str, pool_name: str
) -> list[Address]:
    """Addresses in the namespace whose pool reference names this pool."""
    addresses = await store.list(Address, namespace=namespace)
    return [a for a in addresses if _references_pool(a.spec.pool_ref, pool_name)]


async def claims_for_pool(
    store: ResourceStore, namespace: str, pool_name: str
) -> list[Claim]:
    claims = await store.list(Claim, namespace=namespace)
    return [c for c in claims if _references_pool(c.spec.pool_ref, pool_name)]


async def pools_for_instance(
    store: ResourceStore, namespace: str, instance_name: str
) -> list[Pool]:
    """Pools in any namespace referencing the instance namespace/name."""
    pools = await store.list(Pool)
    return [p for p in pools if p.instance_key == (namespace, instance_name)]
