"""
IP Address Endpoints.

Read-only: addresses are created and deleted by the claim reconciler.
"""

from fastapi import APIRouter, Query

from unifiipam.models.resources import Address
from unifiipam.server.endpoints.common import require_store, store_errors
from unifiipam.store.lookups import addresses_for_pool

router = APIRouter()


@router.get("/addresses", response_model=list[Address])
async def list_addresses(
    namespace: str | None = Query(None, description="Namespace filter"),
    pool: str | None = Query(None, description="Only addresses of this pool"),
):
    store = require_store()
    if pool and namespace:
        return await addresses_for_pool(store, namespace, pool)

    addresses = await store.list(Address, namespace=namespace)
    if pool:
        addresses = [a for a in addresses if a.spec.pool_ref.name == pool]
    return addresses


@router.get("/namespaces/{namespace}/addresses/{name}", response_model=Address)
async def get_address(namespace: str, name: str):
    with store_errors():
        return await require_store().get(Address, namespace, name)
