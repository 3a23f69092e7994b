"""
Pool Endpoints.

CRUD for UniFi IP pools. Status is maintained by the pool reconciler and
is ignored on writes.
"""

from fastapi import APIRouter, Query

from unifiipam.models.requests import StatusResponse
from unifiipam.models.resources import Pool
from unifiipam.server.endpoints.common import bind_path, require_store, store_errors
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/pools", response_model=list[Pool])
async def list_pools(namespace: str | None = Query(None, description="Namespace filter")):
    return await require_store().list(Pool, namespace=namespace)


@router.get("/namespaces/{namespace}/pools/{name}", response_model=Pool)
async def get_pool(namespace: str, name: str):
    with store_errors():
        return await require_store().get(Pool, namespace, name)


@router.post("/namespaces/{namespace}/pools", response_model=Pool, status_code=201)
async def create_pool(namespace: str, pool: Pool):
    """
    Create a pool.

    Raises:
        HTTPException: 409 if it exists, 422 if admission denies it.
    """
    bind_path(pool, namespace)
    with store_errors():
        created = await require_store().create(pool)
    logger.info(f"Pool {namespace}/{created.name} created")
    return created


@router.put("/namespaces/{namespace}/pools/{name}", response_model=Pool)
async def update_pool(namespace: str, name: str, pool: Pool):
    """
    Update a pool's metadata and spec.

    The body must carry the current ``metadata.resource_version``.
    """
    bind_path(pool, namespace, name)
    with store_errors():
        return await require_store().update(pool)


@router.delete("/namespaces/{namespace}/pools/{name}", response_model=StatusResponse)
async def delete_pool(namespace: str, name: str):
    with store_errors():
        await require_store().delete(Pool, namespace, name)
    logger.info(f"Pool {namespace}/{name} deletion requested")
    return StatusResponse(
        message=f"Deletion of pool {name} requested.",
        kind=Pool.KIND,
        namespace=namespace,
        name=name,
    )
