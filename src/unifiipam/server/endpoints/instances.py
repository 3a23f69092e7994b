"""
Controller Instance Endpoints.

CRUD for UniFi controller instances. Readiness is reported by the instance
reconciler once the referenced credentials have been validated.
"""

from fastapi import APIRouter, Query

from unifiipam.models.requests import StatusResponse
from unifiipam.models.resources import Instance
from unifiipam.server.endpoints.common import bind_path, require_store, store_errors
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/instances", response_model=list[Instance])
async def list_instances(namespace: str | None = Query(None, description="Namespace filter")):
    return await require_store().list(Instance, namespace=namespace)


@router.get("/namespaces/{namespace}/instances/{name}", response_model=Instance)
async def get_instance(namespace: str, name: str):
    with store_errors():
        return await require_store().get(Instance, namespace, name)


@router.post("/namespaces/{namespace}/instances", response_model=Instance, status_code=201)
async def create_instance(namespace: str, instance: Instance):
    bind_path(instance, namespace)
    with store_errors():
        created = await require_store().create(instance)
    logger.info(f"Instance {namespace}/{created.name} created for {created.spec.host}")
    return created


@router.put("/namespaces/{namespace}/instances/{name}", response_model=Instance)
async def update_instance(namespace: str, name: str, instance: Instance):
    bind_path(instance, namespace, name)
    with store_errors():
        return await require_store().update(instance)


@router.delete("/namespaces/{namespace}/instances/{name}", response_model=StatusResponse)
async def delete_instance(namespace: str, name: str):
    with store_errors():
        await require_store().delete(Instance, namespace, name)
    logger.info(f"Instance {namespace}/{name} deleted")
    return StatusResponse(
        message=f"Instance {name} deleted.",
        kind=Instance.KIND,
        namespace=namespace,
        name=name,
    )
