"""
Address Claim Endpoints.

Claims are created by consumers; the claim reconciler binds each one to
an address and reports it in ``status.address_ref``.
"""

from fastapi import APIRouter, Query

from unifiipam.models.requests import StatusResponse
from unifiipam.models.resources import Claim
from unifiipam.server.endpoints.common import bind_path, require_store, store_errors
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/claims", response_model=list[Claim])
async def list_claims(namespace: str | None = Query(None, description="Namespace filter")):
    return await require_store().list(Claim, namespace=namespace)


@router.get("/namespaces/{namespace}/claims/{name}", response_model=Claim)
async def get_claim(namespace: str, name: str):
    with store_errors():
        return await require_store().get(Claim, namespace, name)


@router.post("/namespaces/{namespace}/claims", response_model=Claim, status_code=201)
async def create_claim(namespace: str, claim: Claim):
    bind_path(claim, namespace)
    with store_errors():
        created = await require_store().create(claim)
    logger.info(f"Claim {namespace}/{created.name} created for pool {created.spec.pool_ref.name}")
    return created


@router.put("/namespaces/{namespace}/claims/{name}", response_model=Claim)
async def update_claim(namespace: str, name: str, claim: Claim):
    bind_path(claim, namespace, name)
    with store_errors():
        return await require_store().update(claim)


@router.delete("/namespaces/{namespace}/claims/{name}", response_model=StatusResponse)
async def delete_claim(namespace: str, name: str):
    """
    Request deletion of a claim.

    The claim stays visible, with a deletion timestamp, until its address
    has been released.
    """
    with store_errors():
        await require_store().delete(Claim, namespace, name)
    logger.info(f"Claim {namespace}/{name} deletion requested")
    return StatusResponse(
        message=f"Deletion of claim {name} requested.",
        kind=Claim.KIND,
        namespace=namespace,
        name=name,
    )
