"""
Secret Endpoints.

Secrets hold controller API keys. Values are write-only: reads return the
key names only.
"""

from fastapi import APIRouter

from unifiipam.models.requests import SecretResponse, StatusResponse
from unifiipam.models.resources import Secret
from unifiipam.server.endpoints.common import bind_path, require_store, store_errors

router = APIRouter()


def _redact(secret: Secret) -> SecretResponse:
    return SecretResponse(metadata=secret.metadata, keys=sorted(secret.data))


@router.get("/namespaces/{namespace}/secrets", response_model=list[SecretResponse])
async def list_secrets(namespace: str):
    return [_redact(s) for s in await require_store().list(Secret, namespace=namespace)]


@router.get("/namespaces/{namespace}/secrets/{name}", response_model=SecretResponse)
async def get_secret(namespace: str, name: str):
    with store_errors():
        return _redact(await require_store().get(Secret, namespace, name))


@router.post(
    "/namespaces/{namespace}/secrets", response_model=SecretResponse, status_code=201
)
async def create_secret(namespace: str, secret: Secret):
    bind_path(secret, namespace)
    with store_errors():
        return _redact(await require_store().create(secret))


@router.put("/namespaces/{namespace}/secrets/{name}", response_model=SecretResponse)
async def update_secret(namespace: str, name: str, secret: Secret):
    bind_path(secret, namespace, name)
    with store_errors():
        return _redact(await require_store().update(secret))


@router.delete("/namespaces/{namespace}/secrets/{name}", response_model=StatusResponse)
async def delete_secret(namespace: str, name: str):
    with store_errors():
        await require_store().delete(Secret, namespace, name)
    return StatusResponse(
        message=f"Secret {name} deleted.",
        kind=Secret.KIND,
        namespace=namespace,
        name=name,
    )
