"""
Helpers shared by the resource endpoints.

Maps store errors onto HTTP status codes:

    NotFoundError          -> 404
    AlreadyExistsError     -> 409
    ConflictError          -> 409
    AdmissionDeniedError   -> 422 (with field details)
"""

from contextlib import contextmanager

from fastapi import HTTPException

from unifiipam.models.requests import FieldErrorDetail, FieldErrorResponse
from unifiipam.models.resources import Resource
from unifiipam.server.state import get_store
from unifiipam.store.errors import (
    AdmissionDeniedError,
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
)
from unifiipam.store.resources import ResourceStore


def require_store() -> ResourceStore:
    store = get_store()
    if store is None:
        raise HTTPException(status_code=503, detail="Resource store not initialized.")
    return store


@contextmanager
def store_errors():
    """Translate store exceptions raised inside the block to HTTP errors."""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (AlreadyExistsError, ConflictError) as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except AdmissionDeniedError as e:
        response = FieldErrorResponse(
            kind=e.kind,
            name=e.name,
            detail=[FieldErrorDetail(field=err.field, message=err.message) for err in e.errors],
        )
        raise HTTPException(status_code=422, detail=response.model_dump()) from e


def bind_path(obj: Resource, namespace: str, name: str | None = None) -> None:
    """
    Force the body's namespace to the path and check its name.

    Raises:
        HTTPException: 400 if the body names a different object.
    """
    obj.metadata.namespace = namespace
    if name is not None and obj.metadata.name != name:
        raise HTTPException(
            status_code=400,
            detail=f"Body name '{obj.metadata.name}' does not match path name '{name}'.",
        )
