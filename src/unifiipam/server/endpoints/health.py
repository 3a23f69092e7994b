"""
Health Endpoint.

Reports server uptime, whether the controllers run in this process and
how many resources of each kind are stored.
"""

import time

from fastapi import APIRouter

from unifiipam.models.requests import HealthResponse
from unifiipam.models.resources import RESOURCE_KINDS
from unifiipam.server.endpoints.common import require_store
from unifiipam.server.state import get_manager

VERSION = "0.1.0"

_started = time.monotonic()

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health():
    store = require_store()
    counts = {kind: len(await store.list(cls)) for kind, cls in RESOURCE_KINDS.items()}
    return HealthResponse(
        status="ok",
        version=VERSION,
        uptime_seconds=round(time.monotonic() - _started, 3),
        controllers_running=get_manager() is not None,
        resources=counts,
    )
