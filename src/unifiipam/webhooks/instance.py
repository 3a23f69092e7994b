"""Admission rules for UniFi controller instances."""

import re
from urllib.parse import urlparse

from unifiipam.constants import CREDENTIALS_API_KEY, DEFAULT_SITE, SKIP_VALIDATE_DELETE_ANNOTATION
from unifiipam.models.resources import Instance, Secret
from unifiipam.store.errors import FieldError
from unifiipam.store.lookups import pools_for_instance
from unifiipam.store.resources import ResourceStore
from unifiipam.webhooks.field import deny_if_errors, forbidden, invalid, not_found, required

SITE_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_host(host: str) -> list[FieldError]:
    if not host:
        return [required("spec.host", "host is required")]
    parsed = urlparse(host)
    if parsed.scheme not in ("http", "https"):
        return [invalid("spec.host", host, "must use http or https scheme")]
    if not parsed.hostname:
        return [invalid("spec.host", host, "must include a host")]
    return []


def validate_site(site: str) -> list[FieldError]:
    if not SITE_NAME_RE.match(site):
        return [
            invalid(
                "spec.site",
                site,
                "may only contain letters, digits, dashes and underscores",
            )
        ]
    return []


class InstanceAdmission:
    """Admission hook for instances."""

    def __init__(self, store: ResourceStore):
        self.store = store

    async def default(self, obj: Instance) -> None:
        if not obj.spec.site:
            obj.spec.site = DEFAULT_SITE

    async def validate_create(self, obj: Instance) -> None:
        deny_if_errors(obj, await self._validate(obj))

    async def validate_update(self, old: Instance, new: Instance) -> None:
        await self.default(new)
        deny_if_errors(new, await self._validate(new))

    async def validate_delete(self, obj: Instance) -> None:
        if SKIP_VALIDATE_DELETE_ANNOTATION in obj.metadata.annotations:
            return
        pools = await pools_for_instance(self.store, obj.namespace, obj.name)
        if pools:
            names = ", ".join(f"{p.namespace}/{p.name}" for p in pools)
            deny_if_errors(
                obj,
                [forbidden("metadata", f"instance is referenced by pools: {names}")],
            )

    async def _validate(self, obj: Instance) -> list[FieldError]:
        errors = validate_host(obj.spec.host)
        errors.extend(validate_site(obj.spec.site))
        errors.extend(await self._validate_credentials_ref(obj))
        return errors

    async def _validate_credentials_ref(self, obj: Instance) -> list[FieldError]:
        if not obj.spec.credentials_ref.name:
            return [
                required(
                    "spec.credentials_ref.name", "credentials_ref.name is required"
                )
            ]
        namespace, name = obj.credentials_key
        secret = await self.store.get_or_none(Secret, namespace, name)
        if secret is None:
            return [not_found("spec.credentials_ref", f"{namespace}/{name}")]
        if not secret.data.get(CREDENTIALS_API_KEY):
            return [
                invalid(
                    "spec.credentials_ref",
                    name,
                    f"referenced secret must contain '{CREDENTIALS_API_KEY}' field",
                )
            ]
        return []
