"""
Admission rules for pools.

Rejects malformed subnet declarations before they are persisted so the
allocator and the status engine only ever see parseable pools. Updates
that would strand bound addresses and deletes of pools still in use are
refused as well.
"""

import ipaddress

from unifiipam.constants import SKIP_VALIDATE_DELETE_ANNOTATION
from unifiipam.ipam.addrset import (
    contains,
    parse_address,
    parse_exclude,
    parse_network,
    subnet_bounds,
)
from unifiipam.ipam.allocator import pool_address_set
from unifiipam.ipam.exceptions import AddressParseError
from unifiipam.models.resources import Instance, Pool, PoolSpec, Subnet
from unifiipam.store.errors import FieldError
from unifiipam.store.lookups import addresses_for_pool
from unifiipam.store.resources import ResourceStore
from unifiipam.utils.logger import get_logger
from unifiipam.webhooks.field import deny_if_errors, forbidden, invalid, not_found, required

logger = get_logger(__name__)


def _max_prefix(version: int) -> int:
    return 32 if version == 4 else 128


# =============================================================================
# Subnet Rules
# =============================================================================


def validate_subnet(subnet: Subnet, spec: PoolSpec, path: str) -> list[FieldError]:
    """
    Validate one subnet declaration.

    Args:
        subnet: Subnet to check.
        spec: Owning pool spec (for pool-level prefix defaults).
        path: Field path of the subnet, e.g. ``spec.subnets[0]``.
    """
    errors: list[FieldError] = []
    has_cidr = bool(subnet.cidr)
    has_range = bool(subnet.start or subnet.end)

    if has_cidr and has_range:
        errors.append(forbidden(path, "cidr and start/end are mutually exclusive"))
        return errors
    if not has_cidr and not has_range:
        errors.append(required(path, "either cidr or start/end must be set"))
        return errors

    block = None
    if has_cidr:
        try:
            block = parse_network(subnet.cidr, strict=False)
        except AddressParseError as e:
            errors.append(invalid(f"{path}.cidr", subnet.cidr, str(e)))
            return errors
    else:
        if not subnet.start:
            errors.append(required(f"{path}.start", "start is required with end"))
        if not subnet.end:
            errors.append(required(f"{path}.end", "end is required with start"))
        if errors:
            return errors
        try:
            subnet_bounds(subnet)
        except AddressParseError as e:
            errors.append(invalid(f"{path}.start", subnet.start, str(e)))
            return errors

    errors.extend(_validate_prefix(subnet, block, path))
    if errors:
        return errors

    errors.extend(_validate_gateway(subnet, spec, block, path))
    errors.extend(_validate_excludes(subnet, block, path))
    errors.extend(validate_dns(subnet.dns_servers, f"{path}.dns_servers"))
    return errors


def _validate_prefix(subnet: Subnet, block, path: str) -> list[FieldError]:
    if subnet.prefix is None:
        return []
    version = block.version if block else parse_address(subnet.start).version
    if not 0 <= subnet.prefix <= _max_prefix(version):
        return [
            invalid(
                f"{path}.prefix",
                subnet.prefix,
                f"must be between 0 and {_max_prefix(version)}",
            )
        ]
    if block is not None and subnet.prefix != block.prefixlen:
        return [
            invalid(
                f"{path}.prefix",
                subnet.prefix,
                f"must match CIDR prefix length {block.prefixlen}",
            )
        ]
    return []


def _validate_gateway(subnet: Subnet, spec: PoolSpec, block, path: str) -> list[FieldError]:
    if not subnet.gateway:
        return []
    try:
        gateway = parse_address(subnet.gateway)
    except AddressParseError as e:
        return [invalid(f"{path}.gateway", subnet.gateway, str(e))]

    if block is not None:
        if gateway not in block:
            return [invalid(f"{path}.gateway", subnet.gateway, f"must be within {block}")]
        return []

    # Range form: the gateway may sit outside the range but inside its network
    start, end = subnet_bounds(subnet)
    prefix = subnet.prefix if subnet.prefix is not None else spec.prefix
    if prefix is not None and prefix <= _max_prefix(start.version):
        network = ipaddress.ip_network(f"{start}/{prefix}", strict=False)
        if gateway not in network:
            return [invalid(f"{path}.gateway", subnet.gateway, f"must be within {network}")]
        return []
    if gateway.version != start.version or not start <= gateway <= end:
        return [
            invalid(f"{path}.gateway", subnet.gateway, f"must be within {start}-{end}")
        ]
    return []


def _validate_excludes(subnet: Subnet, block, path: str) -> list[FieldError]:
    errors = []
    for i, entry in enumerate(subnet.exclude_ranges):
        entry_path = f"{path}.exclude_ranges[{i}]"
        try:
            lo, hi = parse_exclude(entry)
        except AddressParseError as e:
            errors.append(invalid(entry_path, entry, str(e)))
            continue

        if block is None:
            continue
        if "/" in entry:
            if not parse_network(entry, strict=False).overlaps(block):
                errors.append(invalid(entry_path, entry, f"does not overlap {block}"))
        elif lo not in block or hi not in block:
            errors.append(invalid(entry_path, entry, f"must be within {block}"))
    return errors


def validate_dns(servers: list[str], path: str) -> list[FieldError]:
    errors = []
    for i, server in enumerate(servers):
        try:
            parse_address(server)
        except AddressParseError as e:
            errors.append(invalid(f"{path}[{i}]", server, str(e)))
    return errors


# =============================================================================
# Pool Rules
# =============================================================================


def validate_pool_spec(spec: PoolSpec) -> list[FieldError]:
    """Validate everything that does not need a store lookup."""
    errors: list[FieldError] = []

    if spec.prefix is not None and not 0 <= spec.prefix <= 128:
        errors.append(invalid("spec.prefix", spec.prefix, "must be between 0 and 128"))
    if spec.gateway:
        try:
            parse_address(spec.gateway)
        except AddressParseError as e:
            errors.append(invalid("spec.gateway", spec.gateway, str(e)))
    errors.extend(validate_dns(spec.dns_servers, "spec.dns_servers"))

    if not spec.subnets:
        errors.append(required("spec.subnets", "at least one subnet is required"))
        return errors

    subnet_errors = []
    for i, subnet in enumerate(spec.subnets):
        subnet_errors.extend(validate_subnet(subnet, spec, f"spec.subnets[{i}]"))
    errors.extend(subnet_errors)

    if not subnet_errors:
        errors.extend(validate_pre_allocations(spec))
    return errors


def validate_pre_allocations(spec: PoolSpec) -> list[FieldError]:
    """Every pin must be a valid address inside the subnets, used only once."""
    errors = []
    seen: dict[ipaddress.IPv4Address | ipaddress.IPv6Address, str] = {}
    for claim_name, value in sorted(spec.pre_allocations.items()):
        path = f"spec.pre_allocations[{claim_name}]"
        try:
            address = parse_address(value)
        except AddressParseError as e:
            errors.append(invalid(path, value, str(e)))
            continue

        if not contains(address, spec.subnets):
            errors.append(invalid(path, value, "not within any configured subnet"))
            continue
        if address in seen:
            errors.append(
                invalid(path, value, f"already pre-allocated to claim {seen[address]}")
            )
            continue
        seen[address] = claim_name
    return errors


class PoolAdmission:
    """Admission hook for pools."""

    def __init__(self, store: ResourceStore):
        self.store = store

    async def default(self, obj: Pool) -> None:
        if not obj.spec.instance_ref.namespace:
            obj.spec.instance_ref.namespace = obj.metadata.namespace

    async def validate_create(self, obj: Pool) -> None:
        errors = await self._validate(obj)
        deny_if_errors(obj, errors)

    async def validate_update(self, old: Pool, new: Pool) -> None:
        await self.default(new)
        errors = await self._validate(new)
        if not errors:
            errors.extend(await self._orphaned_addresses(new))
        deny_if_errors(new, errors)

    async def validate_delete(self, obj: Pool) -> None:
        if SKIP_VALIDATE_DELETE_ANNOTATION in obj.metadata.annotations:
            logger.debug(f"Skipping delete validation for pool {obj.name}")
            return
        addresses = await addresses_for_pool(self.store, obj.namespace, obj.name)
        if addresses:
            deny_if_errors(
                obj,
                [
                    forbidden(
                        "metadata",
                        f"pool has {len(addresses)} allocated addresses; "
                        f"release them first",
                    )
                ],
            )

    async def _validate(self, obj: Pool) -> list[FieldError]:
        errors: list[FieldError] = []
        ref = obj.spec.instance_ref
        if not ref.name:
            errors.append(required("spec.instance_ref.name", "instance_ref.name is required"))
        else:
            namespace, name = obj.instance_key
            if await self.store.get_or_none(Instance, namespace, name) is None:
                errors.append(not_found("spec.instance_ref", f"{namespace}/{name}"))

        errors.extend(validate_pool_spec(obj.spec))
        return errors

    async def _orphaned_addresses(self, new: Pool) -> list[FieldError]:
        space = pool_address_set(new.spec)
        addresses = await addresses_for_pool(self.store, new.namespace, new.name)
        orphaned = sorted(
            a.spec.address for a in addresses if a.spec.address and a.spec.address not in space
        )
        if not orphaned:
            return []
        return [
            forbidden(
                "spec.subnets",
                f"update would leave allocated addresses outside the pool: "
                f"{', '.join(orphaned)}",
            )
        ]
