"""
Async client for the UniFi Network controller API.

Authenticates with an API key (``X-API-KEY`` header) against the UniFi OS
proxy path and exposes only the calls the IPAM provider needs: network
listing, fixed-IP client records ("static assignments") and active
clients.

Every call returns parsed dataclasses; controller responses are envelopes
of the form ``{"meta": {"rc": "ok"}, "data": [...]}``.
"""

import ipaddress
from dataclasses import dataclass, field
from typing import Any

import httpx

from unifiipam.constants import DEFAULT_SITE
from unifiipam.utils.logger import get_logger

logger = get_logger(__name__)

API_PREFIX = "/proxy/network/api/s"
UNKNOWN_CLIENT_MESSAGES = ("api.err.UnknownUser", "api.err.UnknownStation")


# =============================================================================
# Errors
# =============================================================================


class ProviderError(Exception):
    """Base class for provider (UniFi controller) failures."""

    pass


class ProviderTransportError(ProviderError):
    """The controller could not be reached or timed out."""

    pass


class ProviderAPIError(ProviderError):
    """The controller answered with an HTTP error or a non-ok envelope."""

    def __init__(
        self, message: str, status_code: int | None = None, detail: str | None = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail

    @property
    def unauthorized(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def unknown_client(self) -> bool:
        return bool(self.detail) and any(
            marker in self.detail for marker in UNKNOWN_CLIENT_MESSAGES
        )


# =============================================================================
# Data Types
# =============================================================================


def normalize_cidr(value: str) -> str:
    """``10.1.40.1/24`` (router address form) -> ``10.1.40.0/24``."""
    if not value:
        return ""
    try:
        return str(ipaddress.ip_network(value.strip(), strict=False))
    except ValueError:
        return ""


@dataclass
class Network:
    """A network as configured on the controller."""

    id: str
    name: str = ""
    cidr: str = ""
    purpose: str = ""
    vlan: int | None = None
    network_group: str = ""
    dhcp_enabled: bool = False
    dhcp_start: str = ""
    dhcp_stop: str = ""
    dhcp_gateway_enabled: bool = False
    dhcp_gateway: str = ""
    dhcp_dns_enabled: bool = False
    dhcp_dns: list[str] = field(default_factory=list)
    dhcp_lease_time: int | None = None

    @property
    def gateway(self) -> str | None:
        """Configured DHCP gateway, only when the override is enabled."""
        if self.dhcp_gateway_enabled and self.dhcp_gateway:
            return self.dhcp_gateway
        return None

    @property
    def dhcp_range(self) -> str:
        if self.dhcp_start and self.dhcp_stop:
            return f"{self.dhcp_start}-{self.dhcp_stop}"
        return ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "Network":
        vlan = data.get("vlan")
        lease = data.get("dhcpd_leasetime")
        return cls(
            id=data.get("_id", ""),
            name=data.get("name", ""),
            cidr=normalize_cidr(data.get("ip_subnet", "")),
            purpose=data.get("purpose", ""),
            vlan=int(vlan) if vlan not in (None, "") else None,
            network_group=data.get("networkgroup", ""),
            dhcp_enabled=bool(data.get("dhcpd_enabled", False)),
            dhcp_start=data.get("dhcpd_start", ""),
            dhcp_stop=data.get("dhcpd_stop", ""),
            dhcp_gateway_enabled=bool(data.get("dhcpd_gateway_enabled", False)),
            dhcp_gateway=data.get("dhcpd_gateway", ""),
            dhcp_dns_enabled=bool(data.get("dhcpd_dns_enabled", False)),
            dhcp_dns=[
                data[key]
                for key in ("dhcpd_dns_1", "dhcpd_dns_2", "dhcpd_dns_3", "dhcpd_dns_4")
                if data.get(key)
            ],
            dhcp_lease_time=int(lease) if lease not in (None, "") else None,
        )


@dataclass
class StaticAssignment:
    """A client record with a fixed IP on some network."""

    mac: str
    ip: str
    hostname: str = ""
    network_id: str = ""
    id: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "StaticAssignment":
        return cls(
            mac=data.get("mac", "").lower(),
            ip=data.get("fixed_ip", ""),
            hostname=data.get("hostname") or data.get("name", ""),
            network_id=data.get("network_id", ""),
            id=data.get("_id", ""),
        )


@dataclass
class ActiveLease:
    """A currently connected client."""

    mac: str
    ip: str
    network_id: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ActiveLease":
        return cls(
            mac=data.get("mac", "").lower(),
            ip=data.get("ip", ""),
            network_id=data.get("network_id", ""),
        )


# =============================================================================
# Client
# =============================================================================


class UnifiClient:
    """
    Async UniFi Network API client.

    Args:
        host: Controller base URL, e.g. ``https://unifi.lan``.
        api_key: API key sent as ``X-API-KEY``.
        site: Site name.
        insecure: Skip TLS certificate verification.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        host: str,
        api_key: str,
        site: str = DEFAULT_SITE,
        insecure: bool = False,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.host = host.rstrip("/")
        self.site = site or DEFAULT_SITE
        self._client = httpx.AsyncClient(
            base_url=self.host,
            headers={"X-API-KEY": api_key, "Accept": "application/json"},
            verify=not insecure,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "UnifiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _path(self, endpoint: str) -> str:
        return f"{API_PREFIX}/{self.site}/{endpoint}"

    async def _request(
        self, method: str, endpoint: str, json: dict | None = None
    ) -> list[dict[str, Any]]:
        """
        Perform one API call and unwrap the response envelope.

        Raises:
            ProviderTransportError: Connection failure or timeout.
            ProviderAPIError: HTTP error status or ``meta.rc != "ok"``.
        """
        context = f"{method} {endpoint}"
        try:
            response = await self._client.request(method, self._path(endpoint), json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            logger.debug(f"UniFi HTTP {status} on {context}: {detail}")
            raise ProviderAPIError(
                f"HTTP {status} on {context}: {detail}",
                status_code=status,
                detail=detail,
            ) from e
        except httpx.RequestError as e:
            raise ProviderTransportError(
                f"Could not reach UniFi controller at {self.host} ({context}): {e}"
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderAPIError(
                f"Invalid JSON from {context}", status_code=response.status_code
            ) from e

        meta = body.get("meta", {}) if isinstance(body, dict) else {}
        if meta.get("rc", "ok") != "ok":
            detail = meta.get("msg", "")
            raise ProviderAPIError(
                f"UniFi error on {context}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )

        data = body.get("data", []) if isinstance(body, dict) else body
        return data if isinstance(data, list) else [data]

    # -------------------------------------------------------------------------
    # Networks
    # -------------------------------------------------------------------------

    async def list_networks(self) -> list[Network]:
        return [Network.from_api(item) for item in await self._request("GET", "rest/networkconf")]

    async def get_network(self, network_id: str) -> Network:
        """
        Fetch one network by ID.

        Raises:
            ProviderAPIError: If no network has this ID (status 404).
        """
        for network in await self.list_networks():
            if network.id == network_id:
                return network
        raise ProviderAPIError(f"network {network_id} not found", status_code=404)

    async def validate_credentials(self) -> None:
        """Raise if the API key cannot list networks on the site."""
        await self._request("GET", "rest/networkconf")

    # -------------------------------------------------------------------------
    # Static Assignments
    # -------------------------------------------------------------------------

    async def list_static_assignments(self, network_id: str) -> list[StaticAssignment]:
        """Fixed-IP client records on a network."""
        assignments = []
        for item in await self._request("GET", "rest/user"):
            if not item.get("use_fixedip") or not item.get("fixed_ip"):
                continue
            if item.get("network_id") != network_id:
                continue
            assignments.append(StaticAssignment.from_api(item))
        return assignments

    async def get_static_assignment(self, mac: str) -> StaticAssignment | None:
        """Fixed-IP record for a MAC, or None when the controller has none."""
        try:
            items = await self._request("GET", f"stat/user/{mac.lower()}")
        except ProviderAPIError as e:
            if e.status_code == 404 or e.unknown_client:
                return None
            raise

        for item in items:
            if item.get("use_fixedip") and item.get("fixed_ip"):
                return StaticAssignment.from_api(item)
        return None

    async def create_static_assignment(
        self, network_id: str, mac: str, ip: str, hostname: str = ""
    ) -> StaticAssignment:
        payload = {
            "objects": [
                {
                    "data": {
                        "mac": mac.lower(),
                        "name": hostname,
                        "hostname": hostname,
                        "use_fixedip": True,
                        "fixed_ip": ip,
                        "network_id": network_id,
                    }
                }
            ]
        }
        items = await self._request("POST", "group/user", json=payload)
        logger.debug(f"Registered fixed IP {ip} for MAC {mac} on network {network_id}")

        # group/user nests the created object as data[0].data[0]
        for item in items:
            nested = item.get("data")
            if isinstance(nested, list) and nested:
                return StaticAssignment.from_api(nested[0])
        return StaticAssignment(mac=mac.lower(), ip=ip, hostname=hostname, network_id=network_id)

    async def delete_static_assignment(self, mac: str) -> None:
        """Forget a client record. An unknown MAC counts as already released."""
        try:
            await self._request(
                "POST", "cmd/stamgr", json={"cmd": "forget-sta", "macs": [mac.lower()]}
            )
        except ProviderAPIError as e:
            if e.status_code == 404 or e.unknown_client:
                return
            raise
        logger.debug(f"Released fixed IP assignment for MAC {mac}")

    # -------------------------------------------------------------------------
    # Active Clients
    # -------------------------------------------------------------------------

    async def list_active_leases(self, network_id: str | None = None) -> list[ActiveLease]:
        leases = []
        for item in await self._request("GET", "stat/sta"):
            if not item.get("ip"):
                continue
            if network_id and item.get("network_id") != network_id:
                continue
            leases.append(ActiveLease.from_api(item))
        return leases


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        meta = body.get("meta")
        if isinstance(meta, dict) and meta.get("msg"):
            return meta["msg"]
        return str(body.get("detail", body))
    return str(body)
