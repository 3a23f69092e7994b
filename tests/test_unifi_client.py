"""Tests for the UniFi controller client against a mocked transport."""

import json

import httpx
import pytest

from unifiipam.unifi.client import (
    ProviderAPIError,
    ProviderTransportError,
    UnifiClient,
)

BASE = "/proxy/network/api/s/default"

NETWORKS = [
    {
        "_id": "net-1",
        "name": "Servers",
        "ip_subnet": "10.1.40.1/24",
        "purpose": "corporate",
        "vlan": "40",
        "dhcpd_enabled": True,
        "dhcpd_start": "10.1.40.100",
        "dhcpd_stop": "10.1.40.200",
        "dhcpd_dns_enabled": True,
        "dhcpd_dns_1": "10.1.40.1",
        "dhcpd_leasetime": 86400,
    },
    {"_id": "wan", "name": "WAN", "purpose": "wan"},
]

USERS = [
    {"_id": "u1", "mac": "02:AA:00:00:00:01", "use_fixedip": True, "fixed_ip": "10.1.40.5", "network_id": "net-1", "name": "cp-0"},
    {"_id": "u2", "mac": "02:aa:00:00:00:02", "use_fixedip": False, "network_id": "net-1"},
    {"_id": "u3", "mac": "02:aa:00:00:00:03", "use_fixedip": True, "fixed_ip": "10.9.0.5", "network_id": "net-2"},
]


def ok(data):
    return httpx.Response(200, json={"meta": {"rc": "ok"}, "data": data})


class MockController:
    """Mock handler recording requests and routing on method and path."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"meta": {"rc": "error", "msg": "api.err.NotFound"}})
        if callable(handler):
            return handler(request)
        # fresh response per request
        return httpx.Response(
            handler.status_code, headers=handler.headers, content=handler.content
        )


def client_for(routes) -> tuple[UnifiClient, MockController]:
    controller = MockController(routes)
    client = UnifiClient(
        "https://unifi.lan/", "secret-key", transport=httpx.MockTransport(controller)
    )
    return client, controller


class TestNetworks:
    async def test_list_networks(self):
        client, controller = client_for({("GET", f"{BASE}/rest/networkconf"): ok(NETWORKS)})
        async with client:
            networks = await client.list_networks()

        assert controller.requests[0].headers["X-API-KEY"] == "secret-key"
        servers, wan = networks
        assert servers.cidr == "10.1.40.0/24"
        assert servers.vlan == 40
        assert servers.dhcp_range == "10.1.40.100-10.1.40.200"
        assert servers.dhcp_dns == ["10.1.40.1"]
        assert servers.dhcp_lease_time == 86400
        assert servers.gateway is None
        assert wan.cidr == ""

    async def test_get_network_missing(self):
        client, _ = client_for({("GET", f"{BASE}/rest/networkconf"): ok(NETWORKS)})
        async with client:
            with pytest.raises(ProviderAPIError) as exc_info:
                await client.get_network("net-9")
        assert exc_info.value.status_code == 404

    async def test_unauthorized(self):
        client, _ = client_for(
            {("GET", f"{BASE}/rest/networkconf"): httpx.Response(401, json={"meta": {"rc": "error", "msg": "api.err.LoginRequired"}})}
        )
        async with client:
            with pytest.raises(ProviderAPIError) as exc_info:
                await client.validate_credentials()
        assert exc_info.value.unauthorized
        assert exc_info.value.detail == "api.err.LoginRequired"

    async def test_error_envelope(self):
        client, _ = client_for(
            {("GET", f"{BASE}/rest/networkconf"): httpx.Response(200, json={"meta": {"rc": "error", "msg": "api.err.Invalid"}})}
        )
        async with client:
            with pytest.raises(ProviderAPIError, match="api.err.Invalid"):
                await client.list_networks()

    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = client_for({("GET", f"{BASE}/rest/networkconf"): refuse})
        async with client:
            with pytest.raises(ProviderTransportError):
                await client.list_networks()


class TestStaticAssignments:
    async def test_list_filters_by_network_and_fixed_ip(self):
        client, _ = client_for({("GET", f"{BASE}/rest/user"): ok(USERS)})
        async with client:
            assignments = await client.list_static_assignments("net-1")
        assert len(assignments) == 1
        assert assignments[0].mac == "02:aa:00:00:00:01"
        assert assignments[0].ip == "10.1.40.5"
        assert assignments[0].hostname == "cp-0"

    async def test_get_unknown_client(self):
        client, _ = client_for(
            {("GET", f"{BASE}/stat/user/02:aa:00:00:00:09"): httpx.Response(400, json={"meta": {"rc": "error", "msg": "api.err.UnknownUser"}})}
        )
        async with client:
            assert await client.get_static_assignment("02:AA:00:00:00:09") is None

    async def test_create(self):
        def created(request):
            body = json.loads(request.content)
            return ok([{"data": [dict(body["objects"][0]["data"], _id="u9")]}])

        client, controller = client_for({("POST", f"{BASE}/group/user"): created})
        async with client:
            assignment = await client.create_static_assignment(
                "net-1", "02:AA:00:00:00:09", "10.1.40.9", hostname="worker-0"
            )

        payload = json.loads(controller.requests[0].content)["objects"][0]["data"]
        assert payload["mac"] == "02:aa:00:00:00:09"
        assert payload["use_fixedip"] is True
        assert payload["fixed_ip"] == "10.1.40.9"
        assert payload["network_id"] == "net-1"
        assert assignment.id == "u9"
        assert assignment.hostname == "worker-0"

    async def test_delete_unknown_is_released(self):
        client, controller = client_for(
            {("POST", f"{BASE}/cmd/stamgr"): httpx.Response(400, json={"meta": {"rc": "error", "msg": "api.err.UnknownStation"}})}
        )
        async with client:
            await client.delete_static_assignment("02:aa:00:00:00:09")
        assert json.loads(controller.requests[0].content) == {
            "cmd": "forget-sta",
            "macs": ["02:aa:00:00:00:09"],
        }

    async def test_delete_server_error_propagates(self):
        client, _ = client_for(
            {("POST", f"{BASE}/cmd/stamgr"): httpx.Response(500, text="oops")}
        )
        async with client:
            with pytest.raises(ProviderAPIError) as exc_info:
                await client.delete_static_assignment("02:aa:00:00:00:09")
        assert exc_info.value.status_code == 500


class TestActiveLeases:
    async def test_leases_filtered(self):
        stations = [
            {"mac": "AA:BB:CC:DD:EE:01", "ip": "10.1.40.150", "network_id": "net-1"},
            {"mac": "aa:bb:cc:dd:ee:02", "network_id": "net-1"},
            {"mac": "aa:bb:cc:dd:ee:03", "ip": "10.9.0.7", "network_id": "net-2"},
        ]
        client, _ = client_for({("GET", f"{BASE}/stat/sta"): ok(stations)})
        async with client:
            leases = await client.list_active_leases("net-1")
            everything = await client.list_active_leases()
        assert [(lease.mac, lease.ip) for lease in leases] == [("aa:bb:cc:dd:ee:01", "10.1.40.150")]
        assert len(everything) == 2
