"""Unit tests for the Linode API client.

Response fixtures follow the Linode v3 action API envelope.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from linode_coreos.provisioning.errors import LinodeApiError, ResourceCreationError
from linode_coreos.provisioning.linode import (
    DRY_RUN_RESPONSES,
    LinodeClient,
    _api_request,
    default_label,
)

API_KEY = "test-api-key"
API_URL = "https://api.test.linode.com/"


# ── Response fixtures ─────────────────────────────────────────────

IP_LIST_DATA = [
    {"LINODEID": 4821, "ISPUBLIC": 1, "IPADDRESS": "203.0.113.10", "IPADDRESSID": 5001},
    {"LINODEID": 4821, "ISPUBLIC": 0, "IPADDRESS": "192.168.130.55", "IPADDRESSID": 5002},
]

LINODE_LIST_DATA = [
    {"LINODEID": 4821, "LABEL": "linode4821", "TOTALHD": 24576, "TOTALRAM": 1024, "STATUS": 0},
]

DISK_LIST_DATA = [
    {"DISKID": 9003, "LABEL": "Swap", "TYPE": "swap", "SIZE": 2048},
    {"DISKID": 9001, "LABEL": "Staging", "TYPE": "ext4", "SIZE": 2048},
    {"DISKID": 9002, "LABEL": "CoreOS", "TYPE": "raw", "SIZE": 20480},
]


def _mock_http(body):
    """Patch httpx.AsyncClient so post() returns *body* as JSON."""
    resp = MagicMock()
    resp.json.return_value = body
    resp.raise_for_status = MagicMock()
    client = MagicMock()
    client.post = AsyncMock(return_value=resp)
    client_cls = MagicMock()
    client_cls.return_value.__aenter__.return_value = client
    return client_cls, client


# ── _api_request ──────────────────────────────────────────────────


def test_api_request_sends_action_and_key():
    client_cls, client = _mock_http({"ERRORARRAY": [], "ACTION": "linode.create", "DATA": {"LinodeID": 4821}})
    with patch("linode_coreos.provisioning.linode.httpx.AsyncClient", client_cls):
        data = asyncio.run(_api_request("linode.create", {"DatacenterID": 2, "PlanID": 1}, API_KEY, API_URL))

    client.post.assert_awaited_once_with(
        API_URL,
        data={"api_key": API_KEY, "api_action": "linode.create", "DatacenterID": 2, "PlanID": 1},
        timeout=60,
    )
    assert data == {"LinodeID": 4821}


def test_api_request_raises_on_error_array():
    body = {
        "ERRORARRAY": [{"ERRORCODE": 8, "ERRORMESSAGE": "Linode is not available in that datacenter"}],
        "ACTION": "linode.create",
        "DATA": {},
    }
    client_cls, _ = _mock_http(body)
    with patch("linode_coreos.provisioning.linode.httpx.AsyncClient", client_cls):
        with pytest.raises(LinodeApiError, match="not available") as excinfo:
            asyncio.run(_api_request("linode.create", {}, API_KEY, API_URL))
    assert excinfo.value.action == "linode.create"


def test_api_request_non_json_body_is_fatal():
    client_cls, client = _mock_http(None)
    client.post.return_value.json.side_effect = json.JSONDecodeError("Expecting value", "<html>Bad Gateway</html>", 0)
    with patch("linode_coreos.provisioning.linode.httpx.AsyncClient", client_cls):
        with pytest.raises(ResourceCreationError, match="linode.ip.list: response is not JSON"):
            asyncio.run(_api_request("linode.ip.list", {"LinodeID": 4821}, API_KEY, API_URL))


def test_api_request_non_envelope_body_is_fatal():
    client_cls, _ = _mock_http(["not", "an", "envelope"])
    with patch("linode_coreos.provisioning.linode.httpx.AsyncClient", client_cls):
        with pytest.raises(ResourceCreationError, match="unexpected response"):
            asyncio.run(_api_request("linode.list", {}, API_KEY, API_URL))


def test_api_request_dry_run(caplog):
    caplog.set_level("INFO")
    data = asyncio.run(_api_request("linode.create", {"PlanID": 1}, API_KEY, API_URL, dry_run=True))

    assert data == DRY_RUN_RESPONSES["linode.create"]
    assert "[dry-run] linode.create(PlanID=1)" in caplog.text


# ── LinodeClient ──────────────────────────────────────────────────


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_create_node(mock_api):
    mock_api.return_value = {"LinodeID": 4821}
    client = LinodeClient(API_KEY, API_URL)

    node_id = asyncio.run(client.create_node(2, 1))

    assert node_id == 4821
    mock_api.assert_awaited_once_with("linode.create", {"DatacenterID": 2, "PlanID": 1}, API_KEY, API_URL, False)


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_create_node_without_id_is_fatal(mock_api):
    mock_api.return_value = {}
    client = LinodeClient(API_KEY, API_URL)

    with pytest.raises(ResourceCreationError, match="node ID"):
        asyncio.run(client.create_node(2, 1))


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_rename_node_failure_returns_false(mock_api):
    mock_api.side_effect = LinodeApiError("linode.update", [{"ERRORCODE": 5, "ERRORMESSAGE": "Object not found"}])
    client = LinodeClient(API_KEY, API_URL)

    assert asyncio.run(client.rename_node(4821, "node1")) is False


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_rename_node_transport_failure_returns_false(mock_api):
    mock_api.side_effect = httpx.ConnectError("connection refused")
    client = LinodeClient(API_KEY, API_URL)

    assert asyncio.run(client.rename_node(4821, "node1")) is False


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_rename_node_success(mock_api):
    mock_api.return_value = {"LinodeID": 4821}
    client = LinodeClient(API_KEY, API_URL)

    assert asyncio.run(client.rename_node(4821, "node1")) is True
    assert mock_api.call_args[0][1] == {"LinodeID": 4821, "Label": "node1"}


def test_default_label():
    assert default_label(4821) == "linode4821"


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_list_addresses(mock_api):
    mock_api.return_value = IP_LIST_DATA
    client = LinodeClient(API_KEY, API_URL)

    addresses = asyncio.run(client.list_addresses(4821))

    assert addresses == [
        {"address": "203.0.113.10", "is_public": True},
        {"address": "192.168.130.55", "is_public": False},
    ]


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_total_disk_mb(mock_api):
    mock_api.return_value = LINODE_LIST_DATA
    client = LinodeClient(API_KEY, API_URL)

    assert asyncio.run(client.total_disk_mb(4821)) == 24576


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_total_disk_mb_missing_is_fatal(mock_api):
    mock_api.return_value = []
    client = LinodeClient(API_KEY, API_URL)

    with pytest.raises(ResourceCreationError):
        asyncio.run(client.total_disk_mb(4821))


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_create_disk_from_image_payload(mock_api):
    mock_api.return_value = {"DiskID": 9001, "JobID": 1}
    client = LinodeClient(API_KEY, API_URL)

    disk_id = asyncio.run(client.create_disk_from_image(4821, 140, "Staging", 2048, "pw"))

    assert disk_id == 9001
    action, params = mock_api.call_args[0][:2]
    assert action == "linode.disk.createfromdistribution"
    assert params == {"LinodeID": 4821, "DistributionID": 140, "Label": "Staging", "Size": 2048, "rootPass": "pw"}


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_create_raw_and_swap_disk_types(mock_api):
    mock_api.return_value = {"DiskID": 9002}
    client = LinodeClient(API_KEY, API_URL)

    asyncio.run(client.create_raw_disk(4821, "CoreOS", 20480))
    assert mock_api.call_args[0][1]["Type"] == "raw"

    asyncio.run(client.create_swap_disk(4821, "Swap", 2048))
    assert mock_api.call_args[0][1]["Type"] == "swap"
    assert mock_api.call_args[0][0] == "linode.disk.create"


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_create_disk_without_id_is_fatal(mock_api):
    mock_api.return_value = {"JobID": 7}
    client = LinodeClient(API_KEY, API_URL)

    with pytest.raises(ResourceCreationError, match="CoreOS"):
        asyncio.run(client.create_raw_disk(4821, "CoreOS", 20480))


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_list_disk_ids_in_creation_order(mock_api):
    mock_api.return_value = DISK_LIST_DATA
    client = LinodeClient(API_KEY, API_URL)

    assert asyncio.run(client.list_disk_ids(4821)) == [9001, 9002, 9003]


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_create_boot_config_payload(mock_api):
    mock_api.return_value = {"ConfigID": 7001}
    client = LinodeClient(API_KEY, API_URL)

    config_id = asyncio.run(client.create_boot_config(4821, "CoreOS", 210, [9001, 9002, 9003]))

    assert config_id == 7001
    params = mock_api.call_args[0][1]
    assert params == {"LinodeID": 4821, "KernelID": 210, "Label": "CoreOS", "DiskList": "9001,9002,9003", "RootDeviceNum": 1}


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_boot_and_shutdown(mock_api):
    mock_api.return_value = {"JobID": 1}
    client = LinodeClient(API_KEY, API_URL)

    asyncio.run(client.boot(4821, 7001))
    assert mock_api.call_args[0][:2] == ("linode.boot", {"LinodeID": 4821, "ConfigID": 7001})

    asyncio.run(client.shutdown(4821))
    assert mock_api.call_args[0][:2] == ("linode.shutdown", {"LinodeID": 4821})


# ── Malformed DATA ────────────────────────────────────────────────


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_list_addresses_without_address_is_fatal(mock_api):
    mock_api.return_value = [{"IPADDRESSID": 5001, "ISPUBLIC": 1}]
    client = LinodeClient(API_KEY, API_URL)

    with pytest.raises(ResourceCreationError, match="IPADDRESS"):
        asyncio.run(client.list_addresses(4821))


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_total_disk_mb_non_numeric_is_fatal(mock_api):
    mock_api.return_value = [{"LINODEID": 4821, "TOTALHD": "lots"}]
    client = LinodeClient(API_KEY, API_URL)

    with pytest.raises(ResourceCreationError, match="disk capacity"):
        asyncio.run(client.total_disk_mb(4821))


@patch("linode_coreos.provisioning.linode._api_request", new_callable=AsyncMock)
def test_list_disk_ids_without_id_is_fatal(mock_api):
    mock_api.return_value = [{"DISKID": 9001}, {"LABEL": "CoreOS"}]
    client = LinodeClient(API_KEY, API_URL)

    with pytest.raises(ResourceCreationError, match="disk ID"):
        asyncio.run(client.list_disk_ids(4821))


# ── Dry-run ───────────────────────────────────────────────────────


def test_dry_run_disk_ids_increase_and_are_listed():
    client = LinodeClient(API_KEY, API_URL, dry_run=True)

    async def scenario():
        created = [
            await client.create_disk_from_image(1000, 140, "Staging", 2048, "pw"),
            await client.create_raw_disk(1000, "CoreOS", 20480),
            await client.create_swap_disk(1000, "Swap", 2048),
            await client.create_raw_disk(1000, "Data", 1024),
        ]
        return created, await client.list_disk_ids(1000)

    created, listed = asyncio.run(scenario())
    assert created == [3000, 3001, 3002, 3003]
    assert listed == created
