"""Linode provider: create nodes, disks and boot configs via the Linode API."""

import logging

import httpx

from linode_coreos.provisioning.errors import LinodeApiError, ResourceCreationError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.linode.com/"

# Canned DATA payloads answered in dry-run mode, keyed by api_action.
# Disk actions are answered by LinodeClient so listed disks match created ones.
DRY_RUN_RESPONSES = {
    "linode.create": {"LinodeID": 1000},
    "linode.update": {"LinodeID": 1000},
    "linode.ip.addprivate": {"IPAddressID": 2001, "IPAddress": "192.168.130.55"},
    "linode.ip.list": [
        {"IPADDRESSID": 2000, "IPADDRESS": "203.0.113.10", "ISPUBLIC": 1},
        {"IPADDRESSID": 2001, "IPADDRESS": "192.168.130.55", "ISPUBLIC": 0},
    ],
    "linode.list": [{"LINODEID": 1000, "TOTALHD": 24576}],
    "linode.config.create": {"ConfigID": 4000},
    "linode.boot": {"JobID": 3},
    "linode.shutdown": {"JobID": 4},
    "avail.linodeplans": [
        {"PLANID": 1, "LABEL": "Linode 2048", "RAM": 2048, "DISK": 24, "PRICE": 10.0},
    ],
    "avail.datacenters": [
        {"DATACENTERID": 2, "LOCATION": "Dallas, TX, USA", "ABBR": "dallas"},
    ],
}


# ── API helpers ───────────────────────────────────────────────────


async def _api_request(action, params, api_key, api_url=DEFAULT_API_URL, dry_run=False):
    """Invoke a Linode API action.

    Parameters are sent form-encoded alongside ``api_key`` and
    ``api_action``. The API always answers HTTP 200 with an envelope
    ``{"ERRORARRAY": [...], "ACTION": ..., "DATA": ...}``.

    Returns:
        The ``DATA`` member of the response (a canned value in dry-run mode).

    Raises:
        LinodeApiError: if ``ERRORARRAY`` is non-empty.
        ResourceCreationError: if the body is not a JSON envelope.
        httpx.HTTPError: on transport failures or non-2xx responses.
    """
    if dry_run:
        shown = ", ".join(f"{k}={v}" for k, v in params.items())
        logger.info(f"[dry-run] {action}({shown})")
        return DRY_RUN_RESPONSES.get(action, {})

    form = {"api_key": api_key, "api_action": action, **params}
    async with httpx.AsyncClient() as client:
        resp = await client.post(api_url, data=form, timeout=60)
    resp.raise_for_status()
    try:
        body = resp.json()
    except ValueError as e:
        raise ResourceCreationError(f"{action}: response is not JSON ({e})") from e
    if not isinstance(body, dict):
        raise ResourceCreationError(f"{action}: unexpected response {body!r}")

    errors = body.get("ERRORARRAY") or []
    if errors:
        raise LinodeApiError(action, errors)
    return body.get("DATA", {})


def _int_field(record, key, what):
    """Integer field of an API record, or ResourceCreationError."""
    value = record.get(key) if isinstance(record, dict) else None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ResourceCreationError(f"No usable {what} in Linode API response: {record!r}") from None


def _require_id(data, key, what):
    """Extract a non-zero integer identifier from a DATA dict or fail."""
    if not isinstance(data, dict) or not data.get(key):
        raise ResourceCreationError(f"No {what} returned from the Linode API")
    return _int_field(data, key, what)


def default_label(node_id) -> str:
    """Label Linode assigns to a node that was never renamed."""
    return f"linode{node_id}"


# ── Client ─────────────────────────────────────────────────────────


class LinodeClient:
    """Typed wrappers around the Linode API actions used for provisioning.

    Every method issues exactly one API call. API and transport errors
    propagate; ``rename_node`` is the only call that swallows them.
    """

    def __init__(self, api_key, api_url=DEFAULT_API_URL, dry_run=False):
        self.api_key = api_key
        self.api_url = api_url
        self.dry_run = dry_run
        self._dry_run_disk_ids = []

    async def _call(self, action, **params):
        data = await _api_request(action, params, self.api_key, self.api_url, self.dry_run)
        if self.dry_run:
            return self._dry_run_disks(action, data)
        return data

    def _dry_run_disks(self, action, data):
        """Hand out increasing disk IDs and list exactly those."""
        if action in ("linode.disk.createfromdistribution", "linode.disk.create"):
            disk_id = 3000 + len(self._dry_run_disk_ids)
            self._dry_run_disk_ids.append(disk_id)
            return {"DiskID": disk_id, "JobID": len(self._dry_run_disk_ids)}
        if action == "linode.disk.list":
            return [{"DISKID": d} for d in self._dry_run_disk_ids]
        return data

    async def create_node(self, datacenter_id, plan_id):
        data = await self._call("linode.create", DatacenterID=datacenter_id, PlanID=plan_id)
        return _require_id(data, "LinodeID", "node ID")

    async def rename_node(self, node_id, label):
        """Set the node's display label. Returns False instead of raising."""
        try:
            await self._call("linode.update", LinodeID=node_id, Label=label)
        except (LinodeApiError, httpx.HTTPError) as e:
            logger.warning(f"Warning: could not rename node {node_id} to '{label}': {e}")
            return False
        return True

    async def add_private_ip(self, node_id):
        """Allocate a private address. Must run before list_addresses."""
        await self._call("linode.ip.addprivate", LinodeID=node_id)

    async def list_addresses(self, node_id):
        """Return ``[{"address": str, "is_public": bool}, ...]`` in API order."""
        data = await self._call("linode.ip.list", LinodeID=node_id)
        addresses = []
        for ip in data or []:
            address = ip.get("IPADDRESS") if isinstance(ip, dict) else None
            if not address:
                raise ResourceCreationError(f"Address entry without IPADDRESS for node {node_id}: {ip!r}")
            addresses.append({"address": address, "is_public": bool(ip.get("ISPUBLIC"))})
        return addresses

    async def total_disk_mb(self, node_id):
        data = await self._call("linode.list", LinodeID=node_id)
        if not data:
            raise ResourceCreationError(f"No disk capacity reported for node {node_id}")
        return _int_field(data[0], "TOTALHD", f"disk capacity for node {node_id}")

    async def create_disk_from_image(self, node_id, distribution_id, label, size_mb, root_password):
        data = await self._call(
            "linode.disk.createfromdistribution",
            LinodeID=node_id,
            DistributionID=distribution_id,
            Label=label,
            Size=size_mb,
            rootPass=root_password,
        )
        return _require_id(data, "DiskID", f"disk ID for '{label}'")

    async def _create_disk(self, node_id, label, disk_type, size_mb):
        data = await self._call("linode.disk.create", LinodeID=node_id, Label=label, Type=disk_type, Size=size_mb)
        return _require_id(data, "DiskID", f"disk ID for '{label}'")

    async def create_raw_disk(self, node_id, label, size_mb):
        return await self._create_disk(node_id, label, "raw", size_mb)

    async def create_swap_disk(self, node_id, label, size_mb):
        return await self._create_disk(node_id, label, "swap", size_mb)

    async def list_disk_ids(self, node_id):
        """Disk IDs in creation order.

        IDs are allocated monotonically, so ascending order is creation order.
        """
        data = await self._call("linode.disk.list", LinodeID=node_id)
        return sorted(_int_field(d, "DISKID", "disk ID") for d in data or [])

    async def create_boot_config(self, node_id, label, kernel_id, disk_ids, root_device=1):
        data = await self._call(
            "linode.config.create",
            LinodeID=node_id,
            KernelID=kernel_id,
            Label=label,
            DiskList=",".join(str(d) for d in disk_ids),
            RootDeviceNum=root_device,
        )
        return _require_id(data, "ConfigID", f"config ID for '{label}'")

    async def boot(self, node_id, config_id):
        await self._call("linode.boot", LinodeID=node_id, ConfigID=config_id)

    async def shutdown(self, node_id):
        await self._call("linode.shutdown", LinodeID=node_id)

    async def list_plans(self):
        return await self._call("avail.linodeplans") or []

    async def list_datacenters(self):
        return await self._call("avail.datacenters") or []
