"""Shared pytest fixtures for all test modules."""

import os
import subprocess
import sys

import pytest

from linode_coreos.config import ProvisionConfig
from linode_coreos.provisioning.types import NodeRequest

PROJECT_ROOT = os.path.normpath(os.path.join(os.path.dirname(__file__), ".."))


@pytest.fixture(scope="session")
def project_root():
    """Absolute path to the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def run_cli(project_root):
    """Return a callable that invokes the linode-coreos CLI as a subprocess."""

    def _run(*args, env=None):
        full_env = {k: v for k, v in os.environ.items() if k != "LINODE_API_KEY"}
        full_env.update(env or {})
        result = subprocess.run(
            [sys.executable, "-m", "linode_coreos.linode_coreos", *args],
            capture_output=True,
            text=True,
            cwd=project_root,
            env=full_env,
        )
        return result.returncode, result.stdout, result.stderr

    return _run


# ── Unit-test fixtures ──────────────────────────────────────────────


class FakeLinodeClient:
    """In-memory stand-in for LinodeClient that records every call."""

    def __init__(self, total_mb=20480, addresses=None, rename_ok=True):
        self.total_mb = total_mb
        self.addresses = addresses if addresses is not None else [
            {"address": "203.0.113.10", "is_public": True},
            {"address": "192.168.130.55", "is_public": False},
        ]
        self.rename_ok = rename_ok
        self.calls = []
        self.disks = []
        self.configs = []
        self._next_id = 100

    def _new_id(self):
        self._next_id += 1
        return self._next_id

    async def create_node(self, datacenter_id, plan_id):
        self.calls.append(("create_node", datacenter_id, plan_id))
        return 4821

    async def rename_node(self, node_id, label):
        self.calls.append(("rename_node", node_id, label))
        return self.rename_ok

    async def add_private_ip(self, node_id):
        self.calls.append(("add_private_ip", node_id))

    async def list_addresses(self, node_id):
        self.calls.append(("list_addresses", node_id))
        return self.addresses

    async def total_disk_mb(self, node_id):
        self.calls.append(("total_disk_mb", node_id))
        return self.total_mb

    async def create_disk_from_image(self, node_id, distribution_id, label, size_mb, root_password):
        disk_id = self._new_id()
        self.calls.append(("create_disk_from_image", label, size_mb))
        self.disks.append(("image", label, size_mb, disk_id))
        return disk_id

    async def create_raw_disk(self, node_id, label, size_mb):
        disk_id = self._new_id()
        self.calls.append(("create_raw_disk", label, size_mb))
        self.disks.append(("raw", label, size_mb, disk_id))
        return disk_id

    async def create_swap_disk(self, node_id, label, size_mb):
        disk_id = self._new_id()
        self.calls.append(("create_swap_disk", label, size_mb))
        self.disks.append(("swap", label, size_mb, disk_id))
        return disk_id

    async def list_disk_ids(self, node_id):
        self.calls.append(("list_disk_ids", node_id))
        return sorted(d[3] for d in self.disks)

    async def create_boot_config(self, node_id, label, kernel_id, disk_ids, root_device=1):
        config_id = self._new_id()
        self.calls.append(("create_boot_config", label))
        self.configs.append({"label": label, "kernel_id": kernel_id, "disk_ids": list(disk_ids), "root_device": root_device, "id": config_id})
        return config_id

    async def boot(self, node_id, config_id):
        self.calls.append(("boot", config_id))

    async def shutdown(self, node_id):
        self.calls.append(("shutdown", node_id))


@pytest.fixture
def fake_client():
    return FakeLinodeClient()


@pytest.fixture
def provision_config():
    return ProvisionConfig(
        api_key="test-api-key",
        root_password="s3cret-root-password",
        install_url="https://example.com/install-coreos.sh",
        ssh_interval=0,
    )


@pytest.fixture
def node_request():
    return NodeRequest(
        name="node1",
        plan_id=1,
        datacenter_id=2,
        cloud_config="#cloud-config\nhostname: node1\n",
        token="abc123",
        swap_mb=2048,
        extra_mb=0,
    )


@pytest.fixture
def make_client():
    """Return the FakeLinodeClient class for tests that need custom behavior."""
    return FakeLinodeClient
