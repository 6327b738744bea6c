"""Node provisioning: types, Linode API client, SSH polling, workflow."""

from linode_coreos.provisioning.discovery import fetch_discovery_token
from linode_coreos.provisioning.disks import BOOT_DISK_MB, plan_disks
from linode_coreos.provisioning.errors import (
    LinodeApiError,
    MissingPrerequisiteError,
    NetworkResolutionError,
    NodeUnreachableError,
    PlanningError,
    ProvisioningError,
    RemoteCommandError,
    ResourceCreationError,
)
from linode_coreos.provisioning.linode import LinodeClient, default_label
from linode_coreos.provisioning.network import gateway_for, resolve_network
from linode_coreos.provisioning.orchestrate import NodeProvisioner, ProvisioningState
from linode_coreos.provisioning.ssh import wait_for_ssh
from linode_coreos.provisioning.ssh_transport import check_tools, make_run_cmd, make_write_file
from linode_coreos.provisioning.types import DiskPlan, NetworkInfo, NodeHandle, NodeRequest

__all__ = [
    "BOOT_DISK_MB",
    "DiskPlan",
    "LinodeApiError",
    "LinodeClient",
    "MissingPrerequisiteError",
    "NetworkInfo",
    "NetworkResolutionError",
    "NodeHandle",
    "NodeProvisioner",
    "NodeRequest",
    "NodeUnreachableError",
    "PlanningError",
    "ProvisioningError",
    "ProvisioningState",
    "RemoteCommandError",
    "ResourceCreationError",
    "check_tools",
    "default_label",
    "fetch_discovery_token",
    "gateway_for",
    "make_run_cmd",
    "make_write_file",
    "plan_disks",
    "resolve_network",
    "wait_for_ssh",
]
