"""Provisioning workflow: staging OS, CoreOS install, final boot.

The workflow is a strictly forward state machine. Each step either returns,
advancing ``NodeProvisioner.state``, or raises a ProvisioningError tagged
with the state the run had reached. Nothing is rolled back on failure.
"""

import enum
import logging
import shlex

import httpx

from linode_coreos.provisioning.discovery import fetch_discovery_token
from linode_coreos.provisioning.disks import plan_disks
from linode_coreos.provisioning.errors import (
    LinodeApiError,
    NodeUnreachableError,
    PlanningError,
    ProvisioningError,
    RemoteCommandError,
    ResourceCreationError,
)
from linode_coreos.provisioning.linode import default_label
from linode_coreos.provisioning.network import resolve_network
from linode_coreos.provisioning.ssh import wait_for_ssh
from linode_coreos.provisioning.ssh_transport import make_run_cmd, make_write_file
from linode_coreos.provisioning.types import NodeHandle

logger = logging.getLogger(__name__)

STAGING_DISK_LABEL = "Staging"
MAIN_DISK_LABEL = "CoreOS"
SWAP_DISK_LABEL = "Swap"
EXTRA_DISK_LABEL = "Data"
STAGING_CONFIG_LABEL = "Staging"
TARGET_CONFIG_LABEL = "CoreOS"
ROOT_DEVICE_INDEX = 1


class ProvisioningState(enum.Enum):
    PENDING = 0
    TOKEN_READY = 1
    NODE_CREATED = 2
    NAMED = 3
    NETWORK_CONFIGURED = 4
    DISK_PLANNED = 5
    DISKS_CREATED = 6
    CONFIGS_CREATED = 7
    STAGING_BOOTED = 8
    REACHABLE = 9
    STAGING_PAYLOAD_DELIVERED = 10
    TARGET_INSTALLED = 11
    FINAL_BOOT = 12


def install_command(config, network, token):
    """Remote command that fetches and runs the install script."""
    args = [network.public_address, network.private_address, network.gateway, token]
    script = shlex.quote(config.install_script_path)
    return (
        f"curl -fsSL {shlex.quote(config.install_url)} -o {script}"
        f" && bash {script} {' '.join(shlex.quote(a) for a in args)}"
    )


class NodeProvisioner:
    """Drive one node from nothing to a booted CoreOS install.

    Collaborators are injectable so the workflow can run against fakes:
    ``token_fetcher`` is an async callable returning a token, ``poller`` has
    the signature of ``wait_for_ssh``, and ``run_cmd_factory`` /
    ``write_file_factory`` follow ``make_run_cmd`` / ``make_write_file``.
    """

    def __init__(
        self,
        config,
        request,
        client,
        token_fetcher=None,
        poller=None,
        run_cmd_factory=None,
        write_file_factory=None,
        cancel_event=None,
    ):
        self.config = config
        self.request = request
        self.client = client
        self.token_fetcher = token_fetcher or (lambda: fetch_discovery_token(dry_run=config.dry_run))
        self.poller = poller or wait_for_ssh
        self.run_cmd_factory = run_cmd_factory or make_run_cmd
        self.write_file_factory = write_file_factory or make_write_file
        self.cancel_event = cancel_event

        self.state = ProvisioningState.PENDING
        self.token = request.token
        self.handle = None
        self.network = None
        self.disk_plan = None

    def _steps(self):
        return [
            (ProvisioningState.TOKEN_READY, self._resolve_token),
            (ProvisioningState.NODE_CREATED, self._create_node),
            (ProvisioningState.NAMED, self._name_node),
            (ProvisioningState.NETWORK_CONFIGURED, self._configure_network),
            (ProvisioningState.DISK_PLANNED, self._plan_disks),
            (ProvisioningState.DISKS_CREATED, self._create_disks),
            (ProvisioningState.CONFIGS_CREATED, self._create_configs),
            (ProvisioningState.STAGING_BOOTED, self._boot_staging),
            (ProvisioningState.REACHABLE, self._wait_reachable),
            (ProvisioningState.STAGING_PAYLOAD_DELIVERED, self._deliver_payload),
            (ProvisioningState.TARGET_INSTALLED, self._install_target),
            (ProvisioningState.FINAL_BOOT, self._final_boot),
        ]

    async def run(self):
        """Execute every step in order.

        Returns:
            (NodeHandle, NetworkInfo) on success.

        Raises:
            ProvisioningError: on the first fatal step; ``state`` holds the
                last state reached.
        """
        for next_state, step in self._steps():
            try:
                await step()
            except ProvisioningError as e:
                if e.state is None:
                    e.state = self.state
                raise
            except (LinodeApiError, httpx.HTTPError) as e:
                raise ResourceCreationError(f"{next_state.name.lower()}: {e}", state=self.state) from e
            self.state = next_state
            logger.debug(f"State -> {next_state.name}")
        return self.handle, self.network

    # ── Steps ───────────────────────────────────────────────────────

    async def _resolve_token(self):
        if self.token:
            logger.info("Using supplied discovery token.")
            return
        logger.info("Fetching discovery token...")
        try:
            self.token = await self.token_fetcher()
        except (httpx.HTTPError, ValueError) as e:
            raise ProvisioningError(f"Could not fetch discovery token: {e}") from e
        logger.info(f"Discovery token: {self.token}")

    async def _create_node(self):
        req = self.request
        logger.info(f"Creating node (plan={req.plan_id}, datacenter={req.datacenter_id})...")
        node_id = await self.client.create_node(req.datacenter_id, req.plan_id)
        self.handle = NodeHandle(node_id=node_id, label=default_label(node_id))
        logger.info(f"Node created (id={node_id}).")

    async def _name_node(self):
        if await self.client.rename_node(self.handle.node_id, self.request.name):
            self.handle.label = self.request.name
        else:
            self.handle.label = default_label(self.handle.node_id)
            logger.warning(f"Continuing with default label '{self.handle.label}'.")
        logger.info(f"Node label: {self.handle.label}")

    async def _configure_network(self):
        node_id = self.handle.node_id
        await self.client.add_private_ip(node_id)
        addresses = await self.client.list_addresses(node_id)
        self.network = resolve_network(addresses)
        logger.info(f"Public IP:  {self.network.public_address}")
        logger.info(f"Private IP: {self.network.private_address} (gateway {self.network.gateway})")

    async def _plan_disks(self):
        total_mb = await self.client.total_disk_mb(self.handle.node_id)
        plan = plan_disks(total_mb, self.request.swap_mb, self.request.extra_mb)
        if plan.main_mb <= 0:
            raise PlanningError(
                f"No room for the main partition: {total_mb}MB total - {plan.boot_mb}MB boot"
                f" - {plan.swap_mb}MB swap - {plan.extra_mb}MB extra = {plan.main_mb}MB"
            )
        self.disk_plan = plan
        logger.info(
            f"Disk plan: boot={plan.boot_mb}MB main={plan.main_mb}MB"
            f" swap={plan.swap_mb}MB extra={plan.extra_mb}MB (total {plan.total_mb}MB)"
        )

    async def _create_disks(self):
        client = self.client
        node_id = self.handle.node_id
        plan = self.disk_plan

        created = [
            await client.create_disk_from_image(
                node_id, self.config.distribution_id, STAGING_DISK_LABEL, plan.boot_mb, self.config.root_password
            ),
            await client.create_raw_disk(node_id, MAIN_DISK_LABEL, plan.main_mb),
        ]
        if plan.swap_mb:
            created.append(await client.create_swap_disk(node_id, SWAP_DISK_LABEL, plan.swap_mb))
        if plan.extra_mb:
            created.append(await client.create_raw_disk(node_id, EXTRA_DISK_LABEL, plan.extra_mb))
        self.handle.disk_ids = created

        listed = await client.list_disk_ids(node_id)
        missing = [d for d in created if d not in listed]
        if missing:
            raise ResourceCreationError(f"Disk(s) {missing} missing from disk listing {listed}")
        self.handle.disk_ids = listed
        logger.info(f"Disks created: {', '.join(str(d) for d in listed)}")

    async def _create_configs(self):
        client = self.client
        handle = self.handle
        handle.staging_config_id = await client.create_boot_config(
            handle.node_id, STAGING_CONFIG_LABEL, self.config.staging_kernel_id, handle.disk_ids, ROOT_DEVICE_INDEX
        )
        handle.target_config_id = await client.create_boot_config(
            handle.node_id, TARGET_CONFIG_LABEL, self.config.target_kernel_id, handle.disk_ids, ROOT_DEVICE_INDEX
        )
        logger.info(f"Boot configs: staging={handle.staging_config_id} target={handle.target_config_id}")

    async def _boot_staging(self):
        logger.info("Booting staging OS...")
        await self.client.boot(self.handle.node_id, self.handle.staging_config_id)

    async def _wait_reachable(self):
        cfg = self.config
        host = self.network.public_address
        logger.info(f"Waiting for SSH on {host}...")
        reachable = await self.poller(
            host,
            cfg.root_password,
            timeout=cfg.ssh_timeout,
            interval=cfg.ssh_interval,
            connect_timeout=cfg.ssh_connect_timeout,
            cancel_event=self.cancel_event,
            dry_run=cfg.dry_run,
        )
        if not reachable:
            raise NodeUnreachableError(f"Node {self.handle.node_id} at {host} never accepted SSH connections")

    async def _deliver_payload(self):
        path = self.config.cloud_config_path
        write_file = self.write_file_factory(self.network.public_address, self.config.root_password, dry_run=self.config.dry_run)
        rc, stderr = await write_file(path, self.request.cloud_config)
        if rc != 0:
            raise RemoteCommandError(f"Failed to upload cloud-config to {path}: {stderr.strip()}")
        logger.info(f"Uploaded cloud-config to {path}.")

    async def _install_target(self):
        run_cmd = self.run_cmd_factory(self.network.public_address, self.config.root_password, dry_run=self.config.dry_run)
        logger.info("Installing CoreOS from the staging OS...")
        rc, _, _ = await run_cmd(install_command(self.config, self.network, self.token), log_output=True)
        if rc != 0:
            if self.config.ignore_install_status:
                logger.warning(f"Warning: install script exited with status {rc}; continuing as requested.")
                return
            raise RemoteCommandError(f"Install script exited with status {rc}")

    async def _final_boot(self):
        node_id = self.handle.node_id
        logger.info("Shutting down staging OS...")
        await self.client.shutdown(node_id)
        logger.info("Booting CoreOS...")
        await self.client.boot(node_id, self.handle.target_config_id)
