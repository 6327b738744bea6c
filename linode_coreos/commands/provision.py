"""Provision command: create a Linode node and install CoreOS on it."""

import argparse
import asyncio
import logging
import sys

import httpx
import yaml

from linode_coreos.config import (
    DEFAULT_DISTRIBUTION_ID,
    DEFAULT_STAGING_KERNEL_ID,
    DEFAULT_TARGET_KERNEL_ID,
    config_from_args,
    generate_root_password,
    resolve_api_key,
)
from linode_coreos.provisioning.disks import BOOT_DISK_MB
from linode_coreos.provisioning.errors import LinodeApiError, MissingPrerequisiteError, ProvisioningError
from linode_coreos.provisioning.linode import DEFAULT_API_URL, LinodeClient
from linode_coreos.provisioning.orchestrate import NodeProvisioner
from linode_coreos.provisioning.ssh import DEFAULT_TIMEOUT
from linode_coreos.provisioning.ssh_transport import check_tools
from linode_coreos.provisioning.types import NodeRequest
from linode_coreos.redact import register_secret

logger = logging.getLogger(__name__)


# ── Validation ─────────────────────────────────────────────────────


def non_negative_int(value):
    """argparse type: integer >= 0."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: '{value}'") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {number}")
    return number


def validate_cloud_config(text):
    """Raise MissingPrerequisiteError unless *text* is a YAML mapping."""
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise MissingPrerequisiteError(f"--cloud-config is not valid YAML: {e}") from e
    if not isinstance(parsed, dict):
        raise MissingPrerequisiteError("--cloud-config must be a YAML mapping (a #cloud-config document)")


def check_required_args(args):
    """Return the names of required provisioning flags that are missing."""
    missing = []
    if not args.name:
        missing.append("--name")
    if not args.cloud_config:
        missing.append("--cloud-config")
    if not args.install_url:
        missing.append("--install-url")
    return missing


# ── Queries ────────────────────────────────────────────────────────


async def list_plans(client):
    plans = await client.list_plans()
    logger.info(f"{'ID':>4}  {'RAM':>7}  {'DISK':>5}  {'PRICE':>7}  LABEL")
    for plan in sorted(plans, key=lambda p: p.get("PLANID", 0)):
        logger.info(
            f"{plan.get('PLANID', ''):>4}  {plan.get('RAM', ''):>5}MB  {plan.get('DISK', ''):>3}GB"
            f"  ${plan.get('PRICE', ''):>6}  {plan.get('LABEL', '')}"
        )


async def list_datacenters(client):
    datacenters = await client.list_datacenters()
    logger.info(f"{'ID':>4}  {'ABBR':<10}  LOCATION")
    for dc in sorted(datacenters, key=lambda d: d.get("DATACENTERID", 0)):
        logger.info(f"{dc.get('DATACENTERID', ''):>4}  {dc.get('ABBR', ''):<10}  {dc.get('LOCATION', '')}")


async def default_plan_id(client):
    """Smallest plan by RAM."""
    plans = await client.list_plans()
    if not plans:
        raise MissingPrerequisiteError("No plans available; pass --plan explicitly")
    plan = min(plans, key=lambda p: (p.get("RAM", 0), p.get("PLANID", 0)))
    if plan.get("PLANID") is None:
        raise MissingPrerequisiteError(f"Plan listing has no PLANID: {plan!r}; pass --plan explicitly")
    return int(plan["PLANID"])


async def default_datacenter_id(client):
    """First datacenter the API lists."""
    datacenters = await client.list_datacenters()
    if not datacenters:
        raise MissingPrerequisiteError("No datacenters available; pass --datacenter explicitly")
    datacenter = datacenters[0]
    if datacenter.get("DATACENTERID") is None:
        raise MissingPrerequisiteError(f"Datacenter listing has no DATACENTERID: {datacenter!r}; pass --datacenter explicitly")
    return int(datacenter["DATACENTERID"])


# ── CLI handler ────────────────────────────────────────────────────


def _log_leftovers(provisioner):
    if provisioner.handle is not None:
        logger.error(
            f"Provisioning stopped after {provisioner.state.name}; resources left in place: {provisioner.handle.describe()}"
        )


async def run_provisioner(provisioner):
    """Run *provisioner*, logging what it created if the run is cancelled.

    Ctrl-C cancels the task running under ``asyncio.run``, so an interrupted
    run still reports the resources left on the account.
    """
    try:
        return await provisioner.run()
    except asyncio.CancelledError:
        _log_leftovers(provisioner)
        raise


def handle_provision(args):
    """CLI handler for provisioning and the read-only queries."""
    try:
        rc = asyncio.run(_handle_provision(args))
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        rc = 1
    sys.exit(rc)


async def _handle_provision(args):
    api_key = resolve_api_key(args.api_key)
    if not api_key and not args.dry_run:
        logger.error("Error: Linode API key required. Use --api-key or set LINODE_API_KEY.")
        return 1

    client = LinodeClient(api_key or "", api_url=args.api_url, dry_run=args.dry_run)

    if args.list_plans or args.list_datacenters:
        try:
            if args.list_plans:
                await list_plans(client)
            if args.list_datacenters:
                await list_datacenters(client)
        except (ProvisioningError, LinodeApiError, httpx.HTTPError) as e:
            logger.error(f"Error: {e}")
            return 1
        return 0

    missing = check_required_args(args)
    if missing:
        logger.error(f"Error: missing required argument(s): {', '.join(missing)}")
        return 1

    provisioner = None
    try:
        validate_cloud_config(args.cloud_config)
        if not args.dry_run:
            check_tools()

        plan_id = args.plan if args.plan is not None else await default_plan_id(client)
        datacenter_id = args.datacenter if args.datacenter is not None else await default_datacenter_id(client)

        root_password = generate_root_password()
        register_secret(root_password)
        config = config_from_args(args, api_key, root_password)

        request = NodeRequest(
            name=args.name,
            plan_id=plan_id,
            datacenter_id=datacenter_id,
            cloud_config=args.cloud_config,
            token=args.token,
            swap_mb=args.swap,
            extra_mb=args.extra,
        )
        provisioner = NodeProvisioner(config, request, client)
        handle, network = await run_provisioner(provisioner)
    except ProvisioningError as e:
        logger.error(f"Error: {e}")
        if provisioner is not None:
            _log_leftovers(provisioner)
        return 1
    except (LinodeApiError, httpx.HTTPError) as e:
        logger.error(f"Error: {e}")
        return 1

    logger.info("")
    logger.info(f"Node '{handle.label}' (id={handle.node_id}) is booting CoreOS.")
    logger.info(f"Public IP:  {network.public_address}")
    logger.info(f"Private IP: {network.private_address}")
    logger.info(f"Discovery:  {provisioner.token}")
    return 0


# ── Registration ───────────────────────────────────────────────────


def add_provision_arguments(parser):
    """Register provisioning flags on *parser*."""
    parser.add_argument("--name", default=None, help="Node label (required for provisioning)")
    parser.add_argument("--plan", type=int, default=None, help="Plan ID (default: smallest available plan)")
    parser.add_argument("--datacenter", type=int, default=None, help="Datacenter ID (default: first available)")
    parser.add_argument("--token", default=None, help="etcd discovery token (default: fetch a new one)")
    parser.add_argument("--cloud-config", default=None, help="cloud-config YAML for the CoreOS install (literal text)")
    parser.add_argument("--swap", type=non_negative_int, default=2048, help="Swap disk size in MB, 0 for none (default: 2048)")
    parser.add_argument("--extra", type=non_negative_int, default=0, help="Extra raw disk size in MB, 0 for none (default: 0)")
    parser.add_argument("--list-plans", action="store_true", help="List available plans and exit")
    parser.add_argument("--list-datacenters", action="store_true", help="List available datacenters and exit")
    parser.add_argument("--api-key", default=None, help="Linode API key (fallback: LINODE_API_KEY env var)")
    parser.add_argument("--api-url", default=DEFAULT_API_URL, help=f"API URL (default: {DEFAULT_API_URL})")
    parser.add_argument("--distribution", type=int, default=DEFAULT_DISTRIBUTION_ID,
                        help=f"Staging OS distribution ID (default: {DEFAULT_DISTRIBUTION_ID})")
    parser.add_argument("--staging-kernel", type=int, default=DEFAULT_STAGING_KERNEL_ID,
                        help=f"Staging kernel ID (default: {DEFAULT_STAGING_KERNEL_ID})")
    parser.add_argument("--target-kernel", type=int, default=DEFAULT_TARGET_KERNEL_ID,
                        help=f"CoreOS kernel ID (default: {DEFAULT_TARGET_KERNEL_ID})")
    parser.add_argument("--install-url", default=None,
                        help="Install script URL (required for provisioning); run with public IP, private IP, gateway and token")
    parser.add_argument("--ssh-timeout", type=non_negative_int, default=DEFAULT_TIMEOUT,
                        help=f"Seconds to wait for SSH, 0 waits forever (default: {DEFAULT_TIMEOUT})")
    parser.add_argument("--ignore-install-status", action="store_true",
                        help="Boot CoreOS even if the install script exits non-zero")
    parser.add_argument("--dry-run", action="store_true", help="Print requests without executing")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.set_defaults(func=handle_provision)
    parser.epilog = f"Disk layout: {BOOT_DISK_MB}MB staging disk, swap, extra, and the rest for CoreOS."
