"""Run configuration: built once at startup and passed to every component."""

import os
import secrets
from dataclasses import dataclass

from linode_coreos.provisioning.linode import DEFAULT_API_URL
from linode_coreos.provisioning.ssh import DEFAULT_CONNECT_TIMEOUT, DEFAULT_INTERVAL, DEFAULT_TIMEOUT

# Debian 8 image used for the staging OS.
DEFAULT_DISTRIBUTION_ID = 140
# "Latest 64 bit" paravirt kernel for the staging OS.
DEFAULT_STAGING_KERNEL_ID = 138
# "GRUB 2": boots whatever the target OS installed.
DEFAULT_TARGET_KERNEL_ID = 210

REMOTE_CLOUD_CONFIG_PATH = "/root/cloud-config.yaml"
REMOTE_INSTALL_SCRIPT_PATH = "/root/install.sh"

API_KEY_ENV_VAR = "LINODE_API_KEY"


@dataclass(frozen=True)
class ProvisionConfig:
    """Everything a provisioning run needs besides the NodeRequest."""

    api_key: str
    root_password: str
    # Script run as `bash <script> <public> <private> <gateway> <token>`.
    install_url: str
    api_url: str = DEFAULT_API_URL
    distribution_id: int = DEFAULT_DISTRIBUTION_ID
    staging_kernel_id: int = DEFAULT_STAGING_KERNEL_ID
    target_kernel_id: int = DEFAULT_TARGET_KERNEL_ID
    cloud_config_path: str = REMOTE_CLOUD_CONFIG_PATH
    install_script_path: str = REMOTE_INSTALL_SCRIPT_PATH
    ssh_timeout: int | None = DEFAULT_TIMEOUT
    ssh_interval: int = DEFAULT_INTERVAL
    ssh_connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    ignore_install_status: bool = False
    dry_run: bool = False


def generate_root_password(length=24) -> str:
    """Random root password for the staging OS."""
    return secrets.token_urlsafe(length)


def resolve_api_key(args_api_key):
    """Return the API key from the CLI flag or the LINODE_API_KEY env var."""
    return args_api_key or os.environ.get(API_KEY_ENV_VAR)


def config_from_args(args, api_key, root_password) -> ProvisionConfig:
    """Build the immutable run configuration from parsed CLI flags."""
    return ProvisionConfig(
        api_key=api_key or "",
        root_password=root_password,
        api_url=args.api_url,
        distribution_id=args.distribution,
        staging_kernel_id=args.staging_kernel,
        target_kernel_id=args.target_kernel,
        install_url=args.install_url,
        ssh_timeout=args.ssh_timeout or None,
        ignore_install_status=args.ignore_install_status,
        dry_run=args.dry_run,
    )
