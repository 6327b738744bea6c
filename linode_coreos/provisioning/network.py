"""Derive public/private addresses and the private gateway."""

from linode_coreos.provisioning.errors import NetworkResolutionError
from linode_coreos.provisioning.types import NetworkInfo


def gateway_for(private_address: str) -> str:
    """Gateway of a private /24: the address with its last octet set to 1."""
    prefix = private_address.split(".")[:3]
    return ".".join(prefix + ["1"])


def resolve_network(addresses) -> NetworkInfo:
    """Pick the first public and first private address.

    Args:
        addresses: list of ``{"address": str, "is_public": bool}`` dicts as
            returned by ``LinodeClient.list_addresses``.

    Raises:
        NetworkResolutionError: if either address class is missing.
    """
    public = next((a["address"] for a in addresses if a["is_public"]), None)
    private = next((a["address"] for a in addresses if not a["is_public"]), None)

    if public is None:
        raise NetworkResolutionError("No public IP address assigned to node")
    if private is None:
        raise NetworkResolutionError("No private IP address assigned to node")

    return NetworkInfo(
        public_address=public,
        private_address=private,
        gateway=gateway_for(private),
    )
