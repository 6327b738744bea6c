"""etcd discovery token: fetch a fresh cluster discovery URL."""

import logging

import httpx

logger = logging.getLogger(__name__)

DISCOVERY_URL = "https://discovery.etcd.io/new"
DISCOVERY_PREFIX = "https://discovery.etcd.io/"


def parse_token(body: str) -> str:
    """Strip the discovery URL prefix, leaving the bare token."""
    body = body.strip()
    if body.startswith(DISCOVERY_PREFIX):
        return body[len(DISCOVERY_PREFIX):]
    return body


async def fetch_discovery_token(url=DISCOVERY_URL, dry_run=False):
    """Request a new discovery token.

    Raises:
        httpx.HTTPError: if the discovery service is unreachable or errors.
    """
    if dry_run:
        logger.info(f"[dry-run] GET {url}")
        return "dry-run-token"

    async with httpx.AsyncClient() as client:
        resp = await client.get(url, timeout=60)
    resp.raise_for_status()
    token = parse_token(resp.text)
    if not token:
        raise ValueError(f"Empty discovery token returned from {url}")
    return token
