"""SSH readiness polling for a freshly booted node."""

import asyncio
import logging

from linode_coreos.provisioning.ssh_transport import ssh_base_args, ssh_env

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 600
DEFAULT_INTERVAL = 10
DEFAULT_CONNECT_TIMEOUT = 3


async def ssh_check(host, password, connect_timeout=DEFAULT_CONNECT_TIMEOUT):
    """Run ``true`` on the node as root and return the exit status."""
    args = ssh_base_args(host, connect_timeout=connect_timeout)
    args.append("true")
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=ssh_env(password),
        )
        await proc.wait()
    except OSError as e:
        logger.debug(f"SSH check could not start: {e}")
        return 255
    return proc.returncode


async def wait_for_ssh(
    host,
    password,
    timeout=DEFAULT_TIMEOUT,
    interval=DEFAULT_INTERVAL,
    connect_timeout=DEFAULT_CONNECT_TIMEOUT,
    cancel_event=None,
    check=None,
    dry_run=False,
):
    """Poll SSH connectivity until success, timeout or cancellation.

    Any failed attempt (non-zero exit, refused connection, connect timeout)
    counts as "still booting": a progress line is logged and the check is
    retried after *interval* seconds. The deadline is measured on the event
    loop clock, so time spent inside each attempt counts against it.

    Args:
        timeout: overall deadline in seconds; None polls forever.
        cancel_event: optional asyncio.Event; polling stops once it is set.
        check: async callable ``(host, password, connect_timeout) -> int``,
            defaults to ``ssh_check``.

    Returns:
        True if SSH connected, False on timeout or cancellation.
    """
    if dry_run:
        limit = f"up to {timeout}s" if timeout else "no deadline"
        logger.info(f"[dry-run] Poll SSH on root@{host} every {interval}s ({limit})")
        return True

    check = check or ssh_check
    loop = asyncio.get_running_loop()
    deadline = None if timeout is None else loop.time() + timeout
    attempts = 0
    while deadline is None or loop.time() < deadline:
        if cancel_event is not None and cancel_event.is_set():
            logger.error(f"Cancelled while waiting for SSH connectivity to {host}")
            return False

        attempts += 1
        rc = await check(host, password, connect_timeout)
        if rc == 0:
            logger.info(f"SSH is up on {host} (attempt {attempts}).")
            return True

        logger.info(f"Waiting for {host} to accept SSH connections (attempt {attempts}, rc={rc})...")
        pause = interval if deadline is None else max(0, min(interval, deadline - loop.time()))
        if cancel_event is not None:
            try:
                await asyncio.wait_for(cancel_event.wait(), timeout=pause)
            except TimeoutError:
                pass
        else:
            await asyncio.sleep(pause)

    logger.error(f"Timeout after {timeout}s waiting for SSH connectivity to {host}")
    return False
