"""SSH transport: run commands and write files on a node as root via sshpass."""

import asyncio
import logging
import os
import shutil
import tempfile

from linode_coreos.provisioning.errors import MissingPrerequisiteError

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("ssh", "scp", "sshpass")

_COMMON_OPTS = [
    "-o", "StrictHostKeyChecking=no",
    "-o", "UserKnownHostsFile=/dev/null",
    "-o", "LogLevel=ERROR",
    "-o", "ServerAliveInterval=60",
    "-o", "ServerAliveCountMax=5",
]


def check_tools(tools=REQUIRED_TOOLS):
    """Raise MissingPrerequisiteError unless every tool is on PATH."""
    missing = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        raise MissingPrerequisiteError(f"Required tool(s) not found on PATH: {', '.join(missing)}")


def ssh_env(password):
    """Environment for sshpass -e; keeps the password out of argv."""
    return {**os.environ, "SSHPASS": password}


def ssh_base_args(host, username="root", connect_timeout=None):
    """Build base password-authenticated SSH arguments."""
    args = ["sshpass", "-e", "ssh", *_COMMON_OPTS, "-o", "PubkeyAuthentication=no"]
    if connect_timeout:
        args += ["-o", f"ConnectTimeout={connect_timeout}"]
    args.append(f"{username}@{host}")
    return args


def scp_args(local_path, host, remote_path, username="root"):
    """Build password-authenticated SCP arguments."""
    return [
        "sshpass", "-e", "scp", *_COMMON_OPTS, "-o", "PubkeyAuthentication=no",
        local_path, f"{username}@{host}:{remote_path}",
    ]


def make_run_cmd(host, password, dry_run=False):
    """Create a run_cmd callable for SSH execution on *host*."""

    async def run_cmd(command, timeout=3600, log_output=False):
        if dry_run:
            logger.info(f"[dry-run] ssh root@{host}: {command}")
            return 0, "", ""

        args = ssh_base_args(host)
        args.append(command)

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=ssh_env(password),
            )

            if log_output:
                stdout_lines, stderr_lines = [], []

                async def _read_stream(pipe, lines, level):
                    async for raw_line in pipe:
                        line = raw_line.decode(errors="replace").rstrip("\n")
                        logger.log(level, line)
                        lines.append(line)

                await asyncio.wait_for(
                    asyncio.gather(
                        _read_stream(proc.stdout, stdout_lines, logging.INFO),
                        _read_stream(proc.stderr, stderr_lines, logging.WARNING),
                        proc.wait(),
                    ),
                    timeout=timeout,
                )
                return proc.returncode, "\n".join(stdout_lines), "\n".join(stderr_lines)

            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
            stdout = stdout_bytes.decode(errors="replace") if stdout_bytes else ""
            stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
            return proc.returncode, stdout, stderr
        except TimeoutError:
            logger.error(f"Command timed out after {timeout}s: {command}")
            proc.kill()
            await proc.wait()
            return 1, "", "timeout"

    return run_cmd


async def scp_file(local_path, host, password, remote_path, timeout=300):
    """Copy a file to the node via SCP. Returns (returncode, stderr)."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *scp_args(local_path, host, remote_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=ssh_env(password),
        )
        _, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        stderr = stderr_bytes.decode(errors="replace") if stderr_bytes else ""
        return proc.returncode, stderr
    except TimeoutError:
        logger.error(f"SCP timed out after {timeout}s: {local_path} -> {host}:{remote_path}")
        proc.kill()
        await proc.wait()
        return 1, "timeout"


def make_write_file(host, password, dry_run=False):
    """Create a write_file callable that SCPs content to an absolute remote path."""

    async def write_file(remote_path, content):
        if dry_run:
            logger.info(f"[dry-run] scp ({len(content)} bytes) -> root@{host}:{remote_path}")
            return 0, ""

        # Write to a temp file locally, then SCP
        with tempfile.NamedTemporaryFile(mode="w", suffix=f"_{os.path.basename(remote_path)}", delete=False) as f:
            f.write(content)
            tmp_path = f.name

        try:
            return await scp_file(tmp_path, host, password, remote_path)
        finally:
            os.unlink(tmp_path)

    return write_file
