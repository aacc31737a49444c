"""FleetKeep SSH transport.

Every remote command goes through ``ssh_exec``, which hardens the ssh
invocation:

- hosts starting with '-' are refused before anything is spawned
- /usr/bin/ssh is run by absolute path, never looked up on PATH
- '--' separates options from the destination and command
- BatchMode=yes, so a password or host-key prompt fails instead of hanging
- a short ConnectTimeout plus ServerAlive keepalives
- the fleet's own known_hosts file, never ~/.ssh/known_hosts
"""

from __future__ import annotations

import logging
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from .constants import (
    KEYSCAN_PER_HOST_TIMEOUT_S,
    SSH_BINARY,
    SSH_CONNECT_TIMEOUT_S,
    SSH_KEYSCAN_BINARY,
    SSH_SERVER_ALIVE_COUNT_MAX,
    SSH_SERVER_ALIVE_INTERVAL_S,
)

if TYPE_CHECKING:
    from .models import Node

logger = logging.getLogger("fleetkeep")

HOST_OPTION_ERROR = "Host cannot start with '-' (security)"


class VerificationMode(str, Enum):
    """StrictHostKeyChecking value passed to ssh."""

    STRICT = "yes"
    ACCEPT_NEW = "accept-new"


@dataclass(frozen=True)
class SshResult:
    """Outcome of one remote command. exit_code is None if killed by a signal."""

    stdout: str
    stderr: str
    exit_code: int | None
    signal: str | None
    timed_out: bool

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out


@dataclass(frozen=True)
class KeyscanResult:
    output: str
    exit_code: int | None
    error: str | None = None


def verification_for(node: Node) -> VerificationMode:
    """Strict checking for trusted nodes, pin-on-first-use otherwise."""
    return VerificationMode.STRICT if node.trusted else VerificationMode.ACCEPT_NEW


def build_ssh_command(
    host: str,
    port: int,
    user: str,
    command: str,
    *,
    known_hosts_path: Path,
    verification: VerificationMode,
) -> list[str]:
    """Return the argv for running command on user@host."""
    return [
        SSH_BINARY,
        "-o",
        "BatchMode=yes",
        "-o",
        f"ConnectTimeout={SSH_CONNECT_TIMEOUT_S}",
        "-o",
        f"StrictHostKeyChecking={verification.value}",
        "-o",
        f"UserKnownHostsFile={known_hosts_path}",
        "-o",
        f"ServerAliveInterval={SSH_SERVER_ALIVE_INTERVAL_S}",
        "-o",
        f"ServerAliveCountMax={SSH_SERVER_ALIVE_COUNT_MAX}",
        "-p",
        str(port),
        "--",
        f"{user}@{host}",
        command,
    ]


def _decode(data: bytes | None) -> str:
    return data.decode("utf-8", "replace") if data else ""


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return f"SIG{-returncode}"


def ssh_exec(
    host: str,
    port: int,
    user: str,
    command: str,
    *,
    timeout_s: float,
    known_hosts_path: Path,
    verification: VerificationMode,
) -> SshResult:
    """
    Executes: /usr/bin/ssh [hardened opts...] -- user@host command

    Does NOT raise on failure: a non-zero exit, a timeout, or an ssh binary
    that cannot be spawned are all reported in the returned SshResult.
    """
    if host.startswith("-"):
        return SshResult(
            stdout="", stderr=HOST_OPTION_ERROR, exit_code=1, signal=None, timed_out=False
        )

    cmd = build_ssh_command(
        host,
        port,
        user,
        command,
        known_hosts_path=known_hosts_path,
        verification=verification,
    )
    logger.debug(
        "SSH command: %s -p %d %s@%s '<command>' (%s)",
        SSH_BINARY,
        port,
        user,
        host,
        verification.value,
    )
    logger.debug("SSH timeout: %.1fs", timeout_s)

    start_time = time.time()
    try:
        p = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        elapsed = time.time() - start_time
        logger.debug("SSH timeout after %.2fs", elapsed)
        return SshResult(
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr),
            exit_code=None,
            signal="SIGKILL",
            timed_out=True,
        )
    except OSError as e:
        logger.debug("SSH spawn failed: %s", e)
        return SshResult(
            stdout="", stderr=f"SSH error: {e}", exit_code=1, signal=None, timed_out=False
        )

    elapsed = time.time() - start_time
    logger.debug("SSH completed in %.2fs (rc=%d)", elapsed, p.returncode)
    if p.returncode < 0:
        return SshResult(
            stdout=_decode(p.stdout),
            stderr=_decode(p.stderr),
            exit_code=None,
            signal=_signal_name(p.returncode),
            timed_out=False,
        )
    return SshResult(
        stdout=_decode(p.stdout),
        stderr=_decode(p.stderr),
        exit_code=p.returncode,
        signal=None,
        timed_out=False,
    )


def ssh_exec_node(
    node: Node,
    command: str,
    *,
    timeout_s: float,
    known_hosts_path: Path,
    verification: VerificationMode | None = None,
) -> SshResult:
    """Run command on a stored node, picking verification from its trust flag."""
    return ssh_exec(
        node.host,
        node.port,
        node.user,
        command,
        timeout_s=timeout_s,
        known_hosts_path=known_hosts_path,
        verification=verification or verification_for(node),
    )


def ssh_keyscan(host: str, port: int, *, timeout_s: float) -> KeyscanResult:
    """Run ssh-keyscan against host:port and return its raw output.

    The caller decides whether to trust what comes back.
    """
    if host.startswith("-"):
        return KeyscanResult(output="", exit_code=1, error=HOST_OPTION_ERROR)

    cmd = [
        SSH_KEYSCAN_BINARY,
        "-T",
        str(KEYSCAN_PER_HOST_TIMEOUT_S),
        "-p",
        str(port),
        "--",
        host,
    ]
    logger.debug("Keyscan: %s", " ".join(cmd))
    try:
        p = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout_s,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return KeyscanResult(
            output=_decode(e.stdout), exit_code=None, error="ssh-keyscan timed out"
        )
    except OSError as e:
        return KeyscanResult(output="", exit_code=1, error=f"ssh-keyscan error: {e}")

    err = _decode(p.stderr).strip()
    return KeyscanResult(output=_decode(p.stdout), exit_code=p.returncode, error=err or None)


def sh_command(script: str) -> str:
    """Wrap a multi-line POSIX sh script so any remote login shell runs it as-is."""
    return "sh -c " + shlex.quote(script.strip("\n"))
