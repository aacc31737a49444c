"""Service definitions and the remote commands that install them.

Linux nodes get a systemd user unit, macOS nodes a launchd LaunchAgent.
File contents are written with ``printf '%s\\n' <quoted>`` rather than a
heredoc so the command works the same under any login shell.
"""

from __future__ import annotations

import shlex

from ..constants import (
    AGENT_BINARY,
    LAUNCHD_AGENTS_DIR,
    LAUNCHD_LABEL,
    SERVICE_LOG_DIR,
    SERVICE_LOG_NAME,
    SERVICE_PATH_ENV,
    SYSTEMD_UNIT_DIR,
    SYSTEMD_UNIT_NAME,
)

SYSTEMD_UNIT_PATH = f"{SYSTEMD_UNIT_DIR}/{SYSTEMD_UNIT_NAME}.service"
LAUNCHD_PLIST_PATH = f"{LAUNCHD_AGENTS_DIR}/{LAUNCHD_LABEL}.plist"
LAUNCHD_STDOUT_LOG = f"{SERVICE_LOG_DIR}/{SERVICE_LOG_NAME}.stdout.log"
LAUNCHD_STDERR_LOG = f"{SERVICE_LOG_DIR}/{SERVICE_LOG_NAME}.stderr.log"
AGENT_STATUS_COMMAND = (
    f"{AGENT_BINARY} gateway status --json --timeout 5000 "
    "|| (echo 'Gateway not responding' && exit 1)"
)


def generate_systemd_unit(home_dir: str, *, path_env: str = SERVICE_PATH_ENV) -> str:
    """systemd user unit that keeps the gateway running, restarting on failure."""
    return f"""[Unit]
Description=Raven Gateway Service
After=network.target

[Service]
Type=simple
ExecStart=/usr/bin/env {AGENT_BINARY} gateway start
Restart=always
RestartSec=5
Environment=PATH={path_env}
Environment=HOME={home_dir}

[Install]
WantedBy=default.target"""


def generate_launchd_plist(home_dir: str, *, path_env: str = SERVICE_PATH_ENV) -> str:
    """LaunchAgent plist: start at login, keep alive, log to /tmp."""
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
    <key>Label</key>
    <string>{LAUNCHD_LABEL}</string>
    <key>ProgramArguments</key>
    <array>
        <string>/usr/bin/env</string>
        <string>{AGENT_BINARY}</string>
        <string>gateway</string>
        <string>start</string>
    </array>
    <key>RunAtLoad</key>
    <true/>
    <key>KeepAlive</key>
    <true/>
    <key>StandardOutPath</key>
    <string>{LAUNCHD_STDOUT_LOG}</string>
    <key>StandardErrorPath</key>
    <string>{LAUNCHD_STDERR_LOG}</string>
    <key>EnvironmentVariables</key>
    <dict>
        <key>PATH</key>
        <string>{path_env}</string>
        <key>HOME</key>
        <string>{home_dir}</string>
    </dict>
</dict>
</plist>"""


def write_file_command(path: str, content: str) -> str:
    # path keeps its leading ~ unquoted so the remote shell expands it
    return f"printf '%s\\n' {shlex.quote(content)} > {path}"


def systemd_install_commands(home_dir: str) -> list[str]:
    return [
        f"mkdir -p {SYSTEMD_UNIT_DIR}",
        write_file_command(SYSTEMD_UNIT_PATH, generate_systemd_unit(home_dir)),
        "systemctl --user daemon-reload",
        f"systemctl --user enable {SYSTEMD_UNIT_NAME}",
    ]


def systemd_start_commands() -> list[str]:
    return [f"systemctl --user restart {SYSTEMD_UNIT_NAME}"]


def systemd_verify_commands() -> list[str]:
    return [
        "sleep 2",
        f"systemctl --user is-active {SYSTEMD_UNIT_NAME}",
        AGENT_STATUS_COMMAND,
    ]


def launchd_install_commands(home_dir: str) -> list[str]:
    return [
        f"mkdir -p {LAUNCHD_AGENTS_DIR}",
        write_file_command(LAUNCHD_PLIST_PATH, generate_launchd_plist(home_dir)),
    ]


def launchd_start_commands() -> list[str]:
    return [
        # unload first so a changed plist is picked up
        f"launchctl unload {LAUNCHD_PLIST_PATH} 2>/dev/null || true",
        f"launchctl load {LAUNCHD_PLIST_PATH}",
    ]


def launchd_verify_commands() -> list[str]:
    return [
        "sleep 2",
        f"launchctl list {LAUNCHD_LABEL} >/dev/null 2>&1 "
        "|| (echo 'Service not found in launchctl list' && exit 1)",
        AGENT_STATUS_COMMAND,
    ]
