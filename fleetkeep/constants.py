"""FleetKeep constants."""

from __future__ import annotations

# Local state layout (under ~/.fleetkeep unless FLEETKEEP_DIR is set)
FLEET_DIR_NAME = ".fleetkeep"
FLEET_DIR_ENV = "FLEETKEEP_DIR"
NODES_FILE_NAME = "nodes.json"
KNOWN_HOSTS_FILE_NAME = "known_hosts"
AUDIT_FILE_NAME = "audit.jsonl"
INVENTORY_SCHEMA_VERSION = 1

# Node validation
NODE_NAME_MAX_LEN = 100
DEFAULT_SSH_PORT = 22

# Inventory lock: exponential backoff with jitter, stale locks reclaimed
LOCK_SUFFIX = ".lock"
LOCK_RETRIES = 10
LOCK_BACKOFF_FACTOR = 2
LOCK_MIN_DELAY_S = 0.1
LOCK_MAX_DELAY_S = 10.0
LOCK_STALE_S = 30.0
LOCK_OWNER_FILE = "owner"

# SSH binaries are invoked by absolute path, never resolved through PATH
SSH_BINARY = "/usr/bin/ssh"
SSH_KEYSCAN_BINARY = "/usr/bin/ssh-keyscan"
SSH_CONNECT_TIMEOUT_S = 5
SSH_SERVER_ALIVE_INTERVAL_S = 15
SSH_SERVER_ALIVE_COUNT_MAX = 3
KEYSCAN_PER_HOST_TIMEOUT_S = 5

# Host key preference when several algorithms are pinned for one address
PREFERRED_KEY_TYPES = ("ssh-ed25519", "ssh-rsa")

# Default timeouts (seconds)
DEFAULT_PING_TIMEOUT_S = 10
DEFAULT_STATUS_TIMEOUT_S = 15
PREFLIGHT_TIMEOUT_S = 30
COMMAND_TIMEOUT_S = 120
MIN_TIMEOUT_S = 1
DEFAULT_STATUS_WORKERS = 10

# Managed agent on the remote nodes
AGENT_BINARY = "raven"
AGENT_NPM_PACKAGE = "raven"
AGENT_CONFIG_DIR = "~/.raven"
LATEST_VERSION = "latest"
SYSTEMD_UNIT_NAME = "raven-gateway"
SERVICE_LOG_NAME = "raven-gateway"
SERVICE_LOG_DIR = "/tmp"
SYSTEMD_UNIT_DIR = "~/.config/systemd/user"
LAUNCHD_LABEL = "ai.raven.gateway"
LAUNCHD_AGENTS_DIR = "~/Library/LaunchAgents"
SERVICE_PATH_ENV = "/usr/local/bin:/opt/homebrew/bin:/usr/bin:/bin:/usr/sbin:/sbin"
NODESOURCE_MAJOR = 20

# Diagnostics markers
DIAG_START = "DIAG_START"
DIAG_END = "DIAG_END"
NOT_FOUND = "NOT_FOUND"

# Plan rendering
PLAN_COMMAND_PREVIEW_LEN = 60
