# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */


"""Settings, persisted flags, and per-command configuration models."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from solo_manager import logger
from solo_manager.constants import (
    DEFAULT_CHAIN_ID,
    DEFAULT_CHART_VERSION,
    DEFAULT_LEASE_ACQUIRE_ATTEMPTS,
    DEFAULT_LEASE_DURATION_SECONDS,
    DEFAULT_RELEASE_TAG,
    ENDPOINT_TYPE_FQDN,
    FLAGS_FILE_NAME,
    NODE_ACTIVE_DELAY_SECONDS,
    NODE_ACTIVE_MAX_ATTEMPTS,
    NODE_ACTIVE_SETTLE_SECONDS,
    NODE_ACTIVE_TIMEOUT_SECONDS,
    NODE_PROXY_DELAY_SECONDS,
    NODE_PROXY_MAX_ATTEMPTS,
    PODS_READY_DELAY_SECONDS,
    PODS_READY_MAX_ATTEMPTS,
    PODS_RUNNING_DELAY_SECONDS,
    PODS_RUNNING_MAX_ATTEMPTS,
    SOLO_CACHE_DIR,
    SOLO_CHART_REPO,
    SOLO_CLUSTER_SETUP_NAMESPACE,
    SOLO_HOME,
    STAKE_RECALCULATION_DELAY_SECONDS,
)
from solo_manager.errors import MissingArgumentError


# ============================================================================
# Settings
# ============================================================================

class SoloSettings(BaseSettings):
    """Process-wide settings, auto-loaded from SOLO_* env vars.

    Attributes:
        home: Root of the local solo state (flags, leases, logs).
        cache_dir: Cache directory holding keys and staging trees.
        lease_backend: ``k8s`` for a cluster Lease object, ``file`` for a local lock.
        lease_duration: Seconds a k8s lease stays valid without renewal.
        lease_acquire_attempts: Attempts made before giving up on a held lease.
        lease_renew: Renew the k8s lease in a background thread while held.
        stake_recalculation_delay: Seconds to wait before forcing stake weight recalculation.
        activeness_settle_delay: Seconds to wait after a node reports ACTIVE.
        pods_running_attempts: Attempt budget for pod Running waits.
        pods_running_delay: Seconds between pod Running checks.
        pods_ready_attempts: Attempt budget for pod Ready waits.
        pods_ready_delay: Seconds between pod Ready checks.
        node_active_attempts: Attempt budget for node status checks.
        node_active_delay: Seconds between node status checks.
        node_active_timeout: Seconds allowed for one status fetch.
        proxy_active_attempts: Attempt budget for proxy readiness checks.
        proxy_active_delay: Seconds between proxy readiness checks.
        chart_repo: Chart repository holding the deployment charts.
        chart_version: Deployment chart version.
        ledger_client_factory: ``module:callable`` building the ledger client.
    """

    model_config = SettingsConfigDict(env_prefix="SOLO_", extra="ignore")

    home: Path = SOLO_HOME
    cache_dir: Path = SOLO_CACHE_DIR
    lease_backend: str = Field(default="k8s", pattern=r"^(k8s|file)$")
    lease_duration: int = Field(default=DEFAULT_LEASE_DURATION_SECONDS, ge=1, le=3600)
    lease_acquire_attempts: int = Field(default=DEFAULT_LEASE_ACQUIRE_ATTEMPTS, ge=1, le=100)
    lease_renew: bool = False
    stake_recalculation_delay: float = Field(default=STAKE_RECALCULATION_DELAY_SECONDS, ge=0)
    activeness_settle_delay: float = Field(default=NODE_ACTIVE_SETTLE_SECONDS, ge=0)
    pods_running_attempts: int = Field(default=PODS_RUNNING_MAX_ATTEMPTS, ge=1)
    pods_running_delay: float = Field(default=PODS_RUNNING_DELAY_SECONDS, ge=0)
    pods_ready_attempts: int = Field(default=PODS_READY_MAX_ATTEMPTS, ge=1)
    pods_ready_delay: float = Field(default=PODS_READY_DELAY_SECONDS, ge=0)
    node_active_attempts: int = Field(default=NODE_ACTIVE_MAX_ATTEMPTS, ge=1)
    node_active_delay: float = Field(default=NODE_ACTIVE_DELAY_SECONDS, ge=0)
    node_active_timeout: float = Field(default=NODE_ACTIVE_TIMEOUT_SECONDS, gt=0)
    proxy_active_attempts: int = Field(default=NODE_PROXY_MAX_ATTEMPTS, ge=1)
    proxy_active_delay: float = Field(default=NODE_PROXY_DELAY_SECONDS, ge=0)
    chart_repo: str = SOLO_CHART_REPO
    chart_version: str = Field(default=DEFAULT_CHART_VERSION, pattern=r"^v?[\d.]+(-[\w.]+)?$")
    ledger_client_factory: str | None = Field(default=None, pattern=r"^[\w.]+:[\w.]+$")


def resolve_settings(**overrides: Any) -> SoloSettings:
    """Build settings with precedence CLI > env > default.

    Args:
        **overrides: CLI values; ``None`` entries are ignored.

    Returns:
        Settings with the non-None overrides applied.
    """
    cfg = SoloSettings()
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        cfg = cfg.model_copy(update=overrides)
    return cfg


# ============================================================================
# Persisted flags
# ============================================================================

class FlagStore:
    """Named flag values persisted across invocations.

    Reads never touch the disk after the initial load; :meth:`save` is the
    only write and is called at explicit checkpoints.
    """

    def __init__(self, path: Path, interactive: bool | None = None) -> None:
        self.path = path
        self.interactive = sys.stdin.isatty() if interactive is None else interactive
        self._values: dict[str, Any] = {}
        if path.exists():
            with open(path) as f:
                self._values = yaml.safe_load(f) or {}

    @classmethod
    def for_settings(cls, settings: SoloSettings, interactive: bool | None = None) -> FlagStore:
        return cls(settings.home / FLAGS_FILE_NAME, interactive=interactive)

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def update(self, argv: dict[str, Any]) -> None:
        """Merge explicitly supplied flag values, ignoring ``None`` entries."""
        for name, value in argv.items():
            if value is not None:
                self._values[name] = value

    def require(self, name: str, prompt: str | None = None) -> Any:
        """Return a flag value, prompting for it when unset.

        Args:
            name: Flag name.
            prompt: Prompt text shown in interactive sessions.

        Returns:
            The stored or prompted value.

        Raises:
            MissingArgumentError: If the value is unset and cannot be prompted.
        """
        value = self._values.get(name)
        if value in (None, ""):
            if not self.interactive:
                raise MissingArgumentError(name)
            value = typer.prompt(prompt or f"Enter value for {name}")
            self._values[name] = value
        return value

    def save(self) -> None:
        """Write all flag values to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            yaml.safe_dump(self._values, f, default_flow_style=False, sort_keys=True)
        logger.debug("Saved flags to %s", self.path)

    def resolve(self, argv: dict[str, Any], config_cls: type, required: tuple[str, ...] = ()) -> TrackedConfig:
        """Merge command line values, prompt for required flags, and build the command config."""
        self.update(argv)
        for name in required:
            self.require(name, prompt=f"Enter {name.replace('_', ' ')}")
        return build_config(config_cls, self._values)


# ============================================================================
# Read tracking
# ============================================================================

class TrackedConfig:
    """Config proxy that records which declared fields were read."""

    def __init__(self, config: Any) -> None:
        object.__setattr__(self, "_config", config)
        object.__setattr__(self, "_read", set())

    def __getattr__(self, name: str):
        value = getattr(self._config, name)
        self._read.add(name)
        return value

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._config, name, value)

    @property
    def wrapped(self) -> Any:
        return self._config

    def read_fields(self) -> set[str]:
        return set(self._read)

    def unused_fields(self) -> list[str]:
        """Declared fields never read since the wrapper was created."""
        return [f.name for f in fields(self._config) if f.name not in self._read]


# ============================================================================
# Per-command configuration
# ============================================================================

@dataclass
class NodeConfig:
    """Fields shared by every node command.

    Attributes:
        namespace: Kubernetes namespace holding the network.
        node_aliases: Node aliases the command targets.
        cache_dir: Local cache directory; the settings cache directory when unset.
        release_tag: Platform release tag.
        app: Application jar name; empty means the default node app.
        dev_mode: Show debug output on failure.
        debug_node_alias: Alias whose JVM debug port is forwarded.
        keys_dir: Directory holding generated keys.
        staging_dir: Staging directory for files pushed into pods.
        staging_keys_dir: Staging directory for keys pushed into pods.
        pod_names: Pod name per alias, filled while identifying pods.
        existing_node_aliases: Aliases found in the cluster.
        all_node_aliases: Aliases the network has after the command.
        service_map: Node services per alias, refreshed after pod restarts.
        skip_stop: Set when pods could not be identified.
    """

    namespace: str = ""
    node_aliases: list[str] = field(default_factory=list)
    cache_dir: Path | None = None
    release_tag: str = DEFAULT_RELEASE_TAG
    app: str = ""
    dev_mode: bool = False
    debug_node_alias: str = ""
    keys_dir: Path | None = None
    staging_dir: Path | None = None
    staging_keys_dir: Path | None = None
    pod_names: dict[str, str] = field(default_factory=dict)
    existing_node_aliases: list[str] = field(default_factory=list)
    all_node_aliases: list[str] = field(default_factory=list)
    service_map: dict[str, Any] = field(default_factory=dict)
    skip_stop: bool = False


@dataclass
class SetupConfig(NodeConfig):
    local_build_path: str = ""
    app_config: str = ""


@dataclass
class StartConfig(NodeConfig):
    state_file: str = ""


@dataclass
class StopConfig(NodeConfig):
    pass


@dataclass
class KeysConfig(NodeConfig):
    generate_gossip_keys: bool = False
    generate_tls_keys: bool = False


@dataclass
class RefreshConfig(NodeConfig):
    local_build_path: str = ""
    app_config: str = ""


@dataclass
class LogsConfig(NodeConfig):
    pass


@dataclass
class StatesConfig(NodeConfig):
    pass


@dataclass
class FreezeConfig(NodeConfig):
    pass


@dataclass
class RestartConfig(NodeConfig):
    pass


@dataclass
class TransactionConfig(NodeConfig):
    """Fields shared by commands that submit ledger transactions.

    Attributes:
        node_alias: Alias being added, updated or deleted.
        admin_key: Node admin key, loaded from the cluster or the genesis key.
        treasury_key: Treasury account key.
        freeze_admin_private_key: Freeze admin account key.
        chain_id: Ledger chain id.
        chart_dir: Local chart directory overriding the chart repository.
        chart_version: Deployment chart version.
        local_build_path: Local platform build replacing the release download.
        app_config: Comma separated application config files.
        upgrade_zip_file: Prebuilt upgrade zip replacing the mock upgrade.
        output_dir: Directory receiving continuation records.
        input_dir: Directory holding continuation records.
    """

    node_alias: str = ""
    admin_key: str = ""
    treasury_key: str = ""
    freeze_admin_private_key: str = ""
    chain_id: str = ""
    chart_dir: str = ""
    chart_version: str = DEFAULT_CHART_VERSION
    local_build_path: str = ""
    app_config: str = ""
    upgrade_zip_file: str = ""
    output_dir: str = ""
    input_dir: str = ""


@dataclass
class AddConfig(TransactionConfig):
    endpoint_type: str = ENDPOINT_TYPE_FQDN
    gossip_endpoints: str = ""
    grpc_endpoints: str = ""
    generate_gossip_keys: bool = False
    generate_tls_keys: bool = False
    grpc_tls_cert: str = ""
    grpc_tls_key: str = ""
    haproxy_ips: str = ""
    envoy_ips: str = ""
    pvcs: bool = False
    last_state_zip_path: Path | None = None


@dataclass
class DeleteConfig(TransactionConfig):
    endpoint_type: str = ENDPOINT_TYPE_FQDN


@dataclass
class UpdateConfig(TransactionConfig):
    endpoint_type: str = ENDPOINT_TYPE_FQDN
    gossip_endpoints: str = ""
    grpc_endpoints: str = ""
    new_account_number: str = ""
    new_admin_key: str = ""
    tls_public_key: str = ""
    tls_private_key: str = ""
    gossip_public_key: str = ""
    gossip_private_key: str = ""


@dataclass
class UpgradeConfig(TransactionConfig):
    pass


@dataclass
class PrepareUpgradeConfig(TransactionConfig):
    pass


@dataclass
class DownloadGeneratedFilesConfig(TransactionConfig):
    pass


@dataclass
class ClusterSetupConfig:
    cluster_setup_namespace: str = SOLO_CLUSTER_SETUP_NAMESPACE
    chart_dir: str = ""
    deploy_prometheus_stack: bool = True
    deploy_minio: bool = True
    deploy_cert_manager: bool = True
    deploy_cert_manager_crds: bool = True


@dataclass
class MirrorNodeConfig:
    namespace: str = ""
    chart_dir: str = ""
    chart_version: str = DEFAULT_CHART_VERSION
    deploy_hedera_explorer: bool = True


@dataclass
class RelayConfig:
    """Fields of the JSON-RPC relay commands.

    Attributes:
        namespace: Namespace of the network.
        node_aliases: Nodes the relay submits transactions to.
        chain_id: Ledger chain id reported by the relay.
        replica_count: Relay pod replicas.
        operator_id: Operator account of the relay.
        operator_key: Operator key of the relay.
        relay_release_tag: Relay chart version; latest when empty.
        chart_dir: Local relay chart directory.
    """

    namespace: str = ""
    node_aliases: list[str] = field(default_factory=list)
    chain_id: str = DEFAULT_CHAIN_ID
    replica_count: int = 1
    operator_id: str = ""
    operator_key: str = ""
    relay_release_tag: str = ""
    chart_dir: str = ""


@dataclass
class RoleConfig:
    namespace: str = ""
    username: str = ""
    password: str = ""


def build_config(config_cls: type, values: dict[str, Any]) -> TrackedConfig:
    """Create a tracked config from the flag values it declares.

    Args:
        config_cls: Dataclass type of the command's config.
        values: Flag values keyed by field name; unknown keys are ignored.

    Returns:
        The new config wrapped for read tracking.
    """
    declared = {f.name for f in fields(config_cls)}
    kwargs = {k: v for k, v in values.items() if k in declared and v is not None}
    for name in ("node_aliases", "existing_node_aliases", "all_node_aliases"):
        if isinstance(kwargs.get(name), str):
            kwargs[name] = parse_node_aliases(kwargs[name])
    return TrackedConfig(config_cls(**kwargs))


def parse_node_aliases(value: str) -> list[str]:
    """Split a comma separated alias list, dropping blanks."""
    return [alias.strip() for alias in value.split(",") if alias.strip()]
