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

"""Node lifecycle steps used to build node command task lists."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import requests
import yaml

from solo_manager import console, logger, templates
from solo_manager.chart import ChartManager
from solo_manager.config import FlagStore, SoloSettings
from solo_manager.constants import (
    DEFAULT_STAKE_AMOUNT,
    FREEZE_ADMIN_ACCOUNT,
    FREEZE_ADMIN_FUNDING_AMOUNT,
    GENESIS_KEY,
    HEDERA_APP_NAME,
    HEDERA_HAPI_PATH,
    HEDERA_NODE_INTERNAL_GOSSIP_PORT,
    JVM_DEBUG_PORT,
    LABEL_NODE_NAME,
    LABEL_TYPE_HAPROXY,
    LABEL_TYPE_NETWORK_NODE,
    NODE_METRICS_PATH,
    NODE_METRICS_PORT,
    NODE_OVERRIDE_FILE,
    NODE_STATUS_METRIC,
    ROOT_CONTAINER,
    SAVED_STATE_ROOT,
    SOLO_DEPLOYMENT_CHART,
    STAKE_REFRESH_TRANSFER_AMOUNT,
    TREASURY_ACCOUNT_ID,
    UPGRADE_FILE_CHUNK_SIZE,
    UPGRADE_FILE_ID,
    UPGRADE_FREEZE_DELAY_SECONDS,
    NodeStatus,
    NodeSubcommand,
)
from solo_manager.context import NodeAddContext, NodeContext
from solo_manager.continuation import ContinuationSchema, load_record, save_record
from solo_manager.endpoints import resolve_gossip_endpoints, resolve_grpc_endpoints
from solo_manager.errors import IllegalArgumentError, MissingArgumentError, SoloError
from solo_manager.k8s import ClusterClient, wait_for_pods_ready, wait_for_pods_running
from solo_manager.keys import KeyManager
from solo_manager.lease import Lease
from solo_manager.ledger import FreezeType, LedgerClient, load_ledger_client
from solo_manager.node_helpers import (
    build_mock_upgrade_zip,
    debug_values,
    determine_new_node,
    ledger_network,
    node_account_map,
    values_for_add,
    values_for_delete,
    values_for_update,
)
from solo_manager.platform import PlatformInstaller, resolve_local_build_paths
from solo_manager.poller import PollResult, wait_until
from solo_manager.services import build_service_map
from solo_manager.tasks import Task, TaskList
from solo_manager.utils import free_local_port, sha384_hex

ConfigInit = Callable[[NodeContext], None]


def node_status_result(body: str, target: NodeStatus) -> PollResult:
    """Classify a metrics page against the awaited node status.

    CATASTROPHIC_FAILURE is terminal whatever the target. A missing or
    unparseable status line, or any other status, is transient.
    """
    line = next(
        (ln for ln in body.splitlines() if ln.startswith(NODE_STATUS_METRIC) and not ln.startswith("#")),
        None,
    )
    if line is None:
        return PollResult.transient(f"{NODE_STATUS_METRIC} not found")
    try:
        code = int(float(line.split()[-1]))
        status = NodeStatus(code)
    except (ValueError, IndexError):
        return PollResult.transient(f"unparseable status line: {line}")
    if status is NodeStatus.CATASTROPHIC_FAILURE:
        return PollResult.terminal(status.name)
    if status is target:
        return PollResult.success(status)
    return PollResult.transient(f"status is {status.name}")


def is_default_app(app: str) -> bool:
    return app in ("", HEDERA_APP_NAME)


class NodeCommandTasks:
    """Factory of the steps node commands are built from.

    Each public method returns a :class:`Task`. Steps that work per node
    return nested concurrent task lists; steps that issue ledger
    transactions stay sequential because they share one client.
    """

    def __init__(
        self,
        settings: SoloSettings,
        flags: FlagStore,
        cluster: ClusterClient,
        charts: ChartManager,
        keys: KeyManager | None = None,
        platform: PlatformInstaller | None = None,
        ledger_loader: Callable[..., LedgerClient] = load_ledger_client,
        http_get: Callable[..., Any] = requests.get,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.flags = flags
        self.cluster = cluster
        self.charts = charts
        self.keys = keys or KeyManager()
        self.platform = platform or PlatformInstaller(cluster)
        self.ledger_loader = ledger_loader
        self.http_get = http_get
        self.sleep = sleep

    # ========================================================================
    # Initialization
    # ========================================================================

    def initialize(
        self,
        argv: dict[str, Any],
        config_cls: type,
        lease: Lease | None,
        *,
        required: tuple[str, ...] = ("namespace",),
        config_init: ConfigInit | None = None,
    ) -> Task:
        """Resolve flags into the command config, then take the lease.

        Args:
            argv: Flag values given on the command line.
            config_cls: Config dataclass of the command.
            lease: Lease to acquire once the config is known, or None.
            required: Flags that must have a value.
            config_init: Command specific initialization run after the common one.
        """
        def _action(ctx: NodeContext) -> TaskList | None:
            ctx.config = self.flags.resolve(argv, config_cls, required)
            config = ctx.config

            if "namespace" in required and not self.cluster.namespace_exists(config.namespace):
                raise IllegalArgumentError(f"namespace {config.namespace} does not exist", config.namespace)

            cache_dir = Path(config.cache_dir or self.settings.cache_dir).expanduser()
            config.cache_dir = cache_dir
            config.keys_dir = cache_dir / "keys"
            config.staging_dir = templates.staging_dir(cache_dir, config.release_tag)
            config.staging_keys_dir = config.staging_dir / "keys"
            for directory in (config.keys_dir, config.staging_keys_dir):
                directory.mkdir(parents=True, exist_ok=True)

            if config_init is not None:
                config_init(ctx)

            for name in required:
                if not getattr(config.wrapped, name, None):
                    raise MissingArgumentError(name)

            logger.debug("Initialized %s for namespace %s", config_cls.__name__, config.namespace)
            if lease is not None:
                return TaskList([lease.acquire_task()])
            return None

        return Task("Initialize", _action)

    def _aliases(self, ctx: NodeContext, field_name: str) -> list[str]:
        return list(getattr(ctx.config, field_name))

    def _pod(self, ctx: NodeContext, alias: str) -> str:
        return ctx.config.pod_names.get(alias) or templates.network_pod_name(alias)

    def _exec(self, ctx: NodeContext, alias: str, command: list[str] | str) -> str:
        return self.cluster.exec_in_container(ctx.config.namespace, self._pod(ctx, alias), ROOT_CONTAINER, command)

    # ========================================================================
    # Ledger client
    # ========================================================================

    def _client(self, ctx: NodeContext) -> LedgerClient:
        if ctx.ledger_client is None:
            self._connect(ctx)
        return ctx.ledger_client

    def _connect(self, ctx: NodeContext, skip_alias: str = "") -> None:
        config = ctx.config
        if ctx.ledger_client is not None:
            ctx.ledger_client.close()
            ctx.ledger_client = None
        if not config.service_map:
            config.service_map = build_service_map(self.cluster, config.namespace)
        ctx.ledger_client = self.ledger_loader(
            self.settings,
            config.namespace,
            ledger_network(config.service_map, skip_alias),
            operator_key=self._treasury_key(ctx),
        )

    def _treasury_key(self, ctx: NodeContext) -> str:
        return getattr(ctx.config.wrapped, "treasury_key", "") or GENESIS_KEY

    def _freeze_admin_key(self, ctx: NodeContext) -> str:
        return getattr(ctx.config.wrapped, "freeze_admin_private_key", "") or GENESIS_KEY

    # ========================================================================
    # Pods and services
    # ========================================================================

    def _wait_node_pod(self, ctx: NodeContext, alias: str, max_attempts: int | None = None) -> None:
        config = ctx.config
        try:
            pods = wait_for_pods_running(
                self.cluster, config.namespace,
                [f"{LABEL_NODE_NAME}={alias}", LABEL_TYPE_NETWORK_NODE],
                max_attempts=max_attempts or self.settings.pods_running_attempts,
                delay=self.settings.pods_running_delay,
                sleep=self.sleep,
            )
        except SoloError as err:
            config.skip_stop = True
            raise SoloError(f"no pod found for nodeAlias: {alias}", err) from err
        config.pod_names[alias] = pods[0]["metadata"]["name"]

    def identify_network_pods(self, max_attempts: int | None = None, tolerate_missing: bool = False) -> Task:
        def _check(ctx: NodeContext, alias: str) -> None:
            try:
                self._wait_node_pod(ctx, alias, max_attempts)
            except SoloError as err:
                if not tolerate_missing:
                    raise
                console.print(f"[yellow]⚠️  {err}[/yellow]")

        def _action(ctx: NodeContext) -> TaskList:
            return TaskList([
                Task(f"Check network pod: {alias}", lambda c, alias=alias: _check(c, alias))
                for alias in ctx.config.node_aliases
            ], concurrent=True)

        return Task("Identify network pods", _action)

    def identify_existing_nodes(self) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            config = ctx.config
            config.service_map = build_service_map(self.cluster, config.namespace)
            config.existing_node_aliases = list(config.service_map)
            config.all_node_aliases = list(config.existing_node_aliases)
            if not config.node_aliases:
                config.node_aliases = list(config.existing_node_aliases)
            for alias, service in config.service_map.items():
                config.pod_names[alias] = service.pod_name
            return TaskList([
                Task(f"Check network pod: {alias}", lambda c, alias=alias: self._wait_node_pod(c, alias))
                for alias in config.existing_node_aliases
            ], concurrent=True)

        return Task("Identify existing network nodes", _action)

    def populate_service_map(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            config.service_map = build_service_map(self.cluster, config.namespace)
            config.pod_names = {alias: svc.pod_name for alias, svc in config.service_map.items()}

        return Task("Populate serviceMap", _action)

    def refresh_node_list(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            config.all_node_aliases = [a for a in config.existing_node_aliases if a != config.node_alias]

        return Task("Refresh node alias list", _action)

    def check_pvcs_enabled(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            if not ctx.config.pvcs:
                raise IllegalArgumentError("PVCs are not enabled. Please enable PVCs before adding a node")

        return Task("Check that PVCs are enabled", _action)

    def kill_nodes(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            for service in config.service_map.values():
                self.cluster.delete_pod(config.namespace, service.pod_name)

        return Task("Kill nodes", _action)

    def kill_nodes_and_update_config_map(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            # the pod label carries the account id, so a changed account renames the pod
            config.service_map = build_service_map(self.cluster, config.namespace)
            for service in config.service_map.values():
                self.cluster.delete_pod(config.namespace, service.pod_name)
            config.service_map = build_service_map(self.cluster, config.namespace)
            config.pod_names = {alias: svc.pod_name for alias, svc in config.service_map.items()}

        return Task("Kill nodes to pick up updated configMaps", _action)

    def check_node_pods_are_running(self) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            return TaskList([
                Task(f"Check Node: {alias}", lambda c, alias=alias: self._wait_node_pod(c, alias))
                for alias in ctx.config.all_node_aliases
            ])

        return Task("Check node pods are running", _action)

    def sleep_task(self, title: str, seconds: float) -> Task:
        return Task(title, lambda ctx: self.sleep(seconds))

    # ========================================================================
    # Platform software
    # ========================================================================

    def fetch_platform_software(self, aliases_field: str) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            config = ctx.config
            aliases = self._aliases(ctx, aliases_field)
            local_paths = resolve_local_build_paths(config.local_build_path, aliases) \
                if getattr(config.wrapped, "local_build_path", "") else {}
            app_config = getattr(config.wrapped, "app_config", "")

            def _fetch(c: NodeContext, alias: str) -> None:
                pod = self._pod(c, alias)
                if alias in local_paths:
                    self.platform.copy_local_build(c.config.namespace, pod, local_paths[alias], app_config)
                else:
                    self.platform.fetch_platform(c.config.namespace, pod, c.config.release_tag)

            return TaskList([
                Task(f"Update node: {alias} [ platformVersion = {config.release_tag} ]",
                     lambda c, alias=alias: _fetch(c, alias))
                for alias in aliases
            ], concurrent=True)

        return Task("Fetch platform software into network nodes", _action)

    def _write_node_overrides(self, ctx: NodeContext) -> Path:
        config = ctx.config
        if not config.service_map:
            config.service_map = build_service_map(self.cluster, config.namespace)
        overrides = {
            "gossip": {
                "endpointOverrides": [
                    {
                        "nodeId": service.node_id,
                        "hostname": templates.pod_fqdn(config.namespace, alias),
                        "port": HEDERA_NODE_INTERNAL_GOSSIP_PORT,
                    }
                    for alias, service in config.service_map.items()
                ],
            },
        }
        path = Path(config.staging_dir) / NODE_OVERRIDE_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(overrides, f, default_flow_style=False)
        return path

    def setup_network_nodes(self, aliases_field: str, write_overrides: bool = True) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            config = ctx.config
            overrides = self._write_node_overrides(ctx) if write_overrides else None

            def _setup(c: NodeContext, alias: str) -> None:
                pod = self._pod(c, alias)
                if overrides is not None:
                    self.cluster.copy_to(c.config.namespace, pod, ROOT_CONTAINER, overrides,
                                         f"{HEDERA_HAPI_PATH}/data/config")
                self.platform.setup_node(c.config.namespace, pod)

            return TaskList([
                Task(f"Node: {alias}", lambda c, alias=alias: _setup(c, alias))
                for alias in self._aliases(ctx, aliases_field)
            ], concurrent=True)

        return Task("Setup network nodes", _action)

    def upload_state_files(self, skip: Callable[[Any], bool]) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            state_file = Path(ctx.config.state_file)

            def _upload(c: NodeContext, alias: str) -> None:
                self.cluster.copy_to(c.config.namespace, self._pod(c, alias), ROOT_CONTAINER,
                                     state_file, f"{HEDERA_HAPI_PATH}/data")
                self._exec(c, alias, f"rm -rf {HEDERA_HAPI_PATH}/data/saved/* && "
                                     f"tar -xvf {HEDERA_HAPI_PATH}/data/{state_file.name} "
                                     f"-C {HEDERA_HAPI_PATH}/data/saved")

            return TaskList([
                Task(f"Node: {alias}", lambda c, alias=alias: _upload(c, alias))
                for alias in ctx.config.node_aliases
            ], concurrent=True)

        return Task("Upload state files network nodes", _action, skip=skip)

    def dump_network_nodes_save_state(self) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            return TaskList([
                Task(f"Node: {alias}",
                     lambda c, alias=alias: self._exec(c, alias, f"rm -rf {HEDERA_HAPI_PATH}/data/saved/*"))
                for alias in ctx.config.node_aliases
            ], concurrent=True)

        return Task("Dump network nodes saved state", _action)

    # ========================================================================
    # Start and stop
    # ========================================================================

    def start_nodes(self, aliases_field: str) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            return TaskList([
                Task(f"Start node: {alias}",
                     lambda c, alias=alias: self._exec(c, alias, ["systemctl", "restart", "network-node"]))
                for alias in self._aliases(ctx, aliases_field)
            ], concurrent=True)

        return Task("Starting nodes", _action)

    def stop_nodes(self, aliases_field: str) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            if ctx.ledger_client is not None:
                ctx.ledger_client.close()
                ctx.ledger_client = None
            return TaskList([
                Task(f"Stop node: {alias}",
                     lambda c, alias=alias: self._exec(c, alias, ["systemctl", "stop", "network-node"]))
                for alias in self._aliases(ctx, aliases_field)
            ], concurrent=True)

        return Task("Stopping nodes", _action, skip=lambda ctx: ctx.config.skip_stop)

    def enable_port_forwarding(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            pod = templates.network_pod_name(config.debug_node_alias)
            forward = self.cluster.port_forward(config.namespace, pod, JVM_DEBUG_PORT, JVM_DEBUG_PORT)
            ctx.port_forwards.append(forward)
            console.print(f"[yellow]ℹ️  Debug port {JVM_DEBUG_PORT} forwarded to {pod}[/yellow]")

        return Task("Enable port forwarding for JVM debugger", _action,
                    skip=lambda ctx: not ctx.config.debug_node_alias)

    # ========================================================================
    # Activeness
    # ========================================================================

    def check_node_status(self, ctx: NodeContext, alias: str, target: NodeStatus) -> NodeStatus:
        """Poll a node's metrics endpoint until it reports ``target``.

        A port-forward to the metrics port is held for the whole wait and
        closed on every exit path.

        Raises:
            TerminalStatusError: If the node reports CATASTROPHIC_FAILURE.
            PollTimeoutError: If the status is not reached within the budget.
        """
        config = ctx.config
        if config.debug_node_alias == alias:
            console.print(f"[yellow]ℹ️  Please attach JVM debugger now for {alias}[/yellow]")
        timeout = self.settings.node_active_timeout
        with self.cluster.port_forward(config.namespace, self._pod(ctx, alias),
                                       free_local_port(), NODE_METRICS_PORT) as forward:
            url = f"http://127.0.0.1:{forward.local_port}{NODE_METRICS_PATH}"

            def _check() -> PollResult:
                try:
                    response = self.http_get(url, timeout=timeout)
                except requests.exceptions.RequestException as exc:
                    return PollResult.transient(f"metrics fetch failed: {exc}")
                if not response.ok:
                    return PollResult.transient(f"metrics endpoint returned HTTP {response.status_code}")
                return node_status_result(response.text, target)

            status = wait_until(
                _check,
                max_attempts=self.settings.node_active_attempts,
                delay=self.settings.node_active_delay,
                timeout_per_attempt=timeout,
                entity=f"node '{alias}'",
                target=target.name,
                sleep=self.sleep,
            )
        if self.settings.activeness_settle_delay > 0:
            self.sleep(self.settings.activeness_settle_delay)
        return status

    def _check_all(self, title: str, aliases_field: str, target: NodeStatus) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            return TaskList([
                Task(f"Check network pod: {alias}",
                     lambda c, alias=alias: self.check_node_status(c, alias, target))
                for alias in self._aliases(ctx, aliases_field)
            ], concurrent=True)

        return Task(title, _action)

    def check_all_nodes_are_active(self, aliases_field: str) -> Task:
        return self._check_all("Check all nodes are ACTIVE", aliases_field, NodeStatus.ACTIVE)

    def check_all_nodes_are_frozen(self, aliases_field: str) -> Task:
        return self._check_all("Check all nodes are FROZEN", aliases_field, NodeStatus.FREEZE_COMPLETE)

    def _check_proxy(self, ctx: NodeContext, alias: str) -> None:
        wait_for_pods_ready(
            self.cluster, ctx.config.namespace,
            [f"app={templates.haproxy_name(alias)}", LABEL_TYPE_HAPROXY],
            max_attempts=self.settings.proxy_active_attempts,
            delay=self.settings.proxy_active_delay,
            sleep=self.sleep,
        )

    def check_node_proxies_are_active(self, aliases_field: str = "node_aliases") -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            return TaskList([
                Task(f"Check proxy for node: {alias}", lambda c, alias=alias: self._check_proxy(c, alias))
                for alias in self._aliases(ctx, aliases_field)
            ])

        return Task("Check node proxies are ACTIVE", _action,
                    skip=lambda ctx: not is_default_app(ctx.config.app))

    def check_all_node_proxies_are_active(self) -> Task:
        return self.check_node_proxies_are_active("all_node_aliases")

    # ========================================================================
    # Staking
    # ========================================================================

    def _add_stake(self, ctx: NodeContext, alias: str, account_id: str) -> None:
        client = self._client(ctx)
        client.set_operator(TREASURY_ACCOUNT_ID, self._treasury_key(ctx))
        client.transfer(TREASURY_ACCOUNT_ID, account_id, DEFAULT_STAKE_AMOUNT)
        client.update_account_stake(account_id, templates.node_id_from_alias(alias))
        console.print(f"[green]  ✓ Staked {DEFAULT_STAKE_AMOUNT} to {account_id} ({alias})[/green]")

    def add_node_stakes(self) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            config = ctx.config
            if not config.service_map:
                config.service_map = build_service_map(self.cluster, config.namespace)
            accounts = node_account_map(config.service_map, config.node_aliases)
            return TaskList([
                Task(f"Adding stake for node: {alias}",
                     lambda c, alias=alias, account=account: self._add_stake(c, alias, account))
                for alias, account in accounts.items()
            ])

        return Task("Add node stakes", _action, skip=lambda ctx: not is_default_app(ctx.config.app))

    def stake_new_node(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            ctx.config.service_map = build_service_map(self.cluster, ctx.config.namespace)
            self._connect(ctx)
            self._add_stake(ctx, ctx.new_node.name, ctx.new_node.account_id)

        return Task("Stake new node", _action)

    def trigger_stake_weight_calculate(self, kind: str) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            logger.info("Waiting %ss for the network to handle the node change",
                        self.settings.stake_recalculation_delay)
            self.sleep(self.settings.stake_recalculation_delay)

            config.service_map = build_service_map(self.cluster, config.namespace)
            accounts = node_account_map(config.service_map, config.all_node_aliases)
            skip_alias = ""
            if kind == NodeSubcommand.UPDATE and getattr(config.wrapped, "new_account_number", ""):
                accounts[config.node_alias] = config.new_account_number
                skip_alias = config.node_alias
            elif kind == NodeSubcommand.DELETE:
                accounts.pop(config.node_alias, None)
                skip_alias = config.node_alias

            self._connect(ctx, skip_alias=skip_alias)
            client = ctx.ledger_client
            client.set_operator(TREASURY_ACCOUNT_ID, self._treasury_key(ctx))
            for account_id in accounts.values():
                client.transfer(TREASURY_ACCOUNT_ID, account_id, STAKE_REFRESH_TRANSFER_AMOUNT)

        return Task("Trigger stake weight calculate", _action)

    def check_existing_nodes_staked_amount(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            client = self._client(ctx)
            client.set_operator(TREASURY_ACCOUNT_ID, self._treasury_key(ctx))
            for account_id in node_account_map(config.service_map, config.existing_node_aliases).values():
                client.transfer(TREASURY_ACCOUNT_ID, account_id, STAKE_REFRESH_TRANSFER_AMOUNT)

        return Task("Check existing nodes staked amount", _action)

    # ========================================================================
    # Keys
    # ========================================================================

    def _key_aliases(self, ctx: NodeContext, all_nodes: bool) -> list[str]:
        return list(ctx.config.node_aliases) if all_nodes else [ctx.config.node_alias]

    def generate_gossip_keys(self, all_nodes: bool = True) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            keys_dir = ctx.config.keys_dir
            return TaskList([
                Task(f"Gossip key for node: {alias}",
                     lambda c, alias=alias: self.keys.generate_signing_key(alias, keys_dir))
                for alias in self._key_aliases(ctx, all_nodes)
            ], concurrent=True)

        return Task("Generate gossip keys", _action, skip=lambda ctx: not ctx.config.generate_gossip_keys)

    def generate_grpc_tls_keys(self, all_nodes: bool = True) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            keys_dir = ctx.config.keys_dir
            return TaskList([
                Task(f"TLS key for node: {alias}",
                     lambda c, alias=alias: self.keys.generate_grpc_tls_key(alias, keys_dir))
                for alias in self._key_aliases(ctx, all_nodes)
            ], concurrent=True)

        return Task("Generate gRPC TLS keys", _action, skip=lambda ctx: not ctx.config.generate_tls_keys)

    def copy_grpc_tls_certificates(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            alias = config.node_alias
            keys_dir = Path(config.keys_dir)
            (keys_dir / templates.tls_public_key_file(alias)).write_bytes(Path(config.grpc_tls_cert).read_bytes())
            (keys_dir / templates.tls_private_key_file(alias)).write_bytes(Path(config.grpc_tls_key).read_bytes())

        return Task("Copy gRPC TLS certificates", _action,
                    skip=lambda ctx: not (ctx.config.grpc_tls_cert and ctx.config.grpc_tls_key))

    def load_signing_key_certificate(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            path = Path(ctx.config.keys_dir) / templates.gossip_public_key_file(ctx.config.node_alias)
            ctx.signing_cert_der = self.keys.der_from_pem_certificate(path)

        return Task("Load signing key certificate", _action)

    def compute_mtls_certificate_hash(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            path = Path(ctx.config.keys_dir) / templates.tls_public_key_file(ctx.config.node_alias)
            ctx.tls_cert_hash = self.keys.certificate_hash(path)

        return Task("Compute mTLS certificate hash", _action)

    def prepare_staging_directory(self, aliases_field: str) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            config = ctx.config
            return TaskList([
                Task(f"Copy keys of node: {alias}",
                     lambda c, alias=alias: self.keys.copy_node_keys(
                         alias, config.keys_dir, config.staging_keys_dir, gossip=True, tls=True))
                for alias in self._aliases(ctx, aliases_field)
            ])

        return Task("Prepare staging directory", _action)

    def copy_node_keys_to_secrets(self) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            config = ctx.config
            return self.platform.copy_node_keys_tasks(
                config.namespace, list(config.all_node_aliases), config.staging_keys_dir)

        return Task("Copy node keys to secrets", _action)

    def load_admin_key(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            secret = self.cluster.get_secret(config.namespace, templates.admin_key_secret(config.node_alias))
            if secret and secret.get("privateKey"):
                config.admin_key = secret["privateKey"].decode().strip()
            else:
                logger.debug("No admin key secret for %s, using the genesis key", config.node_alias)
                config.admin_key = GENESIS_KEY

        return Task("Load node admin key", _action, skip=lambda ctx: bool(ctx.config.admin_key))

    # ========================================================================
    # New node
    # ========================================================================

    def determine_new_node_account_number(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            config = ctx.config
            if not config.service_map:
                config.service_map = build_service_map(self.cluster, config.namespace)
            ctx.new_node, ctx.max_num = determine_new_node(config.service_map)
            config.node_alias = ctx.new_node.name
            config.all_node_aliases = [*config.all_node_aliases, ctx.new_node.name]
            console.print(f"[green]  ✓ New node {ctx.new_node.name} with account {ctx.new_node.account_id}[/green]")

        return Task("Determine new node account number", _action)

    def prepare_gossip_endpoints(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            config = ctx.config
            ctx.gossip_endpoints = resolve_gossip_endpoints(
                config.endpoint_type, config.gossip_endpoints, config.namespace, config.node_alias)

        return Task("Prepare gossip endpoints", _action)

    def prepare_grpc_service_endpoints(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            config = ctx.config
            ctx.grpc_service_endpoints = resolve_grpc_endpoints(
                config.endpoint_type, config.grpc_endpoints, config.namespace, config.node_alias)

        return Task("Prepare grpc service endpoints", _action)

    # ========================================================================
    # Upgrade and freeze
    # ========================================================================

    def _upload_upgrade_zip(self, ctx: NodeContext, zip_path: Path) -> str:
        payload = Path(zip_path).read_bytes()
        digest = sha384_hex(zip_path)
        client = self._client(ctx)
        signing_key = self._treasury_key(ctx)
        try:
            for start in range(0, len(payload), UPGRADE_FILE_CHUNK_SIZE):
                chunk = payload[start:start + UPGRADE_FILE_CHUNK_SIZE]
                if start == 0:
                    client.update_file(UPGRADE_FILE_ID, chunk, signing_key)
                else:
                    client.append_file(UPGRADE_FILE_ID, chunk, signing_key)
                logger.debug("uploaded %d bytes of %d bytes", min(start + len(chunk), len(payload)), len(payload))
        except Exception as err:
            raise SoloError(f"failed to upload build.zip file: {err}", err) from err
        return digest

    def prepare_upgrade_zip(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            if config.upgrade_zip_file:
                zip_path = Path(config.upgrade_zip_file)
            else:
                zip_path = build_mock_upgrade_zip(config.staging_dir)
            ctx.upgrade_zip_hash = self._upload_upgrade_zip(ctx, zip_path)
            logger.debug("Upgrade zip %s hash %s", zip_path, ctx.upgrade_zip_hash)

        return Task("Prepare upgrade zip file for node upgrade process", _action)

    def send_prepare_upgrade_transaction(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            client = self._client(ctx)
            try:
                balance = client.get_account_balance(FREEZE_ADMIN_ACCOUNT)
                logger.debug("Freeze admin account balance: %s", balance)
                client.set_operator(TREASURY_ACCOUNT_ID, self._treasury_key(ctx))
                client.transfer(TREASURY_ACCOUNT_ID, FREEZE_ADMIN_ACCOUNT, FREEZE_ADMIN_FUNDING_AMOUNT)
                client.set_operator(FREEZE_ADMIN_ACCOUNT, self._freeze_admin_key(ctx))
                client.freeze(FreezeType.PREPARE_UPGRADE, file_id=UPGRADE_FILE_ID, file_hash=ctx.upgrade_zip_hash)
            except Exception as err:
                raise SoloError(f"Error in prepare upgrade: {err}", err) from err

        return Task("Send prepare upgrade transaction", _action)

    def _freeze_start_time(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(seconds=UPGRADE_FREEZE_DELAY_SECONDS)

    def send_freeze_upgrade_transaction(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            client = self._client(ctx)
            try:
                client.set_operator(FREEZE_ADMIN_ACCOUNT, self._freeze_admin_key(ctx))
                client.freeze(FreezeType.FREEZE_UPGRADE, start_time=self._freeze_start_time(),
                              file_id=UPGRADE_FILE_ID, file_hash=ctx.upgrade_zip_hash)
            except Exception as err:
                raise SoloError(f"Error in freeze upgrade: {err}", err) from err

        return Task("Send freeze upgrade transaction", _action)

    def send_freeze_transaction(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            client = self._client(ctx)
            try:
                client.set_operator(FREEZE_ADMIN_ACCOUNT, self._freeze_admin_key(ctx))
                client.freeze(FreezeType.FREEZE_ONLY, start_time=self._freeze_start_time())
            except Exception as err:
                raise SoloError(f"Error in sending freeze transaction: {err}", err) from err

        return Task("Send freeze only transaction", _action)

    # ========================================================================
    # Node transactions
    # ========================================================================

    def send_node_create_transaction(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            client = self._client(ctx)
            try:
                client.create_node(
                    account_id=ctx.new_node.account_id,
                    gossip_endpoints=ctx.gossip_endpoints,
                    grpc_endpoints=ctx.grpc_service_endpoints,
                    gossip_ca_certificate=ctx.signing_cert_der,
                    certificate_hash=ctx.tls_cert_hash,
                    admin_key=ctx.admin_key,
                )
            except Exception as err:
                raise SoloError(f"Error adding node to network: {err}", err) from err

        return Task("Send node create transaction", _action)

    def send_node_update_transaction(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            node_id = templates.node_id_from_alias(config.node_alias)
            logger.info("nodeId: %d, newAccountNumber: %s", node_id, config.new_account_number)
            if len(config.existing_node_aliases) > 1:
                self._connect(ctx, skip_alias=config.node_alias)
            client = self._client(ctx)
            keys_dir = Path(config.keys_dir)
            update: dict[str, Any] = {}
            try:
                if config.tls_public_key and config.tls_private_key:
                    update["certificate_hash"] = self.keys.certificate_hash(Path(config.tls_public_key))
                    (keys_dir / templates.tls_public_key_file(config.node_alias)).write_bytes(
                        Path(config.tls_public_key).read_bytes())
                    (keys_dir / templates.tls_private_key_file(config.node_alias)).write_bytes(
                        Path(config.tls_private_key).read_bytes())
                if config.gossip_public_key and config.gossip_private_key:
                    update["gossip_ca_certificate"] = self.keys.der_from_pem_certificate(
                        Path(config.gossip_public_key))
                    (keys_dir / templates.gossip_public_key_file(config.node_alias)).write_bytes(
                        Path(config.gossip_public_key).read_bytes())
                    (keys_dir / templates.gossip_private_key_file(config.node_alias)).write_bytes(
                        Path(config.gossip_private_key).read_bytes())
                if config.gossip_endpoints:
                    update["gossip_endpoints"] = resolve_gossip_endpoints(
                        config.endpoint_type, config.gossip_endpoints, config.namespace, config.node_alias)
                if config.grpc_endpoints:
                    update["grpc_endpoints"] = resolve_grpc_endpoints(
                        config.endpoint_type, config.grpc_endpoints, config.namespace, config.node_alias)
                if config.new_account_number:
                    update["account_id"] = config.new_account_number
                if config.new_admin_key:
                    update["new_admin_key"] = config.new_admin_key
                client.update_node(node_id=node_id, admin_key=config.admin_key, **update)
            except Exception as err:
                raise SoloError(f"Error updating node to network: {err}", err) from err

        return Task("Send node update transaction", _action)

    def send_node_delete_transaction(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            client = self._client(ctx)
            try:
                logger.debug("Deleting node: %s", config.node_alias)
                client.delete_node(node_id=templates.node_id_from_alias(config.node_alias),
                                   admin_key=config.admin_key)
            except Exception as err:
                raise SoloError(f"Error deleting node from network: {err}", err) from err

        return Task("Send node delete transaction", _action)

    # ========================================================================
    # Chart
    # ========================================================================

    def update_chart_with_config_map(self, title: str, kind: str,
                                     skip: Callable[[Any], bool] | bool | None = None) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            if not config.service_map:
                config.service_map = build_service_map(self.cluster, config.namespace)
            if kind == NodeSubcommand.ADD:
                values = values_for_add(config.service_map, ctx.new_node, config.haproxy_ips, config.envoy_ips)
            elif kind == NodeSubcommand.DELETE:
                values = values_for_delete(config.service_map, config.node_alias)
            else:
                values = values_for_update(config.service_map, config.node_alias, config.new_account_number)
            values += debug_values(config.debug_node_alias)
            chart = config.chart_dir or f"{self.settings.chart_repo}/{SOLO_DEPLOYMENT_CHART}"
            self.charts.upgrade(config.namespace, SOLO_DEPLOYMENT_CHART, chart, config.chart_version, values)

        return Task(title, _action, skip=skip)

    # ========================================================================
    # Files from nodes
    # ========================================================================

    def download_node_generated_files(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            existing = config.existing_node_aliases
            alias = existing[0]
            if config.node_alias == alias and len(existing) > 1:
                alias = existing[1]
            namespace, pod = config.namespace, self._pod(ctx, alias)
            current = f"{HEDERA_HAPI_PATH}/data/upgrade/current"

            self.cluster.copy_from(namespace, pod, ROOT_CONTAINER, f"{current}/config.txt", config.staging_dir)
            key_dir = self._exec(ctx, alias, f"if [ -d {current}/data/keys ]; then echo {current}/data/keys; "
                                             f"else echo {current}; fi").strip()
            self._exec(ctx, alias, f"mkdir -p {HEDERA_HAPI_PATH}/data/keys_backup && "
                                   f"cp -r {HEDERA_HAPI_PATH}/data/keys/* {HEDERA_HAPI_PATH}/data/keys_backup/ "
                                   f"2>/dev/null || true")
            listing = self._exec(ctx, alias, f"ls -1 {key_dir}")
            for name in listing.split():
                if name.startswith("s") and name.endswith(".pem"):
                    self.cluster.copy_from(namespace, pod, ROOT_CONTAINER, f"{key_dir}/{name}", config.keys_dir)

            properties = f"{current}/data/config/application.properties"
            found = self._exec(ctx, alias, f"test -f {properties} && echo yes || echo no").strip()
            if found == "yes":
                self.cluster.copy_from(namespace, pod, ROOT_CONTAINER, properties,
                                       Path(config.staging_dir) / "templates")

        return Task("Download generated files from an existing node", _action)

    def download_node_upgrade_files(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            config = ctx.config
            alias = (config.node_aliases or config.existing_node_aliases)[0]
            current = f"{HEDERA_HAPI_PATH}/data/upgrade/current"
            for directory in (current, f"{current}/data/apps", f"{current}/data/libs"):
                listing = self._exec(ctx, alias, f"find {directory} -maxdepth 1 -type f ! -name '*.mf' "
                                                 f"2>/dev/null || true")
                for path in listing.split():
                    self.cluster.copy_from(config.namespace, self._pod(ctx, alias), ROOT_CONTAINER,
                                           path, config.staging_dir)

        return Task("Download upgrade files from an existing node", _action)

    def _logs_dir(self, namespace: str) -> Path:
        return Path(self.settings.home) / "logs" / namespace

    def get_node_logs_and_configs(self) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            namespace = ctx.config.namespace
            target = self._logs_dir(namespace) / datetime.now().strftime("%Y%m%d-%H%M%S")
            pods = [pod["metadata"]["name"] for pod in self.cluster.list_pods(namespace, [LABEL_TYPE_NETWORK_NODE])]

            def _collect(pod: str) -> None:
                archive = f"{HEDERA_HAPI_PATH}/{pod}.tgz"
                try:
                    self.cluster.exec_in_container(
                        namespace, pod, ROOT_CONTAINER,
                        f"tar -czf {archive} -C {HEDERA_HAPI_PATH} --ignore-failed-read "
                        f"output data/config data/upgrade/current/config.txt 2>/dev/null || true",
                    )
                    self.cluster.copy_from(namespace, pod, ROOT_CONTAINER, archive, target)
                except Exception as exc:
                    logger.error("Failed to collect logs from %s: %s", pod, exc)

            return TaskList([Task(f"Node: {pod}", lambda c, pod=pod: _collect(pod)) for pod in pods],
                            concurrent=True)

        return Task("Get node logs and configs", _action)

    def get_node_state_files(self) -> Task:
        def _action(ctx: NodeContext) -> TaskList:
            namespace = ctx.config.namespace
            target = self._logs_dir(namespace)

            def _collect(c: NodeContext, alias: str) -> None:
                pod = self._pod(c, alias)
                archive = f"{HEDERA_HAPI_PATH}/{pod}-state.zip"
                try:
                    self._exec(c, alias, f"tar -czf {archive} -C {HEDERA_HAPI_PATH}/data/saved .")
                    self.cluster.copy_from(namespace, pod, ROOT_CONTAINER, archive, target)
                except Exception as exc:
                    logger.error("Failed to collect state files from %s: %s", pod, exc)

            return TaskList([
                Task(f"Node: {alias}", lambda c, alias=alias: _collect(c, alias))
                for alias in ctx.config.node_aliases
            ], concurrent=True)

        return Task("Get node states", _action)

    # ========================================================================
    # Saved state
    # ========================================================================

    def download_last_state(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            config = ctx.config
            alias = config.existing_node_aliases[0]
            upgrade_dir = f"{SAVED_STATE_ROOT}/0/123"
            zip_name = self._exec(
                ctx, alias,
                f'cd {upgrade_dir} && latest=$(ls -1t . | head -n 1) && '
                f'jar cf "${{latest}}.zip" -C "${{latest}}" . && echo -n "${{latest}}.zip"',
            ).strip()
            config.last_state_zip_path = self.cluster.copy_from(
                config.namespace, self._pod(ctx, alias), ROOT_CONTAINER, f"{upgrade_dir}/{zip_name}",
                config.staging_dir)

        return Task("Download last state from an existing node", _action)

    def upload_state_to_new_node(self) -> Task:
        def _action(ctx: NodeAddContext) -> None:
            config = ctx.config
            alias = config.node_alias
            zip_path = Path(config.last_state_zip_path)
            match = re.search(r"(\d+)\.zip$", zip_path.name)
            if match is None:
                raise SoloError(f"unexpected saved state archive name: {zip_path.name}")
            node_id = templates.node_id_from_alias(alias)
            saved_dir = f"{SAVED_STATE_ROOT}/{node_id}/123/{match.group(1)}"
            pod = self._pod(ctx, alias)

            self._exec(ctx, alias, f"mkdir -p {saved_dir}")
            self.cluster.copy_to(config.namespace, pod, ROOT_CONTAINER, zip_path, saved_dir)
            self.platform.set_path_permission(config.namespace, pod, HEDERA_HAPI_PATH)
            self._exec(ctx, alias, f"cd {saved_dir} && jar xf {zip_path.name} && rm -f {zip_path.name}")

        return Task("Upload last saved state to new network node", _action)

    # ========================================================================
    # Continuation and finalize
    # ========================================================================

    def save_context_data(self, argv: dict[str, Any], schema: ContinuationSchema,
                          projection: Callable[[Any], dict[str, Any]]) -> Task:
        def _action(ctx: NodeContext) -> None:
            path = save_record(argv.get("output_dir"), schema, projection(ctx))
            console.print(f"[green]  ✓ Context data saved to {path}[/green]")

        return Task("Save context data", _action)

    def load_context_data(self, argv: dict[str, Any], schema: ContinuationSchema,
                          loader: Callable[[Any, dict[str, Any]], None]) -> Task:
        def _action(ctx: NodeContext) -> None:
            loader(ctx, load_record(argv.get("input_dir"), schema))

        return Task("Load context data", _action)

    def finalize(self) -> Task:
        def _action(ctx: NodeContext) -> None:
            self.flags.set("generate_gossip_keys", False)
            self.flags.set("generate_tls_keys", False)
            self.flags.save()

        return Task("Finalize", _action)
