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

"""Cluster setup, mirror node, JSON-RPC relay and user role handlers."""

from __future__ import annotations

import json
from typing import Any

from rich.table import Table

from solo_manager import console, templates
from solo_manager.chart import set_args
from solo_manager.config import ClusterSetupConfig, MirrorNodeConfig, RelayConfig, RoleConfig
from solo_manager.constants import (
    GENESIS_KEY,
    GRPC_PORT,
    JSON_RPC_RELAY_CHART,
    JSON_RPC_RELAY_REPO,
    MIRROR_EXPLORER_COMPONENT,
    MIRROR_NODE_COMPONENTS,
    MIRROR_POSTGRES_PVC_LABEL,
    OPERATOR_ID,
    RELAY_PODS_READY_MAX_ATTEMPTS,
    SOLO_CLUSTER_SETUP_CHART,
    SOLO_CLUSTER_SETUP_NAMESPACE,
    SOLO_DEPLOYMENT_CHART,
    USER_CLUSTER_ROLE,
    USER_ROLE_VERBS,
)
from solo_manager.context import CommandContext
from solo_manager.errors import IllegalArgumentError, SoloError
from solo_manager.handlers import CommandHandlers
from solo_manager.k8s import wait_for_pods_ready, wait_for_pods_running
from solo_manager.services import build_service_map
from solo_manager.tasks import Task, TaskList


# ============================================================================
# Cluster
# ============================================================================

def cluster_setup_values(config: ClusterSetupConfig) -> list[str]:
    return set_args({
        "cloud.prometheusStack.enabled": config.deploy_prometheus_stack,
        "cloud.minio.enabled": config.deploy_minio,
        "cloud.certManager.enabled": config.deploy_cert_manager,
        "cert-manager.installCRDs": config.deploy_cert_manager_crds,
    })


class ClusterCommandHandlers(CommandHandlers):
    """Cluster wide chart installation and kubectl context inspection."""

    _required = ("cluster_setup_namespace",)

    def list_contexts(self, argv: dict[str, Any]) -> bool:
        table = Table(title="Kubernetes contexts")
        table.add_column("Context")
        for context in self.cluster.list_contexts():
            table.add_row(context)
        console.print(table)
        return True

    def info(self, argv: dict[str, Any]) -> bool:
        console.print(f"[yellow]ℹ️  Current context: {self.cluster.current_context()}[/yellow]")
        console.print(self.cluster.cluster_info())
        return True

    def _chart(self, config: ClusterSetupConfig) -> str:
        return config.chart_dir or f"{self.settings.chart_repo}/{SOLO_CLUSTER_SETUP_CHART}"

    def setup(self, argv: dict[str, Any]) -> bool:
        namespace = argv.get("cluster_setup_namespace") or SOLO_CLUSTER_SETUP_NAMESPACE
        argv = {**argv, "cluster_setup_namespace": namespace}
        lease = self._lease("cluster_setup_namespace")

        def _install(ctx: CommandContext) -> None:
            config = ctx.config
            self.charts.install_with_rollback(
                config.cluster_setup_namespace, SOLO_CLUSTER_SETUP_CHART, self._chart(config),
                self.settings.chart_version, cluster_setup_values(config),
            )

        steps = [
            # the lease is stored in this namespace
            Task("Ensure cluster setup namespace", lambda ctx: self.cluster.create_namespace(namespace)),
            self._initialize(argv, ClusterSetupConfig, lease, self._required),
            Task("Install cluster setup chart", _install,
                 skip=lambda ctx: self.charts.is_chart_installed(namespace, SOLO_CLUSTER_SETUP_CHART)),
        ]
        return self._run("Cluster setup", steps, CommandContext(), lease, "Error on cluster setup")

    def reset(self, argv: dict[str, Any]) -> bool:
        namespace = argv.get("cluster_setup_namespace") or SOLO_CLUSTER_SETUP_NAMESPACE
        argv = {**argv, "cluster_setup_namespace": namespace}
        lease = self._lease("cluster_setup_namespace")

        def _uninstall(ctx: CommandContext) -> None:
            if not self.charts.is_chart_installed(namespace, SOLO_CLUSTER_SETUP_CHART):
                console.print(f"[yellow]ℹ️  {SOLO_CLUSTER_SETUP_CHART} is not installed[/yellow]")
                return
            self.charts.uninstall(namespace, SOLO_CLUSTER_SETUP_CHART)

        steps = [
            self._initialize(argv, ClusterSetupConfig, lease, self._required),
            Task("Uninstall cluster setup chart", _uninstall),
        ]
        return self._run("Cluster reset", steps, CommandContext(), lease, "Error on cluster reset")


# ============================================================================
# Mirror node
# ============================================================================

def _component_labels(component: str) -> list[str]:
    return [f"app.kubernetes.io/component={component}", f"app.kubernetes.io/name={component}"]


class MirrorNodeCommandHandlers(CommandHandlers):
    """Enable or disable the mirror node and explorer of a deployment."""

    def _deployment_chart(self, config: MirrorNodeConfig) -> str:
        return config.chart_dir or f"{self.settings.chart_repo}/{SOLO_DEPLOYMENT_CHART}"

    def _wait_ready(self, ctx: CommandContext, component: str) -> None:
        wait_for_pods_ready(
            self.cluster, ctx.config.namespace, _component_labels(component),
            max_attempts=self.settings.pods_ready_attempts,
            delay=self.settings.pods_ready_delay,
            sleep=self.sleep,
        )

    def deploy(self, argv: dict[str, Any]) -> bool:
        lease = self._lease()

        def _enable(ctx: CommandContext) -> None:
            config = ctx.config
            values = set_args({
                "hedera-mirror-node.enabled": True,
                "hedera-explorer.enabled": config.deploy_hedera_explorer,
            })
            self.charts.upgrade(config.namespace, SOLO_DEPLOYMENT_CHART, self._deployment_chart(config),
                                config.chart_version, values)

        def _check(ctx: CommandContext) -> TaskList:
            components = list(MIRROR_NODE_COMPONENTS)
            if ctx.config.deploy_hedera_explorer:
                components.append(MIRROR_EXPLORER_COMPONENT)
            return TaskList([
                Task(f"Check {component}", lambda c, component=component: self._wait_ready(c, component))
                for component in components
            ], concurrent=True)

        steps = [
            self._initialize(argv, MirrorNodeConfig, lease),
            Task("Enable mirror-node", _enable),
            Task("Check pods are ready", _check),
        ]
        return self._run("Mirror node deploy", steps, CommandContext(), lease,
                         "Error deploying mirror node")

    def destroy(self, argv: dict[str, Any]) -> bool:
        lease = self._lease()

        def _disable(ctx: CommandContext) -> None:
            config = ctx.config
            values = set_args({"hedera-mirror-node.enabled": False, "hedera-explorer.enabled": False})
            self.charts.upgrade(config.namespace, SOLO_DEPLOYMENT_CHART, self._deployment_chart(config),
                                config.chart_version, values)

        def _delete_pvcs(ctx: CommandContext) -> None:
            self.cluster.delete_pvcs(ctx.config.namespace, [MIRROR_POSTGRES_PVC_LABEL])

        steps = [
            self._initialize(argv, MirrorNodeConfig, lease),
            Task("Destroy mirror-node", _disable),
            Task("Delete PVCs", _delete_pvcs),
        ]
        return self._run("Mirror node destroy", steps, CommandContext(), lease,
                         "Error destroying mirror node")


# ============================================================================
# JSON-RPC relay
# ============================================================================

def relay_network(service_map: dict[str, Any], aliases: list[str]) -> dict[str, str]:
    """Address book handed to the relay, ``host:port`` to node account id.

    Raises:
        IllegalArgumentError: If an alias is not part of the network.
    """
    network = {}
    for alias in aliases:
        service = service_map.get(alias)
        if service is None:
            raise IllegalArgumentError(f"node alias {alias} not found in the network", alias)
        network[f"{service.fqdn}:{GRPC_PORT}"] = service.account_id
    return network


class RelayCommandHandlers(CommandHandlers):
    """Install and remove JSON-RPC relay releases."""

    def _release(self, config: RelayConfig) -> str:
        return templates.relay_release_name(config.node_aliases)

    def deploy(self, argv: dict[str, Any]) -> bool:
        lease = self._lease()

        def _install(ctx: CommandContext) -> None:
            config = ctx.config
            network = relay_network(build_service_map(self.cluster, config.namespace), config.node_aliases)
            values = set_args({
                "config.MIRROR_NODE_URL": "http://mirror-rest",
                "config.MIRROR_NODE_URL_WEB3": "http://mirror-web3",
                "config.CHAIN_ID": config.chain_id,
                "config.OPERATOR_ID_MAIN": config.operator_id or OPERATOR_ID,
                "config.OPERATOR_KEY_MAIN": config.operator_key or GENESIS_KEY,
                "replicaCount": config.replica_count,
            })
            values += ["--set-json", f"config.HEDERA_NETWORK={json.dumps(json.dumps(network))}"]
            chart = config.chart_dir or JSON_RPC_RELAY_CHART
            if not config.chart_dir:
                values += ["--repo", JSON_RPC_RELAY_REPO]
            self.charts.install_with_rollback(config.namespace, self._release(config), chart,
                                              config.relay_release_tag, values)

        def _check(ctx: CommandContext) -> None:
            labels = [f"app.kubernetes.io/instance={self._release(ctx.config)}"]
            wait_for_pods_running(
                self.cluster, ctx.config.namespace, labels,
                max_attempts=self.settings.pods_running_attempts,
                delay=self.settings.pods_running_delay, sleep=self.sleep,
            )
            wait_for_pods_ready(
                self.cluster, ctx.config.namespace, labels,
                max_attempts=RELAY_PODS_READY_MAX_ATTEMPTS,
                delay=self.settings.pods_ready_delay, sleep=self.sleep,
            )

        steps = [
            self._initialize(argv, RelayConfig, lease, ("namespace", "node_aliases")),
            Task("Deploy JSON RPC Relay", _install),
            Task("Check relay is ready", _check),
        ]
        return self._run("Relay deploy", steps, CommandContext(), lease, "Error deploying relay")

    def destroy(self, argv: dict[str, Any]) -> bool:
        lease = self._lease()

        def _uninstall(ctx: CommandContext) -> None:
            release = self._release(ctx.config)
            if self.charts.is_chart_installed(ctx.config.namespace, release):
                self.charts.uninstall(ctx.config.namespace, release)
            else:
                console.print(f"[yellow]ℹ️  {release} is not installed[/yellow]")

        steps = [
            self._initialize(argv, RelayConfig, lease, ("namespace", "node_aliases")),
            Task("Destroy JSON RPC Relay", _uninstall),
        ]
        return self._run("Relay destroy", steps, CommandContext(), lease, "Error uninstalling relays")


# ============================================================================
# User roles
# ============================================================================

class RoleCommandHandlers(CommandHandlers):
    """Cluster users allowed to operate on network pods."""

    _required = ("namespace", "username", "password")

    def register(self, argv: dict[str, Any]) -> bool:
        lease = self._lease()

        def _register(ctx: CommandContext) -> None:
            config = ctx.config
            self.cluster.create_cluster_role(USER_CLUSTER_ROLE, ["pods"], USER_ROLE_VERBS)
            self.cluster.create_secret(
                config.namespace, templates.user_credentials_secret(config.username),
                {"username": config.username.encode(), "password": config.password.encode()},
            )
            self.cluster.create_cluster_role_binding(
                templates.user_role_binding(config.username), USER_CLUSTER_ROLE, config.username)
            console.print(f"[green]  ✓ Registered user {config.username}[/green]")

        steps = [self._initialize(argv, RoleConfig, lease, self._required), Task("Register user", _register)]
        return self._run("Role register", steps, CommandContext(), lease, "Error registering user")

    def login(self, argv: dict[str, Any]) -> bool:
        def _login(ctx: CommandContext) -> None:
            config = ctx.config
            secret = self.cluster.get_secret(config.namespace, templates.user_credentials_secret(config.username))
            if (
                secret is None
                or secret.get("username", b"").decode() != config.username
                or secret.get("password", b"").decode() != config.password
            ):
                raise SoloError(f"invalid credentials for user {config.username}")
            console.print(f"[green]  ✓ Logged in as {config.username}[/green]")

        steps = [self._initialize(argv, RoleConfig, None, self._required), Task("Verify credentials", _login)]
        return self._run("Role login", steps, CommandContext(), None, "Error logging in")

    def delete(self, argv: dict[str, Any]) -> bool:
        lease = self._lease()

        def _delete(ctx: CommandContext) -> None:
            config = ctx.config
            self.cluster.delete_cluster_role_binding(templates.user_role_binding(config.username))
            self.cluster.delete_secret(config.namespace, templates.user_credentials_secret(config.username))

        steps = [
            self._initialize(argv, RoleConfig, lease, ("namespace", "username")),
            Task("Delete user", _delete),
        ]
        return self._run("Role delete", steps, CommandContext(), lease, "Error deleting user")
