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

"""Step sequences for every node subcommand.

Split operations (add, delete, update, upgrade) expose their prepare,
submit-transactions and execute phases both as one combined command and
as separate commands chained through continuation records.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from solo_manager.chart import ChartManager
from solo_manager.config import (
    AddConfig,
    DeleteConfig,
    DownloadGeneratedFilesConfig,
    FlagStore,
    FreezeConfig,
    KeysConfig,
    LogsConfig,
    PrepareUpgradeConfig,
    RefreshConfig,
    RestartConfig,
    SetupConfig,
    SoloSettings,
    StartConfig,
    StatesConfig,
    StopConfig,
    UpdateConfig,
    UpgradeConfig,
)
from solo_manager.constants import GENESIS_KEY, PODS_RESTART_GRACE_SECONDS, NodeSubcommand
from solo_manager.context import NodeAddContext, NodeContext
from solo_manager.handlers import CommandHandlers
from solo_manager.k8s import ClusterClient
from solo_manager.node_helpers import (
    ADD_SCHEMA,
    DELETE_SCHEMA,
    UPDATE_SCHEMA,
    UPGRADE_SCHEMA,
    add_load,
    add_save,
    delete_load,
    delete_save,
    update_load,
    update_save,
    upgrade_load,
    upgrade_save,
)
from solo_manager.node_tasks import NodeCommandTasks
from solo_manager.tasks import Task

Steps = list[Task]

_NODE_ALIAS_REQUIRED = ("namespace", "node_alias")
_NODE_ALIASES_REQUIRED = ("namespace", "node_aliases")


def _init_add(ctx: NodeAddContext) -> None:
    ctx.admin_key = ctx.config.admin_key or GENESIS_KEY


class NodeCommandHandlers(CommandHandlers):
    """Runs node subcommands against a cluster.

    Every handler returns ``True`` on success and raises
    :class:`~solo_manager.errors.SoloError` on failure, after its lease has
    been released and its ledger client and port-forwards closed.
    """

    def __init__(
        self,
        settings: SoloSettings,
        flags: FlagStore,
        cluster: ClusterClient,
        charts: ChartManager,
        tasks: NodeCommandTasks | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        super().__init__(settings, flags, cluster, charts, sleep=sleep)
        self.tasks = tasks or NodeCommandTasks(settings, flags, cluster, charts, sleep=sleep)

    # ========================================================================
    # Node processes
    # ========================================================================

    def setup(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, SetupConfig, lease, required=_NODE_ALIASES_REQUIRED),
            t.identify_network_pods(),
            t.fetch_platform_software("node_aliases"),
            t.setup_network_nodes("node_aliases"),
        ]
        return self._run("Node setup", steps, NodeContext(), lease, "Error in setting up nodes")

    def start(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, StartConfig, lease),
            t.identify_existing_nodes(),
            t.upload_state_files(lambda ctx: not ctx.config.state_file),
            t.start_nodes("node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("node_aliases"),
            t.check_node_proxies_are_active(),
            t.add_node_stakes(),
        ]
        return self._run("Node start", steps, NodeContext(), lease, "Error starting node")

    def stop(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, StopConfig, lease, required=_NODE_ALIASES_REQUIRED),
            t.identify_network_pods(max_attempts=1, tolerate_missing=True),
            t.stop_nodes("node_aliases"),
        ]
        return self._run("Node stop", steps, NodeContext(), lease, "Error stopping node")

    def keys(self, argv: dict[str, Any]) -> bool:
        t = self.tasks
        steps = [
            t.initialize(argv, KeysConfig, None, required=("node_aliases",)),
            t.generate_gossip_keys(),
            t.generate_grpc_tls_keys(),
            t.finalize(),
        ]
        return self._run("Node keys", steps, NodeContext(), None, "Error generating keys")

    def refresh(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, RefreshConfig, lease, required=_NODE_ALIASES_REQUIRED),
            t.identify_network_pods(),
            t.dump_network_nodes_save_state(),
            t.fetch_platform_software("node_aliases"),
            t.setup_network_nodes("node_aliases"),
            t.start_nodes("node_aliases"),
            t.check_all_nodes_are_active("node_aliases"),
            t.check_node_proxies_are_active(),
        ]
        return self._run("Node refresh", steps, NodeContext(), lease, "Error in refreshing nodes")

    def logs(self, argv: dict[str, Any]) -> bool:
        t = self.tasks
        steps = [t.initialize(argv, LogsConfig, None), t.get_node_logs_and_configs()]
        return self._run("Node logs", steps, NodeContext(), None, "Error in downloading log from nodes")

    def states(self, argv: dict[str, Any]) -> bool:
        t = self.tasks
        steps = [t.initialize(argv, StatesConfig, None, required=_NODE_ALIASES_REQUIRED),
                 t.get_node_state_files()]
        return self._run("Node states", steps, NodeContext(), None, "Error in downloading states from nodes")

    def freeze(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, FreezeConfig, lease),
            t.identify_existing_nodes(),
            t.send_freeze_transaction(),
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.stop_nodes("existing_node_aliases"),
        ]
        return self._run("Network freeze", steps, NodeContext(), lease, "Error freezing the network")

    def restart(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, RestartConfig, lease),
            t.identify_existing_nodes(),
            t.start_nodes("existing_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("existing_node_aliases"),
            t.check_node_proxies_are_active("existing_node_aliases"),
        ]
        return self._run("Network restart", steps, NodeContext(), lease, "Error restarting the network")

    # ========================================================================
    # Add
    # ========================================================================

    def _add_prepare_steps(self) -> Steps:
        t = self.tasks
        return [
            t.check_pvcs_enabled(),
            t.identify_existing_nodes(),
            t.determine_new_node_account_number(),
            t.copy_grpc_tls_certificates(),
            t.generate_gossip_keys(all_nodes=False),
            t.generate_grpc_tls_keys(all_nodes=False),
            t.load_signing_key_certificate(),
            t.compute_mtls_certificate_hash(),
            t.prepare_gossip_endpoints(),
            t.prepare_grpc_service_endpoints(),
            t.prepare_upgrade_zip(),
            t.check_existing_nodes_staked_amount(),
        ]

    def _add_submit_steps(self) -> Steps:
        t = self.tasks
        return [
            t.send_node_create_transaction(),
            t.send_prepare_upgrade_transaction(),
            t.send_freeze_upgrade_transaction(),
        ]

    def _add_execute_steps(self) -> Steps:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_generated_files(),
            t.prepare_staging_directory("all_node_aliases"),
            t.copy_node_keys_to_secrets(),
            t.get_node_logs_and_configs(),
            t.update_chart_with_config_map("Deploy new network node", NodeSubcommand.ADD),
            t.kill_nodes(),
            t.check_node_pods_are_running(),
            t.populate_service_map(),
            t.fetch_platform_software("all_node_aliases"),
            t.download_last_state(),
            t.upload_state_to_new_node(),
            t.setup_network_nodes("all_node_aliases"),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.stake_new_node(),
            t.trigger_stake_weight_calculate(NodeSubcommand.ADD),
            t.finalize(),
        ]

    def add(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, AddConfig, lease, config_init=_init_add),
            *self._add_prepare_steps(),
            *self._add_submit_steps(),
            *self._add_execute_steps(),
        ]
        return self._run("Add node", steps, NodeAddContext(), lease, "Error in adding node")

    def add_prepare(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, AddConfig, lease, required=("namespace", "output_dir"), config_init=_init_add),
            *self._add_prepare_steps(),
            t.save_context_data(argv, ADD_SCHEMA, add_save),
        ]
        return self._run("Add node: prepare", steps, NodeAddContext(), lease, "Error in preparing node")

    def add_submit_transactions(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, AddConfig, lease, required=("namespace", "input_dir")),
            t.load_context_data(argv, ADD_SCHEMA, add_load),
            *self._add_submit_steps(),
        ]
        return self._run("Add node: submit transactions", steps, NodeAddContext(), lease,
                         "Error in submitting transactions to node")

    def add_execute(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, AddConfig, lease, required=("namespace", "input_dir")),
            t.identify_existing_nodes(),
            t.load_context_data(argv, ADD_SCHEMA, add_load),
            *self._add_execute_steps(),
        ]
        return self._run("Add node: execute", steps, NodeAddContext(), lease, "Error in executing node add")

    # ========================================================================
    # Delete
    # ========================================================================

    def _transaction_prepare_steps(self) -> Steps:
        t = self.tasks
        return [
            t.identify_existing_nodes(),
            t.load_admin_key(),
            t.prepare_upgrade_zip(),
            t.check_existing_nodes_staked_amount(),
        ]

    def _delete_submit_steps(self) -> Steps:
        t = self.tasks
        return [
            t.send_node_delete_transaction(),
            t.send_prepare_upgrade_transaction(),
            t.send_freeze_upgrade_transaction(),
        ]

    def _delete_execute_steps(self) -> Steps:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_generated_files(),
            t.prepare_staging_directory("existing_node_aliases"),
            t.refresh_node_list(),
            t.copy_node_keys_to_secrets(),
            t.get_node_logs_and_configs(),
            t.update_chart_with_config_map("Delete network node and update configMaps", NodeSubcommand.DELETE),
            t.kill_nodes(),
            t.sleep_task("Sleep for 20 seconds to wait for pods to be deleted", PODS_RESTART_GRACE_SECONDS),
            t.check_node_pods_are_running(),
            t.populate_service_map(),
            t.fetch_platform_software("all_node_aliases"),
            t.setup_network_nodes("all_node_aliases"),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.trigger_stake_weight_calculate(NodeSubcommand.DELETE),
            t.finalize(),
        ]

    def delete(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, DeleteConfig, lease, required=_NODE_ALIAS_REQUIRED),
            *self._transaction_prepare_steps(),
            *self._delete_submit_steps(),
            *self._delete_execute_steps(),
        ]
        return self._run("Delete node", steps, NodeContext(), lease, "Error in deleting node")

    def delete_prepare(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, DeleteConfig, lease, required=(*_NODE_ALIAS_REQUIRED, "output_dir")),
            *self._transaction_prepare_steps(),
            t.save_context_data(argv, DELETE_SCHEMA, delete_save),
        ]
        return self._run("Delete node: prepare", steps, NodeContext(), lease, "Error in preparing to delete node")

    def delete_submit_transactions(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, DeleteConfig, lease, required=("namespace", "input_dir")),
            t.load_context_data(argv, DELETE_SCHEMA, delete_load),
            *self._delete_submit_steps(),
        ]
        return self._run("Delete node: submit transactions", steps, NodeContext(), lease,
                         "Error in submitting transactions for deleting node")

    def delete_execute(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, DeleteConfig, lease, required=("namespace", "input_dir")),
            t.load_context_data(argv, DELETE_SCHEMA, delete_load),
            *self._delete_execute_steps(),
        ]
        return self._run("Delete node: execute", steps, NodeContext(), lease, "Error in executing node delete")

    # ========================================================================
    # Update
    # ========================================================================

    def _update_submit_steps(self) -> Steps:
        t = self.tasks
        return [
            t.send_node_update_transaction(),
            t.send_prepare_upgrade_transaction(),
            t.send_freeze_upgrade_transaction(),
        ]

    def _update_execute_steps(self) -> Steps:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_generated_files(),
            t.prepare_staging_directory("all_node_aliases"),
            t.copy_node_keys_to_secrets(),
            t.get_node_logs_and_configs(),
            t.update_chart_with_config_map(
                "Update chart to use new configMap", NodeSubcommand.UPDATE,
                skip=lambda ctx: not ctx.config.new_account_number and not ctx.config.debug_node_alias,
            ),
            t.kill_nodes_and_update_config_map(),
            t.check_node_pods_are_running(),
            t.fetch_platform_software("all_node_aliases"),
            t.setup_network_nodes("all_node_aliases"),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.trigger_stake_weight_calculate(NodeSubcommand.UPDATE),
            t.finalize(),
        ]

    def update(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpdateConfig, lease, required=_NODE_ALIAS_REQUIRED),
            *self._transaction_prepare_steps(),
            *self._update_submit_steps(),
            *self._update_execute_steps(),
        ]
        return self._run("Update node", steps, NodeContext(), lease, "Error in updating node")

    def update_prepare(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpdateConfig, lease, required=(*_NODE_ALIAS_REQUIRED, "output_dir")),
            *self._transaction_prepare_steps(),
            t.save_context_data(argv, UPDATE_SCHEMA, update_save),
        ]
        return self._run("Update node: prepare", steps, NodeContext(), lease, "Error in preparing node update")

    def update_submit_transactions(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpdateConfig, lease, required=("namespace", "input_dir")),
            t.load_context_data(argv, UPDATE_SCHEMA, update_load),
            *self._update_submit_steps(),
        ]
        return self._run("Update node: submit transactions", steps, NodeContext(), lease,
                         "Error in submitting transactions for node update")

    def update_execute(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpdateConfig, lease, required=("namespace", "input_dir")),
            t.load_context_data(argv, UPDATE_SCHEMA, update_load),
            *self._update_execute_steps(),
        ]
        return self._run("Update node: execute", steps, NodeContext(), lease, "Error in executing node update")

    # ========================================================================
    # Upgrade
    # ========================================================================

    def _upgrade_submit_steps(self) -> Steps:
        t = self.tasks
        return [t.send_prepare_upgrade_transaction(), t.send_freeze_upgrade_transaction()]

    def _upgrade_execute_steps(self) -> Steps:
        t = self.tasks
        return [
            t.check_all_nodes_are_frozen("existing_node_aliases"),
            t.download_node_upgrade_files(),
            t.get_node_logs_and_configs(),
            t.start_nodes("all_node_aliases"),
            t.enable_port_forwarding(),
            t.check_all_nodes_are_active("all_node_aliases"),
            t.check_all_node_proxies_are_active(),
            t.finalize(),
        ]

    def upgrade(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpgradeConfig, lease),
            *self._transaction_prepare_steps(),
            *self._upgrade_submit_steps(),
            *self._upgrade_execute_steps(),
        ]
        return self._run("Upgrade network", steps, NodeContext(), lease, "Error in upgrading network")

    def upgrade_prepare(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpgradeConfig, lease, required=("namespace", "output_dir")),
            *self._transaction_prepare_steps(),
            t.save_context_data(argv, UPGRADE_SCHEMA, upgrade_save),
        ]
        return self._run("Upgrade network: prepare", steps, NodeContext(), lease, "Error in preparing upgrade")

    def upgrade_submit_transactions(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpgradeConfig, lease, required=("namespace", "input_dir")),
            t.load_context_data(argv, UPGRADE_SCHEMA, upgrade_load),
            *self._upgrade_submit_steps(),
        ]
        return self._run("Upgrade network: submit transactions", steps, NodeContext(), lease,
                         "Error in submitting upgrade transactions")

    def upgrade_execute(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, UpgradeConfig, lease, required=("namespace", "input_dir")),
            t.load_context_data(argv, UPGRADE_SCHEMA, upgrade_load),
            *self._upgrade_execute_steps(),
        ]
        return self._run("Upgrade network: execute", steps, NodeContext(), lease, "Error in executing upgrade")

    # ========================================================================
    # Single-step upgrade helpers
    # ========================================================================

    def prepare_upgrade(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, PrepareUpgradeConfig, lease),
            t.prepare_upgrade_zip(),
            t.send_prepare_upgrade_transaction(),
        ]
        return self._run("Prepare upgrade", steps, NodeContext(), lease, "Error in preparing upgrade")

    def freeze_upgrade(self, argv: dict[str, Any]) -> bool:
        t = self.tasks
        steps = [
            t.initialize(argv, PrepareUpgradeConfig, None),
            t.prepare_upgrade_zip(),
            t.send_freeze_upgrade_transaction(),
        ]
        return self._run("Freeze upgrade", steps, NodeContext(), None, "Error in executing network upgrade")

    def download_generated_files(self, argv: dict[str, Any]) -> bool:
        t, lease = self.tasks, self._lease()
        steps = [
            t.initialize(argv, DownloadGeneratedFilesConfig, lease),
            t.identify_existing_nodes(),
            t.download_node_generated_files(),
        ]
        return self._run("Download generated files", steps, NodeContext(), lease,
                         "Error in downloading generated files")
