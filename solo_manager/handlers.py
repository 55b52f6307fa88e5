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

"""Shared plumbing of command handlers: leases, headers and the run boundary."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from rich.panel import Panel

from solo_manager import console
from solo_manager.chart import ChartManager
from solo_manager.config import FlagStore, SoloSettings, resolve_settings
from solo_manager.context import CommandContext
from solo_manager.errors import IllegalArgumentError
from solo_manager.k8s import ClusterClient, KubectlClient
from solo_manager.lease import Lease, LeaseManager
from solo_manager.tasks import Task, TaskList, run_tasks
from solo_manager.utils import require_command


class CommandHandlers:
    """Base of the per-group handler classes.

    Subclasses build a list of tasks per command and hand it to
    :meth:`_run`, which always releases the lease and closes the context.
    """

    def __init__(
        self,
        settings: SoloSettings,
        flags: FlagStore,
        cluster: ClusterClient,
        charts: ChartManager,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.flags = flags
        self.cluster = cluster
        self.charts = charts
        self.sleep = sleep

    @classmethod
    def from_environment(cls, **settings_overrides: Any):
        """Build handlers backed by kubectl, helm and the persisted flag store.

        Args:
            **settings_overrides: Settings given on the command line.

        Raises:
            RuntimeError: If kubectl or helm is not installed.
        """
        for cmd in ("kubectl", "helm"):
            require_command(cmd)
        settings = resolve_settings(**settings_overrides)
        return cls(settings, FlagStore.for_settings(settings), KubectlClient(), ChartManager())

    def _lease(self, namespace_flag: str = "namespace") -> Lease:
        return LeaseManager(self.settings, self.cluster, lambda: self.flags.get(namespace_flag),
                            sleep=self.sleep).create()

    def _initialize(
        self,
        argv: dict[str, Any],
        config_cls: type,
        lease: Lease | None,
        required: tuple[str, ...] = ("namespace",),
    ) -> Task:
        def _action(ctx: CommandContext) -> TaskList | None:
            ctx.config = self.flags.resolve(argv, config_cls, required)
            if "namespace" in required and not self.cluster.namespace_exists(ctx.config.namespace):
                raise IllegalArgumentError(f"namespace {ctx.config.namespace} does not exist",
                                           ctx.config.namespace)
            if lease is not None:
                return TaskList([lease.acquire_task()])
            return None

        return Task("Initialize", _action)

    def _run(self, title: str, steps: list[Task], ctx: CommandContext, lease: Lease | None,
             error_title: str) -> bool:
        console.print(Panel.fit(title, style="bold blue"))
        cleanup = [ctx.close] if lease is None else [lease.release, ctx.close]
        run_tasks(steps, ctx, error_title=error_title, cleanup=cleanup)
        console.print(f"[green]✅ {title} complete[/green]")
        return True
