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

"""Mirror node subcommands (deploy, destroy)."""

from __future__ import annotations

import typer

from solo_manager.components import MirrorNodeCommandHandlers

app = typer.Typer(help="Manage the mirror node of a network.")

NAMESPACE = typer.Option(None, "--namespace", "-n", help="Namespace of the network")
CHART_DIR = typer.Option(None, "--chart-dir", help="Local chart directory")
CHART_VERSION = typer.Option(None, "--solo-chart-version", help="Deployment chart version")


@app.command()
def deploy(
    namespace: str | None = NAMESPACE,
    chart_dir: str | None = CHART_DIR,
    chart_version: str | None = CHART_VERSION,
    explorer: bool = typer.Option(True, "--hedera-explorer/--no-hedera-explorer",
                                  help="Deploy the explorer alongside the mirror node"),
) -> None:
    """Enable the mirror node and wait for its pods."""
    argv = {"namespace": namespace, "chart_dir": chart_dir, "chart_version": chart_version,
            "deploy_hedera_explorer": explorer}
    MirrorNodeCommandHandlers.from_environment().deploy({k: v for k, v in argv.items() if v is not None})


@app.command()
def destroy(
    namespace: str | None = NAMESPACE,
    chart_dir: str | None = CHART_DIR,
    chart_version: str | None = CHART_VERSION,
) -> None:
    """Disable the mirror node and delete its database volumes."""
    argv = {"namespace": namespace, "chart_dir": chart_dir, "chart_version": chart_version}
    MirrorNodeCommandHandlers.from_environment().destroy({k: v for k, v in argv.items() if v is not None})
