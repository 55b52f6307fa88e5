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

"""Cluster subcommands (list, info, setup, reset)."""

from __future__ import annotations

import typer

from solo_manager.components import ClusterCommandHandlers

app = typer.Typer(help="Inspect the cluster and manage cluster wide charts.")

CLUSTER_SETUP_NAMESPACE = typer.Option(None, "--cluster-setup-namespace", "-s",
                                       help="Namespace of the cluster setup chart")


@app.command("list")
def list_contexts() -> None:
    """List kubectl contexts."""
    ClusterCommandHandlers.from_environment().list_contexts({})


@app.command()
def info() -> None:
    """Show the current context and cluster info."""
    ClusterCommandHandlers.from_environment().info({})


@app.command()
def setup(
    cluster_setup_namespace: str | None = CLUSTER_SETUP_NAMESPACE,
    chart_dir: str | None = typer.Option(None, "--chart-dir", help="Local chart directory"),
    prometheus_stack: bool = typer.Option(True, "--prometheus-stack/--no-prometheus-stack",
                                          help="Deploy the prometheus stack"),
    minio: bool = typer.Option(True, "--minio/--no-minio", help="Deploy minio"),
    cert_manager: bool = typer.Option(True, "--cert-manager/--no-cert-manager", help="Deploy cert-manager"),
    cert_manager_crds: bool = typer.Option(True, "--cert-manager-crds/--no-cert-manager-crds",
                                           help="Install cert-manager CRDs"),
) -> None:
    """Install the cluster setup chart."""
    argv = {
        "deploy_prometheus_stack": prometheus_stack,
        "deploy_minio": minio,
        "deploy_cert_manager": cert_manager,
        "deploy_cert_manager_crds": cert_manager_crds,
    }
    if cluster_setup_namespace is not None:
        argv["cluster_setup_namespace"] = cluster_setup_namespace
    if chart_dir is not None:
        argv["chart_dir"] = chart_dir
    ClusterCommandHandlers.from_environment().setup(argv)


@app.command()
def reset(cluster_setup_namespace: str | None = CLUSTER_SETUP_NAMESPACE) -> None:
    """Uninstall the cluster setup chart."""
    argv = {} if cluster_setup_namespace is None else {"cluster_setup_namespace": cluster_setup_namespace}
    ClusterCommandHandlers.from_environment().reset(argv)
