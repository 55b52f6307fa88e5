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

"""JSON-RPC relay subcommands (deploy, destroy)."""

from __future__ import annotations

import typer

from solo_manager.components import RelayCommandHandlers

app = typer.Typer(help="Manage JSON-RPC relays.")

NAMESPACE = typer.Option(None, "--namespace", "-n", help="Namespace of the network")
NODE_ALIASES = typer.Option(None, "--node-aliases", "-i", help="Comma separated node aliases served by the relay")


@app.command()
def deploy(
    namespace: str | None = NAMESPACE,
    node_aliases: str | None = NODE_ALIASES,
    chain_id: str | None = typer.Option(None, "--chain-id", help="EVM chain id"),
    replica_count: int | None = typer.Option(None, "--replica-count", help="Relay replicas"),
    operator_id: str | None = typer.Option(None, "--operator-id", help="Operator account id"),
    operator_key: str | None = typer.Option(None, "--operator-key", help="Operator private key"),
    relay_release_tag: str | None = typer.Option(None, "--relay-release", help="Relay chart version"),
    chart_dir: str | None = typer.Option(None, "--chart-dir", help="Local relay chart directory"),
) -> None:
    """Install a relay for the given nodes and wait until it is ready."""
    argv = {
        "namespace": namespace,
        "node_aliases": node_aliases,
        "chain_id": chain_id,
        "replica_count": replica_count,
        "operator_id": operator_id,
        "operator_key": operator_key,
        "relay_release_tag": relay_release_tag,
        "chart_dir": chart_dir,
    }
    RelayCommandHandlers.from_environment().deploy({k: v for k, v in argv.items() if v is not None})


@app.command()
def destroy(
    namespace: str | None = NAMESPACE,
    node_aliases: str | None = NODE_ALIASES,
) -> None:
    """Uninstall the relay of the given nodes."""
    argv = {"namespace": namespace, "node_aliases": node_aliases}
    RelayCommandHandlers.from_environment().destroy({k: v for k, v in argv.items() if v is not None})
