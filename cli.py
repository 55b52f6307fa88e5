#!/usr/bin/env python3
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

"""
cli.py - Command line for ledger test networks on Kubernetes.

Subcommands:
    node         Set up, start, stop, add, update, delete and upgrade nodes
    cluster      Inspect contexts and install the cluster setup chart
    mirror-node  Deploy or destroy the mirror node
    relay        Deploy or destroy JSON-RPC relays
    role         Register, log in and delete cluster users

Examples:
    # Generate keys for three nodes
    ./cli.py node keys --node-aliases node1,node2,node3 --gossip-keys --tls-keys

    # Fetch the platform and start every node
    ./cli.py node setup -n solo-e2e -i node1,node2,node3 -t v0.58.10
    ./cli.py node start -n solo-e2e -i node1,node2,node3

    # Add a node in three phases
    ./cli.py node add-prepare -n solo-e2e --output-dir ./ctx
    ./cli.py node add-submit-transactions -n solo-e2e --input-dir ./ctx
    ./cli.py node add-execute -n solo-e2e --input-dir ./ctx

For detailed usage information, run: ./cli.py --help
"""

from __future__ import annotations

import logging
import sys

import typer

from solo_manager import console
from solo_manager.commands import (
    cluster_cmd,
    mirror_node_cmd,
    node_cmd,
    relay_cmd,
    role_cmd,
)

app = typer.Typer(
    help="Command line for ledger test networks on Kubernetes.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback(
    dev: bool = typer.Option(False, "--dev", help="Verbose logging"),
) -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.DEBUG if dev else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(node_cmd.app, name="node")
app.add_typer(cluster_cmd.app, name="cluster")
app.add_typer(mirror_node_cmd.app, name="mirror-node")
app.add_typer(relay_cmd.app, name="relay")
app.add_typer(role_cmd.app, name="role")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
