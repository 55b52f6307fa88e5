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


"""Per-command context types threaded through task runs."""

from __future__ import annotations

from dataclasses import dataclass, field

from solo_manager import logger
from solo_manager.config import TrackedConfig
from solo_manager.endpoints import ServiceEndpoint
from solo_manager.k8s import PortForwardHandle
from solo_manager.ledger import LedgerClient


@dataclass
class NewNode:
    """Identity assigned to a node being added.

    Attributes:
        name: Alias of the new node.
        account_id: Ledger account id of the new node.
    """

    name: str
    account_id: str


@dataclass
class CommandContext:
    """State shared by the tasks of one command."""

    config: TrackedConfig | None = None

    def close(self) -> None:
        pass


@dataclass
class NodeContext(CommandContext):
    """State shared by the tasks of one node command.

    Attributes:
        ledger_client: Client for ledger transactions, when the command needs one.
        upgrade_zip_hash: SHA-384 hex digest of the upgrade zip.
        port_forwards: Port-forwards to close when the command ends.
    """

    ledger_client: LedgerClient | None = None
    upgrade_zip_hash: str = ""
    port_forwards: list[PortForwardHandle] = field(default_factory=list)

    def close(self) -> None:
        """Close the ledger client and any open port-forwards."""
        forwards, self.port_forwards = self.port_forwards, []
        for forward in forwards:
            forward.close()
        client, self.ledger_client = self.ledger_client, None
        if client is not None:
            client.close()
            logger.debug("Closed ledger client")


@dataclass
class NodeAddContext(NodeContext):
    """Add-node state computed in the prepare phase.

    Attributes:
        new_node: Alias and account of the node being added.
        max_num: Highest existing account number plus one.
        admin_key: Admin key of the new node.
        signing_cert_der: DER bytes of the new node's signing certificate.
        tls_cert_hash: SHA-384 digest of the new node's TLS certificate.
        gossip_endpoints: Gossip endpoints of the new node.
        grpc_service_endpoints: gRPC service endpoints of the new node.
    """

    new_node: NewNode | None = None
    max_num: int = 0
    admin_key: str = ""
    signing_cert_der: bytes = b""
    tls_cert_hash: bytes = b""
    gossip_endpoints: list[ServiceEndpoint] = field(default_factory=list)
    grpc_service_endpoints: list[ServiceEndpoint] = field(default_factory=list)

