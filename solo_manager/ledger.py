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


"""Ledger client interface and factory loading."""

from __future__ import annotations

import importlib
from datetime import datetime
from typing import Any, Protocol

from solo_manager import logger
from solo_manager.config import SoloSettings
from solo_manager.constants import OPERATOR_ID
from solo_manager.endpoints import ServiceEndpoint
from solo_manager.errors import SoloError


class FreezeType:
    PREPARE_UPGRADE = "PREPARE_UPGRADE"
    FREEZE_UPGRADE = "FREEZE_UPGRADE"
    FREEZE_ONLY = "FREEZE_ONLY"


class LedgerClient(Protocol):
    """Administrative ledger operations.

    Each call builds, signs, submits and waits for the receipt of one
    transaction or query. Calls are not safe to issue concurrently.
    """

    def set_operator(self, account_id: str, private_key: str) -> None: ...

    def get_account_balance(self, account_id: str) -> int: ...

    def transfer(self, from_account: str, to_account: str, amount: int) -> None: ...

    def update_account_stake(self, account_id: str, staked_node_id: int) -> None: ...

    def create_node(self, *, account_id: str, gossip_endpoints: list[ServiceEndpoint],
                    grpc_endpoints: list[ServiceEndpoint], gossip_ca_certificate: bytes,
                    certificate_hash: bytes, admin_key: str) -> None: ...

    def update_node(self, *, node_id: int, admin_key: str, account_id: str | None = None,
                    gossip_ca_certificate: bytes | None = None, certificate_hash: bytes | None = None,
                    new_admin_key: str | None = None, gossip_endpoints: list[ServiceEndpoint] | None = None,
                    grpc_endpoints: list[ServiceEndpoint] | None = None) -> None: ...

    def delete_node(self, *, node_id: int, admin_key: str) -> None: ...

    def get_file_contents(self, file_id: str) -> bytes: ...

    def update_file(self, file_id: str, contents: bytes, signing_key: str) -> None: ...

    def append_file(self, file_id: str, contents: bytes, signing_key: str) -> None: ...

    def freeze(self, freeze_type: str, *, start_time: datetime | None = None,
               file_id: str | None = None, file_hash: str | None = None) -> None: ...

    def close(self) -> None: ...


def load_ledger_client(
    settings: SoloSettings,
    namespace: str,
    network: dict[str, str],
    operator_key: str,
    operator_id: str = OPERATOR_ID,
) -> LedgerClient:
    """Build a ledger client with the configured ``module:callable`` factory.

    The factory is called with keyword arguments ``namespace``, ``network``
    (``host:port`` to node account id), ``operator_id`` and ``operator_key``.

    Args:
        settings: Settings naming the factory.
        namespace: Namespace of the network.
        network: Node address book for the client.
        operator_key: Private key of the operator account.
        operator_id: Operator account id.

    Returns:
        A connected ledger client.

    Raises:
        SoloError: If no factory is configured or it cannot be loaded.
    """
    factory_path = settings.ledger_client_factory
    if not factory_path:
        raise SoloError("No ledger client configured. Set SOLO_LEDGER_CLIENT_FACTORY to module:callable")
    module_name, _, attr = factory_path.partition(":")
    try:
        factory: Any = importlib.import_module(module_name)
        for part in attr.split("."):
            factory = getattr(factory, part)
    except (ImportError, AttributeError) as err:
        raise SoloError(f"Unable to load ledger client factory {factory_path}: {err}", err) from err
    logger.debug("Connecting ledger client to %d nodes in %s", len(network), namespace)
    return factory(namespace=namespace, network=network, operator_id=operator_id, operator_key=operator_key)
