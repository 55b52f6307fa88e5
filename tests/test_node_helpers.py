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

"""Tests for node identity derivation and chart values."""

from __future__ import annotations

import zipfile

import pytest

from solo_manager.constants import CONFIG_VERSION_PROPERTY, ENDPOINT_TYPE_FQDN
from solo_manager.context import NewNode
from solo_manager.endpoints import resolve_gossip_endpoints, resolve_grpc_endpoints
from solo_manager.errors import IllegalArgumentError
from solo_manager.node_helpers import (
    account_number,
    build_mock_upgrade_zip,
    bump_config_version,
    debug_values,
    determine_new_node,
    ledger_network,
    parse_alias_ip_mapping,
    values_for_add,
    values_for_delete,
    values_for_update,
)
from solo_manager.services import NodeService


def _service(alias: str, node_id: int, account_id: str, namespace: str = "solo-e2e") -> NodeService:
    return NodeService(alias=alias, node_id=node_id, account_id=account_id, namespace=namespace,
                       pod_name=f"network-{alias}-0", service_name=f"network-{alias}-svc")


def _service_map(*entries: tuple[str, str]) -> dict[str, NodeService]:
    return {alias: _service(alias, index, account) for index, (alias, account) in enumerate(entries)}


class TestDetermineNewNode:
    def test_next_account_and_alias(self) -> None:
        service_map = _service_map(("node0", "0.0.3"), ("node1", "0.0.4"), ("node2", "0.0.5"))
        new_node, max_num = determine_new_node(service_map)
        assert new_node == NewNode("node3", "0.0.6")
        assert max_num == 6

    def test_highest_account_wins_over_alias_order(self) -> None:
        service_map = _service_map(("node1", "0.0.9"), ("node2", "0.0.4"))
        new_node, max_num = determine_new_node(service_map)
        assert new_node == NewNode("node3", "0.0.10")
        assert max_num == 10

    def test_alias_suffix_grows_past_one_digit(self) -> None:
        service_map = _service_map(*[(f"node{i}", f"0.0.{i + 3}") for i in range(1, 10)])
        new_node, _ = determine_new_node(service_map)
        assert new_node.name == "node10"
        assert new_node.account_id == "0.0.13"

    def test_empty_network(self) -> None:
        new_node, max_num = determine_new_node({})
        assert new_node == NewNode("node1", "0.0.3")
        assert max_num == 3

    def test_add_with_default_endpoints(self) -> None:
        """node0/0.0.3 and node1/0.0.4 give node2/0.0.5 with two FQDN gossip endpoints."""
        service_map = _service_map(("node0", "0.0.3"), ("node1", "0.0.4"))
        new_node, _ = determine_new_node(service_map)
        assert new_node == NewNode("node2", "0.0.5")

        gossip = resolve_gossip_endpoints(ENDPOINT_TYPE_FQDN, "", "solo-e2e", new_node.name)
        assert [str(e) for e in gossip] == [
            "network-node2-0.network-node2.solo-e2e.svc.cluster.local:50111",
            "network-node2-svc.solo-e2e.svc.cluster.local:50111",
        ]
        grpc = resolve_grpc_endpoints(ENDPOINT_TYPE_FQDN, "", "solo-e2e", new_node.name)
        assert len(grpc) == 1


class TestAccounts:
    def test_account_number(self) -> None:
        assert account_number("0.0.42") == 42

    def test_account_number_rejects_garbage(self) -> None:
        with pytest.raises(IllegalArgumentError):
            account_number("0.0.x")

    def test_ledger_network_skips_alias(self) -> None:
        service_map = _service_map(("node1", "0.0.3"), ("node2", "0.0.4"))
        network = ledger_network(service_map, skip_alias="node2")
        assert network == {"network-node1-svc.solo-e2e.svc.cluster.local:50211": "0.0.3"}

    def test_alias_ip_mapping(self) -> None:
        assert parse_alias_ip_mapping("node1=10.0.0.1, node2=10.0.0.2") == {"node1": "10.0.0.1", "node2": "10.0.0.2"}
        with pytest.raises(IllegalArgumentError):
            parse_alias_ip_mapping("node1")


class TestChartValues:
    def test_add_appends_new_node(self) -> None:
        service_map = _service_map(("node1", "0.0.3"), ("node2", "0.0.4"))
        values = values_for_add(service_map, NewNode("node3", "0.0.5"), haproxy_ips="node3=10.1.1.1")
        assert "hedera.nodes[2].accountId=0.0.5" in values
        assert "hedera.nodes[2].name=node3" in values
        assert "hedera.nodes[2].nodeId=2" in values
        assert "hedera.nodes[2].haproxyStaticIP=10.1.1.1" in values

    def test_delete_marks_account_ignored(self) -> None:
        service_map = _service_map(("node1", "0.0.3"), ("node2", "0.0.4"))
        values = values_for_delete(service_map, "node2")
        assert "hedera.nodes[1].accountId=0.0.0" in values
        assert "node2" not in service_map

    def test_update_replaces_account(self) -> None:
        service_map = _service_map(("node1", "0.0.3"), ("node2", "0.0.4"))
        values = values_for_update(service_map, "node2", "0.0.9")
        assert "hedera.nodes[1].accountId=0.0.9" in values
        assert "hedera.nodes[0].accountId=0.0.3" in values

    def test_debug_values(self) -> None:
        assert debug_values("") == []
        values = debug_values("node2")
        assert values[1] == "hedera.nodes[1].root.extraEnv[0].name=JAVA_OPTS"


class TestUpgradeZip:
    def test_bump_config_version(self) -> None:
        properties = f"a=1\n# comment\n{CONFIG_VERSION_PROPERTY}=4\nbroken\n"
        assert bump_config_version(properties) == f"a=1\n{CONFIG_VERSION_PROPERTY}=5"

    def test_mock_upgrade_zip(self, tmp_path) -> None:
        templates_dir = tmp_path / "templates"
        templates_dir.mkdir()
        (templates_dir / "application.properties").write_text(f"{CONFIG_VERSION_PROPERTY}=1\n")
        path = build_mock_upgrade_zip(tmp_path)
        with zipfile.ZipFile(path) as archive:
            assert archive.namelist() == ["data/config/application.properties"]
            assert archive.read("data/config/application.properties").decode() == f"{CONFIG_VERSION_PROPERTY}=2"
