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

"""Tests for node command flows against an in-memory cluster."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest
import yaml

from solo_manager import templates
from solo_manager.constants import (
    ADD_CONTEXT_FILE,
    DELETE_CONTEXT_FILE,
    HEDERA_HAPI_PATH,
    HEDERA_NODE_INTERNAL_GOSSIP_PORT,
    IGNORED_NODE_ACCOUNT_ID,
    NODE_OVERRIDE_FILE,
    PODS_RESTART_GRACE_SECONDS,
    SAVED_STATE_ROOT,
    STAKE_REFRESH_TRANSFER_AMOUNT,
    TLS_KEYS_SECRET_NAME,
    UPDATE_CONTEXT_FILE,
    UPGRADE_CONTEXT_FILE,
    UPGRADE_FILE_CHUNK_SIZE,
    UPGRADE_FILE_ID,
    NodeStatus,
)
from solo_manager.errors import MissingArgumentError, SoloError
from solo_manager.ledger import FreezeType
from solo_manager.node_handlers import NodeCommandHandlers
from solo_manager.node_tasks import NodeCommandTasks

from .conftest import FakeResponse, metrics_page

STOP = ["systemctl", "stop", "network-node"]
START = ["systemctl", "restart", "network-node"]
ALL_PODS = ["network-node1-0", "network-node2-0", "network-node3-0"]


@pytest.fixture
def statuses() -> dict[str, object]:
    """Status served by every node's metrics endpoint, or a callable producing it."""
    return {"status": NodeStatus.ACTIVE}


@pytest.fixture
def handlers(settings, flags, network, charts, ledger, recording_sleep, statuses) -> NodeCommandHandlers:
    def _http_get(url: str, timeout: float) -> FakeResponse:
        status = statuses["status"]
        return FakeResponse(metrics_page(status() if callable(status) else status))

    tasks = NodeCommandTasks(
        settings, flags, network, charts,
        ledger_loader=lambda *args, **kwargs: ledger,
        http_get=_http_get,
        sleep=recording_sleep,
    )
    return NodeCommandHandlers(settings, flags, network, charts, tasks=tasks, sleep=recording_sleep)


@pytest.fixture
def upgrade_zip(tmp_path) -> Path:
    path = tmp_path / "upgrade.zip"
    path.write_bytes(b"upgrade payload")
    return path


def _execs(cluster, command) -> list[str]:
    return [pod for _, pod, cmd in cluster.calls_named("exec") if cmd == command]


def _execs_matching(cluster, fragment: str) -> list[str]:
    return [pod for _, pod, cmd in cluster.calls_named("exec") if isinstance(cmd, str) and fragment in cmd]


def _frozen_until_restarted(cluster):
    """Nodes report FREEZE_COMPLETE until a restart has been sent, ACTIVE after."""
    return lambda: NodeStatus.ACTIVE if _execs(cluster, START) else NodeStatus.FREEZE_COMPLETE


def _write_node_keys(keys_dir: Path, aliases: list[str]) -> None:
    """Place the gossip and TLS key files a running network already has."""
    keys_dir.mkdir(parents=True, exist_ok=True)
    for alias in aliases:
        for name in (templates.gossip_private_key_file(alias), templates.gossip_public_key_file(alias),
                     templates.tls_private_key_file(alias), templates.tls_public_key_file(alias)):
            (keys_dir / name).write_text(f"{name}\n")


def _transfers(ledger) -> list[tuple]:
    return [args for name, args, _ in ledger.calls if name == "transfer"]


def _chart_values(charts) -> list[str]:
    upgrades = [call for call in charts.calls if call[0] == "upgrade"]
    assert len(upgrades) == 1
    return upgrades[0][5]


class TestStartStop:
    def test_stop(self, handlers, network) -> None:
        assert handlers.stop({"namespace": "solo-e2e", "node_aliases": "node1,node2"})
        assert sorted(_execs(network, STOP)) == ["network-node1-0", "network-node2-0"]
        assert network.leases == {}
        assert len(network.calls_named("delete_lease")) == 1

    def test_stop_with_missing_pod_skips_stop(self, handlers, network) -> None:
        assert handlers.stop({"namespace": "solo-e2e", "node_aliases": "node1,node9"})
        assert _execs(network, STOP) == []

    def test_unknown_namespace(self, handlers, network) -> None:
        with pytest.raises(SoloError, match="namespace missing does not exist"):
            handlers.stop({"namespace": "missing", "node_aliases": "node1"})

    def test_missing_required_flag(self, handlers) -> None:
        with pytest.raises(SoloError) as info:
            handlers.stop({"namespace": "solo-e2e"})
        assert isinstance(info.value.cause, MissingArgumentError)

    def test_start_stakes_every_node(self, handlers, network, ledger) -> None:
        assert handlers.start({"namespace": "solo-e2e", "node_aliases": "node1,node2,node3"})
        assert sorted(_execs(network, START)) == ALL_PODS

        stakes = [args for name, args, _ in ledger.calls if name == "update_account_stake"]
        assert sorted(stakes) == [("0.0.3", 0), ("0.0.4", 1), ("0.0.5", 2)]
        assert ledger.closed
        assert network.port_forwards and all(forward.closed for forward in network.port_forwards)
        assert network.leases == {}

    def test_start_failure_releases_lease_once(self, handlers, network, ledger, statuses) -> None:
        statuses["status"] = NodeStatus.CATASTROPHIC_FAILURE
        with pytest.raises(SoloError, match="Error starting node"):
            handlers.start({"namespace": "solo-e2e", "node_aliases": "node1"})
        assert len(network.calls_named("delete_lease")) == 1
        assert network.leases == {}
        assert all(forward.closed for forward in network.port_forwards)
        assert "update_account_stake" not in ledger.names()

    def test_start_times_out(self, handlers, network, statuses, recording_sleep) -> None:
        statuses["status"] = NodeStatus.STARTING_UP
        with pytest.raises(SoloError, match=r"node 'node1' is not ACTIVE \[ attempt = 3/3 \]"):
            handlers.start({"namespace": "solo-e2e", "node_aliases": "node1"})
        assert network.port_forwards
        assert all(forward.closed for forward in network.port_forwards)
        assert network.leases == {}

    def test_start_for_custom_app_skips_stakes(self, handlers, ledger) -> None:
        assert handlers.start({"namespace": "solo-e2e", "node_aliases": "node1", "app": "PlatformTestingTool.jar"})
        assert "update_account_stake" not in ledger.names()


class TestSetupRefresh:
    def test_setup_fetches_platform_and_pushes_overrides(self, handlers, network) -> None:
        assert handlers.setup({"namespace": "solo-e2e", "node_aliases": "node1,node2"})

        assert sorted(_execs_matching(network, "curl -sSfL")) == ["network-node1-0", "network-node2-0"]
        assert sorted(_execs_matching(network, "chown -R hedera:hedera")) == ["network-node1-0", "network-node2-0"]
        copies = network.calls_named("copy_to")
        assert sorted(pod for _, pod, _, _ in copies) == ["network-node1-0", "network-node2-0"]
        assert {dest for _, _, _, dest in copies} == {f"{HEDERA_HAPI_PATH}/data/config"}

        overrides_file = Path(copies[0][2])
        assert overrides_file.name == NODE_OVERRIDE_FILE
        overrides = yaml.safe_load(overrides_file.read_text())["gossip"]["endpointOverrides"]
        assert [entry["nodeId"] for entry in overrides] == [0, 1, 2]
        assert {entry["port"] for entry in overrides} == {HEDERA_NODE_INTERNAL_GOSSIP_PORT}
        assert overrides[0]["hostname"] == templates.pod_fqdn("solo-e2e", "node1")
        assert network.leases == {}

    def test_setup_fails_for_missing_pod(self, handlers, network) -> None:
        with pytest.raises(SoloError, match="no pod found for nodeAlias: node9"):
            handlers.setup({"namespace": "solo-e2e", "node_aliases": "node9"})
        assert network.calls_named("copy_to") == []

    def test_refresh_resets_state_before_restart(self, handlers, network) -> None:
        assert handlers.refresh({"namespace": "solo-e2e", "node_aliases": "node1"})

        pods_in_order = [(pod, cmd) for _, pod, cmd in network.calls_named("exec")]
        dump = next(i for i, (_, cmd) in enumerate(pods_in_order)
                    if isinstance(cmd, str) and cmd == f"rm -rf {HEDERA_HAPI_PATH}/data/saved/*")
        start = pods_in_order.index(("network-node1-0", START))
        assert dump < start
        assert _execs(network, START) == ["network-node1-0"]
        assert all(forward.closed for forward in network.port_forwards)


class TestKeys:
    def test_generates_and_resets_flags(self, handlers, settings, flags) -> None:
        assert handlers.keys({"node_aliases": "node1", "generate_gossip_keys": True, "generate_tls_keys": True})
        keys_dir = settings.cache_dir / "keys"
        assert sorted(p.name for p in keys_dir.iterdir()) == [
            "hedera-node1.crt", "hedera-node1.key", "s-private-node1.pem", "s-public-node1.pem",
        ]
        assert flags.get("generate_gossip_keys") is False
        assert (settings.home / "flags.yaml").exists()

    def test_nothing_requested(self, handlers, settings) -> None:
        assert handlers.keys({"node_aliases": "node1"})
        assert list((settings.cache_dir / "keys").iterdir()) == []


class TestAddPhases:
    def test_prepare_then_submit(self, handlers, ledger, tmp_path) -> None:
        upgrade_zip = tmp_path / "upgrade.zip"
        upgrade_zip.write_bytes(b"x" * (UPGRADE_FILE_CHUNK_SIZE * 2 + 10))
        out = tmp_path / "ctx"

        assert handlers.add_prepare({
            "namespace": "solo-e2e", "output_dir": str(out), "pvcs": True,
            "generate_gossip_keys": True, "generate_tls_keys": True,
            "upgrade_zip_file": str(upgrade_zip),
        })
        record = json.loads((out / ADD_CONTEXT_FILE).read_text())
        assert record["phase"] == "add"
        assert record["data"]["new_node"] == {"name": "node4", "account_id": "0.0.6"}
        assert record["data"]["existing_node_aliases"] == ["node1", "node2", "node3"]
        assert record["data"]["upgrade_zip_hash"] == hashlib.sha384(upgrade_zip.read_bytes()).hexdigest()
        assert len(record["data"]["gossip_endpoints"]) == 2
        assert [name for name in ledger.names() if name.endswith("_file")] == [
            "update_file", "append_file", "append_file",
        ]

        ledger.calls.clear()
        assert handlers.add_submit_transactions({"namespace": "solo-e2e", "input_dir": str(out)})
        names = ledger.names()
        assert names[0] == "create_node"
        create_kwargs = ledger.calls[0][2]
        assert create_kwargs["account_id"] == "0.0.6"
        assert len(create_kwargs["certificate_hash"]) == 48
        freezes = [args[0] for name, args, _ in ledger.calls if name == "freeze"]
        assert freezes == [FreezeType.PREPARE_UPGRADE, FreezeType.FREEZE_UPGRADE]

    def test_execute_deploys_new_node(self, handlers, network, charts, ledger, settings, statuses,
                                      upgrade_zip, tmp_path) -> None:
        out = tmp_path / "ctx"
        _write_node_keys(settings.cache_dir / "keys", ["node1", "node2", "node3"])
        assert handlers.add_prepare({
            "namespace": "solo-e2e", "output_dir": str(out), "pvcs": True,
            "generate_gossip_keys": True, "generate_tls_keys": True,
            "upgrade_zip_file": str(upgrade_zip),
        })
        assert handlers.add_submit_transactions({"namespace": "solo-e2e", "input_dir": str(out)})

        ledger.calls.clear()
        statuses["status"] = _frozen_until_restarted(network)
        network.exec_outputs["ls -1t"] = "12.zip"
        charts.on_upgrade = lambda: network.add_node("solo-e2e", "node4", "0.0.6", 3)

        assert handlers.add_execute({"namespace": "solo-e2e", "input_dir": str(out)})

        values = _chart_values(charts)
        assert "hedera.nodes[3].name=node4" in values
        assert "hedera.nodes[3].accountId=0.0.6" in values
        assert sorted(pod for _, pod in network.calls_named("delete_pod")) == ALL_PODS

        saved_dir = f"{SAVED_STATE_ROOT}/3/123/12"
        state_copies = [call for call in network.calls_named("copy_to") if call[3] == saved_dir]
        assert [call[1] for call in state_copies] == ["network-node4-0"]
        assert Path(state_copies[0][2]).name == "12.zip"

        assert ("solo-e2e", templates.gossip_keys_secret("node4")) in network.secrets
        tls_secret = network.secrets[("solo-e2e", TLS_KEYS_SECRET_NAME)]
        assert templates.tls_public_key_file("node4") in tls_secret

        assert sorted(_execs(network, START)) == [*ALL_PODS, "network-node4-0"]
        assert ("update_account_stake", ("0.0.6", 3), {}) in ledger.calls
        assert sorted(account for _, account, amount in _transfers(ledger)
                      if amount == STAKE_REFRESH_TRANSFER_AMOUNT) == ["0.0.3", "0.0.4", "0.0.5", "0.0.6"]
        assert all(forward.closed for forward in network.port_forwards)
        assert network.leases == {}

    def test_prepare_requires_pvcs(self, handlers, tmp_path) -> None:
        with pytest.raises(SoloError, match="PVCs are not enabled"):
            handlers.add_prepare({"namespace": "solo-e2e", "output_dir": str(tmp_path)})

    def test_submit_without_record(self, handlers, tmp_path) -> None:
        with pytest.raises(SoloError, match="Unable to read context data"):
            handlers.add_submit_transactions({"namespace": "solo-e2e", "input_dir": str(tmp_path)})


class TestDelete:
    def test_phases(self, handlers, network, charts, ledger, settings, statuses, recording_sleep,
                    upgrade_zip, tmp_path) -> None:
        out = tmp_path / "ctx"
        _write_node_keys(settings.cache_dir / "keys", ["node1", "node2", "node3"])

        assert handlers.delete_prepare({
            "namespace": "solo-e2e", "node_alias": "node2", "output_dir": str(out),
            "upgrade_zip_file": str(upgrade_zip),
        })
        record = json.loads((out / DELETE_CONTEXT_FILE).read_text())
        assert record["phase"] == "delete"
        assert record["data"]["node_alias"] == "node2"
        assert record["data"]["existing_node_aliases"] == ["node1", "node2", "node3"]
        assert record["data"]["upgrade_zip_hash"] == hashlib.sha384(b"upgrade payload").hexdigest()

        ledger.calls.clear()
        assert handlers.delete_submit_transactions({"namespace": "solo-e2e", "input_dir": str(out)})
        assert ledger.calls[0] == ("delete_node", (), {"node_id": 1, "admin_key": record["data"]["admin_key"]})
        freezes = [call for call in ledger.calls if call[0] == "freeze"]
        assert [call[1][0] for call in freezes] == [FreezeType.PREPARE_UPGRADE, FreezeType.FREEZE_UPGRADE]
        assert freezes[0][2]["file_hash"] == record["data"]["upgrade_zip_hash"]

        ledger.calls.clear()
        statuses["status"] = _frozen_until_restarted(network)
        assert handlers.delete_execute({"namespace": "solo-e2e", "input_dir": str(out)})

        values = _chart_values(charts)
        assert f"hedera.nodes[1].accountId={IGNORED_NODE_ACCOUNT_ID}" in values
        assert "hedera.nodes[0].accountId=0.0.3" in values
        assert PODS_RESTART_GRACE_SECONDS in recording_sleep.calls
        assert ("solo-e2e", templates.gossip_keys_secret("node2")) not in network.secrets
        assert sorted(_execs(network, START)) == ["network-node1-0", "network-node3-0"]
        assert sorted(account for _, account, _ in _transfers(ledger)) == ["0.0.3", "0.0.5"]
        assert network.leases == {}

    def test_combined(self, handlers, network, ledger, settings, statuses, upgrade_zip) -> None:
        _write_node_keys(settings.cache_dir / "keys", ["node1", "node2", "node3"])
        statuses["status"] = _frozen_until_restarted(network)

        assert handlers.delete({"namespace": "solo-e2e", "node_alias": "node3",
                                "upgrade_zip_file": str(upgrade_zip)})
        names = ledger.names()
        assert names.index("delete_node") < names.index("freeze")
        assert sorted(_execs(network, START)) == ["network-node1-0", "network-node2-0"]

    def test_requires_node_alias(self, handlers) -> None:
        with pytest.raises(SoloError) as info:
            handlers.delete({"namespace": "solo-e2e"})
        assert isinstance(info.value.cause, MissingArgumentError)


class TestUpdate:
    def test_phases_with_new_account(self, handlers, network, charts, ledger, settings, statuses,
                                     upgrade_zip, tmp_path) -> None:
        out = tmp_path / "ctx"
        _write_node_keys(settings.cache_dir / "keys", ["node1", "node2", "node3"])

        assert handlers.update_prepare({
            "namespace": "solo-e2e", "node_alias": "node2", "output_dir": str(out),
            "new_account_number": "0.0.7", "upgrade_zip_file": str(upgrade_zip),
        })
        record = json.loads((out / UPDATE_CONTEXT_FILE).read_text())
        assert record["phase"] == "update"
        assert record["data"]["new_account_number"] == "0.0.7"
        assert record["data"]["all_node_aliases"] == ["node1", "node2", "node3"]

        ledger.calls.clear()
        assert handlers.update_submit_transactions({"namespace": "solo-e2e", "input_dir": str(out)})
        update = next(kwargs for name, _, kwargs in ledger.calls if name == "update_node")
        assert update["node_id"] == 1
        assert update["account_id"] == "0.0.7"
        assert "certificate_hash" not in update

        ledger.calls.clear()
        statuses["status"] = _frozen_until_restarted(network)
        assert handlers.update_execute({"namespace": "solo-e2e", "input_dir": str(out)})

        values = _chart_values(charts)
        assert "hedera.nodes[1].accountId=0.0.7" in values
        assert sorted(pod for _, pod in network.calls_named("delete_pod")) == ALL_PODS
        assert sorted(_execs(network, START)) == ALL_PODS
        assert sorted(account for _, account, _ in _transfers(ledger)) == ["0.0.3", "0.0.5", "0.0.7"]
        assert network.leases == {}

    def test_combined_without_account_change_keeps_chart(self, handlers, network, charts, ledger, settings,
                                                         statuses, upgrade_zip) -> None:
        _write_node_keys(settings.cache_dir / "keys", ["node1", "node2", "node3"])
        statuses["status"] = _frozen_until_restarted(network)

        assert handlers.update({"namespace": "solo-e2e", "node_alias": "node1",
                                "upgrade_zip_file": str(upgrade_zip)})
        assert [call for call in charts.calls if call[0] == "upgrade"] == []
        assert "update_node" in ledger.names()
        assert sorted(_execs(network, START)) == ALL_PODS


class TestUpgradeTransactions:
    def test_prepare_upgrade_uploads_and_freezes(self, handlers, ledger, tmp_path) -> None:
        upgrade_zip = tmp_path / "upgrade.zip"
        upgrade_zip.write_bytes(b"payload")
        assert handlers.prepare_upgrade({"namespace": "solo-e2e", "upgrade_zip_file": str(upgrade_zip)})
        assert ledger.calls[0][0:2] == ("update_file", (UPGRADE_FILE_ID, 7))
        freeze = [call for call in ledger.calls if call[0] == "freeze"][0]
        assert freeze[1] == (FreezeType.PREPARE_UPGRADE,)
        assert freeze[2]["file_hash"] == hashlib.sha384(b"payload").hexdigest()

    def test_freeze_sends_freeze_only(self, handlers, ledger, network, statuses) -> None:
        statuses["status"] = NodeStatus.FREEZE_COMPLETE
        assert handlers.freeze({"namespace": "solo-e2e"})
        assert ("freeze", (FreezeType.FREEZE_ONLY,)) in [(name, args) for name, args, _ in ledger.calls]
        assert sorted(_execs(network, STOP)) == ALL_PODS

    def test_upgrade_phases(self, handlers, network, ledger, statuses, upgrade_zip, tmp_path) -> None:
        out = tmp_path / "ctx"
        assert handlers.upgrade_prepare({"namespace": "solo-e2e", "output_dir": str(out),
                                         "upgrade_zip_file": str(upgrade_zip)})
        record = json.loads((out / UPGRADE_CONTEXT_FILE).read_text())
        assert record["data"]["all_node_aliases"] == ["node1", "node2", "node3"]

        ledger.calls.clear()
        assert handlers.upgrade_submit_transactions({"namespace": "solo-e2e", "input_dir": str(out)})
        assert [args[0] for name, args, _ in ledger.calls if name == "freeze"] == [
            FreezeType.PREPARE_UPGRADE, FreezeType.FREEZE_UPGRADE,
        ]

        app_jar = f"{HEDERA_HAPI_PATH}/data/upgrade/current/data/apps/HederaNode.jar"
        network.exec_outputs["data/apps -maxdepth"] = app_jar
        statuses["status"] = _frozen_until_restarted(network)
        assert handlers.upgrade_execute({"namespace": "solo-e2e", "input_dir": str(out)})

        downloads = [call for call in network.calls_named("copy_from") if call[2] == app_jar]
        assert [call[1] for call in downloads] == ["network-node1-0"]
        assert sorted(_execs(network, START)) == ALL_PODS
        assert "update_node" not in ledger.names()
        assert network.leases == {}
