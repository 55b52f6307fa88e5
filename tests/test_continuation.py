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

"""Tests for continuation records and the per-operation projections."""

from __future__ import annotations

import json

import pytest

from solo_manager.config import AddConfig, DeleteConfig, UpdateConfig, UpgradeConfig, build_config
from solo_manager.constants import ENDPOINT_TYPE_FQDN
from solo_manager.context import NewNode, NodeAddContext, NodeContext
from solo_manager.continuation import ContinuationSchema, load_record, save_record
from solo_manager.endpoints import ServiceEndpoint
from solo_manager.errors import ContinuationSchemaError, SoloError
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

SCHEMA = ContinuationSchema(phase="demo", file_name="demo.json", fields=("a", "b"))


class TestRecords:
    def test_round_trip(self, tmp_path) -> None:
        path = save_record(tmp_path / "out", SCHEMA, {"a": 1, "b": ["x"]})
        assert path == tmp_path / "out" / "demo.json"
        assert load_record(tmp_path / "out", SCHEMA) == {"a": 1, "b": ["x"]}

    def test_save_rejects_extra_fields(self, tmp_path) -> None:
        with pytest.raises(ContinuationSchemaError, match=r"unexpected=\['c'\]"):
            save_record(tmp_path, SCHEMA, {"a": 1, "b": 2, "c": 3})

    def test_missing_directory_flag(self) -> None:
        with pytest.raises(SoloError, match="--output-dir"):
            save_record("", SCHEMA, {"a": 1, "b": 2})
        with pytest.raises(SoloError, match="--input-dir"):
            load_record(None, SCHEMA)

    def test_version_mismatch(self, tmp_path) -> None:
        (tmp_path / "demo.json").write_text(json.dumps({"phase": "demo", "version": 99, "data": {"a": 1, "b": 2}}))
        with pytest.raises(ContinuationSchemaError, match="schema version 99"):
            load_record(tmp_path, SCHEMA)

    def test_phase_mismatch(self, tmp_path) -> None:
        (tmp_path / "demo.json").write_text(json.dumps({"phase": "other", "version": 1, "data": {"a": 1, "b": 2}}))
        with pytest.raises(ContinuationSchemaError, match="belongs to phase"):
            load_record(tmp_path, SCHEMA)

    def test_missing_field(self, tmp_path) -> None:
        (tmp_path / "demo.json").write_text(json.dumps({"phase": "demo", "version": 1, "data": {"a": 1}}))
        with pytest.raises(ContinuationSchemaError, match=r"missing=\['b'\]"):
            load_record(tmp_path, SCHEMA)

    def test_unreadable_file(self, tmp_path) -> None:
        with pytest.raises(SoloError, match="Unable to read"):
            load_record(tmp_path, SCHEMA)


class TestProjections:
    def test_add_round_trip(self, tmp_path) -> None:
        config = build_config(AddConfig, {"namespace": "solo-e2e", "endpoint_type": ENDPOINT_TYPE_FQDN})
        ctx = NodeAddContext(config=config)
        ctx.config.existing_node_aliases = ["node1", "node2"]
        ctx.new_node = NewNode("node3", "0.0.5")
        ctx.admin_key = "admin"
        ctx.signing_cert_der = b"\x30\x82\x01"
        ctx.tls_cert_hash = b"\xaa" * 48
        ctx.upgrade_zip_hash = "ab" * 48
        ctx.gossip_endpoints = [ServiceEndpoint("gossip.local", 50111)]
        ctx.grpc_service_endpoints = [ServiceEndpoint("grpc.local", 50211)]

        save_record(tmp_path, ADD_SCHEMA, add_save(ctx))

        loaded = NodeAddContext(config=build_config(AddConfig, {"namespace": "solo-e2e"}))
        add_load(loaded, load_record(tmp_path, ADD_SCHEMA))
        assert loaded.new_node == ctx.new_node
        assert loaded.admin_key == "admin"
        assert loaded.signing_cert_der == ctx.signing_cert_der
        assert loaded.tls_cert_hash == ctx.tls_cert_hash
        assert loaded.upgrade_zip_hash == ctx.upgrade_zip_hash
        assert loaded.gossip_endpoints == ctx.gossip_endpoints
        assert loaded.grpc_service_endpoints == ctx.grpc_service_endpoints
        assert loaded.config.node_alias == "node3"
        assert loaded.config.all_node_aliases == ["node1", "node2", "node3"]

    def test_upgrade_round_trip(self, tmp_path) -> None:
        ctx = NodeContext(config=build_config(UpgradeConfig, {
            "namespace": "solo-e2e", "admin_key": "k", "freeze_admin_private_key": "f",
            "existing_node_aliases": "node1,node2", "all_node_aliases": "node1,node2",
        }))
        ctx.upgrade_zip_hash = "cd" * 48
        data = upgrade_save(ctx)
        assert set(data) == set(UPGRADE_SCHEMA.fields)
        save_record(tmp_path, UPGRADE_SCHEMA, data)

        loaded = NodeContext(config=build_config(UpgradeConfig, {"namespace": "solo-e2e"}))
        upgrade_load(loaded, load_record(tmp_path, UPGRADE_SCHEMA))
        assert upgrade_save(loaded) == data

    def test_delete_round_trip(self, tmp_path) -> None:
        ctx = NodeContext(config=build_config(DeleteConfig, {
            "namespace": "solo-e2e", "node_alias": "node2", "admin_key": "admin",
            "existing_node_aliases": "node1,node2,node3",
        }))
        ctx.upgrade_zip_hash = "ef" * 48
        data = delete_save(ctx)
        assert set(data) == set(DELETE_SCHEMA.fields)
        save_record(tmp_path, DELETE_SCHEMA, data)

        loaded = NodeContext(config=build_config(DeleteConfig, {"namespace": "solo-e2e"}))
        loaded.config.pod_names = {"node2": "network-node2-0"}
        delete_load(loaded, load_record(tmp_path, DELETE_SCHEMA))
        assert delete_save(loaded) == data
        assert loaded.config.all_node_aliases == ["node1", "node2", "node3"]
        assert loaded.config.pod_names == {}

    def test_update_round_trip(self, tmp_path) -> None:
        ctx = NodeContext(config=build_config(UpdateConfig, {
            "namespace": "solo-e2e", "node_alias": "node1", "admin_key": "admin",
            "new_admin_key": "new-admin", "freeze_admin_private_key": "freeze", "treasury_key": "treasury",
            "new_account_number": "0.0.9", "tls_public_key": "/keys/hedera-node1.crt",
            "tls_private_key": "/keys/hedera-node1.key", "gossip_public_key": "/keys/s-public-node1.pem",
            "gossip_private_key": "/keys/s-private-node1.pem",
            "existing_node_aliases": "node1,node2", "all_node_aliases": "node1,node2",
        }))
        ctx.upgrade_zip_hash = "01" * 48
        data = update_save(ctx)
        assert set(data) == set(UPDATE_SCHEMA.fields)
        save_record(tmp_path, UPDATE_SCHEMA, data)

        loaded = NodeContext(config=build_config(UpdateConfig, {"namespace": "solo-e2e"}))
        update_load(loaded, load_record(tmp_path, UPDATE_SCHEMA))
        assert update_save(loaded) == data
        assert loaded.config.new_account_number == "0.0.9"
        assert loaded.upgrade_zip_hash == ctx.upgrade_zip_hash
