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

"""Tests for settings, persisted flags and tracked configs."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from solo_manager.config import (
    FlagStore,
    KeysConfig,
    SoloSettings,
    StartConfig,
    TrackedConfig,
    build_config,
    parse_node_aliases,
    resolve_settings,
)
from solo_manager.errors import MissingArgumentError


class TestSettings:
    def test_defaults(self) -> None:
        settings = SoloSettings()
        assert settings.lease_backend == "k8s"
        assert settings.stake_recalculation_delay == 60
        assert settings.activeness_settle_delay == 1.5

    def test_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SOLO_LEASE_BACKEND", "file")
        monkeypatch.setenv("SOLO_NODE_ACTIVE_ATTEMPTS", "7")
        settings = SoloSettings()
        assert settings.lease_backend == "file"
        assert settings.node_active_attempts == 7

    @pytest.mark.parametrize("kwargs", [
        {"lease_backend": "etcd"},
        {"lease_duration": 0},
        {"ledger_client_factory": "no-colon"},
        {"chart_version": "latest"},
    ])
    def test_validation(self, kwargs: dict) -> None:
        with pytest.raises(ValidationError):
            SoloSettings(**kwargs)

    def test_overrides_win_over_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SOLO_CHART_VERSION", "0.40.0")
        settings = resolve_settings(chart_version="0.41.0", chart_repo=None)
        assert settings.chart_version == "0.41.0"


class TestFlagStore:
    def test_persists_across_instances(self, tmp_path) -> None:
        store = FlagStore(tmp_path / "flags.yaml", interactive=False)
        store.update({"namespace": "solo-e2e", "release_tag": None})
        store.save()
        reloaded = FlagStore(tmp_path / "flags.yaml", interactive=False)
        assert reloaded.get("namespace") == "solo-e2e"
        assert reloaded.get("release_tag") is None

    def test_reads_never_write(self, tmp_path) -> None:
        store = FlagStore(tmp_path / "flags.yaml", interactive=False)
        store.set("namespace", "solo")
        store.get("namespace")
        assert not (tmp_path / "flags.yaml").exists()

    def test_missing_required_flag(self, tmp_path) -> None:
        store = FlagStore(tmp_path / "flags.yaml", interactive=False)
        with pytest.raises(MissingArgumentError, match="No value set for required flag: namespace"):
            store.require("namespace")

    def test_prompts_when_interactive(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("solo_manager.config.typer.prompt", lambda text: "prompted")
        store = FlagStore(tmp_path / "flags.yaml", interactive=True)
        assert store.require("namespace") == "prompted"
        assert store.get("namespace") == "prompted"

    def test_resolve_builds_config(self, tmp_path) -> None:
        store = FlagStore(tmp_path / "flags.yaml", interactive=False)
        store.set("namespace", "remembered")
        config = store.resolve({"node_aliases": "node1, node2"}, StartConfig, ("namespace",))
        assert config.namespace == "remembered"
        assert config.node_aliases == ["node1", "node2"]


class TestTrackedConfig:
    def test_unused_fields(self) -> None:
        config = build_config(KeysConfig, {"node_aliases": "node1", "unknown": 1})
        assert config.node_aliases == ["node1"]
        unused = config.unused_fields()
        assert "node_aliases" not in unused
        assert "generate_gossip_keys" in unused

    def test_writes_reach_wrapped_config(self) -> None:
        config = TrackedConfig(KeysConfig())
        config.namespace = "solo"
        assert config.wrapped.namespace == "solo"
        assert "namespace" not in config.read_fields()

    def test_parse_node_aliases(self) -> None:
        assert parse_node_aliases("node1,,node2 ") == ["node1", "node2"]
