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

"""Shared fakes: in-memory cluster, chart manager, ledger client and sleep."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from solo_manager.config import FlagStore, SoloSettings
from solo_manager.constants import (
    LABEL_ACCOUNT_ID,
    LABEL_NODE_ID,
    LABEL_NODE_NAME,
    LABEL_TYPE_HAPROXY,
    LABEL_TYPE_NETWORK_NODE,
    LABEL_TYPE_NETWORK_NODE_SVC,
)
from solo_manager.context import NodeContext
from solo_manager.templates import haproxy_name, network_pod_name, network_service


def _label_pair(label: str) -> tuple[str, str | None]:
    key, sep, value = label.partition("=")
    return key, value if sep else None


def _matches(labels: dict[str, str], selector: list[str]) -> bool:
    for label in selector:
        key, value = _label_pair(label)
        if key not in labels or (value is not None and labels[key] != value):
            return False
    return True


class FakePortForward:
    def __init__(self, pod: str, local_port: int, remote_port: int) -> None:
        self.pod = pod
        self.local_port = local_port
        self.remote_port = remote_port
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakePortForward:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class FakeClusterClient:
    """In-memory cluster; records every mutating call in ``calls``."""

    def __init__(self) -> None:
        self.namespaces: set[str] = set()
        self.pods: dict[str, list[dict[str, Any]]] = {}
        self.services: dict[str, list[dict[str, Any]]] = {}
        self.pvcs: dict[str, dict[str, dict[str, str]]] = {}
        self.secrets: dict[tuple[str, str], dict[str, bytes]] = {}
        self.leases: dict[tuple[str, str], dict[str, Any]] = {}
        self.cluster_roles: dict[str, dict[str, Any]] = {}
        self.role_bindings: dict[str, dict[str, str]] = {}
        self.exec_outputs: dict[str, str] = {}
        self.exec_error: Exception | None = None
        self.port_forwards: list[FakePortForward] = []
        self.calls: list[tuple] = []

    # -- Builders --

    def add_namespace(self, namespace: str) -> None:
        self.namespaces.add(namespace)

    def add_pod(self, namespace: str, name: str, labels: dict[str, str], phase: str = "Running",
                ready: bool = True) -> dict[str, Any]:
        pod = {
            "metadata": {"name": name, "labels": dict(labels)},
            "status": {"phase": phase, "conditions": [{"type": "Ready", "status": "True" if ready else "False"}]},
        }
        self.pods.setdefault(namespace, []).append(pod)
        return pod

    def add_node(self, namespace: str, alias: str, account_id: str, node_id: int) -> None:
        """Add the pod, service and haproxy pod of one network node."""
        self.add_namespace(namespace)
        type_key, type_value = _label_pair(LABEL_TYPE_NETWORK_NODE)
        self.add_pod(namespace, network_pod_name(alias), {type_key: type_value, LABEL_NODE_NAME: alias})
        svc_key, svc_value = _label_pair(LABEL_TYPE_NETWORK_NODE_SVC)
        self.services.setdefault(namespace, []).append({
            "metadata": {
                "name": network_service(alias),
                "labels": {
                    svc_key: svc_value,
                    LABEL_NODE_NAME: alias,
                    LABEL_NODE_ID: str(node_id),
                    LABEL_ACCOUNT_ID: account_id,
                },
            },
            "spec": {"clusterIP": f"10.0.0.{node_id + 10}"},
        })
        proxy_key, proxy_value = _label_pair(LABEL_TYPE_HAPROXY)
        self.add_pod(namespace, f"{haproxy_name(alias)}-abc", {"app": haproxy_name(alias), proxy_key: proxy_value})

    # -- Namespaces, pods, services --

    def namespace_exists(self, namespace: str) -> bool:
        return namespace in self.namespaces

    def create_namespace(self, namespace: str) -> None:
        self.calls.append(("create_namespace", namespace))
        self.namespaces.add(namespace)

    def list_pods(self, namespace: str, labels: list[str]) -> list[dict[str, Any]]:
        return [pod for pod in self.pods.get(namespace, []) if _matches(pod["metadata"]["labels"], labels)]

    def list_services(self, namespace: str, labels: list[str]) -> list[dict[str, Any]]:
        return [svc for svc in self.services.get(namespace, []) if _matches(svc["metadata"]["labels"], labels)]

    def exec_in_container(self, namespace: str, pod: str, container: str, command: list[str] | str) -> str:
        self.calls.append(("exec", pod, command))
        if self.exec_error is not None:
            raise self.exec_error
        text = command if isinstance(command, str) else " ".join(command)
        for fragment, output in self.exec_outputs.items():
            if fragment in text:
                return output
        return ""

    def copy_to(self, namespace: str, pod: str, container: str, src: Path, dest_dir: str,
                path_filter=None) -> None:
        self.calls.append(("copy_to", pod, str(src), dest_dir))

    def copy_from(self, namespace: str, pod: str, container: str, src_path: str, dest_dir: Path) -> Path:
        self.calls.append(("copy_from", pod, src_path, str(dest_dir)))
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / Path(src_path).name
        target.write_text(f"copied from {pod}:{src_path}")
        return target

    def port_forward(self, namespace: str, pod: str, local_port: int, remote_port: int) -> FakePortForward:
        forward = FakePortForward(pod, local_port, remote_port)
        self.port_forwards.append(forward)
        return forward

    def delete_pod(self, namespace: str, pod: str) -> None:
        self.calls.append(("delete_pod", pod))

    # -- Volumes --

    def list_pvcs(self, namespace: str, labels: list[str]) -> list[str]:
        return [name for name, pvc_labels in self.pvcs.get(namespace, {}).items() if _matches(pvc_labels, labels)]

    def delete_pvcs(self, namespace: str, labels: list[str]) -> None:
        for name in self.list_pvcs(namespace, labels):
            del self.pvcs[namespace][name]
            self.calls.append(("delete_pvc", name))

    # -- Secrets and RBAC --

    def get_secret(self, namespace: str, name: str) -> dict[str, bytes] | None:
        return self.secrets.get((namespace, name))

    def create_secret(self, namespace: str, name: str, data: dict[str, bytes],
                      labels: dict[str, str] | None = None) -> None:
        self.secrets[(namespace, name)] = dict(data)

    def delete_secret(self, namespace: str, name: str) -> None:
        self.secrets.pop((namespace, name), None)

    def create_cluster_role(self, name: str, resources: list[str], verbs: list[str]) -> None:
        self.cluster_roles[name] = {"resources": resources, "verbs": verbs}

    def create_cluster_role_binding(self, name: str, role: str, username: str) -> None:
        self.role_bindings[name] = {"role": role, "username": username}

    def delete_cluster_role_binding(self, name: str) -> None:
        self.role_bindings.pop(name, None)

    # -- Leases --

    def get_lease(self, namespace: str, name: str) -> dict[str, Any] | None:
        return self.leases.get((namespace, name))

    def create_lease(self, manifest: dict[str, Any]) -> None:
        metadata = manifest["metadata"]
        self.calls.append(("create_lease", metadata["name"]))
        self.leases[(metadata["namespace"], metadata["name"])] = manifest

    def replace_lease(self, manifest: dict[str, Any]) -> None:
        metadata = manifest["metadata"]
        self.calls.append(("replace_lease", metadata["name"]))
        self.leases[(metadata["namespace"], metadata["name"])] = manifest

    def delete_lease(self, namespace: str, name: str) -> None:
        self.calls.append(("delete_lease", name))
        self.leases.pop((namespace, name), None)

    # -- Contexts --

    def list_contexts(self) -> list[str]:
        return ["kind-solo", "kind-other"]

    def current_context(self) -> str:
        return "kind-solo"

    def cluster_info(self) -> str:
        return "Kubernetes control plane is running at https://127.0.0.1:6443"

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]


class FakeChartManager:
    def __init__(self, fail_install: bool = False) -> None:
        self.installed: set[tuple[str, str]] = set()
        self.fail_install = fail_install
        # called after every upgrade; stands in for the pods a chart change creates
        self.on_upgrade: Callable[[], None] | None = None
        self.calls: list[tuple] = []

    def is_chart_installed(self, namespace: str, release: str) -> bool:
        return (namespace, release) in self.installed

    def install(self, namespace: str, release: str, chart: str, version: str = "",
                values: list[str] | None = None) -> None:
        self.calls.append(("install", namespace, release, chart, version, list(values or [])))
        if self.fail_install:
            raise RuntimeError(f"helm install failed: {release}")
        self.installed.add((namespace, release))

    def upgrade(self, namespace: str, release: str, chart: str, version: str = "",
                values: list[str] | None = None, reuse_values: bool = True) -> None:
        self.calls.append(("upgrade", namespace, release, chart, version, list(values or [])))
        if self.on_upgrade is not None:
            self.on_upgrade()

    def uninstall(self, namespace: str, release: str) -> None:
        self.calls.append(("uninstall", namespace, release))
        self.installed.discard((namespace, release))

    def install_with_rollback(self, namespace: str, release: str, chart: str, version: str = "",
                              values: list[str] | None = None) -> None:
        try:
            self.install(namespace, release, chart, version, values)
        except Exception:
            self.uninstall(namespace, release)
            raise


class RecordingLedgerClient:
    """Ledger client that records every call as ``(name, args, kwargs)``."""

    def __init__(self, balance: int = 1000) -> None:
        self.balance = balance
        self.calls: list[tuple[str, tuple, dict]] = []
        self.closed = False

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]

    def set_operator(self, account_id: str, private_key: str) -> None:
        self._record("set_operator", account_id, private_key)

    def get_account_balance(self, account_id: str) -> int:
        self._record("get_account_balance", account_id)
        return self.balance

    def transfer(self, from_account: str, to_account: str, amount: int) -> None:
        self._record("transfer", from_account, to_account, amount)

    def update_account_stake(self, account_id: str, staked_node_id: int) -> None:
        self._record("update_account_stake", account_id, staked_node_id)

    def create_node(self, **kwargs: Any) -> None:
        self._record("create_node", **kwargs)

    def update_node(self, **kwargs: Any) -> None:
        self._record("update_node", **kwargs)

    def delete_node(self, **kwargs: Any) -> None:
        self._record("delete_node", **kwargs)

    def get_file_contents(self, file_id: str) -> bytes:
        self._record("get_file_contents", file_id)
        return b""

    def update_file(self, file_id: str, contents: bytes, signing_key: str) -> None:
        self._record("update_file", file_id, len(contents))

    def append_file(self, file_id: str, contents: bytes, signing_key: str) -> None:
        self._record("append_file", file_id, len(contents))

    def freeze(self, freeze_type: str, **kwargs: Any) -> None:
        self._record("freeze", freeze_type, **kwargs)

    def close(self) -> None:
        self.closed = True


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeResponse:
    def __init__(self, text: str, status_code: int = 200) -> None:
        self.text = text
        self.status_code = status_code

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def metrics_page(status: int) -> str:
    return (
        "# HELP platform_PlatformStatus Platform status\n"
        "# TYPE platform_PlatformStatus gauge\n"
        f"platform_PlatformStatus{{node=\"0\"}} {status}.0\n"
    )


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings(tmp_path: Path) -> SoloSettings:
    return SoloSettings(
        home=tmp_path / "home",
        cache_dir=tmp_path / "cache",
        lease_acquire_attempts=2,
        stake_recalculation_delay=0,
        activeness_settle_delay=0,
        pods_running_attempts=2,
        pods_running_delay=0,
        pods_ready_attempts=2,
        pods_ready_delay=0,
        node_active_attempts=3,
        node_active_delay=0,
        proxy_active_attempts=2,
        proxy_active_delay=0,
    )


@pytest.fixture
def flags(settings: SoloSettings) -> FlagStore:
    return FlagStore.for_settings(settings, interactive=False)


@pytest.fixture
def cluster() -> FakeClusterClient:
    return FakeClusterClient()


@pytest.fixture
def network(cluster: FakeClusterClient) -> FakeClusterClient:
    """A cluster running node1..node3 with accounts 0.0.3..0.0.5 in namespace solo-e2e."""
    for index, alias in enumerate(("node1", "node2", "node3")):
        cluster.add_node("solo-e2e", alias, f"0.0.{index + 3}", index)
    return cluster


@pytest.fixture
def charts() -> FakeChartManager:
    return FakeChartManager()


@pytest.fixture
def ledger() -> RecordingLedgerClient:
    return RecordingLedgerClient()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_context():
    """Build a node context around a config object."""
    def _make(config: Any, cls: type = NodeContext) -> Any:
        return cls(config=config)

    return _make
