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


"""kubectl-backed cluster client, port-forward handles, and pod waits."""

from __future__ import annotations

import base64
import socket
import tarfile
import tempfile
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import sh
import yaml
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed

from solo_manager import logger
from solo_manager.poller import PollResult, wait_until
from solo_manager.utils import is_not_found, kubectl_json, run_kubectl

PathFilter = Callable[[str], bool]


# ============================================================================
# Client interface
# ============================================================================

class PortForwardHandle(Protocol):
    local_port: int

    def close(self) -> None: ...

    def __enter__(self) -> PortForwardHandle: ...

    def __exit__(self, *exc: object) -> None: ...


class ClusterClient(Protocol):
    """Cluster operations used by the orchestration layer."""

    def namespace_exists(self, namespace: str) -> bool: ...

    def create_namespace(self, namespace: str) -> None: ...

    def list_pods(self, namespace: str, labels: list[str]) -> list[dict[str, Any]]: ...

    def list_services(self, namespace: str, labels: list[str]) -> list[dict[str, Any]]: ...

    def exec_in_container(self, namespace: str, pod: str, container: str, command: list[str] | str) -> str: ...

    def copy_to(self, namespace: str, pod: str, container: str, src: Path, dest_dir: str,
                path_filter: PathFilter | None = None) -> None: ...

    def copy_from(self, namespace: str, pod: str, container: str, src_path: str, dest_dir: Path) -> Path: ...

    def port_forward(self, namespace: str, pod: str, local_port: int, remote_port: int) -> PortForwardHandle: ...

    def delete_pod(self, namespace: str, pod: str) -> None: ...

    def list_pvcs(self, namespace: str, labels: list[str]) -> list[str]: ...

    def delete_pvcs(self, namespace: str, labels: list[str]) -> None: ...

    def get_secret(self, namespace: str, name: str) -> dict[str, bytes] | None: ...

    def create_secret(self, namespace: str, name: str, data: dict[str, bytes],
                      labels: dict[str, str] | None = None) -> None: ...

    def delete_secret(self, namespace: str, name: str) -> None: ...

    def create_cluster_role(self, name: str, resources: list[str], verbs: list[str]) -> None: ...

    def create_cluster_role_binding(self, name: str, role: str, username: str) -> None: ...

    def delete_cluster_role_binding(self, name: str) -> None: ...

    def get_lease(self, namespace: str, name: str) -> dict[str, Any] | None: ...

    def create_lease(self, manifest: dict[str, Any]) -> None: ...

    def replace_lease(self, manifest: dict[str, Any]) -> None: ...

    def delete_lease(self, namespace: str, name: str) -> None: ...

    def list_contexts(self) -> list[str]: ...

    def current_context(self) -> str: ...

    def cluster_info(self) -> str: ...


# ============================================================================
# Port forwarding
# ============================================================================

class PortForward:
    """A background ``kubectl port-forward`` process.

    Closing is idempotent; use as a context manager so the process is
    terminated on every exit path.
    """

    def __init__(self, namespace: str, pod: str, local_port: int, remote_port: int) -> None:
        self.namespace = namespace
        self.pod = pod
        self.local_port = local_port
        self.remote_port = remote_port
        self._process = None

    def open(self) -> PortForward:
        logger.debug("Port-forward %s/%s %d:%d", self.namespace, self.pod, self.local_port, self.remote_port)
        self._process = sh.kubectl(
            "port-forward", "-n", self.namespace, f"pod/{self.pod}",
            f"{self.local_port}:{self.remote_port}",
            _bg=True, _bg_exc=False,
        )
        try:
            self._wait_listening()
        except Exception:
            self.close()
            raise
        return self

    @retry(
        stop=stop_after_attempt(20),
        wait=wait_fixed(0.25),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _wait_listening(self) -> None:
        with socket.create_connection(("127.0.0.1", self.local_port), timeout=1):
            pass

    def close(self) -> None:
        process, self._process = self._process, None
        if process is None:
            return
        try:
            process.terminate()
            process.wait()
        except (sh.ErrorReturnCode, sh.SignalException, ProcessLookupError) as exc:
            logger.debug("Port-forward %s exited: %s", self.pod, exc)

    def __enter__(self) -> PortForward:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


# ============================================================================
# kubectl client
# ============================================================================

def _selector(labels: list[str]) -> str:
    return ",".join(labels)


class KubectlClient:
    """Cluster client that shells out to kubectl."""

    def __init__(self, context: str | None = None) -> None:
        self.context = context

    def _args(self, *args: str) -> list[str]:
        if self.context:
            return ["--context", self.context, *args]
        return list(args)

    def _kubectl(self, *args: str, **kwargs: Any) -> str:
        try:
            return str(sh.kubectl(*self._args(*args), **kwargs))
        except sh.ErrorReturnCode as err:
            stderr = err.stderr.decode(errors="replace").strip() if err.stderr else ""
            raise RuntimeError(f"kubectl {args[0]} failed: {stderr}") from err

    def _apply(self, manifest: dict[str, Any], verb: str = "apply") -> None:
        tmp = tempfile.NamedTemporaryFile(delete=False, suffix=".yaml")
        try:
            tmp.write(yaml.safe_dump(manifest, default_flow_style=False).encode())
            tmp.flush()
            tmp.close()
            self._kubectl(verb, "-f", tmp.name)
        finally:
            Path(tmp.name).unlink(missing_ok=True)

    # -- Namespaces, pods, services --

    def namespace_exists(self, namespace: str) -> bool:
        ok, _, _ = run_kubectl(self._args("get", "namespace", namespace))
        return ok

    def create_namespace(self, namespace: str) -> None:
        if not self.namespace_exists(namespace):
            self._kubectl("create", "namespace", namespace)

    def list_pods(self, namespace: str, labels: list[str]) -> list[dict[str, Any]]:
        return kubectl_json(self._args("get", "pods", "-n", namespace, "-l", _selector(labels))).get("items", [])

    def list_services(self, namespace: str, labels: list[str]) -> list[dict[str, Any]]:
        return kubectl_json(self._args("get", "services", "-n", namespace, "-l", _selector(labels))).get("items", [])

    def delete_pod(self, namespace: str, pod: str) -> None:
        self._kubectl("delete", "pod", pod, "-n", namespace, "--wait=false")

    # -- Containers --

    def exec_in_container(self, namespace: str, pod: str, container: str, command: list[str] | str) -> str:
        if isinstance(command, str):
            command = ["bash", "-c", command]
        return self._kubectl("exec", "-n", namespace, pod, "-c", container, "--", *command)

    def copy_to(self, namespace: str, pod: str, container: str, src: Path, dest_dir: str,
                path_filter: PathFilter | None = None) -> None:
        """Copy a file, or a directory's contents, into a container directory.

        Args:
            namespace: Pod namespace.
            pod: Pod name.
            container: Container name.
            src: Local file or directory.
            dest_dir: Target directory in the container.
            path_filter: Called with each path relative to ``src``; entries
                for which it returns False are left out.
        """
        src = Path(src)
        if src.is_file() and path_filter is None:
            self._kubectl("cp", str(src), f"{namespace}/{pod}:{dest_dir}/{src.name}", "-c", container)
            return

        def _tar_filter(info: tarfile.TarInfo) -> tarfile.TarInfo | None:
            relative = info.name[2:] if info.name.startswith("./") else info.name
            if path_filter is not None and relative not in (".", "") and not path_filter(relative):
                return None
            return info

        with tempfile.TemporaryDirectory() as tmp:
            archive = Path(tmp) / f"{src.name}.tar"
            with tarfile.open(archive, "w") as tar:
                tar.add(src, arcname=src.name if src.is_file() else ".", filter=_tar_filter)
            remote = f"/tmp/{archive.name}"
            self._kubectl("cp", str(archive), f"{namespace}/{pod}:{remote}", "-c", container)
            self.exec_in_container(
                namespace, pod, container,
                f"mkdir -p {dest_dir} && tar -xf {remote} -C {dest_dir} && rm -f {remote}",
            )

    def copy_from(self, namespace: str, pod: str, container: str, src_path: str, dest_dir: Path) -> Path:
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        target = dest_dir / Path(src_path).name
        self._kubectl("cp", f"{namespace}/{pod}:{src_path}", str(target), "-c", container)
        return target

    def port_forward(self, namespace: str, pod: str, local_port: int, remote_port: int) -> PortForward:
        return PortForward(namespace, pod, local_port, remote_port).open()

    # -- Volumes --

    def list_pvcs(self, namespace: str, labels: list[str]) -> list[str]:
        items = kubectl_json(self._args("get", "pvc", "-n", namespace, "-l", _selector(labels))).get("items", [])
        return [item["metadata"]["name"] for item in items]

    def delete_pvcs(self, namespace: str, labels: list[str]) -> None:
        for name in self.list_pvcs(namespace, labels):
            self._kubectl("delete", "pvc", name, "-n", namespace)

    # -- Secrets and RBAC --

    def get_secret(self, namespace: str, name: str) -> dict[str, bytes] | None:
        ok, stdout, stderr = run_kubectl(self._args("get", "secret", name, "-n", namespace, "-o", "yaml"))
        if not ok:
            if is_not_found(stderr):
                return None
            raise RuntimeError(f"failed to read secret {name}: {stderr.strip()}")
        data = (yaml.safe_load(stdout) or {}).get("data") or {}
        return {key: base64.b64decode(value) for key, value in data.items()}

    def create_secret(self, namespace: str, name: str, data: dict[str, bytes],
                      labels: dict[str, str] | None = None) -> None:
        self._apply({
            "apiVersion": "v1",
            "kind": "Secret",
            "type": "Opaque",
            "metadata": {"name": name, "namespace": namespace, "labels": labels or {}},
            "data": {key: base64.b64encode(value).decode() for key, value in data.items()},
        })

    def delete_secret(self, namespace: str, name: str) -> None:
        self._kubectl("delete", "secret", name, "-n", namespace, "--ignore-not-found")

    def create_cluster_role(self, name: str, resources: list[str], verbs: list[str]) -> None:
        self._apply({
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRole",
            "metadata": {"name": name},
            "rules": [{"apiGroups": [""], "resources": resources, "verbs": verbs}],
        })

    def create_cluster_role_binding(self, name: str, role: str, username: str) -> None:
        self._apply({
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRoleBinding",
            "metadata": {"name": name},
            "subjects": [{"kind": "User", "name": username, "apiGroup": "rbac.authorization.k8s.io"}],
            "roleRef": {"kind": "ClusterRole", "name": role, "apiGroup": "rbac.authorization.k8s.io"},
        })

    def delete_cluster_role_binding(self, name: str) -> None:
        self._kubectl("delete", "clusterrolebinding", name, "--ignore-not-found")

    # -- Leases --

    def get_lease(self, namespace: str, name: str) -> dict[str, Any] | None:
        ok, stdout, stderr = run_kubectl(self._args("get", "lease", name, "-n", namespace, "-o", "yaml"))
        if not ok:
            if is_not_found(stderr):
                return None
            raise RuntimeError(f"failed to read lease {name}: {stderr.strip()}")
        return yaml.safe_load(stdout)

    def create_lease(self, manifest: dict[str, Any]) -> None:
        self._apply(manifest, verb="create")

    def replace_lease(self, manifest: dict[str, Any]) -> None:
        self._apply(manifest, verb="replace")

    def delete_lease(self, namespace: str, name: str) -> None:
        self._kubectl("delete", "lease", name, "-n", namespace, "--ignore-not-found")

    # -- Contexts --

    def list_contexts(self) -> list[str]:
        return [line for line in self._kubectl("config", "get-contexts", "-o", "name").splitlines() if line]

    def current_context(self) -> str:
        return self._kubectl("config", "current-context").strip()

    def cluster_info(self) -> str:
        return self._kubectl("cluster-info")


# ============================================================================
# Pod waits
# ============================================================================

def pod_phase(pod: dict[str, Any]) -> str:
    return pod.get("status", {}).get("phase", "")


def pod_is_ready(pod: dict[str, Any]) -> bool:
    for condition in pod.get("status", {}).get("conditions", []) or []:
        if condition.get("type") == "Ready":
            return condition.get("status") == "True"
    return False


def wait_for_pods_running(
    cluster: ClusterClient,
    namespace: str,
    labels: list[str],
    *,
    count: int = 1,
    max_attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> list[dict[str, Any]]:
    """Wait until ``count`` pods matching ``labels`` are in phase Running.

    Returns:
        The running pods.

    Raises:
        PollTimeoutError: If the pods are not running within the budget.
    """
    def _check() -> PollResult:
        running = [pod for pod in cluster.list_pods(namespace, labels) if pod_phase(pod) == "Running"]
        if len(running) >= count:
            return PollResult.success(running)
        return PollResult.transient(f"{len(running)}/{count} running")

    return wait_until(
        _check, max_attempts=max_attempts, delay=delay,
        entity=f"pods [{_selector(labels)}]", target="Running", sleep=sleep,
    )


def wait_for_pods_ready(
    cluster: ClusterClient,
    namespace: str,
    labels: list[str],
    *,
    count: int = 1,
    max_attempts: int,
    delay: float,
    sleep: Callable[[float], None] = time.sleep,
) -> list[dict[str, Any]]:
    """Wait until ``count`` pods matching ``labels`` report Ready.

    Raises:
        PollTimeoutError: If the pods are not ready within the budget.
    """
    def _check() -> PollResult:
        ready = [pod for pod in cluster.list_pods(namespace, labels) if pod_is_ready(pod)]
        if len(ready) >= count:
            return PollResult.success(ready)
        return PollResult.transient(f"{len(ready)}/{count} ready")

    return wait_until(
        _check, max_attempts=max_attempts, delay=delay,
        entity=f"pods [{_selector(labels)}]", target="Ready", sleep=sleep,
    )
