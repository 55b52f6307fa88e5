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


"""Platform software installation and key secrets for node pods."""

from __future__ import annotations

from pathlib import Path

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from solo_manager import console, logger, templates
from solo_manager.constants import (
    HEDERA_BUILDS_URL,
    HEDERA_HAPI_PATH,
    LABEL_NODE_NAME,
    LOCAL_BUILD_COPY_RETRY,
    ROOT_CONTAINER,
    TLS_KEYS_SECRET_NAME,
)
from solo_manager.errors import SoloError
from solo_manager.k8s import ClusterClient
from solo_manager.tasks import Task, TaskList

_EXCLUDED_BUILD_PATHS = ("data/keys", "data/config")


def local_build_filter(path: str) -> bool:
    """False for paths under the node's key and config directories."""
    return not any(excluded in path for excluded in _EXCLUDED_BUILD_PATHS)


def resolve_local_build_paths(value: str, aliases: list[str]) -> dict[str, Path]:
    """Map aliases to local build directories.

    ``value`` is a default path, ``alias=path`` pairs, or both, comma separated.

    Raises:
        SoloError: If a referenced path does not exist.
    """
    default: str | None = None
    per_alias: dict[str, str] = {}
    for item in filter(None, (part.strip() for part in value.split(","))):
        alias, sep, path = item.partition("=")
        if sep:
            per_alias[alias.strip()] = path.strip()
        else:
            default = item
    result = {}
    for alias in aliases:
        path = per_alias.get(alias, default)
        if path is None:
            continue
        resolved = Path(path).expanduser()
        if not resolved.exists():
            raise SoloError(f"local build path does not exist: {path}")
        result[alias] = resolved
    return result


class PlatformInstaller:
    """Puts platform software, permissions and keys in place on node pods."""

    def __init__(self, cluster: ClusterClient) -> None:
        self.cluster = cluster

    def fetch_platform(self, namespace: str, pod: str, release_tag: str) -> None:
        """Download and unpack a platform release inside the pod.

        Raises:
            SoloError: If the download, checksum or unpack fails.
        """
        prefix = templates.release_prefix(release_tag)
        build = f"build-{release_tag}"
        url = f"{HEDERA_BUILDS_URL}/node/software/{prefix}/{build}"
        script = (
            f"set -e; mkdir -p {HEDERA_HAPI_PATH} && cd {HEDERA_HAPI_PATH} && "
            f"curl -sSfL -o {build}.zip {url}.zip && "
            f"curl -sSfL -o {build}.sha384 {url}.sha384 && "
            f"sha384sum -c {build}.sha384 && "
            f"unzip -oq {build}.zip -d {HEDERA_HAPI_PATH} && "
            f"rm -f {build}.zip {build}.sha384"
        )
        try:
            self.cluster.exec_in_container(namespace, pod, ROOT_CONTAINER, script)
        except Exception as err:
            raise SoloError(f"failed to fetch platform {release_tag} on {pod}: {err}", err) from err

    def copy_local_build(self, namespace: str, pod: str, build_path: Path, app_config: str = "") -> None:
        """Copy a local build into the pod, skipping key and config directories.

        The copy is retried; extra application config files follow it.
        """
        retrying = Retrying(
            stop=stop_after_attempt(LOCAL_BUILD_COPY_RETRY),
            wait=wait_fixed(1),
            retry=retry_if_exception_type(RuntimeError),
            reraise=True,
        )
        retrying(self.cluster.copy_to, namespace, pod, ROOT_CONTAINER, Path(build_path),
                 HEDERA_HAPI_PATH, local_build_filter)
        for json_file in filter(None, (part.strip() for part in app_config.split(","))):
            if Path(json_file).exists():
                self.cluster.copy_to(namespace, pod, ROOT_CONTAINER, Path(json_file), HEDERA_HAPI_PATH)
            else:
                logger.warning("Application config file not found: %s", json_file)

    def set_path_permission(self, namespace: str, pod: str, path: str = HEDERA_HAPI_PATH) -> None:
        self.cluster.exec_in_container(
            namespace, pod, ROOT_CONTAINER,
            f"chown -R hedera:hedera {path} 2>/dev/null || true; chmod -R 0755 {path} 2>/dev/null || true",
        )

    def copy_gossip_keys(self, namespace: str, alias: str, aliases: list[str], keys_dir: Path) -> None:
        """Store a node's private signing key and every node's public key in its secret."""
        keys_dir = Path(keys_dir)
        data = {templates.gossip_private_key_file(alias):
                (keys_dir / templates.gossip_private_key_file(alias)).read_bytes()}
        for other in aliases:
            name = templates.gossip_public_key_file(other)
            data[name] = (keys_dir / name).read_bytes()
        self.cluster.create_secret(namespace, templates.gossip_keys_secret(alias), data,
                                   labels={LABEL_NODE_NAME: alias})

    def copy_tls_keys(self, namespace: str, aliases: list[str], keys_dir: Path) -> None:
        """Store every node's gRPC TLS key and certificate in the shared secret."""
        keys_dir = Path(keys_dir)
        data = {}
        for alias in aliases:
            for name in (templates.tls_private_key_file(alias), templates.tls_public_key_file(alias)):
                data[name] = (keys_dir / name).read_bytes()
        self.cluster.create_secret(namespace, TLS_KEYS_SECRET_NAME, data)

    def copy_node_keys_tasks(self, namespace: str, aliases: list[str], keys_dir: Path) -> TaskList:
        """Concurrent tasks copying gossip and TLS keys into secrets."""
        tasks = [
            Task(f"Gossip keys: {alias}",
                 lambda ctx, alias=alias: self.copy_gossip_keys(namespace, alias, aliases, keys_dir))
            for alias in aliases
        ]
        tasks.append(Task("gRPC TLS keys", lambda ctx: self.copy_tls_keys(namespace, aliases, keys_dir)))
        return TaskList(tasks, concurrent=True)

    def setup_node(self, namespace: str, pod: str) -> None:
        self.set_path_permission(namespace, pod, HEDERA_HAPI_PATH)
        console.print(f"[green]  ✓ Set permissions on {pod}[/green]")
