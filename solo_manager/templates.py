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


"""Name, path and file name rendering for network resources."""

from __future__ import annotations

import re
from pathlib import Path

from solo_manager.constants import SIGNING_KEY_PREFIX
from solo_manager.errors import IllegalArgumentError

_ALIAS_SUFFIX = re.compile(r"\d+$")


def network_pod_name(alias: str) -> str:
    return f"network-{alias}-0"


def network_headless_service(alias: str) -> str:
    return f"network-{alias}"


def network_service(alias: str) -> str:
    return f"network-{alias}-svc"


def haproxy_name(alias: str) -> str:
    return f"haproxy-{alias}"


def pod_fqdn(namespace: str, alias: str) -> str:
    """In-cluster DNS name of a node pod, reached through its headless service."""
    return f"{network_pod_name(alias)}.{network_headless_service(alias)}.{namespace}.svc.cluster.local"


def service_fqdn(namespace: str, alias: str) -> str:
    return f"{network_service(alias)}.{namespace}.svc.cluster.local"


def node_id_from_alias(alias: str) -> int:
    """Numeric node id of an alias: its trailing number minus one.

    Raises:
        IllegalArgumentError: If the alias has no trailing number.
    """
    match = _ALIAS_SUFFIX.search(alias)
    if match is None:
        raise IllegalArgumentError(f"invalid node alias {alias}, must end with a number", alias)
    return int(match.group()) - 1


def increment_alias(alias: str) -> str:
    """Increment the trailing number of an alias (``node9`` -> ``node10``)."""
    match = _ALIAS_SUFFIX.search(alias)
    if match is None:
        return alias
    return alias[: match.start()] + str(int(match.group()) + 1)


def release_prefix(release_tag: str) -> str:
    """``v0.58.10`` -> ``v0.58``."""
    parts = release_tag.split(".")
    if len(parts) < 2:
        raise IllegalArgumentError(f"invalid release tag: {release_tag}", release_tag)
    return ".".join(parts[:2])


def staging_dir(cache_dir: Path, release_tag: str) -> Path:
    return Path(cache_dir) / release_prefix(release_tag) / "staging" / release_tag


# -- Key files --

def gossip_private_key_file(alias: str) -> str:
    return f"{SIGNING_KEY_PREFIX}-private-{alias}.pem"


def gossip_public_key_file(alias: str) -> str:
    return f"{SIGNING_KEY_PREFIX}-public-{alias}.pem"


def tls_private_key_file(alias: str) -> str:
    return f"hedera-{alias}.key"


def tls_public_key_file(alias: str) -> str:
    return f"hedera-{alias}.crt"


# -- Secrets and releases --

def gossip_keys_secret(alias: str) -> str:
    return f"network-{alias}-keys-secrets"


def admin_key_secret(alias: str) -> str:
    return f"{alias}-admin"


def user_credentials_secret(username: str) -> str:
    return f"{username}-credentials"


def user_role_binding(username: str) -> str:
    return f"{username}-rolebinding"


def relay_release_name(aliases: list[str]) -> str:
    return "relay-" + "-".join(aliases)
