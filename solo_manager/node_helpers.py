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


"""Node identity derivation, chart values, and continuation projections."""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any

from solo_manager import templates
from solo_manager.constants import (
    ADD_CONTEXT_FILE,
    CONFIG_VERSION_PROPERTY,
    DEFAULT_NETWORK_NODE_NAME,
    DELETE_CONTEXT_FILE,
    ENDPOINT_TYPE_FQDN,
    GRPC_PORT,
    HEDERA_NODE_EXTERNAL_GOSSIP_PORT,
    HEDERA_NODE_INTERNAL_GOSSIP_PORT,
    IGNORED_NODE_ACCOUNT_ID,
    JVM_DEBUG_PORT,
    NODE_ACCOUNT_ID_START,
    UPDATE_CONTEXT_FILE,
    UPGRADE_CONTEXT_FILE,
)
from solo_manager.context import NewNode, NodeAddContext, NodeContext
from solo_manager.continuation import ContinuationSchema
from solo_manager.endpoints import prepare_endpoints
from solo_manager.errors import IllegalArgumentError
from solo_manager.services import NodeService


# ============================================================================
# Node identity
# ============================================================================

def account_number(account_id: str) -> int:
    """Entity number of a ``shard.realm.num`` account id."""
    try:
        return int(account_id.rsplit(".", 1)[-1])
    except ValueError as err:
        raise IllegalArgumentError(f"invalid account id: {account_id}", account_id) from err


def account_prefix(account_id: str) -> str:
    """``shard.realm.`` prefix of an account id."""
    head, sep, _ = account_id.rpartition(".")
    return f"{head}{sep}" if sep else "0.0."


def determine_new_node(service_map: dict[str, NodeService]) -> tuple[NewNode, int]:
    """Derive the alias and account of the next node.

    The account number is one above the highest existing account number.
    The alias is the alias of the highest node id with its trailing number
    incremented.

    Args:
        service_map: Existing node services.

    Returns:
        Tuple of (new node, new account number).
    """
    if not service_map:
        return NewNode(DEFAULT_NETWORK_NODE_NAME, NODE_ACCOUNT_ID_START), account_number(NODE_ACCOUNT_ID_START)

    services = sorted(service_map.values(), key=lambda s: s.node_id)
    max_num = max(account_number(s.account_id) for s in services)
    prefix = account_prefix(services[0].account_id)
    last_alias = services[-1].alias
    new_num = max_num + 1
    return NewNode(templates.increment_alias(last_alias), f"{prefix}{new_num}"), new_num


def node_account_map(service_map: dict[str, NodeService], aliases: list[str]) -> dict[str, str]:
    """Account id per alias for the given aliases, in alias order."""
    return {alias: service_map[alias].account_id for alias in aliases if alias in service_map}


def ledger_network(service_map: dict[str, NodeService], skip_alias: str = "") -> dict[str, str]:
    """Address book for a ledger client: ``host:port`` to account id."""
    return {
        f"{service.fqdn}:{GRPC_PORT}": service.account_id
        for alias, service in service_map.items()
        if alias != skip_alias and service.account_id
    }


def parse_alias_ip_mapping(value: str) -> dict[str, str]:
    """Parse ``node1=10.0.0.1,node2=10.0.0.2``."""
    mapping = {}
    for item in filter(None, (part.strip() for part in value.split(","))):
        alias, sep, ip = item.partition("=")
        if not sep or not alias or not ip:
            raise IllegalArgumentError(f"invalid alias to IP mapping: {item}", item)
        mapping[alias.strip()] = ip.strip()
    return mapping


# ============================================================================
# Chart values
# ============================================================================

def _node_values(index: int, account_id: str, alias: str, node_id: int) -> list[str]:
    return [
        "--set", f"hedera.nodes[{index}].accountId={account_id}",
        "--set", f"hedera.nodes[{index}].name={alias}",
        "--set", f"hedera.nodes[{index}].nodeId={node_id}",
    ]


def values_for_add(
    service_map: dict[str, NodeService],
    new_node: NewNode,
    haproxy_ips: str = "",
    envoy_ips: str = "",
) -> list[str]:
    """Chart values keeping existing nodes and appending the new one."""
    args: list[str] = []
    services = [s for s in sorted(service_map.values(), key=lambda s: s.node_id) if s.alias != new_node.name]
    for index, service in enumerate(services):
        args += _node_values(index, service.account_id, service.alias, service.node_id)
    index = len(services)
    node_id = max((s.node_id for s in services), default=-1) + 1
    args += _node_values(index, new_node.account_id, new_node.name, node_id)
    if haproxy_ips:
        ip = parse_alias_ip_mapping(haproxy_ips).get(new_node.name)
        if ip:
            args += ["--set", f"hedera.nodes[{index}].haproxyStaticIP={ip}"]
    if envoy_ips:
        ip = parse_alias_ip_mapping(envoy_ips).get(new_node.name)
        if ip:
            args += ["--set", f"hedera.nodes[{index}].envoyProxyStaticIP={ip}"]
    return args


def values_for_delete(service_map: dict[str, NodeService], alias: str) -> list[str]:
    """Chart values marking the deleted node's account as ignored.

    The deleted alias is removed from ``service_map``.
    """
    args: list[str] = []
    for index, service in enumerate(sorted(service_map.values(), key=lambda s: s.node_id)):
        account_id = IGNORED_NODE_ACCOUNT_ID if service.alias == alias else service.account_id
        args += _node_values(index, account_id, service.alias, service.node_id)
    service_map.pop(alias, None)
    return args


def values_for_update(service_map: dict[str, NodeService], alias: str, new_account_number: str = "") -> list[str]:
    """Chart values with the updated node's account replaced when it changed."""
    args: list[str] = []
    for index, service in enumerate(sorted(service_map.values(), key=lambda s: s.node_id)):
        account_id = new_account_number if new_account_number and service.alias == alias else service.account_id
        args += _node_values(index, account_id, service.alias, service.node_id)
    return args


def debug_values(debug_node_alias: str) -> list[str]:
    """Chart values enabling a JVM debug agent on one node."""
    if not debug_node_alias:
        return []
    index = templates.node_id_from_alias(debug_node_alias)
    return [
        "--set", f"hedera.nodes[{index}].root.extraEnv[0].name=JAVA_OPTS",
        "--set", (f"hedera.nodes[{index}].root.extraEnv[0].value=-agentlib:jdwp=transport=dt_socket"
                  f"\\,server=y\\,suspend=y\\,address=*:{JVM_DEBUG_PORT}"),
    ]


# ============================================================================
# Upgrade zip
# ============================================================================

def bump_config_version(properties: str) -> str:
    """Keep ``key=value`` lines and increment the config version property."""
    lines = []
    for raw in properties.splitlines():
        line = raw.strip()
        parts = line.split("=")
        if len(parts) != 2:
            continue
        if parts[0] == CONFIG_VERSION_PROPERTY:
            line = f"{CONFIG_VERSION_PROPERTY}={int(parts[1]) + 1}"
        lines.append(line)
    return "\n".join(lines)


def build_mock_upgrade_zip(staging_dir: Path) -> Path:
    """Zip a copy of the staged application properties with a bumped version.

    Returns:
        Path of ``mock-upgrade.zip`` in the staging directory.
    """
    staging_dir = Path(staging_dir)
    template = staging_dir / "templates" / "application.properties"
    upgrade_root = staging_dir / "mock-upgrade"
    config_dir = upgrade_root / "data" / "config"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "application.properties").write_text(bump_config_version(template.read_text()))

    zip_path = staging_dir / "mock-upgrade.zip"
    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as archive:
        for path in sorted(upgrade_root.rglob("*")):
            if path.is_file():
                archive.write(path, path.relative_to(upgrade_root).as_posix())
    return zip_path


# ============================================================================
# Continuation projections
# ============================================================================

ADD_SCHEMA = ContinuationSchema(
    phase="add",
    file_name=ADD_CONTEXT_FILE,
    fields=("signing_cert_der", "gossip_endpoints", "grpc_service_endpoints", "admin_key",
            "existing_node_aliases", "tls_cert_hash", "upgrade_zip_hash", "new_node"),
)
DELETE_SCHEMA = ContinuationSchema(
    phase="delete",
    file_name=DELETE_CONTEXT_FILE,
    fields=("admin_key", "existing_node_aliases", "upgrade_zip_hash", "node_alias"),
)
UPDATE_SCHEMA = ContinuationSchema(
    phase="update",
    file_name=UPDATE_CONTEXT_FILE,
    fields=("admin_key", "new_admin_key", "freeze_admin_private_key", "treasury_key",
            "existing_node_aliases", "upgrade_zip_hash", "node_alias", "new_account_number",
            "tls_public_key", "tls_private_key", "gossip_public_key", "gossip_private_key",
            "all_node_aliases"),
)
UPGRADE_SCHEMA = ContinuationSchema(
    phase="upgrade",
    file_name=UPGRADE_CONTEXT_FILE,
    fields=("admin_key", "freeze_admin_private_key", "existing_node_aliases", "upgrade_zip_hash",
            "all_node_aliases"),
)


def add_save(ctx: NodeAddContext) -> dict[str, Any]:
    return {
        "signing_cert_der": ctx.signing_cert_der.hex(),
        "gossip_endpoints": [str(endpoint) for endpoint in ctx.gossip_endpoints],
        "grpc_service_endpoints": [str(endpoint) for endpoint in ctx.grpc_service_endpoints],
        "admin_key": ctx.admin_key,
        "existing_node_aliases": list(ctx.config.existing_node_aliases),
        "tls_cert_hash": ctx.tls_cert_hash.hex(),
        "upgrade_zip_hash": ctx.upgrade_zip_hash,
        "new_node": {"name": ctx.new_node.name, "account_id": ctx.new_node.account_id},
    }


def add_load(ctx: NodeAddContext, data: dict[str, Any]) -> None:
    endpoint_type = getattr(ctx.config, "endpoint_type", ENDPOINT_TYPE_FQDN)
    ctx.signing_cert_der = bytes.fromhex(data["signing_cert_der"])
    ctx.gossip_endpoints = prepare_endpoints(endpoint_type, data["gossip_endpoints"],
                                             HEDERA_NODE_INTERNAL_GOSSIP_PORT)
    ctx.grpc_service_endpoints = prepare_endpoints(endpoint_type, data["grpc_service_endpoints"],
                                                   HEDERA_NODE_EXTERNAL_GOSSIP_PORT)
    ctx.admin_key = data["admin_key"]
    ctx.tls_cert_hash = bytes.fromhex(data["tls_cert_hash"])
    ctx.upgrade_zip_hash = data["upgrade_zip_hash"]
    ctx.new_node = NewNode(data["new_node"]["name"], data["new_node"]["account_id"])
    ctx.config.existing_node_aliases = list(data["existing_node_aliases"])
    ctx.config.node_alias = ctx.new_node.name
    ctx.config.all_node_aliases = [*data["existing_node_aliases"], ctx.new_node.name]


def delete_save(ctx: NodeContext) -> dict[str, Any]:
    config = ctx.config
    return {
        "admin_key": config.admin_key,
        "existing_node_aliases": list(config.existing_node_aliases),
        "upgrade_zip_hash": ctx.upgrade_zip_hash,
        "node_alias": config.node_alias,
    }


def delete_load(ctx: NodeContext, data: dict[str, Any]) -> None:
    config = ctx.config
    config.admin_key = data["admin_key"]
    config.existing_node_aliases = list(data["existing_node_aliases"])
    config.all_node_aliases = list(data["existing_node_aliases"])
    config.node_alias = data["node_alias"]
    config.pod_names = {}
    ctx.upgrade_zip_hash = data["upgrade_zip_hash"]


_UPDATE_CONFIG_FIELDS = ("admin_key", "new_admin_key", "freeze_admin_private_key", "treasury_key",
                         "node_alias", "new_account_number", "tls_public_key", "tls_private_key",
                         "gossip_public_key", "gossip_private_key")


def update_save(ctx: NodeContext) -> dict[str, Any]:
    config = ctx.config
    data = {name: getattr(config, name) for name in _UPDATE_CONFIG_FIELDS}
    data["existing_node_aliases"] = list(config.existing_node_aliases)
    data["all_node_aliases"] = list(config.all_node_aliases)
    data["upgrade_zip_hash"] = ctx.upgrade_zip_hash
    return data


def update_load(ctx: NodeContext, data: dict[str, Any]) -> None:
    config = ctx.config
    for name in _UPDATE_CONFIG_FIELDS:
        setattr(config, name, data[name])
    config.existing_node_aliases = list(data["existing_node_aliases"])
    config.all_node_aliases = list(data["all_node_aliases"])
    config.pod_names = {}
    ctx.upgrade_zip_hash = data["upgrade_zip_hash"]


def upgrade_save(ctx: NodeContext) -> dict[str, Any]:
    config = ctx.config
    return {
        "admin_key": config.admin_key,
        "freeze_admin_private_key": config.freeze_admin_private_key,
        "existing_node_aliases": list(config.existing_node_aliases),
        "upgrade_zip_hash": ctx.upgrade_zip_hash,
        "all_node_aliases": list(config.all_node_aliases),
    }


def upgrade_load(ctx: NodeContext, data: dict[str, Any]) -> None:
    config = ctx.config
    config.admin_key = data["admin_key"]
    config.freeze_admin_private_key = data["freeze_admin_private_key"]
    config.existing_node_aliases = list(data["existing_node_aliases"])
    config.all_node_aliases = list(data["all_node_aliases"])
    config.pod_names = {}
    ctx.upgrade_zip_hash = data["upgrade_zip_hash"]
