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

"""Node subcommands (setup, start, stop, keys, add, update, delete, upgrade, ...)."""

from __future__ import annotations

from typing import Any

import typer

from solo_manager.node_handlers import NodeCommandHandlers

app = typer.Typer(help="Manage network nodes.")

# -- Shared options --
NAMESPACE = typer.Option(None, "--namespace", "-n", help="Namespace of the network")
NODE_ALIASES = typer.Option(None, "--node-aliases", "-i", help="Comma separated node aliases, e.g. node1,node2")
NODE_ALIAS = typer.Option(None, "--node-alias", help="Alias of the node to operate on")
RELEASE_TAG = typer.Option(None, "--release-tag", "-t", help="Platform release tag, e.g. v0.58.10")
CACHE_DIR = typer.Option(None, "--cache-dir", help="Local cache directory")
APP = typer.Option(None, "--app", help="Application jar name; empty for the default node app")
DEBUG_NODE_ALIAS = typer.Option(None, "--debug-node-alias", help="Forward the JVM debug port of this node")
LOCAL_BUILD_PATH = typer.Option(None, "--local-build-path",
                                help="Local platform build, or alias=path pairs separated by commas")
APP_CONFIG = typer.Option(None, "--app-config", help="Comma separated application config files")
CHART_DIR = typer.Option(None, "--chart-dir", help="Local chart directory")
CHART_VERSION = typer.Option(None, "--solo-chart-version", help="Deployment chart version")
ADMIN_KEY = typer.Option(None, "--admin-key", help="Node admin private key")
TREASURY_KEY = typer.Option(None, "--treasury-key", help="Treasury account private key")
FREEZE_ADMIN_KEY = typer.Option(None, "--freeze-admin-private-key", help="Freeze admin account private key")
CHAIN_ID = typer.Option(None, "--ledger-id", help="Ledger chain id")
UPGRADE_ZIP_FILE = typer.Option(None, "--upgrade-zip-file", help="Prebuilt upgrade zip")
OUTPUT_DIR = typer.Option(None, "--output-dir", help="Directory receiving the context data of this phase")
INPUT_DIR = typer.Option(None, "--input-dir", help="Directory holding the context data of the prepare phase")
ENDPOINT_TYPE = typer.Option(None, "--endpoint-type", help="Endpoint type: FQDN or IP")
GOSSIP_ENDPOINTS = typer.Option(None, "--gossip-endpoints", help="Comma separated gossip endpoints host:port")
GRPC_ENDPOINTS = typer.Option(None, "--grpc-endpoints", help="Comma separated gRPC endpoints host:port")


def _argv(**values: Any) -> dict[str, Any]:
    return {name: value for name, value in values.items() if value is not None}


def _handlers() -> NodeCommandHandlers:
    return NodeCommandHandlers.from_environment()


# ============================================================================
# Node processes
# ============================================================================

@app.command()
def setup(
    namespace: str | None = NAMESPACE,
    node_aliases: str | None = NODE_ALIASES,
    release_tag: str | None = RELEASE_TAG,
    cache_dir: str | None = CACHE_DIR,
    local_build_path: str | None = LOCAL_BUILD_PATH,
    app_config: str | None = APP_CONFIG,
    app: str | None = APP,
) -> None:
    """Fetch platform software into network nodes and prepare them to start."""
    _handlers().setup(_argv(
        namespace=namespace, node_aliases=node_aliases, release_tag=release_tag, cache_dir=cache_dir,
        local_build_path=local_build_path, app_config=app_config, app=app,
    ))


@app.command()
def start(
    namespace: str | None = NAMESPACE,
    node_aliases: str | None = NODE_ALIASES,
    app: str | None = APP,
    debug_node_alias: str | None = DEBUG_NODE_ALIAS,
    state_file: str | None = typer.Option(None, "--state-file", help="Saved state archive to upload first"),
) -> None:
    """Start nodes and wait until they are ACTIVE."""
    _handlers().start(_argv(
        namespace=namespace, node_aliases=node_aliases, app=app, debug_node_alias=debug_node_alias,
        state_file=state_file,
    ))


@app.command()
def stop(
    namespace: str | None = NAMESPACE,
    node_aliases: str | None = NODE_ALIASES,
) -> None:
    """Stop nodes."""
    _handlers().stop(_argv(namespace=namespace, node_aliases=node_aliases))


@app.command()
def keys(
    node_aliases: str | None = NODE_ALIASES,
    cache_dir: str | None = CACHE_DIR,
    gossip_keys: bool | None = typer.Option(None, "--gossip-keys/--no-gossip-keys",
                                            help="Generate gossip signing keys"),
    tls_keys: bool | None = typer.Option(None, "--tls-keys/--no-tls-keys", help="Generate gRPC TLS keys"),
) -> None:
    """Generate gossip and gRPC TLS keys for nodes."""
    _handlers().keys(_argv(
        node_aliases=node_aliases, cache_dir=cache_dir,
        generate_gossip_keys=gossip_keys, generate_tls_keys=tls_keys,
    ))


@app.command()
def refresh(
    namespace: str | None = NAMESPACE,
    node_aliases: str | None = NODE_ALIASES,
    release_tag: str | None = RELEASE_TAG,
    cache_dir: str | None = CACHE_DIR,
    local_build_path: str | None = LOCAL_BUILD_PATH,
    app_config: str | None = APP_CONFIG,
    app: str | None = APP,
) -> None:
    """Reset nodes to a clean state and restart them."""
    _handlers().refresh(_argv(
        namespace=namespace, node_aliases=node_aliases, release_tag=release_tag, cache_dir=cache_dir,
        local_build_path=local_build_path, app_config=app_config, app=app,
    ))


@app.command()
def logs(namespace: str | None = NAMESPACE) -> None:
    """Download logs and configs from every network node."""
    _handlers().logs(_argv(namespace=namespace))


@app.command()
def states(
    namespace: str | None = NAMESPACE,
    node_aliases: str | None = NODE_ALIASES,
) -> None:
    """Download saved states from nodes."""
    _handlers().states(_argv(namespace=namespace, node_aliases=node_aliases))


@app.command()
def freeze(
    namespace: str | None = NAMESPACE,
    freeze_admin_private_key: str | None = FREEZE_ADMIN_KEY,
) -> None:
    """Freeze the network and stop its nodes."""
    _handlers().freeze(_argv(namespace=namespace, freeze_admin_private_key=freeze_admin_private_key))


@app.command()
def restart(
    namespace: str | None = NAMESPACE,
    debug_node_alias: str | None = DEBUG_NODE_ALIAS,
) -> None:
    """Start every existing node and wait until they are ACTIVE."""
    _handlers().restart(_argv(namespace=namespace, debug_node_alias=debug_node_alias))


# ============================================================================
# Add
# ============================================================================

def _add_command(name: str, method: str, doc: str, phase_dir: str | None) -> None:
    """Register an add command; ``phase_dir`` names its continuation option, if any."""

    def command(
        namespace: str | None = NAMESPACE,
        release_tag: str | None = RELEASE_TAG,
        cache_dir: str | None = CACHE_DIR,
        app: str | None = APP,
        debug_node_alias: str | None = DEBUG_NODE_ALIAS,
        endpoint_type: str | None = ENDPOINT_TYPE,
        gossip_endpoints: str | None = GOSSIP_ENDPOINTS,
        grpc_endpoints: str | None = GRPC_ENDPOINTS,
        gossip_keys: bool = typer.Option(True, "--gossip-keys/--no-gossip-keys",
                                         help="Generate the gossip signing key"),
        tls_keys: bool = typer.Option(True, "--tls-keys/--no-tls-keys", help="Generate the gRPC TLS key"),
        grpc_tls_cert: str | None = typer.Option(None, "--grpc-tls-cert", help="gRPC TLS certificate file"),
        grpc_tls_key: str | None = typer.Option(None, "--grpc-tls-key", help="gRPC TLS key file"),
        haproxy_ips: str | None = typer.Option(None, "--haproxy-ips", help="alias=ip pairs for haproxy"),
        envoy_ips: str | None = typer.Option(None, "--envoy-ips", help="alias=ip pairs for envoy"),
        pvcs: bool | None = typer.Option(None, "--pvcs/--no-pvcs", help="Network uses persistent volumes"),
        admin_key: str | None = ADMIN_KEY,
        treasury_key: str | None = TREASURY_KEY,
        freeze_admin_private_key: str | None = FREEZE_ADMIN_KEY,
        chain_id: str | None = CHAIN_ID,
        chart_dir: str | None = CHART_DIR,
        chart_version: str | None = CHART_VERSION,
        local_build_path: str | None = LOCAL_BUILD_PATH,
        app_config: str | None = APP_CONFIG,
        upgrade_zip_file: str | None = UPGRADE_ZIP_FILE,
        output_dir: str | None = OUTPUT_DIR,
        input_dir: str | None = INPUT_DIR,
    ) -> None:
        handler = getattr(_handlers(), method)
        handler(_argv(
            namespace=namespace, release_tag=release_tag, cache_dir=cache_dir, app=app,
            debug_node_alias=debug_node_alias, endpoint_type=endpoint_type,
            gossip_endpoints=gossip_endpoints, grpc_endpoints=grpc_endpoints,
            generate_gossip_keys=gossip_keys, generate_tls_keys=tls_keys,
            grpc_tls_cert=grpc_tls_cert, grpc_tls_key=grpc_tls_key,
            haproxy_ips=haproxy_ips, envoy_ips=envoy_ips, pvcs=pvcs,
            admin_key=admin_key, treasury_key=treasury_key,
            freeze_admin_private_key=freeze_admin_private_key, chain_id=chain_id,
            chart_dir=chart_dir, chart_version=chart_version, local_build_path=local_build_path,
            app_config=app_config, upgrade_zip_file=upgrade_zip_file,
            output_dir=output_dir if phase_dir == "output_dir" else None,
            input_dir=input_dir if phase_dir == "input_dir" else None,
        ))

    command.__doc__ = doc
    app.command(name)(command)


_add_command("add", "add", "Add a new node to the network.", None)
_add_command("add-prepare", "add_prepare",
             "Prepare a new node and save its context data to --output-dir.", "output_dir")
_add_command("add-submit-transactions", "add_submit_transactions",
             "Submit the node create and upgrade transactions of a prepared add.", "input_dir")
_add_command("add-execute", "add_execute",
             "Deploy a prepared and submitted node and bring the network back up.", "input_dir")


# ============================================================================
# Update and delete
# ============================================================================

def _update_command(name: str, method: str, doc: str, phase_dir: str | None) -> None:
    def command(
        namespace: str | None = NAMESPACE,
        node_alias: str | None = NODE_ALIAS,
        release_tag: str | None = RELEASE_TAG,
        cache_dir: str | None = CACHE_DIR,
        app: str | None = APP,
        debug_node_alias: str | None = DEBUG_NODE_ALIAS,
        endpoint_type: str | None = ENDPOINT_TYPE,
        gossip_endpoints: str | None = GOSSIP_ENDPOINTS,
        grpc_endpoints: str | None = GRPC_ENDPOINTS,
        new_account_number: str | None = typer.Option(None, "--new-account-number",
                                                      help="New account id of the node"),
        new_admin_key: str | None = typer.Option(None, "--new-admin-key", help="New admin key of the node"),
        tls_public_key: str | None = typer.Option(None, "--tls-public-key", help="New gRPC TLS certificate"),
        tls_private_key: str | None = typer.Option(None, "--tls-private-key", help="New gRPC TLS key"),
        gossip_public_key: str | None = typer.Option(None, "--gossip-public-key",
                                                     help="New gossip signing certificate"),
        gossip_private_key: str | None = typer.Option(None, "--gossip-private-key",
                                                      help="New gossip signing key"),
        admin_key: str | None = ADMIN_KEY,
        treasury_key: str | None = TREASURY_KEY,
        freeze_admin_private_key: str | None = FREEZE_ADMIN_KEY,
        chain_id: str | None = CHAIN_ID,
        chart_dir: str | None = CHART_DIR,
        chart_version: str | None = CHART_VERSION,
        local_build_path: str | None = LOCAL_BUILD_PATH,
        app_config: str | None = APP_CONFIG,
        upgrade_zip_file: str | None = UPGRADE_ZIP_FILE,
        output_dir: str | None = OUTPUT_DIR,
        input_dir: str | None = INPUT_DIR,
    ) -> None:
        handler = getattr(_handlers(), method)
        handler(_argv(
            namespace=namespace, node_alias=node_alias, release_tag=release_tag, cache_dir=cache_dir,
            app=app, debug_node_alias=debug_node_alias, endpoint_type=endpoint_type,
            gossip_endpoints=gossip_endpoints, grpc_endpoints=grpc_endpoints,
            new_account_number=new_account_number, new_admin_key=new_admin_key,
            tls_public_key=tls_public_key, tls_private_key=tls_private_key,
            gossip_public_key=gossip_public_key, gossip_private_key=gossip_private_key,
            admin_key=admin_key, treasury_key=treasury_key,
            freeze_admin_private_key=freeze_admin_private_key, chain_id=chain_id,
            chart_dir=chart_dir, chart_version=chart_version, local_build_path=local_build_path,
            app_config=app_config, upgrade_zip_file=upgrade_zip_file,
            output_dir=output_dir if phase_dir == "output_dir" else None,
            input_dir=input_dir if phase_dir == "input_dir" else None,
        ))

    command.__doc__ = doc
    app.command(name)(command)


def _delete_command(name: str, method: str, doc: str, phase_dir: str | None) -> None:
    def command(
        namespace: str | None = NAMESPACE,
        node_alias: str | None = NODE_ALIAS,
        release_tag: str | None = RELEASE_TAG,
        cache_dir: str | None = CACHE_DIR,
        app: str | None = APP,
        debug_node_alias: str | None = DEBUG_NODE_ALIAS,
        endpoint_type: str | None = ENDPOINT_TYPE,
        admin_key: str | None = ADMIN_KEY,
        treasury_key: str | None = TREASURY_KEY,
        freeze_admin_private_key: str | None = FREEZE_ADMIN_KEY,
        chain_id: str | None = CHAIN_ID,
        chart_dir: str | None = CHART_DIR,
        chart_version: str | None = CHART_VERSION,
        local_build_path: str | None = LOCAL_BUILD_PATH,
        app_config: str | None = APP_CONFIG,
        upgrade_zip_file: str | None = UPGRADE_ZIP_FILE,
        output_dir: str | None = OUTPUT_DIR,
        input_dir: str | None = INPUT_DIR,
    ) -> None:
        handler = getattr(_handlers(), method)
        handler(_argv(
            namespace=namespace, node_alias=node_alias, release_tag=release_tag, cache_dir=cache_dir,
            app=app, debug_node_alias=debug_node_alias, endpoint_type=endpoint_type,
            admin_key=admin_key, treasury_key=treasury_key,
            freeze_admin_private_key=freeze_admin_private_key, chain_id=chain_id,
            chart_dir=chart_dir, chart_version=chart_version, local_build_path=local_build_path,
            app_config=app_config, upgrade_zip_file=upgrade_zip_file,
            output_dir=output_dir if phase_dir == "output_dir" else None,
            input_dir=input_dir if phase_dir == "input_dir" else None,
        ))

    command.__doc__ = doc
    app.command(name)(command)


_update_command("update", "update", "Update a node's account, endpoints or keys.", None)
_update_command("update-prepare", "update_prepare",
                "Prepare a node update and save its context data to --output-dir.", "output_dir")
_update_command("update-submit-transactions", "update_submit_transactions",
                "Submit the node update and upgrade transactions of a prepared update.", "input_dir")
_update_command("update-execute", "update_execute",
                "Redeploy the network after a submitted node update.", "input_dir")

_delete_command("delete", "delete", "Delete a node from the network.", None)
_delete_command("delete-prepare", "delete_prepare",
                "Prepare a node delete and save its context data to --output-dir.", "output_dir")
_delete_command("delete-submit-transactions", "delete_submit_transactions",
                "Submit the node delete and upgrade transactions of a prepared delete.", "input_dir")
_delete_command("delete-execute", "delete_execute",
                "Redeploy the network without a deleted node.", "input_dir")


# ============================================================================
# Upgrade
# ============================================================================

def _upgrade_command(name: str, method: str, doc: str, phase_dir: str | None) -> None:
    def command(
        namespace: str | None = NAMESPACE,
        release_tag: str | None = RELEASE_TAG,
        cache_dir: str | None = CACHE_DIR,
        app: str | None = APP,
        debug_node_alias: str | None = DEBUG_NODE_ALIAS,
        admin_key: str | None = ADMIN_KEY,
        treasury_key: str | None = TREASURY_KEY,
        freeze_admin_private_key: str | None = FREEZE_ADMIN_KEY,
        upgrade_zip_file: str | None = UPGRADE_ZIP_FILE,
        output_dir: str | None = OUTPUT_DIR,
        input_dir: str | None = INPUT_DIR,
    ) -> None:
        handler = getattr(_handlers(), method)
        handler(_argv(
            namespace=namespace, release_tag=release_tag, cache_dir=cache_dir, app=app,
            debug_node_alias=debug_node_alias, admin_key=admin_key, treasury_key=treasury_key,
            freeze_admin_private_key=freeze_admin_private_key, upgrade_zip_file=upgrade_zip_file,
            output_dir=output_dir if phase_dir == "output_dir" else None,
            input_dir=input_dir if phase_dir == "input_dir" else None,
        ))

    command.__doc__ = doc
    app.command(name)(command)


_upgrade_command("upgrade", "upgrade", "Upgrade the platform software of the whole network.", None)
_upgrade_command("upgrade-prepare", "upgrade_prepare",
                 "Prepare a network upgrade and save its context data to --output-dir.", "output_dir")
_upgrade_command("upgrade-submit-transactions", "upgrade_submit_transactions",
                 "Submit the upgrade transactions of a prepared upgrade.", "input_dir")
_upgrade_command("upgrade-execute", "upgrade_execute",
                 "Restart the network after a submitted upgrade.", "input_dir")
_upgrade_command("prepare-upgrade", "prepare_upgrade",
                 "Upload the upgrade zip and send the prepare upgrade transaction.", None)
_upgrade_command("freeze-upgrade", "freeze_upgrade",
                 "Upload the upgrade zip and send the freeze upgrade transaction.", None)


@app.command("download-generated-files")
def download_generated_files(
    namespace: str | None = NAMESPACE,
    node_alias: str | None = NODE_ALIAS,
    cache_dir: str | None = CACHE_DIR,
    release_tag: str | None = RELEASE_TAG,
) -> None:
    """Download config.txt and signing keys generated by an existing node."""
    _handlers().download_generated_files(_argv(
        namespace=namespace, node_alias=node_alias, cache_dir=cache_dir, release_tag=release_tag,
    ))
