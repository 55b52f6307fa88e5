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

"""Constants for paths, ports, labels, ledger accounts and polling budgets."""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path

# -- Local paths --
SOLO_HOME = Path.home() / ".solo"
SOLO_CACHE_DIR = SOLO_HOME / "cache"
FLAGS_FILE_NAME = "flags.yaml"

# -- Container paths --
ROOT_CONTAINER = "root-container"
HEDERA_HAPI_PATH = "/opt/hgcapp/services-hedera/HapiApp2.0"
HEDERA_APP_NAME = "HederaNode.jar"
HEDERA_BUILDS_URL = "https://builds.hedera.com"
SAVED_STATE_ROOT = f"{HEDERA_HAPI_PATH}/data/saved/com.hedera.services.ServicesMain"

# -- Ports --
HEDERA_NODE_INTERNAL_GOSSIP_PORT = 50111
HEDERA_NODE_EXTERNAL_GOSSIP_PORT = 50111
GRPC_PORT = 50211
JVM_DEBUG_PORT = 5005
NODE_METRICS_PORT = 9999
NODE_METRICS_PATH = "/metrics"
NODE_STATUS_METRIC = "platform_PlatformStatus"

# -- Endpoint types --
ENDPOINT_TYPE_IP = "IP"
ENDPOINT_TYPE_FQDN = "FQDN"

# -- Ledger accounts --
NODE_ACCOUNT_ID_START = "0.0.3"
IGNORED_NODE_ACCOUNT_ID = "0.0.0"
TREASURY_ACCOUNT_ID = "0.0.2"
OPERATOR_ID = "0.0.2"
FREEZE_ADMIN_ACCOUNT = "0.0.58"
GENESIS_KEY = (
    "302e020100300506032b65700422042091132178e72057a1d7528025956fe39b0b847f200ab59b2fdd367017f3087137"
)
DEFAULT_STAKE_AMOUNT = 500
FREEZE_ADMIN_FUNDING_AMOUNT = 100000
STAKE_REFRESH_TRANSFER_AMOUNT = 1
DEFAULT_CHAIN_ID = "298"
DEFAULT_NETWORK_NODE_NAME = "node1"

# -- Upgrade --
UPGRADE_FILE_ID = "0.0.150"
UPGRADE_FILE_CHUNK_SIZE = 5120
UPGRADE_FREEZE_DELAY_SECONDS = 5
CONFIG_VERSION_PROPERTY = "hedera.config.version"

# -- Keys --
SIGNING_KEY_PREFIX = "s"
GOSSIP_KEY_SIZE = 3072
GRPC_TLS_KEY_SIZE = 4096
CERTIFICATE_VALIDITY_DAYS = 365 * 100

# -- Secrets and roles --
TLS_KEYS_SECRET_NAME = "network-node-hapi-app-secrets"
USER_CLUSTER_ROLE = "solo-user-role"
USER_ROLE_VERBS = ["get", "list", "watch", "create", "delete"]

# -- Labels --
LABEL_NODE_NAME = "solo.hedera.com/node-name"
LABEL_ACCOUNT_ID = "solo.hedera.com/account-id"
LABEL_NODE_ID = "solo.hedera.com/node-id"
LABEL_TYPE_NETWORK_NODE = "solo.hedera.com/type=network-node"
LABEL_TYPE_NETWORK_NODE_SVC = "solo.hedera.com/type=network-node-svc"
LABEL_TYPE_HAPROXY = "solo.hedera.com/type=haproxy"

# -- Charts --
SOLO_CHART_REPO = "oci://ghcr.io/hashgraph/solo-charts"
SOLO_DEPLOYMENT_CHART = "solo-deployment"
SOLO_CLUSTER_SETUP_CHART = "solo-cluster-setup"
SOLO_CLUSTER_SETUP_NAMESPACE = "solo-setup"
JSON_RPC_RELAY_CHART = "hedera-json-rpc-relay"
JSON_RPC_RELAY_REPO = "https://hiero-ledger.github.io/hiero-json-rpc-relay/charts"
DEFAULT_CHART_VERSION = "0.44.0"
DEFAULT_RELEASE_TAG = "v0.58.10"
MIRROR_NODE_COMPONENTS = ["postgres", "rest", "grpc", "monitor", "importer"]
MIRROR_EXPLORER_COMPONENT = "hedera-explorer"
MIRROR_POSTGRES_PVC_LABEL = "app.kubernetes.io/name=postgres"

# -- Polling budgets --
PODS_RUNNING_MAX_ATTEMPTS = 900
PODS_RUNNING_DELAY_SECONDS = 1.0
PODS_READY_MAX_ATTEMPTS = 300
PODS_READY_DELAY_SECONDS = 2.0
NODE_ACTIVE_MAX_ATTEMPTS = 300
NODE_ACTIVE_DELAY_SECONDS = 1.0
NODE_ACTIVE_TIMEOUT_SECONDS = 1.0
NODE_ACTIVE_SETTLE_SECONDS = 1.5
NODE_PROXY_MAX_ATTEMPTS = 300
NODE_PROXY_DELAY_SECONDS = 2.0
RELAY_PODS_READY_MAX_ATTEMPTS = 100
STAKE_RECALCULATION_DELAY_SECONDS = 60.0
PODS_RESTART_GRACE_SECONDS = 20.0
LOCAL_BUILD_COPY_RETRY = 3
KUBECTL_TIMEOUT_SECONDS = 60

# -- Leases --
DEFAULT_LEASE_DURATION_SECONDS = 20
DEFAULT_LEASE_ACQUIRE_ATTEMPTS = 10
LEASE_API_VERSION = "coordination.k8s.io/v1"

# -- Continuation files --
NODE_OVERRIDE_FILE = "node-overrides.yaml"
ADD_CONTEXT_FILE = "node-add.json"
DELETE_CONTEXT_FILE = "node-delete.json"
UPDATE_CONTEXT_FILE = "node-update.json"
UPGRADE_CONTEXT_FILE = "node-upgrade.json"
CONTINUATION_SCHEMA_VERSION = 1


class NodeStatus(IntEnum):
    """Platform status codes reported on the node metrics endpoint."""

    NO_VALUE = 0
    STARTING_UP = 1
    ACTIVE = 2
    BEHIND = 4
    FREEZING = 5
    FREEZE_COMPLETE = 6
    REPLAYING_EVENTS = 7
    OBSERVING = 8
    CHECKING = 9
    RECONNECT_COMPLETE = 10
    CATASTROPHIC_FAILURE = 11


class NodeSubcommand:
    """Transaction family that triggered a chart or stake update."""

    ADD = "add"
    DELETE = "delete"
    UPDATE = "update"
