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


"""Network node service discovery from cluster labels."""

from __future__ import annotations

from dataclasses import dataclass

from solo_manager import templates
from solo_manager.constants import (
    LABEL_ACCOUNT_ID,
    LABEL_NODE_ID,
    LABEL_NODE_NAME,
    LABEL_TYPE_NETWORK_NODE,
    LABEL_TYPE_NETWORK_NODE_SVC,
)
from solo_manager.k8s import ClusterClient


@dataclass
class NodeService:
    """Cluster resources and ledger identity of one node.

    Attributes:
        alias: Node alias.
        node_id: Numeric node id.
        account_id: Ledger account id of the node.
        namespace: Namespace of the node.
        pod_name: Name of the node pod.
        service_name: Name of the node service.
        cluster_ip: Cluster IP of the node service, if assigned.
    """

    alias: str
    node_id: int
    account_id: str
    namespace: str
    pod_name: str
    service_name: str
    cluster_ip: str = ""

    @property
    def fqdn(self) -> str:
        return templates.service_fqdn(self.namespace, self.alias)


def build_service_map(cluster: ClusterClient, namespace: str) -> dict[str, NodeService]:
    """Read node services and pods, keyed by alias in node id order.

    Always reads the cluster; pods may have been recreated since the last call.
    """
    pods: dict[str, str] = {}
    for pod in cluster.list_pods(namespace, [LABEL_TYPE_NETWORK_NODE]):
        labels = pod.get("metadata", {}).get("labels", {})
        alias = labels.get(LABEL_NODE_NAME)
        if alias:
            pods[alias] = pod["metadata"]["name"]

    services: list[NodeService] = []
    for svc in cluster.list_services(namespace, [LABEL_TYPE_NETWORK_NODE_SVC]):
        metadata = svc.get("metadata", {})
        labels = metadata.get("labels", {})
        alias = labels.get(LABEL_NODE_NAME)
        if not alias:
            continue
        node_id = labels.get(LABEL_NODE_ID)
        services.append(NodeService(
            alias=alias,
            node_id=int(node_id) if node_id is not None else templates.node_id_from_alias(alias),
            account_id=labels.get(LABEL_ACCOUNT_ID, ""),
            namespace=namespace,
            pod_name=pods.get(alias, templates.network_pod_name(alias)),
            service_name=metadata.get("name", templates.network_service(alias)),
            cluster_ip=svc.get("spec", {}).get("clusterIP", "") or "",
        ))
    return {service.alias: service for service in sorted(services, key=lambda s: s.node_id)}
